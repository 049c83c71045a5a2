"""This module provides the scanning engine for the Moderation Guard service.

It includes the `ModerationGuard` class, which scores user-submitted text for
personal health/identifying information (PHI), spam, sales pitches, risky
links and toxicity, blends in a per-user trust score, and applies a
priority-ordered cascade to produce a single moderation status. The module
also defines the default configuration tables, the result data structures
and an in-process metrics recorder.
"""

from __future__ import annotations
import re
import json
import os
import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Any, Optional, Pattern, Tuple
from dataclasses import dataclass, asdict, field
from collections import Counter

from prometheus_client import Counter as PromCounter

from .capabilities import (
    NullPhoneValidity,
    NullProfanityDictionary,
    PhoneValidity,
    ProfanityDictionary,
    UserRecordLookup,
)

# Prometheus metrics (opt-in via env in app.py)
PROMETHEUS_ENABLED = os.getenv("PROMETHEUS_ENABLED", "0") == "1"
if PROMETHEUS_ENABLED:
    moderation_requests_total = PromCounter(
        "moderation_requests_total", "Total requests processed", ["endpoint"]
    )
    moderation_decisions_total = PromCounter(
        "moderation_decisions_total", "Total moderation decisions made", ["status"]
    )
    moderation_flags_total = PromCounter(
        "moderation_flags_total", "Total flags raised", ["flag"]
    )

# --- Default Configuration ---
DEFAULT_CONFIG: Dict[str, Any] = {
    # (pattern, type, weight), evaluated in order
    "phi_patterns": [
        (r"\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b", "phone", 0.8),
        (r"\b\d{3}-\d{2}-\d{4}\b", "ssn", 1.0),
        (r"(?i)\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", "email", 0.6),
        (r"\b\d{5}(?:-\d{4})?\b", "zip", 0.5),
        (r"\b\d{1,2}/\d{1,2}/\d{2,4}\b", "date", 0.4),
        (
            r"(?i)\b(?:street|st\.?|road|rd\.?|avenue|ave\.?|drive|dr\.?|lane|ln\.?"
            r"|boulevard|blvd\.?)\s+[\w\s]+\d+",
            "address",
            0.7,
        ),
        (
            r"(?i)\b(?:medical record|patient id|mrn|medical record number)\s*:?\s*\d+",
            "medical_record",
            0.9,
        ),
    ],
    "phone_shape_pattern": r"\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b",
    "phone_region": "US",
    "validated_phone_weight": 0.9,
    "sales_keywords": [
        "buy now",
        "purchase",
        "special offer",
        "limited time",
        "act now",
        "call now",
        "dm me",
        "message me",
        "contact me for",
        "for sale",
        "discount",
        "deal",
        "cheap",
        "affordable",
        "best price",
        "lowest price",
    ],
    "sales_keyword_weight": 0.2,
    "spam_patterns": [
        (r"(.)\1{4,}", "repeated_chars", 0.3),
        (
            r"(?i)\b(?:click here|visit|check out|link in bio)\s+https?://",
            "link_spam",
            0.7,
        ),
        (r"(?i)(?:www\.|http)", "urls", 0.5),
        (
            r"(?i)\b(free|win|prize|congratulations)\s+(?:click|visit|call)",
            "scam_keywords",
            0.8,
        ),
    ],
    "spam_match_cap": 3,
    "url_pattern": r"(?i)https?://[^\s]+",
    "domain_pattern": r"(?i)\b(?:www\.)?[a-zA-Z0-9][a-zA-Z0-9-]{1,61}[a-zA-Z0-9]\.[a-zA-Z]{2,}",
    "url_weight": 0.3,
    "domain_weight": 0.1,
    "shortener_domains": ["bit.ly", "tinyurl", "t.co", "goo.gl"],
    "shortener_penalty": 0.4,
    # normalized forms; matched longest first
    "profanity_stems": [
        "masturbat", "mastrbat", "mstrbat",
        "nigger", "nigga", "niga", "ngga", "nger",
        "bastard", "bastrd", "bstrd",
        "violence", "vlnce", "violnc",
        "suicide", "suicid", "sucide",
        "murder", "murdr", "mrdr",
        "orgasm", "orgsm", "orgas",
        "erotic", "erotc", "erotik",
        "porn", "prn", "pornn",
        "naked", "nakd", "nked",
        "retard", "retrd", "rtard", "retad",
        "bitch", "bich", "bitchh", "btch",
        "pussy", "puss", "pusy", "pssy",
        "whore", "whor", "hore", "whoar",
        "abuse", "abus", "abse",
        "stupid", "stpid", "stupd",
        "idiot", "idot", "idit",
        "moron", "mron", "morrn",
        "fuck", "fuk", "fcuk", "fuc", "fuq", "fack", "fvck", "phuck",
        "shit", "sht", "shyt", "shitt",
        "damn", "damm", "dam",
        "crap", "crp", "krap",
        "piss", "pis", "pss",
        "dick", "dik", "dck", "dic",
        "cock", "cok", "kok", "cokc",
        "cunt", "cnt", "kunt",
        "slut", "slt", "slutt",
        "nude", "nud", "nudee",
        "kill", "kil", "kll",
        "hate", "hat", "hte",
        "rape", "rap", "rpe",
        "dumb", "dmb", "dum",
        "ass", "arse",
        "sex", "sx", "sexx", "seks",
    ],
    # stems that also occur inside ordinary joined words ("leaf acknowledge");
    # checked with the short-stem window instead of hitting anywhere
    "boundary_stems": ["fack"],
    "direct_profanity": [
        "fuck",
        "shit",
        "damn",
        "ass",
        "bitch",
        "sex",
        "porn",
        "kill",
        "hate",
        "abuse",
    ],
    "flag_thresholds": {
        "phi_detected": ("phi_score", 0.3),
        "spam_detected": ("spam_score", 0.5),
        "sales_pitch": ("sales_pitch_score", 0.6),
        "toxicity": ("toxicity_score", 0.0),
        "suspicious_links": ("link_risk_score", 0.6),
    },
    "trust_base": 0.7,
    "trust_default": 0.5,
    # (account age in days, bonus)
    "trust_age_bonuses": [(30, 0.1), (90, 0.1)],
}

# --- Regexes ---
SEPARATOR_RE = re.compile(r"[\s\-_.*+#@!]")
REPEAT_CHAR_RE = re.compile(r"(.)\1{2,}")
ALNUM_RE = re.compile(r"[a-z0-9]")
LEET_MAP = str.maketrans(
    {
        "0": "o",
        "1": "i",
        "3": "e",
        "4": "a",
        "5": "s",
        "7": "t",
        "8": "b",
        "9": "g",
        "$": "s",
        "!": "i",
        "@": "a",
    }
)


class ModerationStatus(str, Enum):
    """The disposition of a scanned piece of content, mildest first."""

    ALLOW = "ALLOW"
    SOFT_BLOCK = "SOFT_BLOCK"
    QUARANTINE = "QUARANTINE"
    REJECT = "REJECT"

    @property
    def severity(self) -> int:
        return list(ModerationStatus).index(self)


@dataclass
class Detection:
    """One pattern family's hits inside a text."""

    type: str
    matches: List[str]
    weight: float


@dataclass
class DetectedSpan:
    """A located PHI match.

    `start` is the first occurrence of `text` in the scanned input, so a
    repeated substring always points at its earliest position.
    """

    text: str
    type: str
    subtype: str
    start: int
    end: int


@dataclass
class ScoreVector:
    phi_score: float = 0.0
    spam_score: float = 0.0
    sales_pitch_score: float = 0.0
    toxicity_score: float = 0.0
    link_risk_score: float = 0.0
    user_trust_score: float = 0.0


@dataclass
class PHIResult:
    score: float
    detections: List[Detection] = field(default_factory=list)


@dataclass
class SalesPitchResult:
    score: float
    matches: List[str] = field(default_factory=list)


@dataclass
class SpamResult:
    score: float
    detections: Dict[str, int] = field(default_factory=dict)


@dataclass
class LinkResult:
    score: float
    urls: int = 0
    domains: int = 0


@dataclass
class ToxicityResult:
    score: float
    is_profane: bool


@dataclass
class ModerationResult:
    """Represents the outcome of a moderation scan.

    Attributes:
        status: The moderation status selected by the decision cascade.
        scores: The six detector scores, each within [0, 1].
        flags: Informational flags derived from score thresholds.
        detected_spans: Located PHI matches.
        timestamp: When the scan completed.
        context: The caller-supplied context, echoed unchanged.
        reason: Set only when the input could not be scanned.
    """

    status: ModerationStatus
    scores: ScoreVector
    flags: List[str] = field(default_factory=list)
    detected_spans: List[DetectedSpan] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    context: Any = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Returns the result in its public wire shape."""
        data = {
            "status": self.status.value,
            "scores": asdict(self.scores),
            "flags": list(self.flags),
            "detectedSpans": [asdict(s) for s in self.detected_spans],
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }
        if self.reason is not None:
            data["reason"] = self.reason
        return data

    def to_json(self) -> str:
        """Serializes the result to a JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))


@dataclass
class Metrics:
    """A class to track metrics related to moderation scans."""

    total_requests: int = 0
    status_counts: Counter = field(default_factory=Counter)
    flag_counts: Counter = field(default_factory=Counter)

    def record(self, result: ModerationResult):
        """Records a result, updating the metrics."""
        self.total_requests += 1
        self.status_counts[result.status.value] += 1
        for flag in result.flags:
            self.flag_counts[flag] += 1
        if PROMETHEUS_ENABLED:
            moderation_decisions_total.labels(status=result.status.value).inc()
            for flag in result.flags:
                moderation_flags_total.labels(flag=flag).inc()

    def summary(self) -> Dict:
        """Returns a summary of the metrics as a dictionary."""
        blocked = self.total_requests - self.status_counts[ModerationStatus.ALLOW.value]
        return {
            "total": self.total_requests,
            "allows": self.status_counts[ModerationStatus.ALLOW.value],
            "blocks": blocked,
            "block_rate": blocked / max(1, self.total_requests),
            "status": dict(self.status_counts),
            "top_flags": dict(self.flag_counts.most_common(5)),
        }


def _clamp(score: float) -> float:
    return max(0.0, min(score, 1.0))


def _is_alnum(ch: str) -> bool:
    return bool(ch) and bool(ALNUM_RE.match(ch))


class ModerationGuard:
    """The main class for the Moderation Guard service."""

    def __init__(
        self,
        config: Dict,
        profanity_dictionary: Optional[ProfanityDictionary] = None,
        phone_validity: Optional[PhoneValidity] = None,
        user_lookup: Optional[UserRecordLookup] = None,
    ):
        """Initializes the ModerationGuard instance.

        Args:
            config: A dictionary containing the configuration for the guard.
            profanity_dictionary: Optional external profanity dictionary.
            phone_validity: Optional region-aware phone number validator.
            user_lookup: Optional user record store used for trust scores.
        """
        self._validate_config(config)
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)
        self.profanity_dictionary = profanity_dictionary or NullProfanityDictionary()
        self.phone_validity = phone_validity or NullPhoneValidity()
        self.user_lookup = user_lookup
        self.metrics = Metrics()

        self.phi_patterns: List[Tuple[Pattern, str, float]] = self._compile_table(
            config["phi_patterns"]
        )
        self.spam_patterns: List[Tuple[Pattern, str, float]] = self._compile_table(
            config["spam_patterns"]
        )
        self.phone_shape_re: Pattern = re.compile(config["phone_shape_pattern"], re.ASCII)
        self.url_re: Pattern = re.compile(config["url_pattern"], re.ASCII)
        self.domain_re: Pattern = re.compile(config["domain_pattern"], re.ASCII)
        self.direct_profanity_re: Pattern = self._build_word_regex(
            config["direct_profanity"]
        )
        self.profanity_stems: List[str] = sorted(
            dict.fromkeys(s.lower() for s in config["profanity_stems"]),
            key=len,
            reverse=True,
        )
        self.boundary_stems = {s.lower() for s in config["boundary_stems"]}

    def _validate_config(self, config: Dict):
        """Validates the configuration dictionary."""
        required = [
            "phi_patterns",
            "phone_shape_pattern",
            "phone_region",
            "validated_phone_weight",
            "sales_keywords",
            "sales_keyword_weight",
            "spam_patterns",
            "spam_match_cap",
            "url_pattern",
            "domain_pattern",
            "url_weight",
            "domain_weight",
            "shortener_domains",
            "shortener_penalty",
            "profanity_stems",
            "boundary_stems",
            "direct_profanity",
            "flag_thresholds",
            "trust_base",
            "trust_default",
            "trust_age_bonuses",
        ]
        missing = [k for k in required if k not in config]
        if missing:
            raise ValueError(f"Config missing keys: {missing}")

    def _compile_table(
        self, table: List[Tuple[str, str, float]]
    ) -> List[Tuple[Pattern, str, float]]:
        """Compiles a (pattern, type, weight) table, keeping its order."""
        return [(re.compile(p, re.ASCII), kind, weight) for p, kind, weight in table]

    def _build_word_regex(self, words: List[str]) -> Pattern:
        """Builds a whole-word regex for a list of words."""
        escaped = [re.escape(w.lower()) for w in sorted(set(words), key=len, reverse=True)]
        return re.compile(r"\b(?:" + "|".join(escaped) + r")\b", re.IGNORECASE | re.ASCII)

    def detect_phi(self, text: str) -> PHIResult:
        """Scores text for personal health/identifying information.

        Every pattern family contributes its weight once per match. Each
        phone-shaped substring that the phone validator accepts adds the
        validated-phone weight on top, so a real phone number counts twice.

        Args:
            text: The raw text to scan.

        Returns:
            A PHIResult with the clamped score and per-family detections.
        """
        detections: List[Detection] = []
        score = 0.0
        for pattern, kind, weight in self.phi_patterns:
            matches = [m.group(0) for m in pattern.finditer(text)]
            if matches:
                detections.append(Detection(type=kind, matches=matches, weight=weight))
                score += weight * len(matches)

        region = self.config["phone_region"]
        bonus = self.config["validated_phone_weight"]
        for m in self.phone_shape_re.finditer(text):
            phone = m.group(0)
            try:
                valid = self.phone_validity.is_valid(phone, region)
            except Exception as e:
                self.logger.debug(f"Phone validation failed for a candidate: {e}")
                continue
            if valid:
                detections.append(
                    Detection(type="validated_phone", matches=[phone], weight=bonus)
                )
                score += bonus

        return PHIResult(score=_clamp(score), detections=detections)

    def detect_sales_pitch(self, text: str) -> SalesPitchResult:
        """Scores text for promotional phrasing with a flat weight per phrase."""
        lower = text.lower()
        weight = self.config["sales_keyword_weight"]
        score = 0.0
        matches = []
        for keyword in self.config["sales_keywords"]:
            if keyword in lower:
                matches.append(keyword)
                score += weight
        return SalesPitchResult(score=_clamp(score), matches=matches)

    def detect_spam(self, text: str) -> SpamResult:
        """Scores text for spam patterns.

        Each family's influence is capped at `spam_match_cap` occurrences.
        """
        cap = self.config["spam_match_cap"]
        score = 0.0
        detections: Dict[str, int] = {}
        for pattern, kind, weight in self.spam_patterns:
            count = sum(1 for _ in pattern.finditer(text))
            if count:
                detections[kind] = count
                score += weight * min(count, cap)
        return SpamResult(score=_clamp(score), detections=detections)

    def detect_links(self, text: str) -> LinkResult:
        """Scores text for link risk.

        Full URLs weigh more than bare domains; a known link shortener in
        any URL adds a flat penalty.
        """
        urls = self.url_re.findall(text)
        domains = self.domain_re.findall(text)
        score = len(urls) * self.config["url_weight"]
        score += len(domains) * self.config["domain_weight"]
        shorteners = self.config["shortener_domains"]
        if any(dom in url for url in urls for dom in shorteners):
            score += self.config["shortener_penalty"]
        return LinkResult(score=_clamp(score), urls=len(urls), domains=len(domains))

    def normalize_for_detection(self, text: str) -> str:
        """Normalizes text to expose obfuscated profanity.

        Performs, in order:
        - Lowercasing
        - Removal of whitespace and the separators ``- _ . * + # @ !``
        - Leet speak conversion (0 -> o, 1 -> i, 4 -> a, $ -> s, ...)
        - Reduction of runs of three or more identical characters to two

        Args:
            text: The text to normalize.

        Returns:
            The normalized text, or an empty string for non-text input.
        """
        if not text or not isinstance(text, str):
            return ""
        s = text.lower()
        s = SEPARATOR_RE.sub("", s)
        s = s.translate(LEET_MAP)
        s = REPEAT_CHAR_RE.sub(r"\1\1", s)
        return s

    def check_profanity_patterns(self, normalized: str) -> bool:
        """Checks normalized text for profanity stems.

        Only the first occurrence of each stem is considered. It is a hit
        when it touches either end of the text or a non-alphanumeric
        neighbour. Otherwise a stem of three characters or fewer, or one
        listed in `boundary_stems`, must stand alone within a two-character
        window, while other longer stems always hit.

        Args:
            normalized: Text produced by `normalize_for_detection`.

        Returns:
            True if any stem is found in a qualifying position.
        """
        if not normalized or len(normalized) < 2:
            return False
        length = len(normalized)
        for stem in self.profanity_stems:
            if len(stem) < 2:
                continue
            index = normalized.find(stem)
            if index == -1:
                continue
            end = index + len(stem)
            before = normalized[index - 1] if index > 0 else ""
            after = normalized[end] if end < length else ""
            if (
                index == 0
                or end == length
                or not _is_alnum(before)
                or not _is_alnum(after)
            ):
                return True
            if len(stem) <= 3 or stem in self.boundary_stems:
                window = normalized[max(0, index - 2) : min(length, end + 2)]
                if (
                    window == stem
                    or (window.startswith(stem) and not _is_alnum(window[len(stem)]))
                    or (window.endswith(stem) and not _is_alnum(window[-len(stem) - 1]))
                ):
                    return True
            else:
                return True
        return False

    def _dictionary_flags(self, text: str) -> bool:
        try:
            return bool(self.profanity_dictionary.is_profane(text))
        except Exception as e:
            self.logger.debug(f"Profanity dictionary unavailable: {e}")
            return False

    def detect_toxicity(self, text: str, verbose: bool = False) -> ToxicityResult:
        """Detects profanity or harmful language.

        Any one of three signals is conclusive: the external profanity
        dictionary, a stem match on the normalized text, or a whole-word
        match of the direct profanity list on the original text. The score is
        therefore either 0.0 or 1.0.

        Args:
            text: The raw text to scan.
            verbose: Whether to log the normalized text.

        Returns:
            A ToxicityResult.
        """
        if not text or not isinstance(text, str):
            return ToxicityResult(score=0.0, is_profane=False)

        by_dictionary = self._dictionary_flags(text)
        normalized = self.normalize_for_detection(text)
        if verbose:
            self.logger.info(f"[DEBUG] Normalized: {normalized}")
        by_stem = self.check_profanity_patterns(normalized)
        by_word = bool(self.direct_profanity_re.search(text.lower()))

        if by_dictionary or by_stem or by_word:
            return ToxicityResult(score=1.0, is_profane=True)
        return ToxicityResult(score=0.0, is_profane=False)

    async def trust_score(self, user_id: Optional[str]) -> float:
        """Computes a trust score from the age of the user's account.

        Args:
            user_id: The identifier of the author.

        Returns:
            The base trust plus age bonuses, capped at 1.0, or the default
            trust when the user cannot be looked up.
        """
        default = self.config["trust_default"]
        if not user_id or self.user_lookup is None:
            return default
        try:
            record = await self.user_lookup.by_id(user_id)
        except Exception as e:
            self.logger.warning(f"User lookup failed for {user_id}: {e}")
            return default
        if record is None:
            self.logger.warning(f"No user record for {user_id}; using default trust")
            return default

        created_at = _created_at(record)
        trust = self.config["trust_base"]
        if created_at is not None:
            age_days = (datetime.now(timezone.utc) - created_at).total_seconds() / 86400
            for days, bonus in self.config["trust_age_bonuses"]:
                if age_days > days:
                    trust += bonus
        return min(trust, 1.0)

    def _score_text(self, text: str, verbose: bool = False) -> Dict[str, Any]:
        """Runs every detector over the raw text."""
        return {
            "phi": self.detect_phi(text),
            "sales": self.detect_sales_pitch(text),
            "spam": self.detect_spam(text),
            "links": self.detect_links(text),
            "toxicity": self.detect_toxicity(text, verbose=verbose),
        }

    def _detected_spans(self, text: str, phi: PHIResult) -> List[DetectedSpan]:
        spans = []
        for det in phi.detections:
            for match in det.matches:
                start = text.find(match)
                spans.append(
                    DetectedSpan(
                        text=match,
                        type="phi",
                        subtype=det.type,
                        start=start,
                        end=start + len(match),
                    )
                )
        return spans

    def derive_flags(self, scores: ScoreVector) -> List[str]:
        """Returns the informational flags whose score threshold is exceeded."""
        flags = []
        for flag, (name, threshold) in self.config["flag_thresholds"].items():
            if getattr(scores, name) > threshold:
                flags.append(flag)
        return flags

    def decide(self, scores: ScoreVector) -> ModerationStatus:
        """Applies the decision cascade to a score vector.

        Rules are evaluated in priority order and the first match wins:
        1. Any toxicity - reject
        2. High PHI - quarantine
        3. Strong sales pitch from a low-trust author - reject
        4. High spam - quarantine
        5. PHI with links, or spam with sales pitch - quarantine
        6. Moderate PHI, spam or link risk - soft block
        7. Default - allow

        Args:
            scores: The score vector of a scan.

        Returns:
            The selected ModerationStatus.
        """
        if scores.toxicity_score > 0:
            return ModerationStatus.REJECT
        if scores.phi_score > 0.5:
            return ModerationStatus.QUARANTINE
        if scores.sales_pitch_score > 0.7 and scores.user_trust_score < 0.5:
            return ModerationStatus.REJECT
        if scores.spam_score > 0.7:
            return ModerationStatus.QUARANTINE
        if (scores.phi_score > 0.2 and scores.link_risk_score > 0.4) or (
            scores.spam_score > 0.4 and scores.sales_pitch_score > 0.5
        ):
            return ModerationStatus.QUARANTINE
        if (
            scores.phi_score > 0.2
            or scores.spam_score > 0.3
            or scores.link_risk_score > 0.5
        ):
            return ModerationStatus.SOFT_BLOCK
        return ModerationStatus.ALLOW

    async def scan(
        self,
        text: Any,
        user_id: Optional[str] = None,
        context: Any = None,
        verbose: bool = False,
    ) -> ModerationResult:
        """Scans a piece of user-submitted text and selects a moderation status.

        The detectors run on the raw, unsanitized text in a worker thread
        while the author's trust score is fetched.

        Args:
            text: The text to scan. Anything other than non-empty text is
                rejected with reason "Invalid input".
            user_id: The optional identifier of the author.
            context: Caller data echoed back on the result.
            verbose: Whether to enable verbose debug logging.

        Returns:
            A ModerationResult.
        """
        if PROMETHEUS_ENABLED:
            moderation_requests_total.labels(endpoint="scan").inc()
        if context is None:
            context = {}

        if not text or not isinstance(text, str):
            result = ModerationResult(
                status=ModerationStatus.REJECT,
                scores=ScoreVector(),
                context=context,
                reason="Invalid input",
            )
            self.metrics.record(result)
            return result

        detected, trust = await asyncio.gather(
            asyncio.to_thread(self._score_text, text, verbose),
            self.trust_score(user_id),
        )

        scores = ScoreVector(
            phi_score=detected["phi"].score,
            spam_score=detected["spam"].score,
            sales_pitch_score=detected["sales"].score,
            toxicity_score=detected["toxicity"].score,
            link_risk_score=detected["links"].score,
            user_trust_score=trust,
        )
        result = ModerationResult(
            status=self.decide(scores),
            scores=scores,
            flags=self.derive_flags(scores),
            detected_spans=self._detected_spans(text, detected["phi"]),
            timestamp=datetime.now(timezone.utc),
            context=context,
        )
        if verbose:
            self.logger.info(
                f"[DEBUG] Status: {result.status.value}, flags: {result.flags}, "
                f"spam: {detected['spam'].detections}, sales: {detected['sales'].matches}"
            )
        self.metrics.record(result)
        return result


def _created_at(record: Any) -> Optional[datetime]:
    """Reads the creation time from a user record as an aware datetime."""
    if isinstance(record, dict):
        value = record.get("created_at", record.get("createdAt"))
    else:
        value = getattr(record, "created_at", None)
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value
