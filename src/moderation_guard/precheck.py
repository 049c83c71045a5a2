"""Coarse word-list checks run before an author confirms a post.

The analyzer here only decides whether the author should be asked to
confirm. It uses its own word lists and PHI patterns and is independent of
the thresholds in `guard.ModerationGuard`; the same text may be tagged here
and still be allowed by a full scan, or the other way round.
"""

from __future__ import annotations
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Pattern, Tuple

from .capabilities import ProfanityDictionary
from .sanitizer import sanitize

PRECHECK_CONFIG: Dict[str, Any] = {
    # (pattern, reason); first match only
    "phi_patterns": [
        (r"\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b", "Possible phone number"),
        (r"\b\d{3}-\d{2}-\d{4}\b", "Possible SSN"),
        (r"(?i)\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", "Possible email address"),
        (r"\b\d{5}(?:-\d{4})?\b", "Possible ZIP code or address fragment"),
        (r"\b\d{9,}\b", "Long numeric identifier"),
    ],
    "phi_keywords": ["street", "st.", "road", "rd.", "avenue", "ave", "medical record"],
    "prohibited_words": ["hate", "kill", "violence", "abuse"],
    "promo_words": [
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
    "spam_words": [
        "free",
        "win",
        "prize",
        "congratulations",
        "click here",
        "visit",
        "check out",
        "link in bio",
        "subscribe",
        "follow for more",
    ],
}


@dataclass
class PhiHit:
    type: str
    matches: List[str]


@dataclass
class PreCheckResult:
    """Word-list hits for a draft, and whether the author must confirm."""

    bad_word_hits: List[str] = field(default_factory=list)
    promo_hits: List[str] = field(default_factory=list)
    spam_hits: List[str] = field(default_factory=list)
    phi_detections: List[PhiHit] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)

    @property
    def alert_required(self) -> bool:
        return len(self.categories) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "badWordHits": list(self.bad_word_hits),
            "promoHits": list(self.promo_hits),
            "spamHits": list(self.spam_hits),
            "phiDetections": [
                {"type": d.type, "matches": list(d.matches)} for d in self.phi_detections
            ],
            "categories": list(self.categories),
            "alertRequired": self.alert_required,
        }


def _word_re(word: str) -> Pattern:
    return re.compile(r"\b" + re.escape(word) + r"\b", re.IGNORECASE | re.ASCII)


class PreSubmissionAnalyzer:
    """Flags drafts that should be confirmed by their author before posting."""

    def __init__(
        self,
        config: Optional[Dict] = None,
        profanity_dictionary: Optional[ProfanityDictionary] = None,
    ):
        self.config = config or PRECHECK_CONFIG
        self.logger = logging.getLogger(self.__class__.__name__)
        self.profanity_dictionary = profanity_dictionary
        self.phi_patterns: List[Tuple[Pattern, str]] = [
            (re.compile(p, re.ASCII), reason) for p, reason in self.config["phi_patterns"]
        ]
        self.prohibited_res = [
            (w, _word_re(w)) for w in self.config["prohibited_words"]
        ]
        self.promo_res = [(w, _word_re(w)) for w in self.config["promo_words"]]
        self.spam_res = [(w, _word_re(w)) for w in self.config["spam_words"]]

    def _bad_words(self, sanitized: str) -> List[str]:
        if self.profanity_dictionary is not None:
            try:
                return ["profane"] if self.profanity_dictionary.is_profane(sanitized) else []
            except Exception as e:
                self.logger.debug(f"Profanity dictionary unavailable: {e}")
        return [w for w, r in self.prohibited_res if r.search(sanitized)]

    def analyze(self, text: str) -> PreCheckResult:
        """Runs the word-list checks on the sanitized text.

        Args:
            text: The draft as submitted.

        Returns:
            A PreCheckResult. Its categories are drawn from `bad_words`,
            `promotion`, `spam` and `phi`.
        """
        sanitized = sanitize(text or "")
        result = PreCheckResult(
            bad_word_hits=self._bad_words(sanitized),
            promo_hits=[w for w, r in self.promo_res if r.search(sanitized)],
            spam_hits=[w for w, r in self.spam_res if r.search(sanitized)],
        )
        for pattern, reason in self.phi_patterns:
            m = pattern.search(sanitized)
            if m:
                result.phi_detections.append(PhiHit(type=reason, matches=[m.group(0)]))

        if result.bad_word_hits:
            result.categories.append("bad_words")
        if result.promo_hits:
            result.categories.append("promotion")
        if result.spam_hits:
            result.categories.append("spam")
        if result.phi_detections:
            result.categories.append("phi")
        return result

    def check_for_phi(self, text: str) -> Dict[str, Any]:
        """Returns the first PHI reason found, including address keywords.

        Args:
            text: The text to check.

        Returns:
            A dict with `blocked` and, when blocked, `reason`.
        """
        sanitized = sanitize(text or "")
        for pattern, reason in self.phi_patterns:
            if pattern.search(sanitized):
                return {"blocked": True, "reason": reason}
        lower = sanitized.lower()
        if any(k in lower for k in self.config["phi_keywords"]):
            return {"blocked": True, "reason": "Possible address or record identifier"}
        return {"blocked": False}

    def check_for_prohibited_words(self, text: str) -> Dict[str, Any]:
        """Checks the sanitized text against the prohibited word list."""
        sanitized = sanitize(text or "")
        for word, r in self.prohibited_res:
            if r.search(sanitized):
                return {
                    "blocked": True,
                    "word": word,
                    "reason": f'Prohibited word detected: "{word}"',
                }
        return {"blocked": False, "word": None}


def analyze_pre_submission(
    text: str, profanity_dictionary: Optional[ProfanityDictionary] = None
) -> PreCheckResult:
    """Runs the default analyzer on a draft."""
    return PreSubmissionAnalyzer(profanity_dictionary=profanity_dictionary).analyze(text)
