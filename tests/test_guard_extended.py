"""Extended tests for the ModerationGuard detectors, cascade and scan."""
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from moderation_guard.guard import (
    ModerationGuard,
    ModerationResult,
    ModerationStatus,
    ScoreVector,
    Metrics,
    DEFAULT_CONFIG,
)
from moderation_guard.precheck import PreSubmissionAnalyzer


class AlwaysValidPhone:
    def is_valid(self, candidate, region):
        return True


class BrokenPhone:
    def is_valid(self, candidate, region):
        raise RuntimeError("metadata missing")


class FlagEverything:
    def is_profane(self, text):
        return True


class BrokenDictionary:
    def is_profane(self, text):
        raise RuntimeError("dictionary offline")


@pytest.fixture
def guard():
    """Create a ModerationGuard without optional capabilities."""
    return ModerationGuard(DEFAULT_CONFIG.copy())


def user_lookup(record=None, error=None):
    lookup = AsyncMock()
    if error is not None:
        lookup.by_id.side_effect = error
    else:
        lookup.by_id.return_value = record
    return lookup


def test_missing_config_keys():
    with pytest.raises(ValueError, match="Config missing keys"):
        ModerationGuard({})


@pytest.mark.parametrize(
    "key",
    [
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
    ],
)
def test_each_config_key_required(key):
    config = DEFAULT_CONFIG.copy()
    del config[key]
    with pytest.raises(ValueError, match=key):
        ModerationGuard(config)


class TestPHIDetection:
    """Tests for the PHI detector."""

    def test_phone(self, guard):
        result = guard.detect_phi("Call me at 555-123-4567")
        assert result.score == pytest.approx(0.8)
        assert [d.type for d in result.detections] == ["phone"]

    def test_full_width_digits_ignored(self, guard):
        result = guard.detect_phi("Call me at ５５５-１２３-４５６７")
        assert result.score == 0.0
        assert result.detections == []

    def test_validated_phone_counts_twice(self):
        g = ModerationGuard(DEFAULT_CONFIG.copy(), phone_validity=AlwaysValidPhone())
        result = g.detect_phi("Call me at 555-123-4567")
        assert result.score == 1.0
        assert [d.type for d in result.detections] == ["phone", "validated_phone"]

    def test_phone_validator_failure_is_ignored(self):
        g = ModerationGuard(DEFAULT_CONFIG.copy(), phone_validity=BrokenPhone())
        result = g.detect_phi("Call me at 555-123-4567")
        assert result.score == pytest.approx(0.8)

    def test_ssn(self, guard):
        result = guard.detect_phi("My SSN is 123-45-6789")
        assert result.score == 1.0
        assert [d.type for d in result.detections] == ["ssn"]

    def test_email(self, guard):
        result = guard.detect_phi("Write to Jane.Doe@Example.com")
        assert result.score == pytest.approx(0.6)
        assert result.detections[0].matches == ["Jane.Doe@Example.com"]

    def test_zip_and_date(self, guard):
        assert guard.detect_phi("zip 90210").score == pytest.approx(0.5)
        assert guard.detect_phi("seen on 03/14/2024").score == pytest.approx(0.4)

    def test_address(self, guard):
        result = guard.detect_phi("I live on Elm Street apartment 12")
        assert result.score == pytest.approx(0.7)
        assert result.detections[0].type == "address"

    def test_medical_record(self, guard):
        result = guard.detect_phi("MRN: 445566")
        assert result.score == pytest.approx(0.9)
        assert result.detections[0].type == "medical_record"

    def test_weight_per_match(self, guard):
        result = guard.detect_phi("zip 90210 or 10001")
        assert result.score == 1.0
        assert result.detections[0].matches == ["90210", "10001"]

    def test_no_phi(self, guard):
        result = guard.detect_phi("Nothing personal here")
        assert result.score == 0
        assert result.detections == []


class TestSpamDetection:
    """Tests for the spam detector."""

    def test_repeated_chars_capped_at_three(self, guard):
        result = guard.detect_spam("aaaaaa bbbbbb cccccc dddddd")
        assert result.detections == {"repeated_chars": 4}
        assert result.score == pytest.approx(0.9)

    def test_link_spam(self, guard):
        result = guard.detect_spam("Check out https://example.com")
        assert result.detections == {"link_spam": 1, "urls": 1}
        assert result.score == 1.0

    def test_scam_keywords(self, guard):
        result = guard.detect_spam("Congratulations! You win click the link")
        assert result.detections == {"scam_keywords": 1}
        assert result.score == pytest.approx(0.8)

    def test_clean(self, guard):
        assert guard.detect_spam("See you at lunch").score == 0


class TestSalesPitchDetection:
    """Tests for the sales pitch detector."""

    def test_matches_in_list_order(self, guard):
        result = guard.detect_sales_pitch("Special offer! Buy now at a discount")
        assert result.matches == ["buy now", "special offer", "discount"]
        assert result.score == pytest.approx(0.6)

    def test_clamped(self, guard):
        result = guard.detect_sales_pitch(
            "Buy now, special offer, limited time discount, cheap deal"
        )
        assert len(result.matches) == 6
        assert result.score == 1.0


class TestLinkDetection:
    """Tests for the link risk detector."""

    def test_shortener(self, guard):
        result = guard.detect_links("Visit https://bit.ly/abc123 now")
        assert result.urls == 1
        assert result.domains == 1
        assert result.score == pytest.approx(0.8)

    def test_bare_domain(self, guard):
        result = guard.detect_links("see www.example.com")
        assert result.urls == 0
        assert result.domains == 1
        assert result.score == pytest.approx(0.1)

    def test_no_links(self, guard):
        assert guard.detect_links("no links at all").score == 0


class TestToxicityDetection:
    """Tests for the toxicity detector."""

    @pytest.mark.parametrize("text", ["f u c k", "f4ck", "sh1t", "F.U.C.K", "$h!t", "b1tch"])
    def test_obfuscated_variants(self, guard, text):
        result = guard.detect_toxicity(text)
        assert result.score == 1.0
        assert result.is_profane

    def test_direct_word(self, guard):
        assert guard.detect_toxicity("What the hell, damn it").score == 1.0

    def test_clean(self, guard):
        result = guard.detect_toxicity("Have a lovely afternoon")
        assert result.score == 0.0
        assert not result.is_profane

    def test_short_stem_inside_word(self, guard):
        assert guard.detect_toxicity("The classic assignment").score == 0.0

    def test_boundary_stem_inside_joined_words(self, guard):
        assert guard.detect_toxicity("Turn the leaf. Acknowledge receipt").score == 0.0
        assert guard.detect_toxicity("f4ck").score == 1.0

    def test_normalization(self, guard):
        assert guard.normalize_for_detection("F-u_C.k") == "fuck"
        assert guard.normalize_for_detection("h3ll0 w0rld") == "helloworld"
        assert guard.normalize_for_detection("fuuuuck") == "fuuck"
        assert guard.normalize_for_detection(None) == ""

    def test_stem_positions(self, guard):
        assert guard.check_profanity_patterns("ass")
        assert guard.check_profanity_patterns("nice,ass")
        assert not guard.check_profanity_patterns("classic")
        assert not guard.check_profanity_patterns("x")

    def test_dictionary_signal(self):
        g = ModerationGuard(DEFAULT_CONFIG.copy(), profanity_dictionary=FlagEverything())
        assert g.detect_toxicity("Have a lovely afternoon").score == 1.0

    def test_dictionary_failure_falls_back(self):
        g = ModerationGuard(DEFAULT_CONFIG.copy(), profanity_dictionary=BrokenDictionary())
        assert g.detect_toxicity("Have a lovely afternoon").score == 0.0
        assert g.detect_toxicity("sh1t").score == 1.0


class TestCascade:
    """Tests for flag derivation and the decision cascade."""

    @pytest.mark.parametrize(
        "scores, expected",
        [
            (ScoreVector(toxicity_score=1.0, phi_score=1.0, spam_score=1.0), "REJECT"),
            (ScoreVector(phi_score=0.6, sales_pitch_score=1.0, user_trust_score=0.1), "QUARANTINE"),
            (ScoreVector(sales_pitch_score=0.8, user_trust_score=0.4, spam_score=0.9), "REJECT"),
            (ScoreVector(sales_pitch_score=0.8, user_trust_score=0.5), "ALLOW"),
            (ScoreVector(spam_score=0.8), "QUARANTINE"),
            (ScoreVector(phi_score=0.3, link_risk_score=0.5), "QUARANTINE"),
            (ScoreVector(spam_score=0.5, sales_pitch_score=0.6), "QUARANTINE"),
            (ScoreVector(phi_score=0.3), "SOFT_BLOCK"),
            (ScoreVector(spam_score=0.4), "SOFT_BLOCK"),
            (ScoreVector(link_risk_score=0.6), "SOFT_BLOCK"),
            (ScoreVector(phi_score=0.2, spam_score=0.3, link_risk_score=0.5), "ALLOW"),
        ],
    )
    def test_decide(self, guard, scores, expected):
        assert guard.decide(scores) == ModerationStatus(expected)

    def test_flags(self, guard):
        scores = ScoreVector(
            phi_score=0.31,
            spam_score=0.51,
            sales_pitch_score=0.61,
            toxicity_score=1.0,
            link_risk_score=0.61,
        )
        assert guard.derive_flags(scores) == [
            "phi_detected",
            "spam_detected",
            "sales_pitch",
            "toxicity",
            "suspicious_links",
        ]

    def test_flags_are_strict_thresholds(self, guard):
        scores = ScoreVector(phi_score=0.3, spam_score=0.5, link_risk_score=0.6)
        assert guard.derive_flags(scores) == []

    def test_severity_order(self):
        order = sorted(ModerationStatus, key=lambda s: s.severity)
        assert order == [
            ModerationStatus.ALLOW,
            ModerationStatus.SOFT_BLOCK,
            ModerationStatus.QUARANTINE,
            ModerationStatus.REJECT,
        ]


class TestTrustScore:
    """Tests for the account-age trust score."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("days, expected", [(5, 0.7), (45, 0.8), (100, 0.9)])
    async def test_account_age(self, days, expected):
        created = datetime.now(timezone.utc) - timedelta(days=days)
        g = ModerationGuard(DEFAULT_CONFIG.copy(), user_lookup=user_lookup({"created_at": created}))
        assert await g.trust_score("u1") == pytest.approx(expected)

    @pytest.mark.asyncio
    async def test_iso_created_at(self):
        created = (datetime.now(timezone.utc) - timedelta(days=100)).isoformat()
        g = ModerationGuard(DEFAULT_CONFIG.copy(), user_lookup=user_lookup({"createdAt": created}))
        assert await g.trust_score("u1") == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_record_without_created_at(self):
        g = ModerationGuard(DEFAULT_CONFIG.copy(), user_lookup=user_lookup({"name": "x"}))
        assert await g.trust_score("u1") == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_missing_user(self):
        g = ModerationGuard(DEFAULT_CONFIG.copy(), user_lookup=user_lookup(None))
        assert await g.trust_score("u1") == 0.5

    @pytest.mark.asyncio
    async def test_lookup_error(self):
        g = ModerationGuard(
            DEFAULT_CONFIG.copy(), user_lookup=user_lookup(error=ConnectionError("down"))
        )
        assert await g.trust_score("u1") == 0.5

    @pytest.mark.asyncio
    async def test_no_user_id(self):
        lookup = user_lookup({"created_at": datetime.now(timezone.utc)})
        g = ModerationGuard(DEFAULT_CONFIG.copy(), user_lookup=lookup)
        assert await g.trust_score(None) == 0.5
        lookup.by_id.assert_not_awaited()


class TestScan:
    """Tests for the full scan."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", None, 123])
    async def test_invalid_input(self, guard, text):
        result = await guard.scan(text)
        assert result.status == ModerationStatus.REJECT
        assert result.reason == "Invalid input"
        assert result.flags == []
        assert result.detected_spans == []
        assert all(v == 0 for v in result.to_dict()["scores"].values())

    @pytest.mark.asyncio
    async def test_phone_quarantined(self, guard):
        result = await guard.scan("Call me at 555-123-4567")
        assert result.scores.phi_score > 0.5
        assert result.status == ModerationStatus.QUARANTINE
        assert result.flags == ["phi_detected"]
        span = result.detected_spans[0]
        assert (span.text, span.type, span.subtype) == ("555-123-4567", "phi", "phone")
        assert (span.start, span.end) == (11, 23)

    @pytest.mark.asyncio
    async def test_validated_phone_span(self):
        g = ModerationGuard(DEFAULT_CONFIG.copy(), phone_validity=AlwaysValidPhone())
        result = await g.scan("Call me at 555-123-4567")
        assert result.scores.phi_score == 1.0
        assert [s.subtype for s in result.detected_spans] == ["phone", "validated_phone"]

    @pytest.mark.asyncio
    async def test_span_uses_first_occurrence(self, guard):
        result = await guard.scan("Email jane@example.com or jane@example.com")
        starts = [s.start for s in result.detected_spans if s.subtype == "email"]
        assert starts == [6, 6]

    @pytest.mark.asyncio
    async def test_scores_raw_markup(self, guard):
        text = "<script>buy now</script>"
        result = await guard.scan(text)
        assert result.scores.sales_pitch_score > 0
        assert PreSubmissionAnalyzer().analyze(text).promo_hits == []

    @pytest.mark.asyncio
    async def test_full_width_phone_allowed(self, guard):
        result = await guard.scan("Call me at ５５５-１２３-４５６７")
        assert result.scores.phi_score == 0.0
        assert result.status == ModerationStatus.ALLOW
        assert result.detected_spans == []

    @pytest.mark.asyncio
    async def test_toxic_rejected(self, guard):
        result = await guard.scan("This is stupid and hateful content")
        assert result.scores.toxicity_score == 1.0
        assert result.status == ModerationStatus.REJECT
        assert "toxicity" in result.flags

    @pytest.mark.asyncio
    async def test_shouting_sales(self, guard):
        result = await guard.scan("BUY NOW!!!!! LIMITED TIME!!!!!")
        assert result.scores.spam_score > 0
        assert result.scores.sales_pitch_score > 0
        assert result.status == ModerationStatus.SOFT_BLOCK
        assert result.flags == ["spam_detected"]

    @pytest.mark.asyncio
    async def test_clean_allowed(self, guard):
        result = await guard.scan("Thanks for sharing this helpful information!")
        assert result.status == ModerationStatus.ALLOW
        scores = result.to_dict()["scores"]
        assert scores.pop("user_trust_score") == 0.5
        assert all(v == 0 for v in scores.values())

    @pytest.mark.asyncio
    async def test_profanity_overrides_spam(self, guard):
        result = await guard.scan("aaaaaa bbbbbb cccccc shit")
        assert result.scores.spam_score > 0.7
        assert result.status == ModerationStatus.REJECT

    @pytest.mark.asyncio
    async def test_trusted_sales_pitch_is_flagged_only(self, guard):
        result = await guard.scan("Buy now, special offer, limited time discount, cheap deal")
        assert result.scores.sales_pitch_score == 1.0
        assert result.flags == ["sales_pitch"]
        assert result.status == ModerationStatus.ALLOW

    @pytest.mark.asyncio
    async def test_low_trust_sales_pitch_rejected(self):
        config = DEFAULT_CONFIG.copy()
        config["trust_default"] = 0.3
        g = ModerationGuard(config)
        result = await g.scan("Buy now, special offer, limited time discount, cheap deal")
        assert result.scores.user_trust_score == 0.3
        assert result.status == ModerationStatus.REJECT

    @pytest.mark.asyncio
    async def test_trust_from_lookup(self):
        created = datetime.now(timezone.utc) - timedelta(days=100)
        lookup = user_lookup({"created_at": created})
        g = ModerationGuard(DEFAULT_CONFIG.copy(), user_lookup=lookup)
        result = await g.scan("Have a lovely afternoon", user_id="u1")
        assert result.scores.user_trust_score == pytest.approx(0.9)
        lookup.by_id.assert_awaited_once_with("u1")

    @pytest.mark.asyncio
    async def test_context_echoed(self, guard):
        context = {"source": "comment", "postId": "p1"}
        result = await guard.scan("Have a lovely afternoon", context=context)
        assert result.context is context
        assert (await guard.scan("")).context == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text",
        [
            "Call 555-123-4567 or 555-987-6543, SSN 123-45-6789, MRN: 1234",
            "Visit https://bit.ly/a https://tinyurl.com/b https://t.co/c www.x.com",
            "aaaaa!!!!! free click free visit win call",
            "Buy now, special offer, limited time discount, cheap deal, act now",
        ],
    )
    async def test_scores_in_range(self, guard, text):
        result = await guard.scan(text)
        for value in result.to_dict()["scores"].values():
            assert 0.0 <= value <= 1.0

    @pytest.mark.asyncio
    async def test_result_shape(self, guard):
        result = await guard.scan("Call me at 555-123-4567", context={"id": 7})
        data = json.loads(result.to_json())
        assert set(data) == {"status", "scores", "flags", "detectedSpans", "timestamp", "context"}
        assert set(data["scores"]) == {
            "phi_score",
            "spam_score",
            "sales_pitch_score",
            "toxicity_score",
            "link_risk_score",
            "user_trust_score",
        }
        assert set(data["detectedSpans"][0]) == {"text", "type", "subtype", "start", "end"}
        assert datetime.fromisoformat(data["timestamp"]).tzinfo is not None
        assert data["context"] == {"id": 7}

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, guard):
        await guard.scan("Have a lovely afternoon")
        await guard.scan("This is stupid and hateful content")
        summary = guard.metrics.summary()
        assert summary["total"] == 2
        assert summary["allows"] == 1
        assert summary["blocks"] == 1
        assert summary["top_flags"] == {"toxicity": 1}


def test_metrics_summary_empty():
    summary = Metrics().summary()
    assert summary["total"] == 0
    assert summary["block_rate"] == 0


def test_invalid_result_includes_reason():
    result = ModerationResult(status=ModerationStatus.REJECT, scores=ScoreVector(), reason="Invalid input")
    assert result.to_dict()["reason"] == "Invalid input"
