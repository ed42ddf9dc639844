"""
Policy Scorer Tests
====================

Tests for default weighting, rule weighting, QR handling and the
degenerate weight cases.
"""

from __future__ import annotations

import pytest

from campussync.config import ScoringConfig
from campussync.policy.scorer import PolicyScorer, rule_signal
from campussync.schemas.decision import WeightsSource
from campussync.schemas.issuer import RuleType
from tests.conftest import make_rule, make_signals


@pytest.fixture
def scorer():
    return PolicyScorer()


@pytest.mark.unit
class TestDefaultWeights:
    """0.4 / 0.3 / 0.3 when no rule is active."""

    def test_weighted_sum(self, scorer):
        signals = make_signals(normalization_confidence=0.8, institution_score=0.9, issuer_presence=1.0)
        result = scorer.score(signals)
        assert result.score == pytest.approx(0.4 * 0.8 + 0.3 * 0.9 + 0.3 * 1.0)
        assert result.weights_source == WeightsSource.DEFAULT
        assert [c.name for c in result.breakdown] == ["normalization", "institution", "issuer_presence"]

    def test_all_zero(self, scorer):
        assert scorer.score(make_signals()).score == 0.0

    def test_all_one(self, scorer):
        signals = make_signals(normalization_confidence=1.0, institution_score=1.0, issuer_presence=1.0)
        assert scorer.score(signals).score == pytest.approx(1.0)

    def test_inactive_rules_fall_back_to_defaults(self, scorer):
        rules = [make_rule(RuleType.TEMPLATE_MATCH, is_active=False)]
        result = scorer.score(make_signals(template_score=1.0), rules)
        assert result.weights_source == WeightsSource.DEFAULT
        assert result.score == 0.0

    def test_configured_weights_clamped(self):
        scorer = PolicyScorer(ScoringConfig(normalization_weight=1.0, institution_weight=1.0, issuer_weight=1.0))
        signals = make_signals(normalization_confidence=1.0, institution_score=1.0, issuer_presence=1.0)
        assert scorer.score(signals).score == 1.0


@pytest.mark.unit
class TestRuleWeights:
    """Σ(weight · signal) / Σ(weight) over active rules."""

    def test_normalized_by_total_weight(self, scorer):
        rules = [
            make_rule(RuleType.LOGO_MATCH, weight=1.0),
            make_rule(RuleType.TEMPLATE_MATCH, weight=3.0),
        ]
        signals = make_signals(logo_score=0.2, institution_score=0.9, template_score=0.5)
        result = scorer.score(signals, rules)
        assert result.weights_source == WeightsSource.RULES
        assert result.total_weight == 4.0
        assert result.score == pytest.approx((1.0 * 0.9 + 3.0 * 0.5) / 4.0)

    def test_ai_confidence_signal(self):
        signals = make_signals(normalization_confidence=0.9, extraction_confidence=0.6, issuer_presence=0.0)
        assert rule_signal(RuleType.AI_CONFIDENCE, signals) == pytest.approx(0.5)

    def test_threshold_marks_pass(self, scorer):
        rules = [
            make_rule(RuleType.TEMPLATE_MATCH, threshold=0.6, name="template"),
            make_rule(RuleType.LOGO_MATCH, threshold=0.8, name="logo"),
        ]
        signals = make_signals(template_score=0.6, logo_score=0.5)
        breakdown = {c.name: c for c in scorer.score(signals, rules).breakdown}
        assert breakdown["template"].passed is True
        assert breakdown["logo"].passed is False

    def test_negative_weight_treated_as_zero(self, scorer):
        rules = [
            make_rule(RuleType.TEMPLATE_MATCH, weight=-5.0),
            make_rule(RuleType.LOGO_MATCH, weight=1.0),
        ]
        result = scorer.score(make_signals(template_score=0.0, logo_score=0.6), rules)
        assert result.score == pytest.approx(0.6)

    def test_zero_total_weight(self, scorer):
        rules = [make_rule(RuleType.TEMPLATE_MATCH, weight=0.0)]
        result = scorer.score(make_signals(template_score=1.0), rules)
        assert result.score == 0.0
        assert result.weights_source == WeightsSource.RULES

    def test_bounded(self, scorer):
        rules = [make_rule(t, weight=w) for t, w in [
            (RuleType.LOGO_MATCH, 0.25),
            (RuleType.TEMPLATE_MATCH, 0.30),
            (RuleType.AI_CONFIDENCE, 0.45),
        ]]
        signals = make_signals(
            normalization_confidence=1.0, institution_score=1.0, issuer_presence=1.0,
            extraction_confidence=1.0, logo_score=1.0, template_score=1.0,
        )
        result = scorer.score(signals, rules)
        assert 0.0 <= result.score <= 1.0
        assert result.score == pytest.approx(1.0)


@pytest.mark.unit
class TestQRRule:
    """The QR rule only counts when a payload was checked."""

    def rules(self):
        return [
            make_rule(RuleType.QR_VERIFICATION, weight=0.4),
            make_rule(RuleType.TEMPLATE_MATCH, weight=0.6),
        ]

    def test_skipped_without_payload(self, scorer):
        result = scorer.score(make_signals(template_score=1.0), self.rules())
        assert result.score == pytest.approx(1.0)
        assert all(c.rule_type != RuleType.QR_VERIFICATION for c in result.breakdown)

    def test_verified_payload(self, scorer):
        signals = make_signals(template_score=0.5, qr_checked=True, qr_verified=True)
        result = scorer.score(signals, self.rules())
        assert result.score == pytest.approx(0.4 * 1.0 + 0.6 * 0.5)

    def test_unverified_payload_counts_against(self, scorer):
        signals = make_signals(template_score=1.0, qr_checked=True, qr_verified=False)
        result = scorer.score(signals, self.rules())
        assert result.score == pytest.approx(0.6)


@pytest.mark.unit
class TestDuplicatePenalty:
    """Duplicates lose a fixed amount, floored at zero."""

    def test_default_weights_penalized(self, scorer):
        signals = make_signals(normalization_confidence=0.9, institution_score=0.9, issuer_presence=1.0)
        clean = scorer.score(signals)
        dup = scorer.score(signals.model_copy(update={"duplicate": True}))
        assert dup.score == pytest.approx(clean.score - 0.4)
        assert dup.duplicate_penalty == 0.4
        assert clean.duplicate_penalty == 0.0
        assert dup.breakdown == clean.breakdown

    def test_rule_weights_penalized(self, scorer):
        rules = [make_rule(RuleType.TEMPLATE_MATCH, weight=1.0)]
        result = scorer.score(make_signals(template_score=0.9, duplicate=True), rules)
        assert result.weights_source == WeightsSource.RULES
        assert result.score == pytest.approx(0.5)

    def test_floored_at_zero(self, scorer):
        result = scorer.score(make_signals(normalization_confidence=0.5, duplicate=True))
        assert result.score == 0.0

    def test_configured_penalty(self):
        scorer = PolicyScorer(ScoringConfig(duplicate_penalty=0.1))
        result = scorer.score(make_signals(institution_score=1.0, duplicate=True))
        assert result.score == pytest.approx(0.3 - 0.1)
