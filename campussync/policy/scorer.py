"""
Policy Scorer
==============

Combines the pipeline's verification signals into a single policy
score using the administrator-defined verification rules.

Scoring:
    No active rules → fixed default weights
        0.4 · normalization + 0.3 · institution + 0.3 · issuer presence

    Active rules → Σ(weight · signal) / Σ(weight), one signal per rule type
        qr_verification  1.0 if the QR payload verified, else 0.0
        logo_match       max(logo score, institution score)
        template_match   template score
        ai_confidence    mean(normalization, extraction, issuer presence)

A QR rule only counts toward the total weight when a QR payload was
actually supplied; certificates without a QR code are scored on the
remaining rules.

A duplicate (same file hash, or near-identical OCR text) loses
`duplicate_penalty` from the final score, floored at 0.

This module performs no I/O. Rules are passed in by the caller, who
reads them fresh from storage on every evaluation.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from campussync.config import ScoringConfig
from campussync.schemas.decision import (
    PolicyScore,
    RuleContribution,
    ScoringSignals,
    WeightsSource,
)
from campussync.schemas.issuer import RuleType, VerificationRule
from campussync.utils import clamp

logger = logging.getLogger("campussync.policy.scorer")


def rule_signal(rule_type: RuleType, signals: ScoringSignals) -> float:
    """The [0, 1] signal a rule of the given type weighs."""
    if rule_type == RuleType.QR_VERIFICATION:
        return 1.0 if signals.qr_verified else 0.0
    if rule_type == RuleType.LOGO_MATCH:
        return max(signals.logo_score, signals.institution_score)
    if rule_type == RuleType.TEMPLATE_MATCH:
        return signals.template_score
    if rule_type == RuleType.AI_CONFIDENCE:
        return (
            signals.normalization_confidence
            + signals.extraction_confidence
            + signals.issuer_presence
        ) / 3.0
    raise ValueError(f"Unknown rule type: {rule_type!r}")


class PolicyScorer:
    """
    Weighted policy scorer.

    Usage:
        scorer = PolicyScorer()
        result = scorer.score(signals, store.list_rules(active_only=True))

    Args:
        config: Default weights used when no rule is active.
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def score(
        self,
        signals: ScoringSignals,
        rules: Optional[Sequence[VerificationRule]] = None,
    ) -> PolicyScore:
        """
        Compute the policy score.

        Args:
            signals: Signals gathered by the pipeline.
            rules: Verification rules; inactive ones are ignored.

        Returns:
            PolicyScore with the clamped score and a per-rule breakdown.
        """
        active = [r for r in (rules or []) if r.is_active]
        if not active:
            result = self._score_default(signals)
        else:
            result = self._score_rules(signals, active)
        if signals.duplicate:
            result = self._apply_duplicate_penalty(result)
        return result

    def _apply_duplicate_penalty(self, result: PolicyScore) -> PolicyScore:
        penalty = self.config.duplicate_penalty
        score = clamp(result.score - penalty)
        logger.info(f"Duplicate certificate: policy score {result.score:.3f} -> {score:.3f}")
        return result.model_copy(update={"score": score, "duplicate_penalty": penalty})

    def _score_default(self, signals: ScoringSignals) -> PolicyScore:
        cfg = self.config
        parts = [
            ("normalization", max(cfg.normalization_weight, 0.0), signals.normalization_confidence),
            ("institution", max(cfg.institution_weight, 0.0), signals.institution_score),
            ("issuer_presence", max(cfg.issuer_weight, 0.0), signals.issuer_presence),
        ]
        breakdown = [
            RuleContribution(
                name=name,
                weight=weight,
                signal=clamp(signal),
                contribution=weight * clamp(signal),
                passed=signal > 0.0,
            )
            for name, weight, signal in parts
        ]
        total = sum(c.contribution for c in breakdown)
        result = PolicyScore(
            score=clamp(total),
            breakdown=breakdown,
            weights_source=WeightsSource.DEFAULT,
            total_weight=sum(c.weight for c in breakdown),
        )
        logger.debug(f"Default-weight policy score: {result.score:.3f}")
        return result

    def _score_rules(
        self, signals: ScoringSignals, rules: list[VerificationRule]
    ) -> PolicyScore:
        breakdown: list[RuleContribution] = []
        for rule in rules:
            rule_type = RuleType(rule.rule_type)
            if rule_type == RuleType.QR_VERIFICATION and not signals.qr_checked:
                continue
            weight = max(rule.weight, 0.0)
            signal = clamp(rule_signal(rule_type, signals))
            breakdown.append(
                RuleContribution(
                    name=rule.name,
                    rule_type=rule_type,
                    weight=weight,
                    signal=signal,
                    contribution=weight * signal,
                    passed=signal >= rule.threshold,
                )
            )

        total_weight = sum(c.weight for c in breakdown)
        if total_weight <= 0.0:
            logger.warning("Active verification rules carry no weight; policy score is 0")
            score = 0.0
        else:
            score = clamp(sum(c.contribution for c in breakdown) / total_weight)

        logger.debug(
            f"Rule-weighted policy score: {score:.3f} "
            f"({len(breakdown)} rules, total weight {total_weight:.2f})"
        )
        return PolicyScore(
            score=score,
            breakdown=breakdown,
            weights_source=WeightsSource.RULES,
            total_weight=total_weight,
        )
