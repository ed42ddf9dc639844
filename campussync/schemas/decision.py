"""
Scoring & Decision Schemas
===========================

Defines the input signals of the policy scorer, its per-rule
breakdown, and the decision engine's output.

Design Philosophy:
    The decision is deterministic: given the same PolicyScore and the
    same PolicySnapshot, the same Decision is always produced. The
    snapshot is stored with every decision so a reviewer can see which
    thresholds were in force.

Data Flow:
    ScoringSignals + VerificationRules → PolicyScore → Decision
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from campussync.schemas.certificate import ReviewFlag, VerificationStatus
from campussync.schemas.issuer import RuleType


class ScoringSignals(BaseModel):
    """Every signal the policy scorer may weigh, each in [0, 1]."""
    normalization_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    institution_score: float = Field(default=0.0, ge=0.0, le=1.0)
    issuer_presence: float = Field(default=0.0, ge=0.0, le=1.0)
    extraction_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    logo_score: float = Field(default=0.0, ge=0.0, le=1.0)
    template_score: float = Field(default=0.0, ge=0.0, le=1.0)
    qr_verified: bool = False
    qr_checked: bool = Field(default=False, description="A QR payload was supplied and checked")
    duplicate: bool = Field(default=False, description="Same file or near-identical text seen before")


class WeightsSource(str, Enum):
    """Where the scorer's weights came from."""
    DEFAULT = "default"
    RULES = "rules"


class RuleContribution(BaseModel):
    """One line of the per-rule breakdown shown to reviewers."""
    name: str
    rule_type: Optional[RuleType] = Field(default=None, description="None for default weights")
    weight: float = Field(ge=0.0)
    signal: float = Field(ge=0.0, le=1.0)
    contribution: float = Field(ge=0.0)
    passed: bool = Field(description="signal >= the rule's threshold")


class PolicyScore(BaseModel):
    """The single [0, 1] number the decision engine thresholds against."""
    score: float = Field(ge=0.0, le=1.0)
    breakdown: list[RuleContribution] = Field(default_factory=list)
    weights_source: WeightsSource = WeightsSource.DEFAULT
    total_weight: float = Field(default=0.0, ge=0.0)
    duplicate_penalty: float = Field(default=0.0, ge=0.0, description="Amount subtracted for a duplicate")


class DecisionOutcome(str, Enum):
    """Three terminal outcomes reached from a single pending state."""
    AUTO_APPROVED = "auto_approved"
    MANUAL_REVIEW = "manual_review"
    REJECTED = "rejected"


class PolicySnapshot(BaseModel):
    """Thresholds used for one decision, stored for reproducibility."""
    high_threshold: float = Field(description="Auto-approve at or above")
    low_threshold: float = Field(description="Reject strictly below")
    policy_version: str = Field(default="v1.0")
    config_hash: str = Field(default="")


class Decision(BaseModel):
    """Decision engine output for one certificate."""
    outcome: DecisionOutcome
    status: VerificationStatus
    auto_approved: bool = False
    review_flag: Optional[ReviewFlag] = None
    policy_score: float = Field(ge=0.0, le=1.0)
    policy: PolicySnapshot
    reason: str = Field(description="Human-readable rationale")
