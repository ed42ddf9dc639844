"""
Trusted Issuer & Verification Rule Schemas
===========================================

Registry entities maintained by administrators and read (never
written) by the verification pipeline.

- TrustedIssuer:    an institution eligible for automated matching
- VerificationRule: a named, weighted, typed scoring rule
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RuleType(str, Enum):
    """Signal a verification rule weighs."""
    QR_VERIFICATION = "qr_verification"
    LOGO_MATCH = "logo_match"
    TEMPLATE_MATCH = "template_match"
    AI_CONFIDENCE = "ai_confidence"


class TrustedIssuer(BaseModel):
    """An institution registered as eligible for automated verification."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = Field(description="Canonical institution name (unique)")
    domain: Optional[str] = Field(default=None, description="Web domain, e.g. 'iitb.ac.in'")
    template_patterns: list[str] = Field(
        default_factory=list,
        description="Ordered regex patterns expected in the certificate text"
    )
    logo_hash: Optional[str] = Field(
        default=None,
        description="64-bit average hash of the issuer logo (16 hex chars)"
    )
    confidence_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    qr_verification_url: Optional[str] = None
    is_active: bool = True

    @field_validator("logo_hash")
    @classmethod
    def validate_logo_hash(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if len(v) != 16 or any(c not in "0123456789abcdef" for c in v):
            raise ValueError(f"logo_hash must be 16 hex characters, got {v!r}")
        return v


class VerificationRule(BaseModel):
    """
    A weighted scoring rule.

    The active set of rules at evaluation time defines the policy
    scorer's weighting function. Weights need not sum to 1; the
    scorer normalizes by the total weight.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    rule_type: RuleType
    weight: float = Field(default=0.0, description="Relative weight (negative treated as 0)")
    threshold: float = Field(default=0.0, ge=0.0, le=1.0)
    config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
