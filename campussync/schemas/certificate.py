"""
Certificate Schemas
====================

A Certificate is one submitted credential. It owns exactly one
CertificateMetadata record that holds how it was verified.

Lifecycle:
    upload → pending ─┬─ decision engine ─→ verified | rejected
                      └─ manual review (still pending, flagged)

    verified / rejected are terminal. Re-evaluation requires an
    explicit revert back to pending.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class VerificationStatus(str, Enum):
    """Certificate.verification_status values."""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not VerificationStatus.PENDING


class ReviewFlag(str, Enum):
    """Flag set on a pending certificate that needs a human decision."""
    MANUAL_REVIEW = "manual_review"


class CertificateMetadata(BaseModel):
    """
    Verification-method detail for one certificate.

    Written only by the verification pipeline. `verification_details`
    holds the per-rule breakdown, matched issuer, extracted and
    normalized fields, and any issues found.
    """
    model_config = ConfigDict(from_attributes=True)

    qr_code_data: Optional[str] = None
    qr_verified: bool = False
    logo_hash: Optional[str] = None
    logo_match_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    template_match_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    ai_confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    verification_method: Optional[str] = None
    file_hash: Optional[str] = Field(default=None, description="SHA-256 of the uploaded file")
    ocr_text: Optional[str] = Field(default=None, description="Text the certificate was verified from")
    verification_details: dict[str, Any] = Field(default_factory=dict)


class Certificate(BaseModel):
    """One submitted credential."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str = Field(description="Owning student; the credential subject")
    organization_id: Optional[str] = None
    title: Optional[str] = None
    institution: Optional[str] = None
    date_issued: Optional[str] = None
    description: Optional[str] = None
    file_ref: Optional[str] = Field(default=None, description="Storage reference of the upload")
    verification_status: VerificationStatus = VerificationStatus.PENDING
    review_flag: Optional[ReviewFlag] = None
    auto_approved: bool = False
    confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    verification: Optional[CertificateMetadata] = None

    @property
    def is_terminal(self) -> bool:
        return self.verification_status.is_terminal
