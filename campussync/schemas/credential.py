"""
Verifiable Credential Schemas
==============================

A VerifiableCredential is issued once per verified certificate and is
immutable afterwards, except for its status. Revocation is one-way:
active → revoked, never back.

Every status change is appended to a status registry keyed by
credential id, so the full history is auditable.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CredentialStatus(str, Enum):
    """VerifiableCredential.status values."""
    ACTIVE = "active"
    REVOKED = "revoked"


class RevocationReason(BaseModel):
    """A registered revocation reason."""
    code: str
    description: str
    category: str


# Codes accepted by the revoker
REVOCATION_REASONS: dict[str, RevocationReason] = {
    r.code: r
    for r in (
        RevocationReason(code="FRAUD", description="Credential obtained through fraudulent means", category="fraud"),
        RevocationReason(code="ERROR", description="Credential issued in error", category="error"),
        RevocationReason(code="SUSPENSION", description="Credential suspended", category="suspension"),
        RevocationReason(code="EXPIRATION", description="Credential has expired", category="expiration"),
        RevocationReason(code="USER_REQUEST", description="Revoked at user request", category="user_request"),
        RevocationReason(code="POLICY_VIOLATION", description="Violation of issuance policy", category="policy_violation"),
    )
}


class VerifiableCredential(BaseModel):
    """Persisted credential record."""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(description="urn:uuid:... identifier, equal to document['id']")
    certificate_id: str
    subject_id: str = Field(description="Owning student of the certificate")
    issuer: str = Field(description="Issuer DID")
    issued_at: datetime
    document: dict[str, Any] = Field(description="Full W3C VC document with JWS proof")
    status: CredentialStatus = CredentialStatus.ACTIVE
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None


class CredentialStatusEntry(BaseModel):
    """One row of the append-only status registry."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    credential_id: str
    status: CredentialStatus
    reason_code: Optional[str] = None
    reason: Optional[str] = None
    issuer: Optional[str] = None
    subject_id: Optional[str] = None
    recorded_by: Optional[str] = None
    recorded_at: datetime
    details: dict[str, Any] = Field(default_factory=dict)


class RevocationRecord(BaseModel):
    """Returned by the revoker after a successful revocation."""
    credential_id: str
    status: CredentialStatus = CredentialStatus.REVOKED
    revoked_at: datetime
    revoked_by: str
    reason: RevocationReason
    registry_entry_id: str


class CredentialStatusView(BaseModel):
    """Current status plus full registry history, for recruiters and admins."""
    credential_id: str
    status: CredentialStatus
    revoked_at: Optional[datetime] = None
    reason: Optional[str] = None
    history: list[CredentialStatusEntry] = Field(default_factory=list)


class CredentialVerification(BaseModel):
    """Outcome of checking a presented credential."""
    valid: bool
    credential_id: Optional[str] = None
    status: Optional[CredentialStatus] = None
    reason: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
