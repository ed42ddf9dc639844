"""
CampusSync Data Schemas
========================

Pydantic v2 models for the in-process contracts of the verification
pipeline:

1. ExtractedFields / NormalizedFields — Structured certificate fields
2. MatchResult        — Institution, logo and template match outcome
3. PolicyScore        — Rule-weighted score with per-rule breakdown
4. Decision           — Decision engine output + policy snapshot
5. Job                — Background job record with typed payloads
6. VerifiableCredential — Issued credential + status registry

ORM counterparts live in campussync.store.models; every persisted
schema is `from_attributes=True` so rows convert with model_validate.
"""

from campussync.schemas.audit import AuditAction, AuditEntry
from campussync.schemas.certificate import (
    Certificate,
    CertificateMetadata,
    ReviewFlag,
    VerificationStatus,
)
from campussync.schemas.credential import (
    REVOCATION_REASONS,
    CredentialStatus,
    CredentialStatusEntry,
    CredentialStatusView,
    CredentialVerification,
    RevocationReason,
    RevocationRecord,
    VerifiableCredential,
)
from campussync.schemas.decision import (
    Decision,
    DecisionOutcome,
    PolicyScore,
    PolicySnapshot,
    RuleContribution,
    ScoringSignals,
    WeightsSource,
)
from campussync.schemas.fields import (
    CORE_FIELDS,
    DocumentType,
    ExtractedFields,
    ExtractionResult,
    NormalizedFields,
)
from campussync.schemas.issuer import RuleType, TrustedIssuer, VerificationRule
from campussync.schemas.jobs import (
    Job,
    JobHistoryEntry,
    JobStatus,
    JobStatusView,
    JobType,
    NormalizationJobResult,
    NormalizationPayload,
    OcrJobResult,
    OcrPayload,
    VerificationJobResult,
    VerificationPayload,
)
from campussync.schemas.matching import (
    MatchedTemplate,
    MatchMethod,
    MatchResult,
    QRMatch,
    TemplateMatch,
)

__all__ = [
    # Audit
    "AuditAction",
    "AuditEntry",
    # Certificate
    "Certificate",
    "CertificateMetadata",
    "ReviewFlag",
    "VerificationStatus",
    # Credential
    "REVOCATION_REASONS",
    "CredentialStatus",
    "CredentialStatusEntry",
    "CredentialStatusView",
    "CredentialVerification",
    "RevocationReason",
    "RevocationRecord",
    "VerifiableCredential",
    # Decision
    "Decision",
    "DecisionOutcome",
    "PolicyScore",
    "PolicySnapshot",
    "RuleContribution",
    "ScoringSignals",
    "WeightsSource",
    # Fields
    "CORE_FIELDS",
    "DocumentType",
    "ExtractedFields",
    "ExtractionResult",
    "NormalizedFields",
    # Issuer
    "RuleType",
    "TrustedIssuer",
    "VerificationRule",
    # Jobs
    "Job",
    "JobHistoryEntry",
    "JobStatus",
    "JobStatusView",
    "JobType",
    "NormalizationJobResult",
    "NormalizationPayload",
    "OcrJobResult",
    "OcrPayload",
    "VerificationJobResult",
    "VerificationPayload",
    # Matching
    "MatchedTemplate",
    "MatchMethod",
    "MatchResult",
    "QRMatch",
    "TemplateMatch",
]
