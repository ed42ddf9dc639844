"""
Job Schemas
============

Typed payloads and results for the background job queue.

Each job type has its own payload and result model, and the worker
dispatches through a registry keyed by JobType, so a processor only
ever sees the payload shape it was registered for.

Lifecycle:
    pending → processing → completed | failed
    failed → pending (explicit operator resubmission only)
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from campussync.schemas.decision import DecisionOutcome
from campussync.schemas.fields import DocumentType, ExtractedFields, NormalizedFields


class JobType(str, Enum):
    OCR = "ocr"
    VERIFICATION = "verification"
    NORMALIZATION = "normalization"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# ── Payloads ───────────────────────────────────────────────────────

class OcrPayload(BaseModel):
    """Run OCR on an uploaded file, then queue verification."""
    model_config = ConfigDict(extra="forbid")

    certificate_id: str
    file_ref: str
    document_type: DocumentType = DocumentType.CERTIFICATE


class VerificationPayload(BaseModel):
    """Run the verification pipeline on already-extracted text."""
    model_config = ConfigDict(extra="forbid")

    certificate_id: str
    extracted_text: str
    ocr_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    document_type: DocumentType = DocumentType.CERTIFICATE
    qr_payload: Optional[str] = Field(default=None, description="Decoded QR text, if any")
    logo_ref: Optional[str] = Field(default=None, description="Storage reference of a cropped logo")
    file_ref: Optional[str] = Field(
        default=None, description="Storage reference of the upload, hashed for duplicate detection"
    )


class NormalizationPayload(BaseModel):
    """Normalize an extracted field set on its own."""
    model_config = ConfigDict(extra="forbid")

    certificate_id: Optional[str] = None
    fields: ExtractedFields


# ── Results ────────────────────────────────────────────────────────

class OcrJobResult(BaseModel):
    certificate_id: str
    extracted_text: str
    confidence: float = Field(ge=0.0, le=1.0)
    verification_job_id: str


class VerificationJobResult(BaseModel):
    certificate_id: str
    policy_score: float = Field(ge=0.0, le=1.0)
    outcome: DecisionOutcome
    credential_id: Optional[str] = None
    normalized_fields: NormalizedFields


class NormalizationJobResult(BaseModel):
    certificate_id: Optional[str] = None
    normalized_fields: NormalizedFields


# ── Job records ────────────────────────────────────────────────────

class Job(BaseModel):
    """A queued unit of work."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: JobType
    payload: dict[str, Any]
    status: JobStatus = JobStatus.PENDING
    priority: int = 0
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobStatusView(BaseModel):
    """What the job status boundary returns."""
    job_id: str
    status: JobStatus
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class JobHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    job_id: str
    status: JobStatus
    message: Optional[str] = None
    created_at: datetime
