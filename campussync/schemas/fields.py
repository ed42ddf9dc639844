"""
Extracted & Normalized Field Schemas
=====================================

Defines the structured output of the field extractor and the
field normalizer.

Design Decisions:
    - Unmatched fields stay None; the extractor never guesses
    - Confidences are continuous [0, 1] so downstream scoring can weigh them
    - Normalization keeps the original values next to the normalized ones
      so reviewers can see what was changed

Data Flow:
    OCR text → Extractor → ExtractionResult → Normalizer → NormalizedFields
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


CORE_FIELDS = ("title", "institution", "recipient", "date_issued", "issuer", "description")


class DocumentType(str, Enum):
    """Declared type of an uploaded document; selects the extraction patterns."""
    CERTIFICATE = "certificate"
    TRANSCRIPT = "transcript"
    DEGREE = "degree"
    LETTER = "letter"
    ID = "id"


class ExtractedFields(BaseModel):
    """
    Structured fields pulled out of raw OCR text.

    Every field is optional. Absence is a valid outcome that the
    normalizer and scorer handle downstream.
    """
    title: Optional[str] = Field(default=None, description="Course / program / award title")
    institution: Optional[str] = Field(default=None, description="Claimed issuing institution")
    recipient: Optional[str] = Field(default=None, description="Person the document was awarded to")
    date_issued: Optional[str] = Field(default=None, description="Issue date as written")
    issuer: Optional[str] = Field(default=None, description="Issuing body or signatory line")
    description: Optional[str] = Field(default=None, description="Longest descriptive line")

    def present(self) -> dict[str, str]:
        """Fields that carry a non-blank value."""
        return {
            name: value
            for name in CORE_FIELDS
            if isinstance(value := getattr(self, name), str) and value.strip()
        }


class ExtractionResult(BaseModel):
    """Output of the field extractor."""
    fields: ExtractedFields = Field(default_factory=ExtractedFields)
    confidence: float = Field(
        default=0.0, ge=0.0, le=1.0,
        description="Extraction confidence (field coverage × OCR confidence)"
    )
    document_type: DocumentType = Field(default=DocumentType.CERTIFICATE)
    issues: list[str] = Field(
        default_factory=list,
        description="Missing or suspicious fields, e.g. 'missing_title'"
    )


class NormalizedFields(BaseModel):
    """
    Output of the field normalizer.

    `confidence` reflects how many present fields were coerced into a
    canonical form versus left as-is. It is 0.0 when no field is present
    and always lies in [0, 1].
    """
    title: Optional[str] = None
    institution: Optional[str] = None
    recipient: Optional[str] = None
    date_issued: Optional[str] = Field(default=None, description="ISO-8601 when coercible")
    issuer: Optional[str] = None
    description: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    field_confidence: dict[str, float] = Field(
        default_factory=dict,
        description="Per-field normalization confidence"
    )
    original_values: dict[str, str] = Field(default_factory=dict)
    normalized_values: dict[str, str] = Field(default_factory=dict)
    method: str = Field(default="rules", description="'rules' or 'llm'")

    @property
    def issuer_presence(self) -> float:
        """
        Issuer-presence indicator used by the policy scorer.

        1.0 for an explicit issuer line, 0.5 when only the institution
        name can stand in for it, 0.0 otherwise.
        """
        if (self.issuer or "").strip():
            return 1.0
        if (self.institution or "").strip():
            return 0.5
        return 0.0
