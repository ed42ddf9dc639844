"""
Matching Schemas
=================

Outputs of the institution, logo, template and QR matchers, and of
the metadata and duplicate checks.
All scores are continuous [0, 1]; a failed or empty match degrades
to a low score rather than raising.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MatchMethod(str, Enum):
    """How an institution match score was obtained."""
    EXACT_NAME = "exact_name"
    PARTIAL_NAME = "partial_name"
    DOMAIN = "domain"
    PHASH = "phash"
    NONE = "none"


class MatchedTemplate(BaseModel):
    """Reference to the trusted issuer a certificate was matched against."""
    id: str
    name: str
    kind: str = Field(default="header", description="'logo' if the issuer has a logo hash, else 'header'")


class MatchResult(BaseModel):
    """Institution match outcome."""
    score: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    method: MatchMethod = MatchMethod.NONE
    matched_template: Optional[MatchedTemplate] = None
    logo_score: float = Field(
        default=0.0, ge=0.0, le=1.0,
        description="Best perceptual-hash similarity (0 when no logo was compared)"
    )


class TemplateMatch(BaseModel):
    """Share of an issuer's template patterns found in the raw text."""
    matched: bool = False
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    issuer_name: Optional[str] = None
    patterns_matched: list[str] = Field(default_factory=list)


class QRMatch(BaseModel):
    """Decoded QR payload checked against issuers' verification URLs."""
    verified: bool = False
    data: Optional[str] = None
    issuer_name: Optional[str] = None


class MetadataCheck(BaseModel):
    """Presence and format checks on the normalized fields."""
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    issues: list[str] = Field(default_factory=list)


class DuplicateCheck(BaseModel):
    """
    Duplicate detection against previously verified certificates.

    A certificate is a duplicate when its file hash is already stored,
    or when its OCR text is nearly identical to a recent certificate's.
    """
    is_duplicate: bool = False
    file_hash: Optional[str] = Field(default=None, description="SHA-256 of the uploaded file")
    text_similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    similar_certificate_id: Optional[str] = None
