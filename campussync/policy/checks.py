"""
Certificate Checks
===================

Two checks run by the pipeline beside the matchers:

    check_metadata     presence / format of the normalized fields
                       title 0.25, institution 0.25, recipient 0.2,
                       ISO date 0.2, description (≥ 10 chars) 0.1
    DuplicateDetector  same file hash as a stored certificate, or OCR
                       text with Jaccard similarity above the
                       configured cutoff against recent certificates

The metadata score is recorded for reviewers; its issues are added to
the review queue entry. A duplicate is penalized by the PolicyScorer.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from campussync.config import MatchingConfig
from campussync.schemas.fields import NormalizedFields
from campussync.schemas.matching import DuplicateCheck, MetadataCheck
from campussync.store.repository import CampusStore
from campussync.utils import file_sha256

logger = logging.getLogger("campussync.policy.checks")

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TOKEN_RE = re.compile(r"[^a-z0-9]+")


# ── Metadata Presence ──────────────────────────────────────────────

def check_metadata(fields: NormalizedFields) -> MetadataCheck:
    """Score the presence and format of the normalized certificate fields."""
    score = 0.0
    issues: list[str] = []

    if fields.title and len(fields.title) >= 3:
        score += 0.25
    else:
        issues.append("missing_title")
    if fields.institution and len(fields.institution) >= 3:
        score += 0.25
    else:
        issues.append("missing_institution")
    if fields.recipient and len(fields.recipient) >= 3:
        score += 0.2
    else:
        issues.append("missing_recipient")
    if fields.date_issued and _ISO_DATE_RE.match(fields.date_issued):
        score += 0.2
    else:
        issues.append("invalid_or_missing_date")
    if len(fields.description or "") >= 10:
        score += 0.1
    else:
        issues.append("weak_description")

    return MetadataCheck(score=min(round(score, 4), 1.0), issues=issues)


# ── Duplicate Detection ────────────────────────────────────────────

def tokenize(text: str) -> set[str]:
    return {t for t in _TOKEN_RE.split(text.lower()) if t}


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    """|a ∩ b| / |a ∪ b|; 0 when either set is empty."""
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


class DuplicateDetector:
    """
    Finds certificates already submitted in another record.

    Usage:
        detector = DuplicateDetector(store)
        result = detector.check(certificate_id, ocr_text, document=file_bytes)

    The certificate being checked is excluded from both lookups, so
    re-verifying after a revert does not match itself.
    """

    def __init__(self, store: CampusStore, config: Optional[MatchingConfig] = None):
        self.store = store
        self.config = config or MatchingConfig()

    def check(
        self,
        certificate_id: str,
        text: str,
        document: Optional[bytes] = None,
    ) -> DuplicateCheck:
        file_hash = file_sha256(document) if document else None
        if file_hash is not None:
            existing = self.store.find_by_file_hash(file_hash, exclude_id=certificate_id)
            if existing is not None:
                logger.warning(
                    f"Certificate {certificate_id} has the same file as {existing}"
                )
                return DuplicateCheck(
                    is_duplicate=True,
                    file_hash=file_hash,
                    text_similarity=1.0,
                    similar_certificate_id=existing,
                )

        tokens = tokenize(text or "")
        best_sim, best_id = 0.0, None
        if tokens and self.config.duplicate_window > 0:
            for other_id, other_text in self.store.recent_ocr_texts(
                limit=self.config.duplicate_window, exclude_id=certificate_id
            ):
                sim = jaccard_similarity(tokens, tokenize(other_text))
                if sim > best_sim:
                    best_sim, best_id = sim, other_id

        is_duplicate = best_sim > self.config.duplicate_similarity
        if is_duplicate:
            logger.warning(
                f"Certificate {certificate_id} text matches {best_id} "
                f"(similarity={best_sim:.3f})"
            )
        return DuplicateCheck(
            is_duplicate=is_duplicate,
            file_hash=file_hash,
            text_similarity=round(best_sim, 4),
            similar_certificate_id=best_id,
        )
