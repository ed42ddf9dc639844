"""
Certificate Check Tests
========================

Tests for the metadata presence check and duplicate detection
(file hash and OCR-text similarity against stored certificates).
"""

from __future__ import annotations

import pytest

from campussync.config import MatchingConfig
from campussync.policy.checks import (
    DuplicateDetector,
    check_metadata,
    jaccard_similarity,
    tokenize,
)
from campussync.schemas.certificate import CertificateMetadata
from campussync.schemas.fields import NormalizedFields
from campussync.utils import file_sha256
from tests.conftest import COURSERA_TEXT, IIT_BOMBAY_TEXT, make_certificate


def _stored(store, text: str, document: bytes | None = None):
    """A certificate whose verification text (and file hash) is on record."""
    cert = make_certificate(store)
    store.save_verification(
        cert.id,
        CertificateMetadata(
            ocr_text=text,
            file_hash=file_sha256(document) if document else None,
        ),
    )
    return cert


# ────────────────────────────────────────────────────────────────
# Metadata Presence
# ────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestMetadataCheck:
    """Field presence and format scoring."""

    def test_complete_fields(self):
        result = check_metadata(NormalizedFields(
            title="Summer Research Internship",
            institution="Indian Institute of Technology Bombay",
            recipient="Ananya Sharma",
            date_issued="2023-06-19",
            description="Completed an eight-week research project",
        ))
        assert result.score == pytest.approx(1.0)
        assert result.issues == []

    def test_empty_fields(self):
        result = check_metadata(NormalizedFields())
        assert result.score == 0.0
        assert result.issues == [
            "missing_title",
            "missing_institution",
            "missing_recipient",
            "invalid_or_missing_date",
            "weak_description",
        ]

    def test_unparsed_date_and_short_description(self):
        result = check_metadata(NormalizedFields(
            title="Python",
            institution="Coursera",
            recipient="Ravi Kumar",
            date_issued="sometime in June",
            description="Course",
        ))
        assert result.score == pytest.approx(0.7)
        assert result.issues == ["invalid_or_missing_date", "weak_description"]

    def test_too_short_values_count_as_missing(self):
        result = check_metadata(NormalizedFields(title="AI", institution="MIT", recipient="Al"))
        assert "missing_title" in result.issues
        assert "missing_institution" not in result.issues
        assert "missing_recipient" in result.issues


# ────────────────────────────────────────────────────────────────
# Similarity
# ────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestSimilarity:
    """Token sets and Jaccard similarity."""

    def test_tokenize(self):
        assert tokenize("Certificate of Completion, 2023!") == {
            "certificate", "of", "completion", "2023",
        }

    def test_jaccard(self):
        assert jaccard_similarity({"a", "b"}, {"a", "b"}) == 1.0
        assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard_similarity(set(), {"a"}) == 0.0


# ────────────────────────────────────────────────────────────────
# Duplicate Detection
# ────────────────────────────────────────────────────────────────

@pytest.mark.unit
class TestDuplicateDetector:
    """Duplicates by file hash and by OCR text."""

    def test_first_upload_is_not_duplicate(self, store):
        cert = make_certificate(store)
        result = DuplicateDetector(store).check(cert.id, IIT_BOMBAY_TEXT, b"%PDF-1.7 upload")
        assert result.is_duplicate is False
        assert result.file_hash == file_sha256(b"%PDF-1.7 upload")
        assert len(result.file_hash) == 64
        assert result.text_similarity == 0.0
        assert result.similar_certificate_id is None

    def test_same_file_is_duplicate(self, store):
        original = _stored(store, "some other text", document=b"%PDF-1.7 upload")
        cert = make_certificate(store)
        result = DuplicateDetector(store).check(cert.id, IIT_BOMBAY_TEXT, b"%PDF-1.7 upload")
        assert result.is_duplicate is True
        assert result.similar_certificate_id == original.id

    def test_same_text_is_duplicate(self, store):
        original = _stored(store, IIT_BOMBAY_TEXT)
        cert = make_certificate(store)
        result = DuplicateDetector(store).check(cert.id, IIT_BOMBAY_TEXT.upper())
        assert result.is_duplicate is True
        assert result.text_similarity == 1.0
        assert result.similar_certificate_id == original.id
        assert result.file_hash is None

    def test_different_text_is_not_duplicate(self, store):
        original = _stored(store, COURSERA_TEXT)
        cert = make_certificate(store)
        result = DuplicateDetector(store).check(cert.id, IIT_BOMBAY_TEXT)
        assert result.is_duplicate is False
        assert result.text_similarity < 0.95
        if result.text_similarity > 0:
            assert result.similar_certificate_id == original.id

    def test_own_record_ignored(self, store):
        cert = _stored(store, IIT_BOMBAY_TEXT, document=b"file")
        result = DuplicateDetector(store).check(cert.id, IIT_BOMBAY_TEXT, b"file")
        assert result.is_duplicate is False
        assert result.text_similarity == 0.0

    def test_cutoff_configurable(self, store):
        _stored(store, "alpha beta gamma delta")
        cert = make_certificate(store)
        loose = DuplicateDetector(store, MatchingConfig(duplicate_similarity=0.5))
        strict = DuplicateDetector(store)
        assert loose.check(cert.id, "alpha beta gamma epsilon").is_duplicate is True
        assert strict.check(cert.id, "alpha beta gamma epsilon").is_duplicate is False

    def test_window_zero_skips_text_comparison(self, store):
        _stored(store, IIT_BOMBAY_TEXT)
        cert = make_certificate(store)
        detector = DuplicateDetector(store, MatchingConfig(duplicate_window=0))
        assert detector.check(cert.id, IIT_BOMBAY_TEXT).is_duplicate is False
