"""
End-to-End Pipeline Tests
==========================

Runs real certificates through extraction, normalization, matching,
scoring, the decision engine and credential issuance against an
in-memory database, and drives the job chain through the worker.

Reference case: the IIT Bombay research internship certificate
(recipient, program title, institution and an ordinal issue date),
registered issuer with three template patterns.
"""

from __future__ import annotations

import pytest

from campussync.errors import TerminalStateError
from campussync.jobs.processors import build_registry, plain_text_ocr
from campussync.jobs.queue import JobQueue
from campussync.jobs.worker import JobWorker
from campussync.match.logo import perceptual_hash
from campussync.schemas.audit import AuditAction
from campussync.schemas.certificate import ReviewFlag, VerificationStatus
from campussync.schemas.credential import CredentialStatus
from campussync.schemas.decision import DecisionOutcome, WeightsSource
from campussync.schemas.jobs import JobStatus, JobType
from campussync.utils import file_sha256
from tests.conftest import (
    IIT_BOMBAY_ISSUER,
    IIT_BOMBAY_TEXT,
    make_certificate,
    make_logo_png,
)


def _blank_certificate(store, **overrides):
    """Uploaded certificate whose fields are still to be extracted."""
    fields = {"title": None, "institution": None, "date_issued": None, "description": None}
    fields.update(overrides)
    return make_certificate(store, **fields)


@pytest.fixture
def iit_store(seeded_store):
    """Default issuers and rules plus the IIT Bombay issuer."""
    seeded_store.add_issuer(**IIT_BOMBAY_ISSUER)
    return seeded_store


@pytest.fixture
def ruleless_store(store):
    """IIT Bombay issuer and no verification rules (default weights)."""
    store.add_issuer(**IIT_BOMBAY_ISSUER)
    return store


@pytest.mark.integration
class TestAutoApproval:
    """High-scoring certificates are approved and issued a credential."""

    @pytest.mark.asyncio
    async def test_iit_bombay_certificate(self, iit_store, pipeline):
        cert = _blank_certificate(iit_store)
        outcome = await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)

        assert outcome.extraction.fields.recipient == "Sankesh Vithal Shetty"
        assert outcome.normalized.date_issued == "2023-06-19"
        assert outcome.normalized.institution == "Indian Institute of Technology Bombay"
        assert outcome.template.matched is True
        assert outcome.template.issuer_name == "Indian Institute of Technology Bombay"

        assert outcome.policy_score.weights_source == WeightsSource.RULES
        assert outcome.policy_score.score >= 0.8
        assert outcome.decision.outcome == DecisionOutcome.AUTO_APPROVED
        assert outcome.issuance_error is None

        stored = iit_store.get_certificate(cert.id)
        assert stored.verification_status == VerificationStatus.VERIFIED
        assert stored.auto_approved is True
        assert stored.date_issued == "2023-06-19"
        assert stored.confidence_score == pytest.approx(outcome.policy_score.score)
        assert stored.verification.verification_method == "exact_name"
        assert stored.verification.verification_details["outcome"] == "auto_approved"

        credential = outcome.credential
        assert credential is not None
        assert credential.document["credentialSubject"]["id"] == "student-001"
        assert credential.document["credentialSubject"]["dateIssued"] == "2023-06-19"
        assert pipeline.revoker.verify_credential(credential.document).valid is True

    @pytest.mark.asyncio
    async def test_qr_verified(self, iit_store, pipeline):
        cert = _blank_certificate(iit_store)
        outcome = await pipeline.verify(
            cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95,
            qr_payload="https://www.iitb.ac.in/verify/SVS-2023",
        )
        assert outcome.qr.verified is True
        assert outcome.decision.outcome == DecisionOutcome.AUTO_APPROVED
        stored = iit_store.get_certificate(cert.id)
        assert stored.verification.verification_method == "qr"
        assert stored.verification.qr_verified is True

    @pytest.mark.asyncio
    async def test_logo_recorded(self, seeded_store, pipeline):
        logo = make_logo_png("stripes")
        seeded_store.add_issuer(**IIT_BOMBAY_ISSUER, logo_hash=perceptual_hash(logo))
        cert = _blank_certificate(seeded_store)
        outcome = await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95, logo=logo)
        assert outcome.match.logo_score == 1.0
        stored = seeded_store.get_certificate(cert.id)
        assert stored.verification.logo_hash == perceptual_hash(logo)
        assert stored.verification.logo_match_score == 1.0

    @pytest.mark.asyncio
    async def test_issuance_failure_does_not_fail_verification(self, iit_store, pipeline):
        cert = _blank_certificate(iit_store, student_id=" ")
        outcome = await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)
        assert outcome.decision.outcome == DecisionOutcome.AUTO_APPROVED
        assert outcome.credential is None
        assert "no owning student" in outcome.issuance_error


@pytest.mark.integration
class TestReviewAndRejection:
    """Mid scores go to reviewers, low scores are rejected."""

    @pytest.mark.asyncio
    async def test_default_weights_manual_review(self, ruleless_store, pipeline):
        cert = _blank_certificate(ruleless_store)
        outcome = await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)

        assert outcome.policy_score.weights_source == WeightsSource.DEFAULT
        assert 0.5 <= outcome.policy_score.score < 0.8
        assert outcome.decision.outcome == DecisionOutcome.MANUAL_REVIEW
        assert outcome.credential is None

        stored = ruleless_store.get_certificate(cert.id)
        assert stored.verification_status == VerificationStatus.PENDING
        assert stored.review_flag == ReviewFlag.MANUAL_REVIEW

    @pytest.mark.asyncio
    async def test_review_queue_and_approval(self, ruleless_store, pipeline):
        cert = _blank_certificate(ruleless_store)
        await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)

        queue = pipeline.review_queue()
        assert [item.certificate.id for item in queue] == [cert.id]
        assert len(queue[0].breakdown) == 3
        assert pipeline.review_queue(organization_id="other-org") == []

        approved = pipeline.review(cert.id, "reviewer-1", approve=True, reason="Registrar confirmed")
        assert approved.verification_status == VerificationStatus.VERIFIED
        assert approved.auto_approved is False
        assert pipeline.review_queue() == []

        credential = pipeline.issuer.issue(cert.id, actor_id="reviewer-1")
        assert credential.status == CredentialStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_low_score_rejected(self, seeded_store, pipeline):
        cert = _blank_certificate(seeded_store)
        outcome = await pipeline.verify(cert.id, "hello world", ocr_confidence=0.4)
        assert outcome.policy_score.score < 0.5
        assert outcome.decision.outcome == DecisionOutcome.REJECTED
        assert seeded_store.get_certificate(cert.id).verification_status == VerificationStatus.REJECTED

    @pytest.mark.asyncio
    async def test_unverified_qr_counts_against(self, iit_store, pipeline):
        cert = _blank_certificate(iit_store)
        outcome = await pipeline.verify(
            cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95,
            qr_payload="https://iitb-certificates.example.net/verify/SVS-2023",
        )
        assert outcome.qr.verified is False
        assert outcome.decision.outcome != DecisionOutcome.AUTO_APPROVED

    @pytest.mark.asyncio
    async def test_rule_changes_apply_immediately(self, iit_store, pipeline):
        for rule in iit_store.list_rules():
            iit_store.set_rule_active(rule.name, False)
        cert = _blank_certificate(iit_store)
        outcome = await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)
        assert outcome.policy_score.weights_source == WeightsSource.DEFAULT


@pytest.mark.integration
class TestReevaluation:
    """Terminal certificates need an explicit revert."""

    @pytest.mark.asyncio
    async def test_terminal_refused_until_revert(self, iit_store, pipeline):
        cert = _blank_certificate(iit_store)
        first = await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)

        with pytest.raises(TerminalStateError):
            await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)

        pipeline.revert(cert.id, "admin-1", "Re-run after issuer update")
        second = await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)
        assert second.decision.outcome == DecisionOutcome.AUTO_APPROVED
        assert second.credential is None
        assert first.credential.id in second.issuance_error

        actions = [a.action for a in iit_store.list_audit(entity_type="certificate", entity_id=cert.id)]
        assert actions == [AuditAction.AUTO_DECISION, AuditAction.REVERT, AuditAction.AUTO_DECISION]


@pytest.mark.integration
class TestJobChain:
    """OCR job → verification job through the worker."""

    @pytest.mark.asyncio
    async def test_ocr_then_verification(self, iit_store, pipeline, db):
        calls = []

        def fake_ocr(file_ref):
            calls.append(file_ref)
            return IIT_BOMBAY_TEXT, 0.95

        queue = JobQueue(db)
        worker = JobWorker(queue, build_registry(pipeline, queue, ocr_engine=fake_ocr))
        cert = _blank_certificate(iit_store, file_ref="uploads/iitb.png")

        ocr_job = queue.submit(JobType.OCR, {"certificate_id": cert.id, "file_ref": "uploads/iitb.png"})
        assert await worker.run_once() == ocr_job
        verification_job = queue.status(ocr_job).result["verification_job_id"]

        assert await worker.run_once() == verification_job
        result = queue.status(verification_job)
        assert result.status == JobStatus.COMPLETED
        assert result.result["outcome"] == "auto_approved"
        assert result.result["credential_id"].startswith("urn:uuid:")
        assert result.result["normalized_fields"]["date_issued"] == "2023-06-19"

        assert calls == ["uploads/iitb.png"]
        assert await worker.run_once() is None

    @pytest.mark.asyncio
    async def test_verification_of_unknown_certificate_fails_job(self, pipeline, db):
        queue = JobQueue(db)
        worker = JobWorker(queue, build_registry(pipeline, queue))
        job_id = queue.submit(
            JobType.VERIFICATION, {"certificate_id": "missing", "extracted_text": "text"}
        )
        await worker.run_once()
        view = queue.status(job_id)
        assert view.status == JobStatus.FAILED
        assert view.error == "Certificate not found: missing"

    @pytest.mark.asyncio
    async def test_normalization_job(self, pipeline, db):
        queue = JobQueue(db)
        worker = JobWorker(queue, build_registry(pipeline, queue))
        job_id = queue.submit(
            JobType.NORMALIZATION,
            {"fields": {"date_issued": "19th day of June, 2023", "recipient": "Shetty, Sankesh"}},
        )
        await worker.run_once()
        fields = queue.status(job_id).result["normalized_fields"]
        assert fields["date_issued"] == "2023-06-19"
        assert fields["recipient"] == "Sankesh Shetty"


@pytest.mark.integration
class TestDuplicates:
    """Resubmitted certificates are penalized and flagged for reviewers."""

    @pytest.mark.asyncio
    async def test_same_text_penalized(self, iit_store, pipeline):
        first_cert = _blank_certificate(iit_store)
        first = await pipeline.verify(first_cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)
        assert first.duplicate.is_duplicate is False
        assert first.decision.outcome == DecisionOutcome.AUTO_APPROVED

        second_cert = _blank_certificate(iit_store, student_id="student-002")
        second = await pipeline.verify(second_cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)
        assert second.duplicate.is_duplicate is True
        assert second.duplicate.similar_certificate_id == first_cert.id
        assert second.policy_score.duplicate_penalty == 0.4
        assert second.policy_score.score == pytest.approx(first.policy_score.score - 0.4)
        assert second.decision.outcome != DecisionOutcome.AUTO_APPROVED
        assert second.credential is None

        details = iit_store.get_certificate(second_cert.id).verification.verification_details
        assert details["dedupe"]["is_duplicate"] is True
        assert f"duplicate_of:{first_cert.id}" in details["issues"]

    @pytest.mark.asyncio
    async def test_file_hash_recorded(self, iit_store, pipeline):
        cert = _blank_certificate(iit_store)
        outcome = await pipeline.verify(
            cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95, document=b"%PDF-1.7 iitb"
        )
        stored = iit_store.get_certificate(cert.id).verification
        assert outcome.duplicate.file_hash == file_sha256(b"%PDF-1.7 iitb")
        assert stored.file_hash == outcome.duplicate.file_hash
        assert stored.verification_details["file_hash"] == outcome.duplicate.file_hash
        assert stored.ocr_text == IIT_BOMBAY_TEXT

    @pytest.mark.asyncio
    async def test_metadata_checks_recorded(self, ruleless_store, pipeline):
        cert = _blank_certificate(ruleless_store)
        outcome = await pipeline.verify(cert.id, IIT_BOMBAY_TEXT, ocr_confidence=0.95)
        assert outcome.metadata_check.score > 0.5
        assert "missing_recipient" not in outcome.metadata_check.issues

        details = ruleless_store.get_certificate(cert.id).verification.verification_details
        assert details["metadata_checks"] == outcome.metadata_check.model_dump()
        queue = pipeline.review_queue()
        assert queue[0].issues == details["issues"]

    @pytest.mark.asyncio
    async def test_same_upload_through_jobs(self, iit_store, pipeline, db, tmp_path):
        upload = tmp_path / "iitb.txt"
        upload.write_text(IIT_BOMBAY_TEXT, encoding="utf-8")
        queue = JobQueue(db)
        worker = JobWorker(queue, build_registry(pipeline, queue, ocr_engine=plain_text_ocr))

        outcomes = []
        for student in ("student-001", "student-002"):
            cert = _blank_certificate(iit_store, student_id=student, file_ref=str(upload))
            ocr_job = queue.submit(JobType.OCR, {"certificate_id": cert.id, "file_ref": str(upload)})
            await worker.run_once()
            verification_job = queue.status(ocr_job).result["verification_job_id"]
            await worker.run_once()
            outcomes.append(queue.status(verification_job).result["outcome"])
            stored = iit_store.get_certificate(cert.id).verification
            assert stored.file_hash == file_sha256(upload.read_bytes())

        assert outcomes[0] == "auto_approved"
        assert outcomes[1] != "auto_approved"


@pytest.mark.integration
class TestHumanOverride:
    """A reviewer decision wins over the automatic one."""

    @pytest.mark.asyncio
    async def test_approve_auto_rejected(self, seeded_store, pipeline):
        cert = _blank_certificate(seeded_store)
        outcome = await pipeline.verify(cert.id, "hello world", ocr_confidence=0.4)
        assert outcome.decision.outcome == DecisionOutcome.REJECTED

        approved = pipeline.review(cert.id, "reviewer-1", approve=True, reason="Registrar confirmed")
        assert approved.verification_status == VerificationStatus.VERIFIED
        audit = seeded_store.list_audit(entity_type="certificate", entity_id=cert.id)
        assert audit[-1].action == AuditAction.REVIEW_APPROVE
        assert audit[-1].details["previous_status"] == "rejected"
