"""
Job Worker Tests
=================

Tests for the processor registry, single worker cycles, failure
capture, and the start / stop lifecycle of the polling loop.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from campussync.jobs.processors import (
    ProcessorNotFound,
    ProcessorRegistry,
    make_ocr_processor,
    plain_text_ocr,
)
from campussync.jobs.queue import JobQueue
from campussync.jobs.worker import JobWorker
from campussync.schemas.fields import NormalizedFields
from campussync.schemas.jobs import JobStatus, JobType, NormalizationJobResult


@pytest.fixture
def queue(db):
    return JobQueue(db)


async def _normalize_ok(payload):
    return NormalizationJobResult(
        certificate_id=payload.certificate_id,
        normalized_fields=NormalizedFields(title=payload.fields.title, confidence=0.7),
    )


async def _explode(payload):
    raise ValueError("extraction backend unavailable")


async def _explode_silently(payload):
    raise KeyError()


async def _unstorable_result(payload):
    return {"finished_at": datetime.now(timezone.utc)}


def _norm_payload(cid: str = "cert-1") -> dict:
    return {"certificate_id": cid, "fields": {"title": "Data Science"}}


def _registry(processor=_normalize_ok) -> ProcessorRegistry:
    registry = ProcessorRegistry()
    registry.register(JobType.NORMALIZATION, processor)
    return registry


@pytest.mark.unit
class TestRegistry:
    """Registration and dispatch."""

    def test_register(self):
        registry = _registry()
        assert JobType.NORMALIZATION in registry
        assert JobType.OCR not in registry
        assert registry.job_types == [JobType.NORMALIZATION]
        assert registry.get(JobType.OCR) is None

    @pytest.mark.asyncio
    async def test_dispatch_unknown_type(self, queue):
        job = queue.get(queue.submit(JobType.OCR, {"certificate_id": "c", "file_ref": "f"}))
        with pytest.raises(ProcessorNotFound, match="No processor found for job type: ocr"):
            await _registry().dispatch(job)


@pytest.mark.unit
class TestRunOnce:
    """One claim-and-process cycle."""

    @pytest.mark.asyncio
    async def test_success(self, queue):
        job_id = queue.submit(JobType.NORMALIZATION, _norm_payload())
        worker = JobWorker(queue, _registry())
        assert await worker.run_once() == job_id

        view = queue.status(job_id)
        assert view.status == JobStatus.COMPLETED
        assert view.result["normalized_fields"]["title"] == "Data Science"

    @pytest.mark.asyncio
    async def test_empty_queue(self, queue):
        assert await JobWorker(queue, _registry()).run_once() is None

    @pytest.mark.asyncio
    async def test_missing_processor_fails_job(self, queue):
        job_id = queue.submit(JobType.OCR, {"certificate_id": "c", "file_ref": "f"})
        await JobWorker(queue, _registry()).run_once()
        view = queue.status(job_id)
        assert view.status == JobStatus.FAILED
        assert view.error == "No processor found for job type: ocr"

    @pytest.mark.asyncio
    async def test_processor_error_captured(self, queue):
        job_id = queue.submit(JobType.NORMALIZATION, _norm_payload())
        await JobWorker(queue, _registry(_explode)).run_once()
        view = queue.status(job_id)
        assert view.status == JobStatus.FAILED
        assert view.error == "extraction backend unavailable"
        assert view.result == {"success": False, "error": "extraction backend unavailable"}

    @pytest.mark.asyncio
    async def test_error_without_message(self, queue):
        job_id = queue.submit(JobType.NORMALIZATION, _norm_payload())
        await JobWorker(queue, _registry(_explode_silently)).run_once()
        assert queue.status(job_id).error == "KeyError"

    @pytest.mark.asyncio
    async def test_unstorable_result_fails_job(self, queue):
        job_id = queue.submit(JobType.NORMALIZATION, _norm_payload())
        assert await JobWorker(queue, _registry(_unstorable_result)).run_once() == job_id
        view = queue.status(job_id)
        assert view.status == JobStatus.FAILED
        assert view.error.startswith("Result not stored")
        assert [h.status for h in queue.history(job_id)] == [JobStatus.FAILED]

    @pytest.mark.asyncio
    async def test_ocr_without_engine(self, queue):
        registry = ProcessorRegistry()
        registry.register(JobType.OCR, make_ocr_processor(queue, None))
        job_id = queue.submit(JobType.OCR, {"certificate_id": "c", "file_ref": "f"})
        await JobWorker(queue, registry).run_once()
        assert queue.status(job_id).error == "No OCR engine configured"

    @pytest.mark.asyncio
    async def test_ocr_queues_verification(self, queue, tmp_path):
        upload = tmp_path / "cert.txt"
        upload.write_text("Certificate of Completion\nAwarded to Priya Raman", encoding="utf-8")
        registry = ProcessorRegistry()
        registry.register(JobType.OCR, make_ocr_processor(queue, plain_text_ocr))

        ocr_id = queue.submit(JobType.OCR, {"certificate_id": "c", "file_ref": str(upload)})
        await JobWorker(queue, registry).run_once()

        result = queue.status(ocr_id).result
        assert result["confidence"] == 1.0
        follow_up = queue.get(result["verification_job_id"])
        assert follow_up.type == JobType.VERIFICATION
        assert follow_up.status == JobStatus.PENDING
        assert follow_up.payload["extracted_text"].startswith("Certificate of Completion")
        assert follow_up.payload["ocr_confidence"] == 1.0


@pytest.mark.unit
class TestLifecycle:
    """start / stop of the polling loop."""

    def test_poll_interval_must_be_positive(self, queue):
        with pytest.raises(ValueError):
            JobWorker(queue, _registry(), poll_interval=0)

    @pytest.mark.asyncio
    async def test_start_processes_and_stops(self, queue):
        ids = [queue.submit(JobType.NORMALIZATION, _norm_payload(f"c{i}")) for i in range(3)]
        worker = JobWorker(queue, _registry(), poll_interval=0.01)
        handle = worker.start()
        assert worker.start() is handle

        for _ in range(200):
            if all(queue.status(i).status == JobStatus.COMPLETED for i in ids):
                break
            await asyncio.sleep(0.01)

        worker.stop()
        await asyncio.wait_for(handle.wait(), timeout=2.0)
        assert handle.stop_requested is True
        assert not worker.is_running
        assert all(queue.status(i).status == JobStatus.COMPLETED for i in ids)

    @pytest.mark.asyncio
    async def test_stop_wakes_idle_loop(self, queue):
        worker = JobWorker(queue, _registry(), poll_interval=30.0)
        handle = worker.start()
        await asyncio.sleep(0)
        handle.stop()
        await asyncio.wait_for(handle.wait(), timeout=1.0)
        assert not handle.running

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, queue):
        worker = JobWorker(queue, _registry(), poll_interval=0.01)
        first = worker.start()
        first.stop()
        await first.wait()
        second = worker.start()
        assert second is not first
        second.stop()
        await second.wait()

    @pytest.mark.asyncio
    async def test_start_right_after_stop_gets_fresh_loop(self, queue):
        worker = JobWorker(queue, _registry(), poll_interval=0.01)
        first = worker.start()
        worker.stop()
        second = worker.start()
        assert second is not first
        assert second.stop_requested is False

        job_id = queue.submit(JobType.NORMALIZATION, _norm_payload())
        for _ in range(200):
            if queue.status(job_id).status == JobStatus.COMPLETED:
                break
            await asyncio.sleep(0.01)
        assert queue.status(job_id).status == JobStatus.COMPLETED

        await asyncio.wait_for(first.wait(), timeout=1.0)
        assert worker.is_running
        worker.stop()
        await asyncio.wait_for(second.wait(), timeout=1.0)
        assert not worker.is_running
