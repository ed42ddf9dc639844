"""
Job Processors
===============

Typed dispatch from JobType to an async processor.

    ocr           → run the OCR engine, queue a verification job
    verification  → run the verification pipeline on extracted text
    normalization → normalize an already-extracted field set

The OCR call itself is external: an `OcrEngine` is any callable taking
a file reference and returning (raw_text, confidence). It runs in a
worker thread so a blocking engine does not stall the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Type

from pydantic import BaseModel

from campussync.jobs.queue import PAYLOAD_MODELS, JobQueue
from campussync.schemas.jobs import (
    Job,
    JobType,
    NormalizationJobResult,
    NormalizationPayload,
    OcrJobResult,
    OcrPayload,
    VerificationJobResult,
    VerificationPayload,
)
from campussync.utils import clamp

if TYPE_CHECKING:
    from campussync.pipeline import VerificationPipeline

logger = logging.getLogger("campussync.jobs.processors")

Processor = Callable[[BaseModel], Awaitable[BaseModel]]
OcrEngine = Callable[[str], tuple[str, float]]
FileLoader = Callable[[str], bytes]


class ProcessorNotFound(LookupError):
    """No processor is registered for a job type."""

    def __init__(self, job_type: JobType):
        self.job_type = job_type
        super().__init__(f"No processor found for job type: {job_type.value}")


@dataclass(frozen=True)
class Registration:
    payload_model: Type[BaseModel]
    processor: Processor


class ProcessorRegistry:
    """
    JobType → (payload model, async processor).

    Usage:
        registry = ProcessorRegistry()
        registry.register(JobType.NORMALIZATION, normalize_job)
        result = await registry.dispatch(job)
    """

    def __init__(self):
        self._registrations: dict[JobType, Registration] = {}

    def register(
        self,
        job_type: JobType,
        processor: Processor,
        payload_model: Optional[Type[BaseModel]] = None,
    ) -> None:
        job_type = JobType(job_type)
        model = payload_model or PAYLOAD_MODELS[job_type]
        self._registrations[job_type] = Registration(model, processor)
        logger.debug(f"Registered processor for {job_type.value} jobs")

    def get(self, job_type: JobType) -> Optional[Registration]:
        return self._registrations.get(JobType(job_type))

    def __contains__(self, job_type: object) -> bool:
        return job_type in self._registrations

    @property
    def job_types(self) -> list[JobType]:
        return list(self._registrations)

    async def dispatch(self, job: Job) -> BaseModel:
        """
        Validate the job's payload and run its processor.

        Raises:
            ProcessorNotFound: Nothing is registered for the job type.
        """
        registration = self.get(job.type)
        if registration is None:
            raise ProcessorNotFound(job.type)
        payload = registration.payload_model.model_validate(job.payload)
        return await registration.processor(payload)


def read_local_file(file_ref: str) -> bytes:
    """Default FileLoader: treat the reference as a local path."""
    return Path(file_ref).read_bytes()


# ── Built-in Processors ────────────────────────────────────────────

def make_ocr_processor(queue: JobQueue, ocr_engine: Optional[OcrEngine]) -> Processor:
    async def process_ocr(payload: OcrPayload) -> OcrJobResult:
        if ocr_engine is None:
            raise RuntimeError("No OCR engine configured")
        text, confidence = await asyncio.to_thread(ocr_engine, payload.file_ref)
        confidence = clamp(float(confidence))
        verification_job_id = queue.submit(
            JobType.VERIFICATION,
            VerificationPayload(
                certificate_id=payload.certificate_id,
                extracted_text=text or "",
                ocr_confidence=confidence,
                document_type=payload.document_type,
                file_ref=payload.file_ref,
            ),
        )
        logger.info(
            f"OCR for certificate {payload.certificate_id}: {len(text or '')} chars "
            f"(confidence={confidence:.2f}); queued verification {verification_job_id}"
        )
        return OcrJobResult(
            certificate_id=payload.certificate_id,
            extracted_text=text or "",
            confidence=confidence,
            verification_job_id=verification_job_id,
        )

    return process_ocr


def make_verification_processor(
    pipeline: "VerificationPipeline",
    file_loader: Optional[FileLoader] = read_local_file,
) -> Processor:
    async def process_verification(payload: VerificationPayload) -> VerificationJobResult:
        logo: Optional[bytes] = None
        if payload.logo_ref and file_loader is not None:
            try:
                logo = file_loader(payload.logo_ref)
            except OSError as e:
                logger.warning(f"Logo {payload.logo_ref!r} unreadable, matching without it: {e}")
        document: Optional[bytes] = None
        if payload.file_ref and file_loader is not None:
            try:
                document = file_loader(payload.file_ref)
            except OSError as e:
                logger.warning(f"Upload {payload.file_ref!r} unreadable, skipping file hash: {e}")

        outcome = await pipeline.verify(
            payload.certificate_id,
            payload.extracted_text,
            ocr_confidence=payload.ocr_confidence,
            document_type=payload.document_type,
            qr_payload=payload.qr_payload,
            logo=logo,
            document=document,
        )
        return VerificationJobResult(
            certificate_id=payload.certificate_id,
            policy_score=outcome.policy_score.score,
            outcome=outcome.decision.outcome,
            credential_id=outcome.credential.id if outcome.credential else None,
            normalized_fields=outcome.normalized,
        )

    return process_verification


def make_normalization_processor(pipeline: "VerificationPipeline") -> Processor:
    async def process_normalization(payload: NormalizationPayload) -> NormalizationJobResult:
        normalized = await pipeline.normalizer.normalize(payload.fields)
        return NormalizationJobResult(
            certificate_id=payload.certificate_id,
            normalized_fields=normalized,
        )

    return process_normalization


def build_registry(
    pipeline: "VerificationPipeline",
    queue: JobQueue,
    ocr_engine: Optional[OcrEngine] = None,
    file_loader: Optional[FileLoader] = read_local_file,
) -> ProcessorRegistry:
    """Registry wired with the three built-in processors."""
    registry = ProcessorRegistry()
    registry.register(JobType.OCR, make_ocr_processor(queue, ocr_engine))
    registry.register(JobType.VERIFICATION, make_verification_processor(pipeline, file_loader))
    registry.register(JobType.NORMALIZATION, make_normalization_processor(pipeline))
    return registry


def plain_text_ocr(file_ref: str) -> tuple[str, float]:
    """OcrEngine for uploads that are already text (pre-OCR'd exports)."""
    return Path(file_ref).read_text(encoding="utf-8"), 1.0
