"""
Job Queue
==========

Persistent job queue backed by the `job_queue` and `job_history` tables.

Lifecycle:
    submit → pending → (claim_next) processing → completed | failed
    failed → pending only through an explicit `resubmit`

Claim order: highest priority first, then submission order.

Known gaps:
    - A job left in `processing` by a crashed worker is never reclaimed.
    - `claim_next` takes no row lock; run a single worker per database.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select

from campussync.errors import InvalidTransitionError, NotFoundError, ValidationError
from campussync.schemas.jobs import (
    Job,
    JobHistoryEntry,
    JobStatus,
    JobStatusView,
    JobType,
    NormalizationPayload,
    OcrPayload,
    VerificationPayload,
)
from campussync.store.database import Database
from campussync.store.models import JobHistoryRow, JobRow
from campussync.utils import utcnow

logger = logging.getLogger("campussync.jobs.queue")


PAYLOAD_MODELS: dict[JobType, Type[BaseModel]] = {
    JobType.OCR: OcrPayload,
    JobType.VERIFICATION: VerificationPayload,
    JobType.NORMALIZATION: NormalizationPayload,
}


def validate_payload(job_type: JobType, payload: BaseModel | dict[str, Any]) -> BaseModel:
    """
    Validate a payload against the model registered for its job type.

    Raises:
        ValidationError: The payload does not fit the job type.
    """
    model = PAYLOAD_MODELS[job_type]
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump()
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ValidationError(
            f"Invalid {job_type.value} payload: {e.error_count()} error(s)", missing=missing
        ) from e


class JobQueue:
    """
    Persistent job queue.

    Usage:
        queue = JobQueue(db)
        job_id = queue.submit(JobType.OCR, {"certificate_id": cid, "file_ref": ref})
        job = queue.claim_next()
        queue.complete(job.id, {"ok": True})
    """

    def __init__(self, db: Database):
        self.db = db

    # ── Submission & Status ────────────────────────────────────────

    def submit(
        self,
        job_type: JobType | str,
        payload: BaseModel | dict[str, Any],
        priority: int = 0,
    ) -> str:
        """
        Enqueue a job.

        Returns:
            The new job's id.

        Raises:
            ValidationError: Unknown job type or a payload that does not
                match the job type's payload model.
        """
        try:
            job_type = JobType(job_type)
        except ValueError as e:
            raise ValidationError(f"Unknown job type: {job_type}") from e
        model = validate_payload(job_type, payload)

        with self.db.session_scope() as session:
            seq = session.execute(select(func.coalesce(func.max(JobRow.seq), 0))).scalar_one()
            row = JobRow(
                type=job_type.value,
                payload=model.model_dump(mode="json"),
                status=JobStatus.PENDING.value,
                priority=priority,
                seq=seq + 1,
            )
            session.add(row)
            session.flush()
            job_id = row.id

        logger.info(f"Submitted {job_type.value} job {job_id} (priority={priority})")
        return job_id

    def get(self, job_id: str) -> Job:
        with self.db.session_scope() as session:
            return Job.model_validate(self._row(session, job_id))

    def status(self, job_id: str) -> JobStatusView:
        """
        Current status of a job.

        Raises:
            NotFoundError: Unknown job id.
        """
        job = self.get(job_id)
        return JobStatusView(job_id=job.id, status=job.status, result=job.result, error=job.error)

    def list_jobs(self, status: Optional[JobStatus] = None, limit: int = 50) -> list[Job]:
        with self.db.session_scope() as session:
            query = select(JobRow).order_by(JobRow.seq.desc()).limit(limit)
            if status is not None:
                query = query.where(JobRow.status == JobStatus(status).value)
            return [Job.model_validate(r) for r in session.execute(query).scalars()]

    def history(self, job_id: str) -> list[JobHistoryEntry]:
        """Terminal transitions and resubmissions of one job, oldest first."""
        with self.db.session_scope() as session:
            self._row(session, job_id)
            rows = session.execute(
                select(JobHistoryRow)
                .where(JobHistoryRow.job_id == job_id)
                .order_by(JobHistoryRow.id)
            ).scalars()
            return [JobHistoryEntry.model_validate(r) for r in rows]

    # ── Transitions ────────────────────────────────────────────────

    def claim_next(self) -> Optional[Job]:
        """Move the next pending job to processing and return it."""
        with self.db.session_scope() as session:
            row = session.execute(
                select(JobRow)
                .where(JobRow.status == JobStatus.PENDING.value)
                .order_by(JobRow.priority.desc(), JobRow.seq)
                .limit(1)
            ).scalar_one_or_none()
            if row is None:
                return None
            row.status = JobStatus.PROCESSING.value
            row.started_at = utcnow()
            session.flush()
            logger.debug(f"Claimed {row.type} job {row.id}")
            return Job.model_validate(row)

    def complete(self, job_id: str, result: BaseModel | dict[str, Any] | None = None) -> Job:
        """Mark a processing job completed and store its result."""
        if isinstance(result, BaseModel):
            result = result.model_dump(mode="json")
        with self.db.session_scope() as session:
            row = self._processing_row(session, job_id, JobStatus.COMPLETED)
            row.status = JobStatus.COMPLETED.value
            row.result = result or {}
            row.error = None
            row.completed_at = utcnow()
            session.add(JobHistoryRow(job_id=job_id, status=JobStatus.COMPLETED.value))
            session.flush()
            logger.info(f"Job {job_id} completed")
            return Job.model_validate(row)

    def fail(self, job_id: str, error: str) -> Job:
        """Mark a processing job failed; the payload is kept for inspection."""
        with self.db.session_scope() as session:
            row = self._processing_row(session, job_id, JobStatus.FAILED)
            row.status = JobStatus.FAILED.value
            row.error = error
            row.result = {"success": False, "error": error}
            row.completed_at = utcnow()
            session.add(JobHistoryRow(job_id=job_id, status=JobStatus.FAILED.value, message=error))
            session.flush()
            logger.warning(f"Job {job_id} failed: {error}")
            return Job.model_validate(row)

    def resubmit(self, job_id: str) -> Job:
        """
        Put a failed job back in the queue.

        Raises:
            NotFoundError: Unknown job id.
            InvalidTransitionError: The job is not in the failed state.
        """
        with self.db.session_scope() as session:
            row = self._row(session, job_id)
            if row.status != JobStatus.FAILED.value:
                raise InvalidTransitionError(
                    f"Only failed jobs can be resubmitted; job {job_id} is {row.status}"
                )
            previous_error = row.error
            row.status = JobStatus.PENDING.value
            row.error = None
            row.result = None
            row.started_at = None
            row.completed_at = None
            session.add(
                JobHistoryRow(
                    job_id=job_id,
                    status=JobStatus.PENDING.value,
                    message=f"Resubmitted after failure: {previous_error}",
                )
            )
            session.flush()
            logger.info(f"Job {job_id} resubmitted")
            return Job.model_validate(row)

    def cleanup(self, older_than_days: int = 7, now=None) -> int:
        """
        Delete completed jobs (and their history) finished before the cutoff.

        Returns:
            Number of jobs deleted.
        """
        cutoff = (now or utcnow()) - timedelta(days=older_than_days)
        with self.db.session_scope() as session:
            job_ids = list(
                session.execute(
                    select(JobRow.id).where(
                        JobRow.status == JobStatus.COMPLETED.value,
                        JobRow.completed_at < cutoff,
                    )
                ).scalars()
            )
            if job_ids:
                session.execute(delete(JobHistoryRow).where(JobHistoryRow.job_id.in_(job_ids)))
                session.execute(delete(JobRow).where(JobRow.id.in_(job_ids)))
        logger.info(f"Cleaned up {len(job_ids)} completed jobs older than {older_than_days} days")
        return len(job_ids)

    # ── Helpers ────────────────────────────────────────────────────

    @staticmethod
    def _row(session, job_id: str) -> JobRow:
        row = session.get(JobRow, job_id)
        if row is None:
            raise NotFoundError("Job", job_id)
        return row

    def _processing_row(self, session, job_id: str, target: JobStatus) -> JobRow:
        row = self._row(session, job_id)
        if row.status != JobStatus.PROCESSING.value:
            raise InvalidTransitionError(
                f"Job {job_id} is {row.status}; cannot move it to {target.value}"
            )
        return row
