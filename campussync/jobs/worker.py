"""
Job Worker
===========

Polls the JobQueue and runs one job per cycle through the
ProcessorRegistry.

    handle = worker.start()       # inside a running event loop
    ...
    handle.stop()                 # wakes the loop immediately
    await handle.wait()           # joins after the in-flight cycle

Failures are captured on the job (status `failed`, `error` set) and
never retried automatically; `JobQueue.resubmit` is the operator path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from campussync.jobs.processors import ProcessorNotFound, ProcessorRegistry
from campussync.jobs.queue import JobQueue

logger = logging.getLogger("campussync.jobs.worker")


class WorkerHandle:
    """A running worker loop plus its cancellation token."""

    def __init__(self, task: asyncio.Task, stop_event: asyncio.Event):
        self._task = task
        self._stop_event = stop_event

    @property
    def running(self) -> bool:
        return not self._task.done()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        self._stop_event.set()

    async def wait(self) -> None:
        """Wait for the loop to exit; re-raises if the loop itself crashed."""
        await self._task


class JobWorker:
    """
    Background job worker.

    Usage:
        worker = JobWorker(queue, registry, poll_interval=5.0)
        job_id = await worker.run_once()      # single cycle, e.g. in tests
        handle = worker.start()               # continuous polling

    Args:
        queue: Queue to claim jobs from.
        registry: Processors by job type.
        poll_interval: Seconds to sleep when the queue is empty.
    """

    def __init__(
        self,
        queue: JobQueue,
        registry: ProcessorRegistry,
        poll_interval: float = 5.0,
    ):
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {poll_interval}")
        self.queue = queue
        self.registry = registry
        self.poll_interval = poll_interval
        self._handle: Optional[WorkerHandle] = None

    @property
    def is_running(self) -> bool:
        return self._handle is not None and self._handle.running

    async def run_once(self) -> Optional[str]:
        """
        Claim and process at most one job.

        Returns:
            The processed job's id, or None when the queue was empty.
        """
        job = self.queue.claim_next()
        if job is None:
            return None

        logger.info(f"Processing {job.type.value} job {job.id}")
        try:
            result = await self.registry.dispatch(job)
        except ProcessorNotFound as e:
            logger.error(f"Job {job.id}: {e}")
            self.queue.fail(job.id, str(e))
            return job.id
        except Exception as e:
            logger.exception(f"Job {job.id} ({job.type.value}) raised")
            self.queue.fail(job.id, str(e) or type(e).__name__)
            return job.id

        try:
            self.queue.complete(job.id, result)
        except Exception as e:
            logger.exception(f"Job {job.id}: storing the result failed")
            self.queue.fail(job.id, f"Result not stored: {str(e) or type(e).__name__}")
        return job.id

    def start(self) -> WorkerHandle:
        """
        Start the polling loop on the running event loop.

        Calling start() on a running worker returns the existing handle.
        A worker that was asked to stop gets a fresh loop; the old one
        exits after its in-flight cycle.
        """
        if self.is_running and not self._handle.stop_requested:
            logger.debug("Worker already running; returning existing handle")
            return self._handle

        stop_event = asyncio.Event()
        task = asyncio.create_task(self._loop(stop_event), name="campussync-worker")
        self._handle = WorkerHandle(task, stop_event)
        logger.info(f"Job worker started (poll interval {self.poll_interval}s)")
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.stop()

    async def _loop(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                job_id = await self.run_once()
            except Exception:
                # Queue itself unavailable; try again next tick
                logger.exception("Worker cycle failed")
                job_id = None

            if job_id is not None:
                # Queue not drained; yield so stop() can land, then go again
                await asyncio.sleep(0)
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Job worker stopped")
