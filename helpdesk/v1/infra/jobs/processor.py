"""
Polling job processor.

A single cooperative loop claims due jobs and runs their handlers
concurrently, bounded by the batch size. Handlers are raced against a
timeout rather than cancelled: a handler that overruns keeps running in the
background while its job is recorded as failed and retried, so handlers
must tolerate being executed more than once.
"""

import asyncio
import os
import socket
import time

from helpdesk.config.logging import get_logger
from helpdesk.config.settings import Settings
from helpdesk.v1.core.exceptions import JobTimeoutError, UnknownJobTypeError
from helpdesk.v1.core.registries import JobHandler, JobRegistry
from helpdesk.v1.infra.jobs.models import Job
from helpdesk.v1.infra.jobs.queue import JobQueue

logger = get_logger(__name__)


class JobProcessor:
    """
    Claims pending jobs and dispatches them to registered handlers.

    Features:
    - Conditional-update claiming, safe with several processors on one store
    - Per-job timeout with failure isolation inside a batch
    - Retry with exponential backoff and a dead-letter path (via JobQueue)
    - Periodic recovery of jobs left in processing by a crashed processor
    - Graceful shutdown
    """

    def __init__(self, queue: JobQueue, registry: JobRegistry, settings: Settings):
        self.queue = queue
        self.registry = registry
        self.settings = settings
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.running = False
        self.active_jobs: set[int] = set()
        self._abandoned: set[asyncio.Task] = set()
        self._stop_event = asyncio.Event()

    async def start(self) -> None:
        """Run the processor until ``stop()`` is called."""
        if self.running:
            raise RuntimeError("Processor is already running")

        self.running = True
        self._stop_event.clear()
        logger.info(
            "Starting job processor",
            worker_id=self.worker_id,
            batch_size=self.settings.job_batch_size,
            poll_interval_ms=self.settings.job_poll_interval_ms,
            handlers=self.registry.list(),
        )

        try:
            await asyncio.gather(
                self._poll_loop(),
                self._stuck_job_recovery_loop(),
            )
        finally:
            self.running = False

    async def stop(self) -> None:
        """Stop polling and wait for in-flight jobs."""
        logger.info("Stopping job processor", worker_id=self.worker_id)
        self.running = False
        self._stop_event.set()

        # Wait for active jobs to complete (with timeout)
        deadline = time.monotonic() + self.settings.job_shutdown_timeout_s
        while self.active_jobs and time.monotonic() < deadline:
            await asyncio.sleep(0.1)

        if self.active_jobs:
            logger.warning(
                "Processor stopped with active jobs",
                worker_id=self.worker_id,
                active_jobs=len(self.active_jobs),
            )

        for task in list(self._abandoned):
            task.cancel()

    async def process_batch(self) -> int:
        """
        Run one polling tick.

        Returns the number of jobs fetched. Store errors while fetching
        propagate so the caller can back off; nothing has been mutated at
        that point.
        """
        jobs = await self.queue.get_pending_jobs(self.settings.job_batch_size)
        if not jobs:
            return 0

        results = await asyncio.gather(
            *(self._process_job(job) for job in jobs), return_exceptions=True
        )
        for job, result in zip(jobs, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected error processing job",
                    job_id=job.id,
                    job_type=job.type,
                    error=repr(result),
                )
        return len(jobs)

    async def _poll_loop(self) -> None:
        while self.running:
            try:
                fetched = await self.process_batch()
            except Exception:
                logger.exception("Error in job polling tick", worker_id=self.worker_id)
                await self._idle(self.settings.job_error_backoff_ms / 1000)
                continue

            # A full batch means more work is probably waiting
            if fetched < self.settings.job_batch_size:
                await self._idle(self.settings.job_poll_interval_ms / 1000)
            else:
                await asyncio.sleep(0)

    async def _stuck_job_recovery_loop(self) -> None:
        while self.running:
            await self._idle(self.settings.job_stuck_check_interval_s)
            if not self.running:
                break
            try:
                await self.queue.recover_stuck_jobs(
                    self.settings.job_visibility_timeout_s
                )
            except Exception:
                logger.exception("Error in stuck job recovery")

    async def _idle(self, seconds: float) -> None:
        """Sleep, waking early when the processor is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    async def _process_job(self, job: Job) -> None:
        """Claim and execute a single job, recording the outcome."""
        job_logger = logger.bind(job_id=job.id, job_type=job.type)

        claimed = await self.queue.mark_job_processing(job.id)
        if not claimed:
            job_logger.debug("Job already claimed elsewhere")
            return

        self.active_jobs.add(job.id)
        started = time.perf_counter()
        try:
            handler = self._resolve_handler(job.type)
            await self._run_with_timeout(job, handler)

        except UnknownJobTypeError as e:
            duration_ms = (time.perf_counter() - started) * 1000
            self.queue.record_result(duration_ms, success=False)
            job_logger.error("No handler registered for job type")
            await self.queue.mark_job_as_failed(job.id, str(e), permanent=True)

        except Exception as e:
            duration_ms = (time.perf_counter() - started) * 1000
            self.queue.record_result(duration_ms, success=False)
            job_logger.warning(
                "Job processing failed",
                error=str(e) or e.__class__.__name__,
                duration_ms=round(duration_ms, 2),
            )
            await self.queue.mark_job_as_failed(
                job.id, str(e) or e.__class__.__name__
            )

        else:
            duration_ms = (time.perf_counter() - started) * 1000
            self.queue.record_result(duration_ms, success=True)
            await self.queue.mark_job_completed(job.id)
            job_logger.info(
                "Job completed successfully", duration_ms=round(duration_ms, 2)
            )

        finally:
            self.active_jobs.discard(job.id)

    def _resolve_handler(self, job_type: str) -> JobHandler:
        try:
            return self.registry.get(job_type)
        except KeyError:
            raise UnknownJobTypeError(job_type) from None

    async def _run_with_timeout(self, job: Job, handler: JobHandler) -> None:
        task = asyncio.ensure_future(handler.handle(dict(job.payload or {})))
        done, _ = await asyncio.wait({task}, timeout=self.settings.job_timeout_s)
        if task in done:
            # Re-raises the handler's exception, if any
            task.result()
            return

        self._abandon(task, job)
        raise JobTimeoutError(job.id, self.settings.job_timeout_s)

    def _abandon(self, task: asyncio.Task, job: Job) -> None:
        """Keep a timed-out handler referenced until it settles on its own."""
        self._abandoned.add(task)

        def _settled(finished: asyncio.Task) -> None:
            self._abandoned.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            logger.info(
                "Abandoned handler settled",
                job_id=job.id,
                job_type=job.type,
                error=repr(error) if error else None,
            )

        task.add_done_callback(_settled)
