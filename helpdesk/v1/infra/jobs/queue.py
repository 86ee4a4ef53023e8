"""
Durable job queue over the jobs table.

Every state transition is a single conditional UPDATE so several processor
instances can share one store without any other coordination.
"""

from collections import deque
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from helpdesk.config.logging import get_logger
from helpdesk.config.settings import Settings
from helpdesk.infra.database import utcnow
from helpdesk.v1.infra.jobs.models import Job, JobStatus
from helpdesk.v1.infra.jobs.schemas import (
    JobCleanupResponse,
    JobMetrics,
    JobStatsResponse,
)

logger = get_logger(__name__)

# Number of recent processing durations kept for the average
METRICS_WINDOW = 100


def compute_backoff(attempts: int, base_s: float, max_s: float) -> timedelta:
    """Retry delay after the given number of failed attempts.

    ``base * 2^(attempts - 1)`` capped at ``max_s``.
    """
    exponent = max(0, attempts - 1)
    # Cap the exponent so large attempt counts cannot overflow the float
    delay = base_s * (2 ** min(exponent, 32))
    return timedelta(seconds=min(max_s, delay))


class JobQueueMetrics:
    """Best-effort in-process counters for the stats surface."""

    def __init__(self) -> None:
        self.processed = 0
        self.failed = 0
        self.retried = 0
        self.dead_lettered = 0
        self.last_processed_at: datetime | None = None
        self._durations: deque[float] = deque(maxlen=METRICS_WINDOW)

    def record(self, duration_ms: float, success: bool) -> None:
        self._durations.append(duration_ms)
        self.last_processed_at = utcnow()
        if success:
            self.processed += 1
        else:
            self.failed += 1

    @property
    def avg_processing_ms(self) -> float:
        if not self._durations:
            return 0.0
        return sum(self._durations) / len(self._durations)

    def snapshot(self) -> JobMetrics:
        return JobMetrics(
            processed=self.processed,
            failed=self.failed,
            retried=self.retried,
            dead_lettered=self.dead_lettered,
            avg_processing_ms=round(self.avg_processing_ms, 2),
            last_processed_at=self.last_processed_at,
        )


class JobQueue:
    """Enqueue, claim and state-transition API over the jobs table."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.settings = settings
        self._session_factory = session_factory
        self.metrics = JobQueueMetrics()

    async def add_job(
        self,
        job_type: str,
        payload: dict[str, Any] | None = None,
        scheduled_for: datetime | None = None,
        priority: int = 0,
        max_attempts: int | None = None,
    ) -> Job:
        """
        Insert a pending job.

        The job type is not validated here; unknown types are dead-lettered
        by the processor.

        Raises:
            ValueError: ``max_attempts`` is below 1
        """
        if max_attempts is None:
            max_attempts = self.settings.job_max_attempts
        elif max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got: {max_attempts}")

        now = utcnow()
        job = Job(
            type=job_type,
            payload=dict(payload or {}),
            status=JobStatus.PENDING.value,
            attempts=0,
            max_attempts=max_attempts,
            priority=priority,
            scheduled_for=scheduled_for or now,
            created_at=now,
            updated_at=now,
        )

        async with self._session_factory() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)

        logger.info(
            "Job enqueued",
            job_id=job.id,
            job_type=job.type,
            priority=job.priority,
            scheduled_for=job.scheduled_for.isoformat(),
        )
        return job

    async def get_pending_jobs(self, limit: int = 10) -> list[Job]:
        """Due pending jobs, highest priority first, then oldest due time."""
        now = utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                select(Job)
                .where(
                    and_(
                        Job.status == JobStatus.PENDING.value,
                        Job.scheduled_for <= now,
                    )
                )
                .order_by(Job.priority.desc(), Job.scheduled_for.asc(), Job.id.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def mark_job_processing(self, job_id: int) -> int:
        """
        Claim a job.

        Returns the number of affected rows. Zero means another processor
        already claimed the job and the caller must skip it.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(Job)
                .where(and_(Job.id == job_id, Job.status == JobStatus.PENDING.value))
                .values(status=JobStatus.PROCESSING.value, updated_at=utcnow())
            )
            await session.commit()
            return result.rowcount

    async def mark_job_completed(self, job_id: int) -> bool:
        """Mark a claimed job as completed."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(Job)
                .where(
                    and_(Job.id == job_id, Job.status == JobStatus.PROCESSING.value)
                )
                .values(status=JobStatus.COMPLETED.value, updated_at=utcnow())
            )
            await session.commit()

        if result.rowcount == 0:
            logger.warning("Completion ignored for job not in processing", job_id=job_id)
            return False
        return True

    async def mark_job_as_failed(
        self, job_id: int, error_message: str | None, permanent: bool = False
    ) -> JobStatus | None:
        """
        Record a failed attempt for a claimed job.

        Schedules a retry with exponential backoff while attempts remain,
        otherwise moves the job to the dead-letter queue. ``permanent``
        dead-letters regardless of the remaining attempts.

        Returns the new status, or None when the job was missing or no
        longer processing.
        """
        error_message = error_message or "Unknown error"

        async with self._session_factory() as session:
            job = await session.get(Job, job_id)
            if job is None:
                logger.warning("Failure reported for missing job", job_id=job_id)
                return None
            if job.status != JobStatus.PROCESSING.value:
                logger.warning(
                    "Failure ignored for job not in processing",
                    job_id=job_id,
                    status=job.status,
                )
                return None

            attempts = job.attempts + 1
            now = utcnow()
            values: dict[str, Any] = {
                "attempts": attempts,
                "last_error": error_message,
                "updated_at": now,
            }

            if not permanent and attempts < job.max_attempts:
                retry_at = now + self.backoff(attempts)
                values.update(status=JobStatus.PENDING.value, scheduled_for=retry_at)
                new_status = JobStatus.PENDING
            else:
                values.update(status=JobStatus.DEAD_LETTER.value)
                new_status = JobStatus.DEAD_LETTER

            result = await session.execute(
                update(Job)
                .where(
                    and_(
                        Job.id == job_id,
                        Job.status == JobStatus.PROCESSING.value,
                        Job.attempts == job.attempts,
                    )
                )
                .values(**values)
            )
            await session.commit()

        if result.rowcount == 0:
            logger.warning("Failure lost a concurrent update", job_id=job_id)
            return None

        if new_status == JobStatus.PENDING:
            self.metrics.retried += 1
            logger.info(
                "Job scheduled for retry",
                job_id=job_id,
                job_type=job.type,
                attempts=attempts,
                max_attempts=job.max_attempts,
                retry_at=values["scheduled_for"].isoformat(),
            )
        else:
            self.metrics.dead_lettered += 1
            logger.error(
                "Job moved to dead letter queue",
                job_id=job_id,
                job_type=job.type,
                attempts=attempts,
                permanent=permanent,
                error=error_message,
            )
        return new_status

    def backoff(self, attempts: int) -> timedelta:
        return compute_backoff(
            attempts, self.settings.job_backoff_base_s, self.settings.job_max_backoff_s
        )

    def record_result(self, duration_ms: float, success: bool) -> None:
        """Update the in-process processing metrics."""
        self.metrics.record(duration_ms, success)

    async def get_job(self, job_id: int) -> Job | None:
        async with self._session_factory() as session:
            return await session.get(Job, job_id)

    async def list_jobs(
        self,
        statuses: list[JobStatus] | None = None,
        job_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Job], int]:
        """List jobs newest first with the total count for pagination."""
        query = select(Job)
        if statuses:
            query = query.where(Job.status.in_([s.value for s in statuses]))
        if job_type:
            query = query.where(Job.type == job_type)

        async with self._session_factory() as session:
            total_result = await session.execute(
                select(func.count()).select_from(query.subquery())
            )
            total = total_result.scalar() or 0

            jobs_result = await session.execute(
                query.order_by(Job.created_at.desc(), Job.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(jobs_result.scalars().all()), total

    async def get_dead_letter_jobs(self, limit: int = 50) -> list[Job]:
        """Dead-lettered jobs, most recently failed first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Job)
                .where(Job.status == JobStatus.DEAD_LETTER.value)
                .order_by(Job.updated_at.desc(), Job.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def retry_dead_letter_job(self, job_id: int) -> bool:
        """Move a dead-lettered job back to pending with a fresh attempt budget."""
        now = utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                update(Job)
                .where(
                    and_(Job.id == job_id, Job.status == JobStatus.DEAD_LETTER.value)
                )
                .values(
                    status=JobStatus.PENDING.value,
                    attempts=0,
                    scheduled_for=now,
                    last_error=None,
                    updated_at=now,
                )
            )
            await session.commit()

        success = result.rowcount > 0
        if success:
            logger.info("Dead letter job retried", job_id=job_id)
        return success

    async def recover_stuck_jobs(self, older_than_s: float | None = None) -> int:
        """
        Fail processing jobs that have not been updated within the visibility
        timeout, e.g. because their processor crashed mid-run.
        """
        if older_than_s is None:
            older_than_s = self.settings.job_visibility_timeout_s
        cutoff = utcnow() - timedelta(seconds=older_than_s)

        async with self._session_factory() as session:
            result = await session.execute(
                select(Job.id).where(
                    and_(
                        Job.status == JobStatus.PROCESSING.value,
                        Job.updated_at < cutoff,
                    )
                )
            )
            stuck_ids = list(result.scalars().all())

        recovered = 0
        for job_id in stuck_ids:
            new_status = await self.mark_job_as_failed(
                job_id, f"Job exceeded visibility timeout of {older_than_s:g}s"
            )
            if new_status is not None:
                recovered += 1

        if recovered:
            logger.warning(
                "Recovered stuck jobs",
                stuck_job_count=recovered,
                timeout_seconds=older_than_s,
            )
        return recovered

    async def cleanup_old_jobs(
        self, older_than_hours: int | None = None
    ) -> JobCleanupResponse:
        """
        Delete terminal jobs past their retention.

        Dead-lettered jobs are kept ``job_dead_letter_retention_factor``
        times longer than completed ones for diagnosis.
        """
        if older_than_hours is None:
            older_than_hours = self.settings.job_cleanup_after_hours
        now = utcnow()
        completed_cutoff = now - timedelta(hours=older_than_hours)
        dead_letter_cutoff = now - timedelta(
            hours=older_than_hours * self.settings.job_dead_letter_retention_factor
        )

        async with self._session_factory() as session:
            completed_result = await session.execute(
                delete(Job).where(
                    and_(
                        Job.status == JobStatus.COMPLETED.value,
                        Job.updated_at < completed_cutoff,
                    )
                )
            )
            dead_letter_result = await session.execute(
                delete(Job).where(
                    and_(
                        Job.status == JobStatus.DEAD_LETTER.value,
                        Job.updated_at < dead_letter_cutoff,
                    )
                )
            )
            await session.commit()

        cleanup = JobCleanupResponse(
            completed_deleted=completed_result.rowcount or 0,
            dead_letter_deleted=dead_letter_result.rowcount or 0,
            completed_cutoff=completed_cutoff,
            dead_letter_cutoff=dead_letter_cutoff,
        )
        if cleanup.total_deleted > 0:
            logger.info(
                "Cleaned up old jobs",
                completed_deleted=cleanup.completed_deleted,
                dead_letter_deleted=cleanup.dead_letter_deleted,
                older_than_hours=older_than_hours,
            )
        return cleanup

    async def get_job_stats(self) -> JobStatsResponse:
        """Counts per status and type plus the in-process metrics."""
        async with self._session_factory() as session:
            status_result = await session.execute(
                select(Job.status, func.count(Job.id)).group_by(Job.status)
            )
            counted = dict(status_result.all())

            type_result = await session.execute(
                select(Job.type, func.count(Job.id)).group_by(Job.type)
            )
            by_type = dict(type_result.all())

        by_status = {status.value: counted.get(status.value, 0) for status in JobStatus}
        queue_depth = (
            by_status[JobStatus.PENDING.value] + by_status[JobStatus.PROCESSING.value]
        )

        return JobStatsResponse(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            by_type=by_type,
            queue_depth=queue_depth,
            metrics=self.metrics.snapshot(),
        )
