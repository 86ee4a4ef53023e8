"""
In-process timers that enqueue delayed and recurring jobs.

Timers live only in this process and are lost on restart; recurring
schedules are registered again on startup. Running several schedulers
against one store enqueues each occurrence once per scheduler.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from helpdesk.config.logging import get_logger
from helpdesk.config.settings import Settings
from helpdesk.infra.database import utcnow
from helpdesk.v1.infra.jobs.queue import JobQueue
from helpdesk.v1.infra.jobs.recurrence import (
    DailyAt,
    Hourly,
    RecurrencePattern,
    Weekday,
    WeeklyAt,
    ensure_pattern,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[Any]]


@dataclass
class ScheduledTimer:
    """Bookkeeping for one armed (or not yet armed) timer."""

    id: str
    job_type: str
    payload: dict[str, Any]
    run_at: datetime | None = None
    pattern: RecurrencePattern | None = None
    next_run: datetime | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def recurring(self) -> bool:
        return self.pattern is not None


class JobScheduler:
    """
    Owns one-shot and recurring timers.

    Timers created before ``start()`` are armed when the scheduler starts;
    ``stop()`` cancels every timer so nothing keeps the event loop busy.
    ``clock`` and ``sleep`` can be replaced to drive the scheduler from a
    simulated clock.
    """

    def __init__(
        self,
        queue: JobQueue,
        settings: Settings,
        clock: Clock | None = None,
        sleep: Sleep | None = None,
    ):
        self.queue = queue
        self.settings = settings
        self._clock = clock or utcnow
        self._sleep = sleep or asyncio.sleep
        self._timers: dict[str, ScheduledTimer] = {}
        self.running = False
        self.helpers = ScheduleHelpers(self)

    def start(self) -> None:
        """Arm every registered timer. Requires a running event loop."""
        if self.running:
            return
        self.running = True
        for timer in self._timers.values():
            self._arm(timer)
        logger.info("Job scheduler started", scheduled_jobs=len(self._timers))

    def stop(self) -> None:
        """Cancel all timers."""
        self.cancel_all_jobs()
        self.running = False
        logger.info("Job scheduler stopped")

    def schedule_job(
        self,
        job_type: str,
        payload: dict[str, Any] | None,
        when: datetime,
        timer_id: str | None = None,
    ) -> str:
        """
        Enqueue ``job_type`` once at ``when``. Returns the timer id.

        A naive ``when`` is taken as UTC, matching how job rows store it.
        """
        if when.tzinfo is None:
            when = when.replace(tzinfo=UTC)
        timer = ScheduledTimer(
            id=timer_id or f"{job_type}_{uuid.uuid4().hex}",
            job_type=job_type,
            payload=dict(payload or {}),
            run_at=when,
            next_run=when,
        )
        return self._register(timer)

    def schedule_job_after(
        self,
        job_type: str,
        payload: dict[str, Any] | None,
        delay: timedelta,
        timer_id: str | None = None,
    ) -> str:
        """Enqueue ``job_type`` once after ``delay``."""
        return self.schedule_job(job_type, payload, self._clock() + delay, timer_id)

    def schedule_recurring_job(
        self,
        job_type: str,
        payload: dict[str, Any] | None,
        pattern: RecurrencePattern,
        timer_id: str | None = None,
    ) -> str:
        """Enqueue ``job_type`` on every occurrence of ``pattern``."""
        pattern = ensure_pattern(pattern)
        timer = ScheduledTimer(
            id=timer_id or f"recurring_{job_type}_{uuid.uuid4().hex}",
            job_type=job_type,
            payload=dict(payload or {}),
            pattern=pattern,
            next_run=pattern.next_run(self._clock(), self.settings.scheduler_tz),
        )
        return self._register(timer)

    def cancel_job(self, timer_id: str) -> bool:
        """Cancel a single timer. Returns False when the id is unknown."""
        timer = self._timers.pop(timer_id, None)
        if timer is None:
            return False
        if timer.task is not None:
            timer.task.cancel()
        logger.debug("Scheduled job cancelled", timer_id=timer_id)
        return True

    def cancel_all_jobs(self) -> None:
        """Cancel every timer."""
        for timer in self._timers.values():
            if timer.task is not None:
                timer.task.cancel()
        self._timers.clear()

    @property
    def scheduled_job_count(self) -> int:
        return len(self._timers)

    def get_scheduled_jobs(self) -> list[ScheduledTimer]:
        return list(self._timers.values())

    def _register(self, timer: ScheduledTimer) -> str:
        # Re-using an id replaces the earlier timer instead of orphaning it
        self.cancel_job(timer.id)
        self._timers[timer.id] = timer
        if self.running:
            self._arm(timer)

        logger.info(
            "Job scheduled",
            timer_id=timer.id,
            job_type=timer.job_type,
            next_run=timer.next_run.isoformat(),
            pattern=timer.pattern.describe() if timer.pattern else None,
        )
        return timer.id

    def _arm(self, timer: ScheduledTimer) -> None:
        if timer.task is not None and not timer.task.done():
            return
        runner = self._run_recurring if timer.recurring else self._run_once
        timer.task = asyncio.get_running_loop().create_task(
            runner(timer), name=f"job-timer:{timer.id}"
        )

    def _delay_until(self, moment: datetime) -> float:
        return max(0.0, (moment - self._clock()).total_seconds())

    async def _run_once(self, timer: ScheduledTimer) -> None:
        try:
            await self._sleep(self._delay_until(timer.run_at))
            await self.queue.add_job(timer.job_type, timer.payload, timer.run_at)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "Failed to enqueue scheduled job",
                timer_id=timer.id,
                job_type=timer.job_type,
            )
        finally:
            if self._timers.get(timer.id) is timer:
                del self._timers[timer.id]

    async def _run_recurring(self, timer: ScheduledTimer) -> None:
        tz = self.settings.scheduler_tz
        last_run: datetime | None = None
        while True:
            # Anchor every occurrence to the current time so that late
            # wake-ups do not accumulate into drift. An early wake-up must
            # not produce the occurrence that was just enqueued again.
            now = self._clock()
            if last_run is not None and now < last_run:
                now = last_run
            timer.next_run = timer.pattern.next_run(now, tz)
            await self._sleep(self._delay_until(timer.next_run))
            last_run = timer.next_run
            try:
                await self.queue.add_job(timer.job_type, timer.payload, timer.next_run)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Failed to enqueue recurring job",
                    timer_id=timer.id,
                    job_type=timer.job_type,
                )


class ScheduleHelpers:
    """Shorthands for the common scheduling shapes."""

    def __init__(self, scheduler: JobScheduler):
        self.scheduler = scheduler

    def in_minutes(
        self,
        job_type: str,
        payload: dict[str, Any] | None,
        minutes: float,
        timer_id: str | None = None,
    ) -> str:
        return self.scheduler.schedule_job_after(
            job_type, payload, timedelta(minutes=minutes), timer_id
        )

    def in_hours(
        self,
        job_type: str,
        payload: dict[str, Any] | None,
        hours: float,
        timer_id: str | None = None,
    ) -> str:
        return self.scheduler.schedule_job_after(
            job_type, payload, timedelta(hours=hours), timer_id
        )

    def daily(
        self,
        job_type: str,
        payload: dict[str, Any] | None,
        hour: int,
        timer_id: str | None = None,
    ) -> str:
        return self.scheduler.schedule_recurring_job(
            job_type, payload, DailyAt(hour), timer_id
        )

    def hourly(
        self,
        job_type: str,
        payload: dict[str, Any] | None,
        timer_id: str | None = None,
    ) -> str:
        return self.scheduler.schedule_recurring_job(
            job_type, payload, Hourly(), timer_id
        )

    def weekly(
        self,
        job_type: str,
        payload: dict[str, Any] | None,
        day: Weekday | int,
        hour: int,
        timer_id: str | None = None,
    ) -> str:
        return self.scheduler.schedule_recurring_job(
            job_type, payload, WeeklyAt(day, hour), timer_id
        )
