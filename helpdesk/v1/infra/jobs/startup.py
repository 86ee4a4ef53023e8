"""
Job system lifecycle.

Wires the queue, processor, scheduler and event trigger together and owns
the default recurring schedules registered at process start.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any

from helpdesk.config.logging import get_logger
from helpdesk.config.settings import Settings
from helpdesk.infra.database import Database
from helpdesk.v1.core.registries import JobRegistry, job_registry
from helpdesk.v1.infra.jobs.processor import JobProcessor
from helpdesk.v1.infra.jobs.queue import JobQueue
from helpdesk.v1.infra.jobs.recurrence import (
    DailyAt,
    Hourly,
    RecurrencePattern,
    Weekday,
    WeeklyAt,
)
from helpdesk.v1.infra.jobs.registry_init import register_job_handlers
from helpdesk.v1.infra.jobs.scheduler import JobScheduler
from helpdesk.v1.infra.jobs.schemas import JobStatsResponse
from helpdesk.v1.infra.jobs.trigger import EventTrigger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecurringSchedule:
    timer_id: str
    job_type: str
    pattern: RecurrencePattern
    payload: dict[str, Any] = field(default_factory=dict)


WEEKDAYS = (
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
)

DEFAULT_RECURRING_SCHEDULES: tuple[RecurringSchedule, ...] = (
    # System maintenance
    RecurringSchedule(
        "process-email-queue-hourly",
        "process_email_queue",
        Hourly(),
        {"batch_size": 100, "max_age": 30},
    ),
    RecurringSchedule(
        "send-notifications-hourly",
        "send_pending_notifications",
        Hourly(),
        {"batch_size": 50, "max_age": 5},
    ),
    RecurringSchedule(
        "cleanup-files-hourly",
        "cleanup_dangling_files",
        Hourly(),
        {"dry_run": False, "older_than_days": 1},
    ),
    RecurringSchedule(
        "close-inactive-hourly", "close_inactive_conversations", Hourly()
    ),
    RecurringSchedule(
        "cleanup-failed-emails-hourly",
        "cleanup_failed_emails",
        Hourly(),
        {"older_than_days": 3},
    ),
    RecurringSchedule(
        "cleanup-notifications-hourly",
        "cleanup_old_notifications",
        Hourly(),
        {"older_than_days": 30, "keep_failed_days": 7},
    ),
    RecurringSchedule(
        "cleanup-old-jobs-daily",
        "cleanup_old_jobs",
        DailyAt(3),
        {"older_than_hours": 24 * 7},
    ),
    # Business jobs
    RecurringSchedule(
        "bulk-embedding-daily", "bulk_embedding_closed_conversations", DailyAt(19)
    ),
    *(
        RecurringSchedule(
            f"ticket-response-check-{int(day)}",
            "check_assigned_ticket_response_times",
            WeeklyAt(day, 14),
        )
        for day in WEEKDAYS
    ),
    *(
        RecurringSchedule(
            f"vip-response-check-{int(day)}",
            "check_vip_response_times",
            WeeklyAt(day, 14),
        )
        for day in WEEKDAYS
    ),
    RecurringSchedule("renew-watches-daily", "renew_mailbox_watches", DailyAt(0)),
    RecurringSchedule(
        "db-maintenance-daily",
        "perform_database_maintenance",
        DailyAt(0),
        {"analyze": True, "vacuum": False},
    ),
    RecurringSchedule(
        "website-crawl-weekly",
        "scheduled_website_crawl",
        WeeklyAt(Weekday.SUNDAY, 0),
    ),
    RecurringSchedule(
        "db-maintenance-weekly",
        "perform_database_maintenance",
        WeeklyAt(Weekday.SUNDAY, 2),
        {"analyze": True, "vacuum": True},
    ),
    # Reports: daily at 16:00 except Mondays, which get the weekly report
    *(
        RecurringSchedule(
            f"daily-reports-{int(day)}", "generate_daily_reports", WeeklyAt(day, 16)
        )
        for day in Weekday
        if day != Weekday.MONDAY
    ),
    RecurringSchedule(
        "weekly-reports-monday",
        "generate_weekly_reports",
        WeeklyAt(Weekday.MONDAY, 16),
    ),
)


class JobSystem:
    """Owns the job engine components of one process."""

    def __init__(
        self,
        settings: Settings,
        database: Database | None = None,
        registry: JobRegistry = job_registry,
        schedules: tuple[RecurringSchedule, ...] = DEFAULT_RECURRING_SCHEDULES,
    ):
        self.settings = settings
        self.database = database or Database(settings)
        self.registry = registry
        self.schedules = schedules
        self.queue = JobQueue(settings, self.database.SessionLocal)
        self.processor = JobProcessor(self.queue, registry, settings)
        self.scheduler = JobScheduler(self.queue, settings)
        self.trigger = EventTrigger(self.queue)
        self._processor_task: asyncio.Task | None = None

    async def start(self) -> None:
        """Register handlers and schedules, then start background work."""
        logger.info("Initializing job system")

        if not self.registry.is_frozen():
            register_job_handlers(self.registry, self.queue)

        if self.settings.job_scheduler_enabled:
            self.setup_recurring_jobs()
        self.scheduler.start()

        if self.settings.job_worker_enabled:
            self._processor_task = asyncio.create_task(
                self.processor.start(), name="job-processor"
            )
            # Let the processor enter its loop so an early stop() is not lost
            await asyncio.sleep(0)

        logger.info(
            "Job system initialized",
            worker_enabled=self.settings.job_worker_enabled,
            scheduled_jobs=self.scheduler.scheduled_job_count,
        )

    def setup_recurring_jobs(self) -> int:
        """Register default schedules whose job type has a handler."""
        registered = 0
        skipped = []
        for schedule in self.schedules:
            if not self.registry.has(schedule.job_type):
                skipped.append(schedule.job_type)
                continue
            self.scheduler.schedule_recurring_job(
                schedule.job_type,
                schedule.payload,
                schedule.pattern,
                schedule.timer_id,
            )
            registered += 1

        if skipped:
            logger.info(
                "Skipped recurring jobs without handler",
                job_types=sorted(set(skipped)),
            )
        logger.info("Recurring jobs scheduled", count=registered)
        return registered

    async def stop(self) -> None:
        """Cancel timers and stop the processor gracefully."""
        logger.info("Shutting down job system")

        self.scheduler.stop()

        if self._processor_task is not None:
            await self.processor.stop()
            await self._processor_task
            self._processor_task = None

        logger.info("Job system shutdown complete")

    async def stats(self) -> JobStatsResponse:
        stats = await self.queue.get_job_stats()
        stats.scheduled_jobs = self.scheduler.scheduled_job_count
        return stats
