"""Tests for job system wiring and the standalone worker."""

import asyncio
from typing import Any

from helpdesk.config.settings import Settings
from helpdesk.infra.database import Database
from helpdesk.v1.core.registries import JobRegistry
from helpdesk.v1.infra.jobs.models import JobStatus
from helpdesk.v1.infra.jobs.recurrence import DailyAt, Weekday, WeeklyAt
from helpdesk.v1.infra.jobs.registry_init import CLEANUP_OLD_JOBS
from helpdesk.v1.infra.jobs.startup import DEFAULT_RECURRING_SCHEDULES, JobSystem
from helpdesk.worker import run_worker


class RecordingHandler:
    def __init__(self):
        self.payloads: list[dict[str, Any]] = []

    async def handle(self, payload: dict[str, Any]) -> None:
        self.payloads.append(payload)


def test_default_schedule_timer_ids_are_unique():
    timer_ids = [schedule.timer_id for schedule in DEFAULT_RECURRING_SCHEDULES]
    assert len(timer_ids) == len(set(timer_ids))


def test_default_schedules_cover_reports():
    by_type: dict[str, list] = {}
    for schedule in DEFAULT_RECURRING_SCHEDULES:
        by_type.setdefault(schedule.job_type, []).append(schedule.pattern)

    # Daily reports every day except Monday, weekly report on Monday
    daily_days = {pattern.day for pattern in by_type["generate_daily_reports"]}
    assert daily_days == set(Weekday) - {Weekday.MONDAY}
    assert by_type["generate_weekly_reports"] == [WeeklyAt(Weekday.MONDAY, 16)]
    assert by_type[CLEANUP_OLD_JOBS] == [DailyAt(3)]


async def test_start_registers_maintenance_schedule(
    settings: Settings, database: Database, registry: JobRegistry
):
    settings = settings.model_copy(update={"job_scheduler_enabled": True})
    job_system = JobSystem(settings, database, registry)

    await job_system.start()
    try:
        assert registry.has(CLEANUP_OLD_JOBS)
        # Only schedules with a registered handler are armed
        timer_ids = [timer.id for timer in job_system.scheduler.get_scheduled_jobs()]
        assert timer_ids == ["cleanup-old-jobs-daily"]

        stats = await job_system.stats()
        assert stats.scheduled_jobs == 1
    finally:
        await job_system.stop()

    assert job_system.scheduler.scheduled_job_count == 0


async def test_scheduler_disabled(
    settings: Settings, database: Database, registry: JobRegistry
):
    job_system = JobSystem(settings, database, registry)

    await job_system.start()
    try:
        assert job_system.scheduler.scheduled_job_count == 0
        assert job_system.processor.running is False
    finally:
        await job_system.stop()


async def test_setup_recurring_jobs_for_custom_handler(
    settings: Settings, database: Database, registry: JobRegistry
):
    registry.register("generate_daily_reports", RecordingHandler())
    job_system = JobSystem(settings, database, registry)

    assert job_system.setup_recurring_jobs() == 6
    assert job_system.scheduler.scheduled_job_count == 6


async def test_worker_processes_enqueued_jobs(
    settings: Settings, database: Database, registry: JobRegistry
):
    handler = RecordingHandler()
    registry.register("send_email", handler)
    settings = settings.model_copy(update={"job_worker_enabled": True})
    job_system = JobSystem(settings, database, registry)

    await job_system.start()
    try:
        jobs = await job_system.trigger.trigger_event(
            "conversations/email.enqueued", {"message_id": 7}
        )
        job = await job_system.queue.add_job("send_email", {"to": "a@example.com"})

        for _ in range(200):
            current = await job_system.queue.get_job(job.id)
            if current.status == JobStatus.COMPLETED.value:
                break
            await asyncio.sleep(0.01)
        assert current.status == JobStatus.COMPLETED.value
        assert handler.payloads == [{"to": "a@example.com"}]

        # post_email_to_gmail has no handler and is dead-lettered
        for _ in range(200):
            event_job = await job_system.queue.get_job(jobs[0].id)
            if event_job.status == JobStatus.DEAD_LETTER.value:
                break
            await asyncio.sleep(0.01)
        assert event_job.status == JobStatus.DEAD_LETTER.value
    finally:
        await job_system.stop()

    assert job_system.processor.running is False


async def test_run_worker_stops_on_event(settings: Settings):
    stop_event = asyncio.Event()
    stop_event.set()

    await asyncio.wait_for(run_worker(settings, stop_event), timeout=5)
