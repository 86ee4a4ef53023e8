"""Tests for in-process delayed and recurring job timers."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from helpdesk.v1.core.exceptions import InvalidRecurrencePatternError
from helpdesk.v1.infra.jobs.models import JobStatus
from helpdesk.v1.infra.jobs.recurrence import DailyAt, Hourly, Weekday, WeeklyAt
from helpdesk.v1.infra.jobs.scheduler import JobScheduler


async def spin_until(condition, iterations: int = 1000) -> None:
    for _ in range(iterations):
        if condition():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition was never met")


async def spin(iterations: int = 20) -> None:
    for _ in range(iterations):
        await asyncio.sleep(0)


@pytest.fixture
def scheduler(recording_queue, settings, fake_clock):
    scheduler = JobScheduler(
        recording_queue, settings, clock=fake_clock, sleep=fake_clock.sleep
    )
    yield scheduler
    scheduler.stop()


class TestOneShot:
    async def test_fires_at_requested_time(self, scheduler, recording_queue, fake_clock):
        when = fake_clock() + timedelta(minutes=10)
        timer_id = scheduler.schedule_job("send_digest", {"user_id": 7}, when)
        scheduler.start()

        await spin_until(lambda: recording_queue.calls)

        assert recording_queue.calls == [("send_digest", {"user_id": 7}, when)]
        assert fake_clock.sleeps == [600]
        await spin()
        assert scheduler.scheduled_job_count == 0
        assert scheduler.cancel_job(timer_id) is False

    async def test_past_time_fires_immediately(self, scheduler, recording_queue, fake_clock):
        when = fake_clock() - timedelta(minutes=1)
        scheduler.schedule_job("overdue", {}, when)
        scheduler.start()

        await spin_until(lambda: recording_queue.calls)

        assert fake_clock.sleeps == [0.0]
        assert recording_queue.calls[0][2] == when

    async def test_naive_time_is_treated_as_utc(
        self, scheduler, recording_queue, fake_clock
    ):
        scheduler.schedule_job("send_digest", {}, datetime(2024, 1, 1, 11, 0))
        scheduler.start()

        await spin_until(lambda: recording_queue.calls)

        assert recording_queue.calls == [
            ("send_digest", {}, datetime(2024, 1, 1, 11, 0, tzinfo=UTC))
        ]
        assert fake_clock.sleeps == [2700]

    async def test_schedule_after_delay(self, scheduler, recording_queue, fake_clock):
        start = fake_clock()
        scheduler.schedule_job_after("reminder", None, timedelta(hours=2))
        scheduler.start()

        await spin_until(lambda: recording_queue.calls)

        assert recording_queue.calls == [("reminder", {}, start + timedelta(hours=2))]

    async def test_timers_are_not_armed_before_start(
        self, scheduler, recording_queue, fake_clock
    ):
        scheduler.schedule_job("later", {}, fake_clock())

        await spin()
        assert recording_queue.calls == []
        assert scheduler.scheduled_job_count == 1

        scheduler.start()
        await spin_until(lambda: recording_queue.calls)

    async def test_schedule_while_running_arms_immediately(
        self, scheduler, recording_queue, fake_clock
    ):
        scheduler.start()
        scheduler.schedule_job("now", {}, fake_clock())

        await spin_until(lambda: recording_queue.calls)

    async def test_enqueue_failure_is_logged_and_dropped(
        self, scheduler, recording_queue, fake_clock
    ):
        recording_queue.failures = 1
        scheduler.schedule_job("lost", {}, fake_clock())
        scheduler.start()

        await spin()

        assert recording_queue.calls == []
        assert scheduler.scheduled_job_count == 0


class TestCancellation:
    async def test_cancel_job(self, scheduler, recording_queue, fake_clock):
        scheduler.start()
        timer_id = scheduler.schedule_job(
            "cancelled", {}, fake_clock() + timedelta(minutes=5)
        )

        assert scheduler.cancel_job(timer_id) is True
        assert scheduler.cancel_job(timer_id) is False
        await spin()

        assert recording_queue.calls == []
        assert scheduler.scheduled_job_count == 0

    async def test_cancel_unknown_id(self, scheduler):
        assert scheduler.cancel_job("does-not-exist") is False

    async def test_cancel_all_jobs(self, scheduler, recording_queue, fake_clock):
        scheduler.schedule_job("a", {}, fake_clock() + timedelta(minutes=1))
        scheduler.helpers.hourly("b", {})
        scheduler.start()

        scheduler.cancel_all_jobs()
        await spin()

        assert scheduler.scheduled_job_count == 0
        assert recording_queue.calls == []

    async def test_reusing_an_id_replaces_the_timer(
        self, scheduler, recording_queue, fake_clock
    ):
        scheduler.start()
        scheduler.schedule_job("first", {}, fake_clock() + timedelta(minutes=1), "same")
        scheduler.schedule_job("second", {}, fake_clock() + timedelta(minutes=2), "same")

        assert scheduler.scheduled_job_count == 1
        await spin_until(lambda: recording_queue.calls)
        await spin()

        assert [call[0] for call in recording_queue.calls] == ["second"]

    async def test_stop_cancels_everything(self, scheduler, fake_clock):
        scheduler.helpers.daily("report", {}, 16)
        scheduler.start()
        (timer,) = scheduler.get_scheduled_jobs()

        scheduler.stop()
        await spin()

        assert scheduler.running is False
        assert scheduler.scheduled_job_count == 0
        assert timer.task.cancelled()


class TestRecurring:
    async def test_five_hourly_fires_without_drift(
        self, scheduler, recording_queue, fake_clock
    ):
        # Every wake-up is 7 seconds late; the schedule must not creep
        fake_clock.lateness = timedelta(seconds=7)
        scheduler.schedule_recurring_job("process_email_queue", {}, Hourly())
        scheduler.start()

        await spin_until(lambda: len(recording_queue.calls) >= 5)
        scheduler.stop()

        fire_times = [call[2] for call in recording_queue.calls[:5]]
        assert fire_times == [
            datetime(2024, 1, 1, hour, tzinfo=UTC) for hour in range(11, 16)
        ]
        assert all(t.minute == 0 and t.second == 0 for t in fire_times)

    async def test_early_wake_up_does_not_repeat_an_occurrence(
        self, scheduler, recording_queue, fake_clock
    ):
        # Every wake-up is a millisecond early
        fake_clock.lateness = timedelta(milliseconds=-1)
        scheduler.schedule_recurring_job("process_email_queue", {}, Hourly())
        scheduler.start()

        await spin_until(lambda: len(recording_queue.calls) >= 5)
        scheduler.stop()

        fire_times = [call[2] for call in recording_queue.calls[:5]]
        assert len(fire_times) == len(set(fire_times))
        assert fire_times == [
            datetime(2024, 1, 1, hour, tzinfo=UTC) for hour in range(11, 16)
        ]

    async def test_daily_registration_computes_next_run(self, scheduler, fake_clock):
        timer_id = scheduler.helpers.daily("report", {}, 14)

        (timer,) = scheduler.get_scheduled_jobs()
        assert timer.id == timer_id
        assert timer.recurring is True
        assert timer.next_run == datetime(2024, 1, 1, 14, tzinfo=UTC)

    async def test_weekly_fires_on_day_and_hour(
        self, scheduler, recording_queue, fake_clock
    ):
        scheduler.helpers.weekly("weekly_report", {}, Weekday.MONDAY, 16)
        scheduler.start()

        await spin_until(lambda: len(recording_queue.calls) >= 2)
        scheduler.stop()

        assert [call[2] for call in recording_queue.calls[:2]] == [
            datetime(2024, 1, 1, 16, tzinfo=UTC),
            datetime(2024, 1, 8, 16, tzinfo=UTC),
        ]

    async def test_enqueue_failure_keeps_schedule_running(
        self, scheduler, recording_queue, fake_clock
    ):
        recording_queue.failures = 1
        scheduler.helpers.hourly("process_email_queue", {"batch_size": 100})
        scheduler.start()

        await spin_until(lambda: recording_queue.calls)
        scheduler.stop()

        assert recording_queue.calls[0] == (
            "process_email_queue",
            {"batch_size": 100},
            datetime(2024, 1, 1, 12, tzinfo=UTC),
        )

    async def test_unsupported_patterns_are_rejected(self, scheduler):
        with pytest.raises(InvalidRecurrencePatternError):
            scheduler.schedule_recurring_job("x", {}, "0 */2 * * *")
        with pytest.raises(InvalidRecurrencePatternError):
            scheduler.schedule_recurring_job("x", {}, timedelta(hours=2))

        assert scheduler.scheduled_job_count == 0


class TestScheduleHelpers:
    def test_helpers_register_expected_patterns(self, scheduler, fake_clock):
        scheduler.helpers.in_minutes("a", {}, 30, "in-minutes")
        scheduler.helpers.in_hours("b", {}, 2, "in-hours")
        scheduler.helpers.daily("c", {}, 3, "daily")
        scheduler.helpers.hourly("d", {}, "hourly")
        scheduler.helpers.weekly("e", {}, 0, 2, "weekly")

        timers = {timer.id: timer for timer in scheduler.get_scheduled_jobs()}
        assert timers["in-minutes"].run_at == fake_clock() + timedelta(minutes=30)
        assert timers["in-hours"].run_at == fake_clock() + timedelta(hours=2)
        assert timers["daily"].pattern == DailyAt(3)
        assert timers["hourly"].pattern == Hourly()
        assert timers["weekly"].pattern == WeeklyAt(Weekday.SUNDAY, 2)
        assert scheduler.scheduled_job_count == 5


async def test_scheduled_job_reaches_the_store(queue, settings):
    scheduler = JobScheduler(queue, settings)
    scheduler.start()
    scheduler.helpers.in_minutes("send_digest", {"user_id": 1}, 0.0005)

    try:
        for _ in range(100):
            jobs, total = await queue.list_jobs(job_type="send_digest")
            if total:
                break
            await asyncio.sleep(0.01)
    finally:
        scheduler.stop()

    assert total == 1
    assert jobs[0].status == JobStatus.PENDING.value
    assert jobs[0].payload == {"user_id": 1}
