import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import update

from helpdesk.config.settings import Settings
from helpdesk.infra.database import Database, utcnow
from helpdesk.main import create_app
from helpdesk.v1.core.registries import JobRegistry
from helpdesk.v1.infra.jobs.models import Job
from helpdesk.v1.infra.jobs.queue import JobQueue


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at an isolated SQLite file per test."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        database_auto_create=True,
        environment="development",
        debug=True,
        job_worker_enabled=False,
        job_scheduler_enabled=False,
        job_poll_interval_ms=20,
        job_error_backoff_ms=20,
        job_timeout_s=5,
        job_visibility_timeout_s=900,
        job_shutdown_timeout_s=1,
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Create a fresh database with the jobs table."""
    database = Database(settings)
    await database.create_all()
    yield database
    await database.close()


@pytest.fixture
def queue(settings: Settings, database: Database) -> JobQueue:
    return JobQueue(settings, database.SessionLocal)


@pytest.fixture
def registry() -> JobRegistry:
    """A fresh job registry, isolated from the global one."""
    return JobRegistry()


@pytest.fixture
def update_job(
    database: Database,
) -> Callable[..., Awaitable[None]]:
    """Write columns of a job row directly, bypassing the queue transitions."""

    async def _update(job_id: int, **values: Any) -> None:
        async with database.SessionLocal() as session:
            await session.execute(update(Job).where(Job.id == job_id).values(**values))
            await session.commit()

    return _update


@pytest.fixture
def make_due(update_job) -> Callable[[int], Awaitable[None]]:
    """Make a pending job eligible right away (skip its retry backoff)."""

    async def _make_due(job_id: int) -> None:
        await update_job(job_id, scheduled_for=utcnow() - timedelta(seconds=1))

    return _make_due


@pytest.fixture
def app(settings: Settings, registry: JobRegistry):
    """Create a test FastAPI application with a SQLite job store."""
    app = create_app(settings, registry=registry)
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client; entering it runs the application lifespan."""
    with TestClient(app) as test_client:
        yield test_client


class FakeClock:
    """Simulated wall clock whose sleep advances time instead of waiting."""

    def __init__(self, now: datetime, lateness: timedelta = timedelta(0)):
        self.now = now
        self.lateness = lateness
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds) + self.lateness
        await asyncio.sleep(0)


class RecordingQueue:
    """Stand-in for JobQueue that records enqueue calls."""

    def __init__(self, failures: int = 0):
        self.calls: list[tuple[str, dict[str, Any], datetime | None]] = []
        self.failures = failures

    async def add_job(
        self,
        job_type: str,
        payload: dict[str, Any] | None = None,
        scheduled_for: datetime | None = None,
        **kwargs: Any,
    ) -> None:
        if self.failures:
            self.failures -= 1
            raise RuntimeError("store unavailable")
        self.calls.append((job_type, payload, scheduled_for))


@pytest.fixture
def fake_clock() -> FakeClock:
    # Monday 2024-01-01 10:15 UTC
    return FakeClock(datetime(2024, 1, 1, 10, 15, tzinfo=UTC))


@pytest.fixture
def recording_queue() -> RecordingQueue:
    return RecordingQueue()
