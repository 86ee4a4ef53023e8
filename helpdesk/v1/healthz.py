from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config.logging import get_logger
from helpdesk.config.settings import Settings, SettingsDep
from helpdesk.infra.database import get_session
from helpdesk.v1.core.exceptions import create_success_response
from helpdesk.v1.infra.jobs.models import Job, JobStatus

logger = get_logger(__name__)
router = APIRouter()


class DatabaseHealth(BaseModel):
    """Database health status."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class JobsHealth(BaseModel):
    """Job engine health status."""

    processor_running: bool
    active_jobs: int = 0
    scheduled_jobs: int = 0
    stuck_jobs_count: int = 0
    queue_depth: int = 0
    dead_letter_count: int = 0


class HealthResponse(BaseModel):
    """Health response with job engine and database status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    database: DatabaseHealth
    jobs: JobsHealth | None = None


@router.get("/healthz", response_model=dict)
async def health_check(
    request: Request,
    settings: Settings = SettingsDep,
    session: AsyncSession = Depends(get_session),
):
    """Health check endpoint with database and job engine status."""

    timestamp = datetime.now(UTC).isoformat()
    overall_ok = True

    # Check database health
    db_health = await _check_database_health(session)
    if not db_health.connected:
        overall_ok = False

    # Job health failures don't fail overall health
    jobs_health = None
    if db_health.connected:
        try:
            jobs_health = await _check_jobs_health(request, session, settings)
        except Exception:
            logger.exception("Job health check failed")

    health = HealthResponse(
        ok=overall_ok,
        version=settings.version,
        environment=settings.environment,
        timestamp=timestamp,
        database=db_health,
        jobs=jobs_health,
    )
    return create_success_response(data=health.model_dump())


async def _check_database_health(session: AsyncSession) -> DatabaseHealth:
    """Check database connectivity and response time."""
    start_time = datetime.now(UTC)

    try:
        # Simple query to test database connectivity
        await session.execute(text("SELECT 1"))

        end_time = datetime.now(UTC)
        response_time_ms = (end_time - start_time).total_seconds() * 1000

        return DatabaseHealth(
            connected=True, response_time_ms=round(response_time_ms, 2)
        )

    except Exception as e:
        return DatabaseHealth(connected=False, error=str(e))


async def _check_jobs_health(
    request: Request, session: AsyncSession, settings: Settings
) -> JobsHealth:
    """Check processor state and queue status."""

    result = await session.execute(
        select(Job.status, func.count(Job.id)).group_by(Job.status)
    )
    counts = dict(result.all())

    # Processing jobs not updated within the visibility timeout
    stuck_cutoff = datetime.now(UTC) - timedelta(
        seconds=settings.job_visibility_timeout_s
    )
    stuck_result = await session.execute(
        select(func.count(Job.id)).where(
            Job.status == JobStatus.PROCESSING.value, Job.updated_at < stuck_cutoff
        )
    )

    job_system = getattr(request.app.state, "job_system", None)
    processor = job_system.processor if job_system else None

    return JobsHealth(
        processor_running=bool(processor and processor.running),
        active_jobs=len(processor.active_jobs) if processor else 0,
        scheduled_jobs=job_system.scheduler.scheduled_job_count if job_system else 0,
        stuck_jobs_count=stuck_result.scalar() or 0,
        queue_depth=counts.get(JobStatus.PENDING.value, 0)
        + counts.get(JobStatus.PROCESSING.value, 0),
        dead_letter_count=counts.get(JobStatus.DEAD_LETTER.value, 0),
    )
