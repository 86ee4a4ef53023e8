"""
Job management API endpoints.

Provides admin endpoints for job enqueueing, monitoring, and management.
"""

from typing import Any

import pydantic
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from helpdesk.config.logging import get_logger
from helpdesk.v1.core.exceptions import (
    NotFoundError,
    ValidationError,
    create_success_response,
)
from helpdesk.v1.infra.jobs.models import JobStatus
from helpdesk.v1.infra.jobs.schemas import (
    EventTriggerRequest,
    EventTriggerResponse,
    JobActionRequest,
    JobActionResponse,
    JobCleanupRequest,
    JobEnqueueRequest,
    JobEnqueueResponse,
    JobListResponse,
    JobResponse,
)
from helpdesk.v1.infra.jobs.startup import JobSystem

logger = get_logger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_job_system(request: Request) -> JobSystem:
    """Return the job system owned by the running application."""
    return request.app.state.job_system


JobSystemDep = Depends(get_job_system)


@router.post("", response_model=dict)
async def enqueue_job(
    job_request: JobEnqueueRequest,
    job_system: JobSystem = JobSystemDep,
) -> dict[str, Any]:
    """Enqueue a new background job."""

    job = await job_system.queue.add_job(
        job_request.type,
        job_request.payload,
        scheduled_for=job_request.scheduled_for,
        priority=job_request.priority,
        max_attempts=job_request.max_attempts,
    )

    logger.info("Job enqueued via API", job_id=job.id, job_type=job.type)

    response = JobEnqueueResponse(
        job_id=job.id,
        type=job.type,
        status=job.status,
        priority=job.priority,
        scheduled_for=job.scheduled_for,
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("", response_model=dict)
async def list_jobs(
    status: list[JobStatus] | None = Query(
        default=None, description="Filter by status"
    ),
    type: str | None = Query(default=None, description="Filter by job type"),
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    offset: int = Query(default=0, ge=0, description="Results offset"),
    job_system: JobSystem = JobSystemDep,
) -> dict[str, Any]:
    """List jobs with filtering and pagination."""

    jobs, total = await job_system.queue.list_jobs(
        statuses=status, job_type=type, limit=limit, offset=offset
    )

    response_data = JobListResponse(
        jobs=[JobResponse.model_validate(job) for job in jobs],
        total=total,
        limit=limit,
        offset=offset,
    )
    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/stats/overview", response_model=dict)
async def get_job_stats(job_system: JobSystem = JobSystemDep) -> dict[str, Any]:
    """Get queue statistics and processing metrics."""

    stats = await job_system.stats()
    return create_success_response(data=stats.model_dump(mode="json"))


@router.get("/dead-letter", response_model=dict)
async def list_dead_letter_jobs(
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum results"),
    job_system: JobSystem = JobSystemDep,
) -> dict[str, Any]:
    """List dead-lettered jobs, most recently failed first."""

    jobs = await job_system.queue.get_dead_letter_jobs(limit)
    return create_success_response(
        data=[JobResponse.model_validate(job).model_dump(mode="json") for job in jobs]
    )


@router.post("/batch/retry", response_model=dict)
async def retry_jobs_batch(
    request: JobActionRequest,
    job_system: JobSystem = JobSystemDep,
) -> dict[str, Any]:
    """Retry multiple dead-lettered jobs in batch."""

    success_ids = []
    failed_ids = []
    errors = {}

    for job_id in request.job_ids:
        try:
            success = await job_system.queue.retry_dead_letter_job(job_id)
            if success:
                success_ids.append(job_id)
            else:
                failed_ids.append(job_id)
                errors[str(job_id)] = "Job not found or not in dead letter queue"
        except Exception as e:
            logger.exception("Failed to retry job", job_id=job_id)
            failed_ids.append(job_id)
            errors[str(job_id)] = str(e)

    logger.info(
        "Batch job retry via API",
        success_count=len(success_ids),
        failed_count=len(failed_ids),
    )

    response = JobActionResponse(
        success_ids=success_ids, failed_ids=failed_ids, errors=errors
    )
    return create_success_response(data=response.model_dump())


@router.post("/cleanup", response_model=dict)
async def cleanup_jobs(
    request: JobCleanupRequest,
    job_system: JobSystem = JobSystemDep,
) -> dict[str, Any]:
    """Delete completed and dead-lettered jobs past their retention."""

    result = await job_system.queue.cleanup_old_jobs(request.older_than_hours)
    data = result.model_dump(mode="json")
    data["total_deleted"] = result.total_deleted
    return create_success_response(data=data)


@router.get("/events", response_model=dict)
async def list_events(job_system: JobSystem = JobSystemDep) -> dict[str, Any]:
    """List known events and the job types each one enqueues."""

    return create_success_response(data=job_system.trigger.list_events())


@router.post("/events", response_model=dict)
async def trigger_event(
    request: EventTriggerRequest,
    job_system: JobSystem = JobSystemDep,
) -> dict[str, Any]:
    """Trigger an application event, enqueueing its mapped jobs."""

    try:
        jobs = await job_system.trigger.trigger_event(
            request.event, request.data, request.sleep_seconds
        )
    except pydantic.ValidationError as e:
        raise ValidationError(
            f"Invalid data for event: {request.event}",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e

    response = EventTriggerResponse(
        event=request.event,
        job_ids=[job.id for job in jobs],
        job_types=[job.type for job in jobs],
        scheduled_for=jobs[0].scheduled_for if request.sleep_seconds > 0 else None,
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: int,
    job_system: JobSystem = JobSystemDep,
) -> dict[str, Any]:
    """Get a specific job by ID."""

    job = await job_system.queue.get_job(job_id)
    if not job:
        raise NotFoundError("Job not found", details={"job_id": job_id})

    return create_success_response(
        data=JobResponse.model_validate(job).model_dump(mode="json")
    )


@router.post("/{job_id}/retry", response_model=dict)
async def retry_job(
    job_id: int,
    job_system: JobSystem = JobSystemDep,
) -> dict[str, Any]:
    """Retry a dead-lettered job with a fresh attempt budget."""

    success = await job_system.queue.retry_dead_letter_job(job_id)
    if not success:
        raise HTTPException(
            status_code=404, detail="Job not found or not in dead letter queue"
        )

    logger.info("Job retried via API", job_id=job_id)

    return create_success_response(data={"success": True, "job_id": job_id})
