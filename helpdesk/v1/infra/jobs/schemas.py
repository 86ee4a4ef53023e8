"""
Job system Pydantic schemas.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class JobResponse(BaseModel):
    """Schema for job API responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    payload: dict[str, Any]
    status: str
    attempts: int
    max_attempts: int
    priority: int
    scheduled_for: datetime
    last_error: str | None = None
    created_at: datetime
    updated_at: datetime


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    total: int
    limit: int
    offset: int


class JobMetrics(BaseModel):
    """In-process counters, reset on restart."""

    processed: int = 0
    failed: int = 0
    retried: int = 0
    dead_lettered: int = 0
    avg_processing_ms: float = 0.0
    last_processed_at: datetime | None = None


class JobStatsResponse(BaseModel):
    """Schema for job statistics."""

    total_jobs: int
    by_status: dict[str, int]
    by_type: dict[str, int]
    queue_depth: int  # pending + processing
    metrics: JobMetrics
    scheduled_jobs: int | None = None


class JobCleanupResponse(BaseModel):
    """Result of a maintenance sweep."""

    completed_deleted: int
    dead_letter_deleted: int
    completed_cutoff: datetime
    dead_letter_cutoff: datetime

    @property
    def total_deleted(self) -> int:
        return self.completed_deleted + self.dead_letter_deleted


class JobEnqueueRequest(BaseModel):
    """Schema for enqueueing jobs via API."""

    type: str = Field(..., min_length=1, max_length=255, description="Job type")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job payload")
    priority: int = Field(default=0, description="Higher runs sooner; may be negative")
    scheduled_for: datetime | None = Field(
        default=None, description="Earliest time to run the job"
    )
    max_attempts: int | None = Field(
        default=None, ge=1, le=25, description="Override for retry attempts"
    )


class JobEnqueueResponse(BaseModel):
    """Schema for job enqueue response."""

    job_id: int
    type: str
    status: str
    priority: int
    scheduled_for: datetime


class JobActionRequest(BaseModel):
    """Schema for bulk job actions."""

    job_ids: list[int] = Field(..., min_length=1, description="Job IDs to act upon")


class JobActionResponse(BaseModel):
    """Schema for job action responses."""

    success_ids: list[int]
    failed_ids: list[int]
    errors: dict[str, str]  # job_id -> error message


class JobCleanupRequest(BaseModel):
    """Schema for triggering a maintenance sweep."""

    older_than_hours: int | None = Field(
        default=None, ge=1, description="Retention of completed jobs in hours"
    )


class EventTriggerRequest(BaseModel):
    """Schema for triggering an application event."""

    event: str = Field(..., description="Event name, e.g. conversations/message.created")
    data: dict[str, Any] = Field(default_factory=dict, description="Event data")
    sleep_seconds: float = Field(
        default=0, ge=0, description="Delay before the jobs become eligible"
    )


class EventTriggerResponse(BaseModel):
    """Schema for event trigger responses."""

    event: str
    job_ids: list[int]
    job_types: list[str]
    scheduled_for: datetime | None = None
