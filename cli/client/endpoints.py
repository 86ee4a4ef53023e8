"""API Endpoint Wrappers - Typed calls to the job management API"""

from typing import Any

from .base import APIClient, HelpdeskError
from ..utils.config_manager import config

__all__ = ["HelpdeskClient", "HelpdeskError"]


class HelpdeskClient:
    """High-level client with typed endpoint methods"""

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
    ):
        # Use config values if not provided
        api_config = config.load_config().get("api", {})
        final_base_url = base_url or api_config.get("base_url", "http://localhost:8000")
        final_headers = headers or api_config.get("headers", {})

        self.api = APIClient(
            base_url=final_base_url,
            timeout=int(api_config.get("timeout", 30)),
            headers=final_headers,
        )

    def __enter__(self):
        self.api.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.api.__exit__(exc_type, exc_val, exc_tb)

    # Health Check
    def health_check(self) -> dict[str, Any]:
        """Check API health status"""
        return self.api.get("/healthz")

    # Jobs Endpoints
    def get_job_stats(self) -> dict[str, Any]:
        """Get queue statistics and processing metrics"""
        return self.api.get("/jobs/stats/overview")

    def list_jobs(
        self,
        status: list[str] | None = None,
        type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> dict[str, Any]:
        """List jobs with filters"""
        params: dict[str, Any] = {"limit": limit, "offset": offset}
        if status:
            params["status"] = status
        if type:
            params["type"] = type
        return self.api.get("/jobs", params)

    def get_job(self, job_id: int) -> dict[str, Any]:
        """Get a specific job by ID"""
        return self.api.get(f"/jobs/{job_id}")

    def enqueue_job(
        self,
        type: str,
        payload: dict[str, Any] | None = None,
        priority: int = 0,
        scheduled_for: str | None = None,
    ) -> dict[str, Any]:
        """Enqueue a job"""
        data: dict[str, Any] = {"type": type, "payload": payload or {}, "priority": priority}
        if scheduled_for:
            data["scheduled_for"] = scheduled_for
        return self.api.post("/jobs", data)

    def trigger_event(
        self, event: str, data: dict[str, Any] | None = None, sleep_seconds: float = 0
    ) -> dict[str, Any]:
        """Trigger an application event"""
        body = {"event": event, "data": data or {}, "sleep_seconds": sleep_seconds}
        return self.api.post("/jobs/events", body)

    def list_events(self) -> dict[str, list[str]]:
        """List known events and their job types"""
        return self.api.get("/jobs/events")

    def get_dead_letter_jobs(self, limit: int = 50) -> list[dict[str, Any]]:
        """List dead-lettered jobs"""
        return self.api.get("/jobs/dead-letter", {"limit": limit})

    def retry_job(self, job_id: int) -> dict[str, Any]:
        """Retry a dead-lettered job"""
        return self.api.post(f"/jobs/{job_id}/retry")

    def retry_jobs(self, job_ids: list[int]) -> dict[str, Any]:
        """Retry several dead-lettered jobs"""
        return self.api.post("/jobs/batch/retry", {"job_ids": job_ids})

    def cleanup_jobs(self, older_than_hours: int | None = None) -> dict[str, Any]:
        """Delete terminal jobs past their retention"""
        return self.api.post("/jobs/cleanup", {"older_than_hours": older_than_hours})
