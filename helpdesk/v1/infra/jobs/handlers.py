"""
Job handlers owned by the job engine itself.

Product handlers (email delivery, embeddings, crawling, ...) implement the
same JobHandler protocol and are registered by their own modules.
"""

from typing import Any

from helpdesk.config.logging import get_logger
from helpdesk.v1.infra.jobs.queue import JobQueue

logger = get_logger(__name__)


class CleanupOldJobsHandler:
    """
    Maintenance sweep deleting terminal jobs past their retention.

    Payload expected:
    {
        "older_than_hours": 168,  # optional, defaults to settings
        "dry_run": false          # optional
    }
    """

    def __init__(self, queue: JobQueue):
        self.queue = queue

    async def handle(self, payload: dict[str, Any]) -> None:
        older_than_hours = payload.get("older_than_hours")
        if older_than_hours is not None and (
            not isinstance(older_than_hours, int) or older_than_hours < 1
        ):
            raise ValueError(
                f"older_than_hours must be a positive integer, got: {older_than_hours!r}"
            )

        if payload.get("dry_run", False):
            logger.info("Job cleanup dry run", older_than_hours=older_than_hours)
            return

        result = await self.queue.cleanup_old_jobs(older_than_hours)
        logger.info(
            "Job cleanup task completed",
            completed_deleted=result.completed_deleted,
            dead_letter_deleted=result.dead_letter_deleted,
        )


class RecoverStuckJobsHandler:
    """
    Fail jobs stuck in processing past the visibility timeout.

    Useful as a scheduled job when processors run with the in-process
    recovery loop disabled. Payload: ``{"older_than_s": 900}`` (optional).
    """

    def __init__(self, queue: JobQueue):
        self.queue = queue

    async def handle(self, payload: dict[str, Any]) -> None:
        await self.queue.recover_stuck_jobs(payload.get("older_than_s"))
