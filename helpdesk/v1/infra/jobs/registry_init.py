"""
Job registry initialization.

Registers the engine's own handlers with a job registry.
"""

from helpdesk.config.logging import get_logger
from helpdesk.v1.core.registries import JobRegistry
from helpdesk.v1.infra.jobs.handlers import (
    CleanupOldJobsHandler,
    RecoverStuckJobsHandler,
)
from helpdesk.v1.infra.jobs.queue import JobQueue

logger = get_logger(__name__)

CLEANUP_OLD_JOBS = "cleanup_old_jobs"
RECOVER_STUCK_JOBS = "recover_stuck_jobs"


def register_job_handlers(registry: JobRegistry, queue: JobQueue) -> None:
    """Register the maintenance handlers with the job registry."""

    logger.info("Registering job handlers")

    # Maintenance job handlers
    if not registry.has(CLEANUP_OLD_JOBS):
        registry.register(CLEANUP_OLD_JOBS, CleanupOldJobsHandler(queue))

    if not registry.has(RECOVER_STUCK_JOBS):
        registry.register(RECOVER_STUCK_JOBS, RecoverStuckJobsHandler(queue))

    logger.info("Job handlers registered", registered_handlers=registry.list())
