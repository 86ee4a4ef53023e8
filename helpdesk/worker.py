"""
Standalone job worker process.

Runs the processor and scheduler without the HTTP surface until SIGINT or
SIGTERM is received.
"""

import asyncio
import signal

from helpdesk.config.logging import get_logger, setup_logging
from helpdesk.config.settings import Settings
from helpdesk.config.settings import settings as default_settings
from helpdesk.infra.database import Database
from helpdesk.v1.infra.jobs.startup import JobSystem

logger = get_logger(__name__)


async def run_worker(
    settings: Settings | None = None, stop_event: asyncio.Event | None = None
) -> None:
    """Run the job system until ``stop_event`` is set or a signal arrives."""
    settings = (settings or default_settings).model_copy(
        update={"job_worker_enabled": True}
    )
    stop_event = stop_event or asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Signal handlers are unavailable on some platforms (Windows)
            pass

    database = Database(settings)
    if settings.database_auto_create:
        await database.create_all()

    job_system = JobSystem(settings, database)
    await job_system.start()
    logger.info("Worker started", worker_id=job_system.processor.worker_id)

    try:
        await stop_event.wait()
    finally:
        logger.info("Worker shutting down")
        await job_system.stop()
        await database.close()


def main() -> None:
    """Entry point for the ``helpdesk-worker`` command."""
    setup_logging()
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
