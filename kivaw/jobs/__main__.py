"""Run the scheduler as a standalone process.

Usage::

    python -m kivaw.jobs

Useful when the API runs with several workers and ingestion should run
exactly once, in its own process.
"""

import asyncio
import signal

from kivaw.config import config
from kivaw.jobs.scheduler import (
    get_scheduler,
    setup_all_jobs,
    shutdown_scheduler,
    start_scheduler,
)
from kivaw.logging import get_logger, setup_logging
from kivaw.storage import close_engine, init_models

setup_logging(config.log_level)
logger = get_logger(__name__)


async def _run() -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    await init_models()
    start_scheduler()
    job_ids = setup_all_jobs()
    logger.info(f"Scheduler running standalone with jobs {job_ids}; Ctrl+C to stop")

    try:
        while get_scheduler().running and not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
    finally:
        logger.info("Stopping scheduler")
        shutdown_scheduler()
        await close_engine()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
