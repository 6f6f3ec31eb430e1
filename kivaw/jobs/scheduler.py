"""APScheduler configuration and job management."""

from datetime import datetime, timezone

from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.base import JobLookupError

from kivaw.logging import get_logger

logger = get_logger(__name__)

_scheduler: AsyncIOScheduler | None = None

RSS_INGEST_JOB_ID = "rss_ingest"
PROVIDER_SYNC_JOB_ID = "provider_sync"


def get_scheduler() -> AsyncIOScheduler:
    """Get or create the scheduler instance."""
    global _scheduler

    if _scheduler is None:
        logger.info("Creating scheduler")
        _scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            },
        )

    return _scheduler


def start_scheduler() -> None:
    """Start the scheduler if not already running."""
    scheduler = get_scheduler()
    if not scheduler.running:
        logger.info("Starting scheduler")
        scheduler.start()


def shutdown_scheduler() -> None:
    """Shutdown the scheduler gracefully."""
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        logger.info("Shutting down scheduler")
        _scheduler.shutdown(wait=True)
    _scheduler = None


def remove_job(job_id: str) -> bool:
    """Remove a job from the scheduler."""
    try:
        get_scheduler().remove_job(job_id)
        logger.info(f"Removed job {job_id}")
        return True
    except JobLookupError:
        return False


def setup_rss_ingest_job() -> str | None:
    """Schedule periodic RSS ingestion from the configured sources."""
    from kivaw.config import config

    if not config.rss_ingest_enabled:
        logger.info("RSS ingest job not scheduled: RSS_INGEST_ENABLED=false")
        return None

    from kivaw.jobs.rss_ingest import run_rss_ingest

    job = get_scheduler().add_job(
        run_rss_ingest,
        "interval",
        hours=config.rss_ingest_interval_hours,
        id=RSS_INGEST_JOB_ID,
        name="RSS Ingest",
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),
    )
    logger.info(
        f"Scheduled RSS ingest job: interval={config.rss_ingest_interval_hours}h, job_id={job.id}"
    )
    return job.id


def setup_provider_sync_job() -> str | None:
    """Schedule periodic sync of every external provider."""
    from kivaw.config import config

    if not config.provider_sync_enabled:
        logger.info("Provider sync job not scheduled: PROVIDER_SYNC_ENABLED=false")
        return None

    from kivaw.jobs.provider_sync import run_all_provider_syncs

    job = get_scheduler().add_job(
        run_all_provider_syncs,
        "interval",
        hours=config.provider_sync_interval_hours,
        id=PROVIDER_SYNC_JOB_ID,
        name="Provider Sync",
        replace_existing=True,
        next_run_time=datetime.now(timezone.utc),
    )
    logger.info(
        f"Scheduled provider sync job: interval={config.provider_sync_interval_hours}h, "
        f"job_id={job.id}"
    )
    return job.id


def setup_all_jobs() -> list[str]:
    """Register every periodic job; returns the scheduled job ids."""
    job_ids = [setup_rss_ingest_job(), setup_provider_sync_job()]
    return [job_id for job_id in job_ids if job_id]
