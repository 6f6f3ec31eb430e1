"""Jobs module for ingestion, provider sync and scheduling."""

from kivaw.jobs.provider_sync import SyncOutcome, run_all_provider_syncs, run_provider_sync
from kivaw.jobs.rss_ingest import FeedOutcome, IngestReport, normalize_feed_url, run_rss_ingest
from kivaw.jobs.scheduler import (
    get_scheduler,
    remove_job,
    setup_all_jobs,
    setup_provider_sync_job,
    setup_rss_ingest_job,
    shutdown_scheduler,
    start_scheduler,
)

__all__ = [
    "FeedOutcome",
    "IngestReport",
    "SyncOutcome",
    "get_scheduler",
    "normalize_feed_url",
    "remove_job",
    "run_all_provider_syncs",
    "run_provider_sync",
    "run_rss_ingest",
    "setup_all_jobs",
    "setup_provider_sync_job",
    "setup_rss_ingest_job",
    "shutdown_scheduler",
    "start_scheduler",
]
