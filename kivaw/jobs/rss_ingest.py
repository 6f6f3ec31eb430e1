"""RSS/Atom ingestion job.

Each feed is fetched, normalized, deduplicated, filtered to a freshness
window and stored on its own session, with its download under a timeout,
so one failing feed never affects the others.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kivaw.config import config
from kivaw.content.normalizers import (
    FEED_SUMMARY_MAX_CHARS,
    FeedEntry,
    NormalizationError,
    normalize_feed_entry,
)
from kivaw.content.text import truncate
from kivaw.core.tagging import derive_feed_tags
from kivaw.jobs.provider_sync import store_items
from kivaw.logging import get_logger
from kivaw.providers.feed_client import FeedClient
from kivaw.storage import FeedItemsRepo, RunsRepo, SourcesRepo, get_session_factory, safe_json_dumps

logger = get_logger(__name__)

JOB_NAME = "rss_ingest"
SOURCE_TYPE = "rss"
MAX_FEEDS_RANGE = (1, 50)
PER_FEED_LIMIT_RANGE = (25, 200)
SHORT_SUMMARY_CHARS = 50
DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass
class FeedOutcome:
    """Result of ingesting one feed."""

    feed_url: str
    ok: bool = False
    fetched: int = 0
    kept: int = 0
    upserted: int = 0
    errors: int = 0
    error: str | None = None
    ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "feed_url": self.feed_url,
            "ok": self.ok,
            "fetched": self.fetched,
            "kept": self.kept,
            "upserted": self.upserted,
            "errors": self.errors,
            "error": self.error,
            "ms": self.ms,
        }


@dataclass
class IngestReport:
    """Result of one ingestion run across feeds."""

    started_at: datetime
    finished_at: datetime | None = None
    feeds: list[FeedOutcome] = field(default_factory=list)

    @property
    def total_upserted(self) -> int:
        return sum(f.upserted for f in self.feeds)

    @property
    def status(self) -> str:
        failed = sum(1 for f in self.feeds if not f.ok)
        if not failed:
            return "ok"
        return "failed" if failed == len(self.feeds) else "partial"

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "feeds_processed": len(self.feeds),
            "total_upserted": self.total_upserted,
            "results": [f.to_dict() for f in self.feeds],
        }


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def normalize_feed_url(url: str | None) -> str | None:
    """Canonical feed URL: lowercase scheme/host, no default port, fragment or trailing slash.

    Returns None for anything that is not an absolute http(s) URL.
    """
    if not url:
        return None

    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parts.hostname:
        return None

    try:
        port = parts.port
    except ValueError:
        return None

    netloc = parts.hostname.lower()
    if port and port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = parts.path.rstrip("/")
    return urlunsplit((scheme, netloc, path, parts.query, ""))


def completeness(entry: FeedEntry) -> tuple:
    """Sort key ranking variants of the same entry; a valid date matters most."""
    return (
        entry.published_at is not None,
        bool(entry.summary),
        entry.image_url is not None,
        entry.author is not None,
        len(entry.summary or ""),
    )


def dedupe_entries(entries: list[FeedEntry]) -> list[FeedEntry]:
    """Keep the most complete variant per identity, in first-seen order."""
    best: dict[str, FeedEntry] = {}
    for entry in entries:
        current = best.get(entry.identity)
        if current is None or completeness(entry) > completeness(current):
            best[entry.identity] = entry
    return list(best.values())


def select_fresh(
    entries: list[FeedEntry],
    now: datetime,
    freshness_days: int,
    limit: int,
) -> list[FeedEntry]:
    """Dated entries inside the freshness window, newest first, capped at `limit`."""
    cutoff = now - timedelta(days=freshness_days)
    fresh = [e for e in entries if e.published_at is not None and e.published_at >= cutoff]
    fresh.sort(key=lambda e: e.published_at, reverse=True)
    return fresh[:limit]


def quality_score(entry: FeedEntry, tags: list[str]) -> float:
    score = 1.0
    if entry.image_url:
        score += 0.3
    if entry.summary and len(entry.summary) > SHORT_SUMMARY_CHARS:
        score += 0.2
    if entry.author:
        score += 0.1
    if entry.published_at:
        score += 0.2
    if tags:
        score += 0.2
    return round(score, 2)


async def backfill_summaries(
    entries: list[FeedEntry],
    client: FeedClient,
    page_timeout: float,
    budget: float,
) -> int:
    """Replace short or missing summaries with the article's meta description.

    Each page gets `page_timeout` seconds; a slow or failing page leaves its
    entry unchanged. No new page is fetched once `budget` seconds are spent.

    Returns:
        Number of entries updated
    """
    deadline = time.monotonic() + budget
    updated = 0
    for entry in entries:
        if not entry.url or len(entry.summary or "") >= SHORT_SUMMARY_CHARS:
            continue
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.info(f"Summary backfill budget of {budget:g}s spent, storing remaining entries as is")
            break
        try:
            description = await asyncio.wait_for(
                client.fetch_page_description(entry.url),
                timeout=min(page_timeout, remaining),
            )
        except asyncio.TimeoutError:
            logger.debug(f"Summary backfill timed out for {entry.url}")
            continue
        if description and len(description) > len(entry.summary or ""):
            entry.summary = truncate(description, FEED_SUMMARY_MAX_CHARS)
            updated += 1
    return updated


def feed_item_row(entry: FeedEntry, ingested_at: datetime) -> dict[str, Any]:
    tags = derive_feed_tags(entry.categories, entry.title, entry.summary)
    return {
        "source_type": SOURCE_TYPE,
        "source_item_id": entry.identity,
        "external_id": entry.raw_id,
        "url": entry.url,
        "title": entry.title,
        "summary": entry.summary,
        "author": entry.author,
        "image_url": entry.image_url,
        "published_at": entry.published_at,
        "ingested_at": ingested_at,
        "tags_json": safe_json_dumps(tags, default="[]"),
        "is_discoverable": True,
        "score": quality_score(entry, tags),
        "metadata_json": safe_json_dumps({"feed_url": entry.feed_url, "raw_id": entry.raw_id}),
    }


async def ingest_feed(
    outcome: FeedOutcome,
    session: AsyncSession,
    client: FeedClient,
    per_feed_limit: int,
    now: datetime,
) -> FeedOutcome:
    """Fetch, normalize and store one feed, filling in `outcome` as it goes.

    Feed rows and their cache rows commit together.

    Raises:
        FeedFetchError: If the feed cannot be downloaded or parsed
        asyncio.TimeoutError: If the download exceeds the feed timeout
    """
    feed_url = outcome.feed_url
    raw_entries = await asyncio.wait_for(
        client.fetch_feed(feed_url),
        timeout=config.rss_feed_timeout_seconds,
    )
    entries = []
    for raw in raw_entries:
        try:
            entries.append(normalize_feed_entry(raw, feed_url))
        except NormalizationError as e:
            logger.warning(f"Skipping feed entry: {e}")
    outcome.fetched = len(entries)

    undated = sum(1 for e in entries if e.published_at is None)
    if undated:
        logger.debug(f"{feed_url}: {undated} entries without a valid date")

    fresh = select_fresh(dedupe_entries(entries), now, config.rss_freshness_days, per_feed_limit)
    outcome.kept = len(fresh)

    if fresh:
        await backfill_summaries(
            fresh,
            client,
            page_timeout=config.rss_backfill_timeout_seconds,
            budget=config.rss_backfill_budget_seconds,
        )
        rows = await FeedItemsRepo(session).upsert_many(
            [feed_item_row(e, now) for e in fresh], commit=False
        )
        _, _, outcome.errors = await store_items(session, [e.to_content_item() for e in fresh])
        outcome.upserted = rows

    if outcome.errors:
        outcome.error = f"{outcome.errors} items could not be tagged"
    outcome.ok = not outcome.errors
    return outcome


async def resolve_feed_urls(session: AsyncSession, urls: list[str] | None, max_feeds: int) -> list[str]:
    """Normalized, deduplicated feed URLs from the request or the source table."""
    if urls is None:
        urls = await SourcesRepo(session).list_active_feed_urls(limit=max_feeds)

    resolved: list[str] = []
    for url in urls:
        normalized = normalize_feed_url(url)
        if normalized is None:
            logger.warning(f"Ignoring invalid feed URL: {url!r}")
        elif normalized not in resolved:
            resolved.append(normalized)
    return resolved[:max_feeds]


async def run_rss_ingest(
    urls: list[str] | None = None,
    max_feeds: int | None = None,
    per_feed_limit: int | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    client: FeedClient | None = None,
    now: datetime | None = None,
) -> IngestReport:
    """Ingest feeds into feed items and the content cache.

    Args:
        urls: Feed URLs; active configured sources when None
        max_feeds: Maximum feeds to process (1-50)
        per_feed_limit: Maximum entries kept per feed (25-200)
        session_factory: Session factory, the application one by default
        client: Feed client, a new one by default
        now: Reference time for the freshness window

    Returns:
        IngestReport with one outcome per feed
    """
    max_feeds = clamp(max_feeds or config.rss_max_feeds, *MAX_FEEDS_RANGE)
    per_feed_limit = clamp(per_feed_limit or config.rss_per_feed_limit, *PER_FEED_LIMIT_RANGE)
    now = now or datetime.now(timezone.utc)
    session_factory = session_factory or get_session_factory()

    report = IngestReport(started_at=datetime.now(timezone.utc))
    own_client = client is None
    client = client or FeedClient(
        timeout=config.rss_feed_timeout_seconds,
        backfill_timeout=config.rss_backfill_timeout_seconds,
    )

    async with session_factory() as session:
        feed_urls = await resolve_feed_urls(session, urls, max_feeds)
        runs_repo = RunsRepo(session)
        run = await runs_repo.start_run(JOB_NAME)

    logger.info(f"Starting RSS ingest: feeds={len(feed_urls)}, per_feed_limit={per_feed_limit}")

    try:
        for feed_url in feed_urls:
            started = time.monotonic()
            outcome = FeedOutcome(feed_url=feed_url)
            async with session_factory() as session:
                try:
                    await ingest_feed(outcome, session, client, per_feed_limit, now)
                except asyncio.TimeoutError:
                    await session.rollback()
                    outcome.ok = False
                    outcome.error = f"timed out after {config.rss_feed_timeout_seconds:g}s"
                except Exception as e:
                    logger.exception(f"Feed {feed_url} failed: {e}")
                    await session.rollback()
                    outcome.ok = False
                    outcome.error = str(e)[:500]

            outcome.ms = int((time.monotonic() - started) * 1000)
            report.feeds.append(outcome)
            logger.info(
                f"Feed {feed_url}: ok={outcome.ok} fetched={outcome.fetched} "
                f"kept={outcome.kept} upserted={outcome.upserted} ms={outcome.ms}"
            )
    finally:
        if own_client:
            await client.close()

    report.finished_at = datetime.now(timezone.utc)

    async with session_factory() as session:
        await RunsRepo(session).finish_run(await session.merge(run), report.status, report.to_dict())

    logger.info(
        f"RSS ingest finished: status={report.status}, feeds={len(report.feeds)}, "
        f"upserted={report.total_upserted}"
    )
    return report
