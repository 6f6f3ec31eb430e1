"""Tests for RSS ingestion."""

import asyncio
import os
import pytest
import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

# Set test environment before imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_kivaw_rss.db"

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kivaw.config import config
from kivaw.content.normalizers import FeedEntry, feed_identity
from kivaw.jobs.rss_ingest import (
    backfill_summaries,
    dedupe_entries,
    normalize_feed_url,
    quality_score,
    run_rss_ingest,
    select_fresh,
)
from kivaw.providers.feed_client import FeedClient, FeedFetchError, extract_meta_description
from kivaw.storage import Base, ExternalCacheRepo, FeedItemsRepo, RunsRepo, SourcesRepo

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
FEED_URL = "https://example.com/feed"
LONG_SUMMARY = "A long enough summary that explains what the article is about in detail."


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///./test_kivaw_rss.db",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()

    if os.path.exists("./test_kivaw_rss.db"):
        os.remove("./test_kivaw_rss.db")


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _struct(dt: datetime) -> time.struct_time:
    return dt.utctimetuple()


def _raw_entry(link: str, days_old: float | None = 1, **extra) -> dict:
    entry = {"link": link, "title": f"Post {link.rsplit('/', 1)[-1]}", "summary": LONG_SUMMARY}
    if days_old is not None:
        entry["published_parsed"] = _struct(NOW - timedelta(days=days_old))
    entry.update(extra)
    return entry


def _feed_entry(raw_id: str, published_at=None, **kwargs) -> FeedEntry:
    return FeedEntry(
        identity=feed_identity(FEED_URL, raw_id),
        feed_url=FEED_URL,
        raw_id=raw_id,
        title=raw_id,
        published_at=published_at,
        **kwargs,
    )


def _mock_client(feeds: dict, description: str | None = None) -> AsyncMock:
    client = AsyncMock(spec=FeedClient)

    async def fetch_feed(url):
        result = feeds[url]
        if isinstance(result, Exception):
            raise result
        return result

    client.fetch_feed.side_effect = fetch_feed
    client.fetch_page_description.return_value = description
    return client


# Feed URL normalization

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("HTTPS://Example.COM/feed/", "https://example.com/feed"),
        ("http://example.com:80/rss#top", "http://example.com/rss"),
        ("https://example.com:8443/rss?x=1", "https://example.com:8443/rss?x=1"),
        ("  https://example.com/feed  ", "https://example.com/feed"),
        ("ftp://example.com/feed", None),
        ("not a url", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_feed_url(raw, expected):
    assert normalize_feed_url(raw) == expected


# Dedupe and freshness

def test_dedupe_keeps_dated_variant():
    """Two variants of one entry: the one with a valid date survives."""
    undated = _feed_entry("https://example.com/p1", summary="longer summary text without a date")
    dated = _feed_entry("https://example.com/p1", published_at=NOW - timedelta(days=1))

    for entries in ([undated, dated], [dated, undated]):
        [survivor] = dedupe_entries(entries)
        assert survivor.published_at == NOW - timedelta(days=1)


def test_dedupe_prefers_richer_variant_and_keeps_order():
    bare = _feed_entry("a", published_at=NOW)
    rich = _feed_entry("a", published_at=NOW, summary="text", image_url="https://img")
    other = _feed_entry("b", published_at=NOW)

    result = dedupe_entries([bare, other, rich])

    assert [e.raw_id for e in result] == ["a", "b"]
    assert result[0] is rich


def test_select_fresh_window_and_limit():
    entries = [
        _feed_entry("edge", published_at=NOW - timedelta(days=7)),
        _feed_entry("stale", published_at=NOW - timedelta(days=7, seconds=1)),
        _feed_entry("new", published_at=NOW - timedelta(hours=1)),
        _feed_entry("undated"),
    ]

    assert [e.raw_id for e in select_fresh(entries, NOW, 7, 10)] == ["new", "edge"]
    assert [e.raw_id for e in select_fresh(entries, NOW, 7, 1)] == ["new"]


def test_quality_score():
    bare = _feed_entry("a")
    full = _feed_entry(
        "b",
        published_at=NOW,
        summary=LONG_SUMMARY,
        author="Ana",
        image_url="https://img",
    )

    assert quality_score(bare, []) == 1.0
    assert quality_score(full, ["tag"]) == 2.0


def test_extract_meta_description_order():
    page = (
        '<html><head><meta name="description" content="plain">'
        "<meta property='og:description' content='Open &amp; graph'></head></html>"
    )
    assert extract_meta_description(page) == "Open & graph"
    assert extract_meta_description("<p>no meta</p>") is None


def test_extract_meta_description_falls_back_to_twitter_then_plain():
    twitter = (
        "<head><META NAME=\"Twitter:Description\" CONTENT=\"From the card\">"
        "<meta name=\"description\" content=\"plain\"></head>"
    )
    assert extract_meta_description(twitter) == "From the card"
    assert extract_meta_description('<meta name="description" content="  plain  ">') == "plain"
    assert extract_meta_description('<meta property="og:description" content="">') is None


@pytest.mark.anyio
async def test_backfill_stops_when_budget_is_spent():
    client = _mock_client({}, description=LONG_SUMMARY)
    entries = [_feed_entry(f"https://example.com/{i}", url=f"https://example.com/{i}") for i in range(3)]

    updated = await backfill_summaries(entries, client, page_timeout=1.0, budget=0)

    assert updated == 0
    client.fetch_page_description.assert_not_awaited()


# Full runs

@pytest.mark.anyio
async def test_ingest_dedupes_by_link_and_keeps_dated_row(session_factory):
    link = "https://example.com/posts/1"
    client = _mock_client(
        {FEED_URL: [_raw_entry(link, days_old=None), _raw_entry(link, days_old=2)]}
    )

    report = await run_rss_ingest(urls=[FEED_URL], session_factory=session_factory, client=client, now=NOW)

    assert report.status == "ok"
    assert report.feeds[0].fetched == 2
    assert report.feeds[0].kept == 1
    assert report.total_upserted == 1

    async with session_factory() as session:
        stored = await FeedItemsRepo(session).get_by_source_item("rss", feed_identity(FEED_URL, link))
        assert stored.published_at == (NOW - timedelta(days=2)).replace(tzinfo=None)
        assert await FeedItemsRepo(session).count_items() == 1
        assert await ExternalCacheRepo(session).count("rss") == 1


@pytest.mark.anyio
async def test_ingest_drops_stale_and_undated_entries(session_factory):
    client = _mock_client(
        {
            FEED_URL: [
                _raw_entry("https://example.com/fresh", days_old=1),
                _raw_entry("https://example.com/stale", days_old=30),
                _raw_entry("https://example.com/undated", days_old=None),
            ]
        }
    )

    report = await run_rss_ingest(urls=[FEED_URL], session_factory=session_factory, client=client, now=NOW)

    assert report.feeds[0].kept == 1
    async with session_factory() as session:
        [item] = await FeedItemsRepo(session).list_recent()
        assert item.url == "https://example.com/fresh"


@pytest.mark.anyio
async def test_ingest_backfills_short_summaries(session_factory):
    entry = _raw_entry("https://example.com/short", summary="Too short")
    client = _mock_client({FEED_URL: [entry]}, description=LONG_SUMMARY)

    await run_rss_ingest(urls=[FEED_URL], session_factory=session_factory, client=client, now=NOW)

    client.fetch_page_description.assert_awaited_once_with("https://example.com/short")
    async with session_factory() as session:
        [item] = await FeedItemsRepo(session).list_recent()
        assert item.summary == LONG_SUMMARY


@pytest.mark.anyio
async def test_slow_backfill_still_stores_feed(session_factory):
    """Slow article pages leave summaries short but never fail the feed."""
    entries = [_raw_entry(f"https://example.com/slow-{i}", summary="Too short") for i in range(5)]
    client = _mock_client({FEED_URL: entries})

    async def slow_page(url):
        await asyncio.sleep(1)
        return LONG_SUMMARY

    client.fetch_page_description.side_effect = slow_page
    fast_config = replace(
        config,
        rss_feed_timeout_seconds=0.1,
        rss_backfill_timeout_seconds=0.05,
        rss_backfill_budget_seconds=0.12,
    )

    with patch("kivaw.jobs.rss_ingest.config", fast_config):
        report = await run_rss_ingest(urls=[FEED_URL], session_factory=session_factory, client=client, now=NOW)

    [outcome] = report.feeds
    assert outcome.ok is True
    assert (outcome.fetched, outcome.kept, outcome.upserted) == (5, 5, 5)
    assert client.fetch_page_description.await_count < 5

    async with session_factory() as session:
        assert await FeedItemsRepo(session).count_items() == 5
        assert {item.summary for item in await FeedItemsRepo(session).list_recent()} == {"Too short"}


@pytest.mark.anyio
async def test_slow_feed_download_times_out(session_factory):
    client = AsyncMock(spec=FeedClient)

    async def hanging_feed(url):
        await asyncio.sleep(1)
        return []

    client.fetch_feed.side_effect = hanging_feed

    with patch("kivaw.jobs.rss_ingest.config", replace(config, rss_feed_timeout_seconds=0.05)):
        report = await run_rss_ingest(urls=[FEED_URL], session_factory=session_factory, client=client, now=NOW)

    [outcome] = report.feeds
    assert outcome.ok is False
    assert outcome.error == "timed out after 0.05s"
    assert report.status == "failed"


@pytest.mark.anyio
async def test_tagging_errors_mark_feed_not_ok(session_factory):
    client = _mock_client({FEED_URL: [_raw_entry("https://example.com/a"), _raw_entry("https://example.com/b")]})

    with patch("kivaw.jobs.provider_sync.tag_item", side_effect=RuntimeError("bad tags")):
        report = await run_rss_ingest(urls=[FEED_URL], session_factory=session_factory, client=client, now=NOW)

    [outcome] = report.feeds
    assert outcome.ok is False
    assert outcome.errors == 2
    assert outcome.kept == 2
    assert outcome.upserted == 2
    assert outcome.to_dict()["errors"] == 2
    assert report.status == "failed"

    async with session_factory() as session:
        assert await FeedItemsRepo(session).count_items() == 2
        assert await ExternalCacheRepo(session).count("rss") == 2


@pytest.mark.anyio
async def test_cache_failure_rolls_back_feed_rows(session_factory):
    """Feed rows and cache rows are written together or not at all."""
    client = _mock_client({FEED_URL: [_raw_entry("https://example.com/a")]})

    with patch.object(ExternalCacheRepo, "upsert", AsyncMock(side_effect=RuntimeError("disk full"))):
        report = await run_rss_ingest(urls=[FEED_URL], session_factory=session_factory, client=client, now=NOW)

    [outcome] = report.feeds
    assert outcome.ok is False
    assert outcome.error == "disk full"
    assert outcome.fetched == 1
    assert outcome.upserted == 0

    async with session_factory() as session:
        assert await FeedItemsRepo(session).count_items() == 0
        assert await ExternalCacheRepo(session).count("rss") == 0


@pytest.mark.anyio
async def test_failing_feed_does_not_affect_others(session_factory):
    good_url = "https://good.example/feed"
    bad_url = "https://bad.example/feed"
    client = _mock_client(
        {
            bad_url: FeedFetchError("HTTP 500"),
            good_url: [_raw_entry("https://good.example/post", days_old=1)],
        }
    )

    report = await run_rss_ingest(
        urls=[bad_url, good_url], session_factory=session_factory, client=client, now=NOW
    )

    outcomes = {f.feed_url: f for f in report.feeds}
    assert outcomes[bad_url].ok is False
    assert outcomes[bad_url].error == "HTTP 500"
    assert outcomes[good_url].ok is True
    assert outcomes[good_url].upserted == 1
    assert report.status == "partial"

    async with session_factory() as session:
        [run] = await RunsRepo(session).recent_runs("rss_ingest")
        assert run.status == "partial"
        assert run.finished_at is not None


@pytest.mark.anyio
async def test_ingest_uses_active_sources(session_factory):
    async with session_factory() as session:
        await SourcesRepo(session).add_feed_source("https://Example.com/feed/", weight=2)
        await SourcesRepo(session).add_feed_source("https://off.example/feed", active=False)

    client = _mock_client({FEED_URL: []})

    report = await run_rss_ingest(session_factory=session_factory, client=client, now=NOW)

    assert [f.feed_url for f in report.feeds] == [FEED_URL]
    client.fetch_feed.assert_awaited_once_with(FEED_URL)
    assert report.status == "ok"


@pytest.mark.anyio
async def test_ingest_reingest_is_idempotent(session_factory):
    client = _mock_client({FEED_URL: [_raw_entry("https://example.com/a", days_old=1)]})

    await run_rss_ingest(urls=[FEED_URL], session_factory=session_factory, client=client, now=NOW)
    await run_rss_ingest(urls=[FEED_URL], session_factory=session_factory, client=client, now=NOW)

    async with session_factory() as session:
        assert await FeedItemsRepo(session).count_items() == 1
        assert await ExternalCacheRepo(session).count("rss") == 1
