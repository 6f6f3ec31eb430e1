"""Tests for provider adapters, clients and provider sync."""

import os
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

# Set test environment before imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_kivaw_sync.db"

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kivaw.core.contracts import Disabled, ProviderFailure, Success
from kivaw.jobs.provider_sync import run_provider_sync
from kivaw.providers.adapters import GoogleBooksProvider, TMDBProvider, build_provider
from kivaw.providers.books_client import GoogleBooksClient, OpenLibraryClient, ProviderHTTPError
from kivaw.providers.tmdb_client import TMDBClient, TMDBError, TMDBRateLimitError, genre_ids_to_names
from kivaw.storage import Base, ExternalCacheRepo, RunsRepo, SourcesRepo

GOOGLE_BOOKS_PAYLOAD = {
    "items": [
        {
            "id": "vol-1",
            "volumeInfo": {
                "title": "Wherever You Go, There You Are",
                "description": "Mindfulness meditation in everyday life",
                "categories": ["Self-Help"],
                "averageRating": 4.5,
                "ratingsCount": 300,
            },
        },
        {"volumeInfo": {"title": "No id, skipped"}},
    ]
}


@pytest.fixture
async def engine():
    """Create test database engine."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///./test_kivaw_sync.db",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()

    if os.path.exists("./test_kivaw_sync.db"):
        os.remove("./test_kivaw_sync.db")


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def _enabled(value: bool) -> AsyncMock:
    return AsyncMock(return_value=value)


# Provider sync

@pytest.mark.anyio
async def test_disabled_provider_yields_no_items_and_no_writes(session_factory):
    """A provider without an enabled setting is skipped quietly."""
    outcome = await run_provider_sync("tmdb", session_factory=session_factory)

    assert outcome.disabled is True
    assert outcome.error is None
    assert outcome.to_dict()["items"] == []

    async with session_factory() as session:
        assert await ExternalCacheRepo(session).count() == 0
        assert await RunsRepo(session).recent_runs() == []


@pytest.mark.anyio
async def test_sync_stores_items_and_tags(session_factory):
    async with session_factory() as session:
        await SourcesRepo(session).set_provider_enabled("google_books", True)
        await ExternalCacheRepo(session).add_tag_override("google_books", "vol-1", mode="faith")

    with patch.object(GoogleBooksClient, "search", AsyncMock(return_value=GOOGLE_BOOKS_PAYLOAD)):
        outcome = await run_provider_sync("google_books", query="mindfulness", session_factory=session_factory)

    assert outcome.disabled is False
    assert outcome.fetched == 1
    assert outcome.upserted == 1
    assert outcome.status == "ok"

    async with session_factory() as session:
        cached = await ExternalCacheRepo(session).get("google_books", "vol-1")
        assert cached.tags.focus == frozenset({"read"})
        assert {"reset", "reflect", "faith"} <= cached.tags.modes
        assert outcome.tag_rows == len(cached.tags.pairs())
        assert cached.topics == ["self-help"]

        [run] = await RunsRepo(session).recent_runs("provider_sync:google_books")
        assert run.status == "ok"


@pytest.mark.anyio
async def test_sync_records_provider_failure(session_factory):
    async with session_factory() as session:
        await SourcesRepo(session).set_provider_enabled("open_library", True)

    failure = ProviderHTTPError("open_library", "HTTP 503", status_code=503)
    with patch.object(OpenLibraryClient, "search", AsyncMock(side_effect=failure)):
        outcome = await run_provider_sync("open_library", session_factory=session_factory)

    assert outcome.error == "open_library: HTTP 503"
    assert outcome.status == "failed"

    async with session_factory() as session:
        [run] = await RunsRepo(session).recent_runs()
        assert run.status == "failed"
        assert await ExternalCacheRepo(session).count() == 0


@pytest.mark.anyio
async def test_sync_unknown_provider():
    with pytest.raises(KeyError):
        await run_provider_sync("myspace")


# Adapters

@pytest.mark.anyio
async def test_adapter_disabled_result():
    provider = GoogleBooksProvider(_enabled(False), client=AsyncMock(spec=GoogleBooksClient))

    assert await provider.fetch_result("q", 5) == Disabled(provider="google_books")
    assert await provider.fetch("q", 5) == []
    provider._client.search.assert_not_awaited()


@pytest.mark.anyio
async def test_adapter_failure_result():
    client = AsyncMock(spec=TMDBClient)
    client.fetch_popular.side_effect = TMDBError("Invalid API key", status_code=401)
    provider = TMDBProvider(_enabled(True), client=client)

    result = await provider.fetch_result(None, 10)

    assert isinstance(result, ProviderFailure)
    assert result.message == "Invalid API key"
    assert await provider.fetch(None, 10) == []


@pytest.mark.anyio
async def test_tmdb_adapter_interleaves_movies_and_shows():
    client = AsyncMock(spec=TMDBClient)

    async def fetch_popular(media_type, page=1):
        if media_type == "movie":
            return {"results": [{"id": 1, "title": "M1"}, {"id": 2, "title": "M2"}, {"id": 3, "title": "M3"}]}
        return {"results": [{"id": 10, "name": "T1"}]}

    client.fetch_popular.side_effect = fetch_popular
    provider = TMDBProvider(_enabled(True), client=client)

    result = await provider.fetch_result(None, 3)

    assert isinstance(result, Success)
    assert [i.provider_id for i in result.items] == ["movie:1", "tv:10", "movie:2"]


@pytest.mark.anyio
async def test_tmdb_adapter_search_with_query():
    client = AsyncMock(spec=TMDBClient)
    client.search.return_value = {"results": []}
    provider = TMDBProvider(_enabled(True), client=client)

    assert await provider.fetch("calm", 5) == []
    client.search.assert_any_await("movie", "calm")
    client.search.assert_any_await("tv", "calm")
    client.fetch_popular.assert_not_awaited()


@pytest.mark.anyio
async def test_adapter_skips_non_object_records():
    client = AsyncMock(spec=TMDBClient)
    client.fetch_popular.return_value = {"results": ["oops", None, {"id": 5, "title": "Kept"}]}
    provider = TMDBProvider(_enabled(True), client=client)

    items = await provider.fetch(None, 10)

    assert [i.provider_id for i in items] == ["movie:5", "tv:5"]


@pytest.mark.anyio
async def test_adapter_unexpected_error_becomes_failure():
    client = AsyncMock(spec=GoogleBooksClient)
    client.search.return_value = ["not", "an", "object"]
    provider = GoogleBooksProvider(_enabled(True), client=client)

    result = await provider.fetch_result("calm", 5)

    assert isinstance(result, ProviderFailure)
    assert result.message.startswith("AttributeError")
    assert await provider.fetch("calm", 5) == []


def test_build_provider_unknown():
    with pytest.raises(KeyError):
        build_provider("myspace", _enabled(True))


# TMDB client

@pytest.mark.anyio
async def test_tmdb_client_retries_on_429():
    """Test that TMDB client retries on 429 rate limit."""
    client = TMDBClient(bearer_token="test_token")

    mock_response_429 = MagicMock()
    mock_response_429.status_code = 429
    mock_response_429.headers = {"Retry-After": "1"}

    mock_response_ok = MagicMock()
    mock_response_ok.status_code = 200
    mock_response_ok.json.return_value = {"results": []}

    call_count = 0

    async def mock_request(*args, **kwargs):
        nonlocal call_count
        call_count += 1
        if call_count < 3:
            return mock_response_429
        return mock_response_ok

    with patch.object(client, "_get_client") as mock_get_client, patch(
        "kivaw.providers.tmdb_client.asyncio.sleep", new=AsyncMock()
    ) as mock_sleep:
        mock_http_client = AsyncMock()
        mock_http_client.request = mock_request
        mock_get_client.return_value = mock_http_client

        result = await client._request("/movie/popular")
        assert result == {"results": []}
        assert call_count == 3
        mock_sleep.assert_awaited_with(1)

    await client.close()


@pytest.mark.anyio
async def test_tmdb_client_rate_limit_exhausted():
    client = TMDBClient(bearer_token="test_token", max_retries=2)

    mock_response = MagicMock()
    mock_response.status_code = 429
    mock_response.headers = {}

    with patch.object(client, "_get_client") as mock_get_client, patch(
        "kivaw.providers.tmdb_client.asyncio.sleep", new=AsyncMock()
    ):
        mock_http_client = AsyncMock()
        mock_http_client.request.return_value = mock_response
        mock_get_client.return_value = mock_http_client

        with pytest.raises(TMDBRateLimitError):
            await client._request("/movie/popular")

        assert mock_http_client.request.await_count == 2


@pytest.mark.anyio
async def test_tmdb_client_fails_fast_on_4xx():
    client = TMDBClient(bearer_token="test_token")

    mock_response = MagicMock()
    mock_response.status_code = 404
    mock_response.content = b'{"status_message": "Not found"}'
    mock_response.json.return_value = {"status_message": "Not found"}

    with patch.object(client, "_get_client") as mock_get_client:
        mock_http_client = AsyncMock()
        mock_http_client.request.return_value = mock_response
        mock_get_client.return_value = mock_http_client

        with pytest.raises(TMDBError) as exc_info:
            await client._request("/movie/0")

        assert exc_info.value.status_code == 404
        assert mock_http_client.request.await_count == 1


@pytest.mark.anyio
async def test_tmdb_client_retries_transport_errors():
    client = TMDBClient(bearer_token="test_token", max_retries=2)

    with patch.object(client, "_get_client") as mock_get_client, patch(
        "kivaw.providers.tmdb_client.asyncio.sleep", new=AsyncMock()
    ):
        mock_http_client = AsyncMock()
        mock_http_client.request.side_effect = httpx.ConnectTimeout("timed out")
        mock_get_client.return_value = mock_http_client

        with pytest.raises(TMDBError, match="Max retries exceeded"):
            await client._request("/movie/popular")


def test_genre_ids_to_names():
    assert genre_ids_to_names([18, "35", 999999, None]) == ["Drama", "Comedy"]


# Books client

@pytest.mark.anyio
async def test_google_books_client_errors():
    client = GoogleBooksClient(api_key="key")

    mock_response = MagicMock()
    mock_response.status_code = 403

    with patch.object(client, "_get_client") as mock_get_client:
        mock_http_client = AsyncMock()
        mock_http_client.get.return_value = mock_response
        mock_get_client.return_value = mock_http_client

        with pytest.raises(ProviderHTTPError) as exc_info:
            await client.search("calm", max_results=100)

        assert exc_info.value.status_code == 403
        params = mock_http_client.get.await_args.kwargs["params"]
        assert params["maxResults"] == 40
        assert params["key"] == "key"
