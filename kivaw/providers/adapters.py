"""Provider adapters returning explicit Disabled / ProviderFailure / Success results."""

from collections.abc import Awaitable, Callable

import httpx

from kivaw.config import config
from kivaw.content.normalizers import (
    normalize_batch,
    normalize_google_book,
    normalize_open_library,
    normalize_tmdb,
)
from kivaw.core.contracts import (
    Disabled,
    NormalizedContentItem,
    ProviderFailure,
    ProviderResult,
    Success,
)
from kivaw.logging import get_logger
from kivaw.providers.books_client import GoogleBooksClient, OpenLibraryClient, ProviderHTTPError
from kivaw.providers.tmdb_client import TMDBClient, TMDBError

logger = get_logger(__name__)

MIN_LIMIT = 1
MAX_LIMIT = 40
DEFAULT_BOOK_QUERY = "subject:self-help"

EnabledCheck = Callable[[str], Awaitable[bool]]

# Failures an adapter turns into ProviderFailure instead of raising
PROVIDER_ERRORS = (TMDBError, ProviderHTTPError, httpx.HTTPError, ValueError)


def clamp_limit(limit: int | None, default: int = 20) -> int:
    if limit is None:
        return default
    return max(MIN_LIMIT, min(int(limit), MAX_LIMIT))


class ProviderAdapter:
    """Base adapter: checks the provider switch, fetches, normalizes.

    Subclasses implement `_fetch_items`.
    """

    name = "provider"

    def __init__(self, is_enabled: EnabledCheck):
        self._is_enabled = is_enabled

    async def _fetch_items(self, query: str | None, limit: int) -> list[NormalizedContentItem]:
        raise NotImplementedError

    async def close(self) -> None:
        """Release HTTP resources."""

    async def fetch_result(self, query: str | None = None, limit: int | None = None) -> ProviderResult:
        """Fetch items and report the outcome as one explicit variant."""
        if not await self._is_enabled(self.name):
            return Disabled(provider=self.name)

        try:
            items = await self._fetch_items(query, clamp_limit(limit))
        except PROVIDER_ERRORS as e:
            return ProviderFailure(provider=self.name, message=str(e) or type(e).__name__)
        except Exception as e:
            logger.exception(f"Unexpected error from provider {self.name}: {e}")
            return ProviderFailure(provider=self.name, message=f"{type(e).__name__}: {e}")

        return Success(provider=self.name, items=tuple(items))

    async def fetch(self, query: str | None = None, limit: int | None = None) -> list[NormalizedContentItem]:
        """Fetch items; disabled and failed providers yield an empty list."""
        result = await self.fetch_result(query, limit)

        if isinstance(result, Success):
            return list(result.items)
        if isinstance(result, Disabled):
            logger.warning(f"Provider {self.name} is disabled, returning no items")
            return []
        if isinstance(result, ProviderFailure):
            logger.error(f"Provider {self.name} failed: {result.message}")
            return []

        raise TypeError(f"Unexpected provider result: {result!r}")


class TMDBProvider(ProviderAdapter):
    """Movies and TV from TMDB: search when a query is given, popular otherwise."""

    name = "tmdb"

    def __init__(self, is_enabled: EnabledCheck, client: TMDBClient | None = None):
        super().__init__(is_enabled)
        self._client = client

    def _get_client(self) -> TMDBClient:
        if self._client is None:
            if not config.tmdb_bearer_token:
                raise ValueError("TMDB_BEARER_TOKEN not configured")
            self._client = TMDBClient(
                bearer_token=config.tmdb_bearer_token,
                language=config.tmdb_language,
                timeout=config.provider_timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def _fetch_items(self, query: str | None, limit: int) -> list[NormalizedContentItem]:
        client = self._get_client()
        items: list[NormalizedContentItem] = []

        for media_type in ("movie", "tv"):
            if query:
                response = await client.search(media_type, query)
            else:
                response = await client.fetch_popular(media_type)
            items.extend(
                normalize_batch(normalize_tmdb, response.get("results") or [], media_type=media_type)
            )

        # Interleave movies and shows before truncating
        movies = [i for i in items if i.provider_id.startswith("movie:")]
        shows = [i for i in items if i.provider_id.startswith("tv:")]
        mixed = [i for pair in zip(movies, shows) for i in pair]
        mixed.extend(movies[len(shows):] or shows[len(movies):])
        return mixed[:limit]


class GoogleBooksProvider(ProviderAdapter):
    """Books from the Google Books volumes API."""

    name = "google_books"

    def __init__(self, is_enabled: EnabledCheck, client: GoogleBooksClient | None = None):
        super().__init__(is_enabled)
        self._client = client or GoogleBooksClient(
            api_key=config.google_books_api_key,
            timeout=config.provider_timeout_seconds,
        )

    async def close(self) -> None:
        await self._client.close()

    async def _fetch_items(self, query: str | None, limit: int) -> list[NormalizedContentItem]:
        response = await self._client.search(query or DEFAULT_BOOK_QUERY, max_results=limit)
        return normalize_batch(normalize_google_book, response.get("items") or [])[:limit]


class OpenLibraryProvider(ProviderAdapter):
    """Books from the Open Library search API."""

    name = "open_library"

    def __init__(self, is_enabled: EnabledCheck, client: OpenLibraryClient | None = None):
        super().__init__(is_enabled)
        self._client = client or OpenLibraryClient(timeout=config.provider_timeout_seconds)

    async def close(self) -> None:
        await self._client.close()

    async def _fetch_items(self, query: str | None, limit: int) -> list[NormalizedContentItem]:
        response = await self._client.search(query or "mindfulness", limit=limit)
        return normalize_batch(normalize_open_library, response.get("docs") or [])[:limit]


PROVIDERS: dict[str, type[ProviderAdapter]] = {
    TMDBProvider.name: TMDBProvider,
    GoogleBooksProvider.name: GoogleBooksProvider,
    OpenLibraryProvider.name: OpenLibraryProvider,
}


def build_provider(name: str, is_enabled: EnabledCheck) -> ProviderAdapter:
    """Instantiate the adapter registered under `name`.

    Raises:
        KeyError: If no adapter is registered for `name`
    """
    return PROVIDERS[name](is_enabled)
