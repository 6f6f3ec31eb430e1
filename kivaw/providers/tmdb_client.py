"""TMDB API client with retry logic."""

import asyncio
from typing import Any, Literal

import httpx

from kivaw.logging import get_logger

logger = get_logger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
DEFAULT_TIMEOUT = 9.0
MAX_RETRIES = 3
BASE_BACKOFF = 1.0

MediaType = Literal["movie", "tv"]

# Combined movie + TV genre map (TMDB genre IDs -> English names)
TMDB_GENRE_MAP: dict[int, str] = {
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Science Fiction",
    10770: "TV Movie",
    53: "Thriller",
    10752: "War",
    37: "Western",
    # TV-specific
    10759: "Action & Adventure",
    10762: "Kids",
    10763: "News",
    10764: "Reality",
    10765: "Sci-Fi & Fantasy",
    10766: "Soap",
    10767: "Talk",
    10768: "War & Politics",
}


def genre_ids_to_names(genre_ids: list[Any]) -> list[str]:
    """Map TMDB genre ids to names, ignoring unknown ids."""
    names = []
    for genre_id in genre_ids:
        try:
            name = TMDB_GENRE_MAP.get(int(genre_id))
        except (TypeError, ValueError):
            continue
        if name:
            names.append(name)
    return names


class TMDBError(Exception):
    """Base exception for TMDB API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TMDBRateLimitError(TMDBError):
    """Rate limit exceeded."""

    def __init__(self, retry_after: int | None = None):
        super().__init__("Rate limit exceeded", status_code=429)
        self.retry_after = retry_after


class TMDBClient:
    """Async TMDB API client.

    Rate limits (429) and server errors are retried with exponential
    backoff up to `max_retries` attempts; other 4xx responses fail fast.
    """

    def __init__(
        self,
        bearer_token: str,
        language: str = "en-US",
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
    ):
        self.bearer_token = bearer_token
        self.language = language
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=TMDB_BASE_URL,
                headers={
                    "Authorization": f"Bearer {self.bearer_token}",
                    "Accept": "application/json",
                },
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _backoff(self, attempt: int) -> float:
        return BASE_BACKOFF * (2 ** attempt)

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET a TMDB path, retrying transient failures.

        Args:
            path: API path (e.g., "/movie/popular")
            params: Query parameters

        Returns:
            Parsed JSON response

        Raises:
            TMDBError: On API error after retries exhausted
        """
        client = await self._get_client()
        params = dict(params or {})
        params.setdefault("language", self.language)

        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            is_last = attempt == self.max_retries - 1
            try:
                response = await client.request("GET", path, params=params)
            except (httpx.TimeoutException, httpx.RequestError) as e:
                last_error = e
                logger.warning(
                    f"TMDB request to {path} failed: {e!r} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                if not is_last:
                    await asyncio.sleep(self._backoff(attempt))
                continue

            if response.status_code == 200:
                return response.json()

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                if is_last:
                    raise TMDBRateLimitError(retry_after=int(retry_after) if retry_after else None)
                wait_time = int(retry_after) if retry_after else self._backoff(attempt)
                logger.warning(
                    f"TMDB rate limited, retry after {wait_time}s "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(wait_time)
                continue

            if response.status_code >= 500:
                if is_last:
                    raise TMDBError(
                        f"Server error: {response.status_code}",
                        status_code=response.status_code,
                    )
                logger.warning(
                    f"TMDB server error {response.status_code} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(self._backoff(attempt))
                continue

            error_data = response.json() if response.content else {}
            error_msg = error_data.get("status_message", f"HTTP {response.status_code}")
            raise TMDBError(error_msg, status_code=response.status_code)

        raise TMDBError(f"Max retries exceeded: {last_error}")

    async def fetch_popular(self, media_type: MediaType, page: int = 1) -> dict[str, Any]:
        """Fetch one page of popular movies or TV shows."""
        return await self._request(f"/{media_type}/popular", params={"page": page})

    async def fetch_trending(
        self,
        media_type: MediaType,
        time_window: Literal["day", "week"] = "week",
        page: int = 1,
    ) -> dict[str, Any]:
        """Fetch one page of trending movies or TV shows."""
        return await self._request(f"/trending/{media_type}/{time_window}", params={"page": page})

    async def search(self, media_type: MediaType, query: str, page: int = 1) -> dict[str, Any]:
        """Search movies or TV shows by free text."""
        return await self._request(
            f"/search/{media_type}",
            params={"query": query, "page": page, "include_adult": "false"},
        )
