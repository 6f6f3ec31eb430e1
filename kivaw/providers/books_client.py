"""Google Books and Open Library HTTP clients."""

from typing import Any

import httpx

from kivaw.logging import get_logger

logger = get_logger(__name__)

GOOGLE_BOOKS_URL = "https://www.googleapis.com/books/v1/volumes"
OPEN_LIBRARY_SEARCH_URL = "https://openlibrary.org/search.json"
DEFAULT_TIMEOUT = 9.0
GOOGLE_BOOKS_MAX_RESULTS = 40
OPEN_LIBRARY_FIELDS = (
    "key,title,author_name,first_sentence,cover_i,edition_key,subject,"
    "ratings_average,ratings_count,first_publish_year"
)


class ProviderHTTPError(Exception):
    """A provider HTTP call failed or returned an unusable response."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class _JSONClient:
    """Single-attempt JSON GET client shared by the book providers."""

    provider = "http"

    def __init__(self, timeout: float = DEFAULT_TIMEOUT):
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str, params: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.get(url, params=params)
        except httpx.TimeoutException:
            raise ProviderHTTPError(self.provider, f"timed out after {self.timeout}s")
        except httpx.RequestError as e:
            raise ProviderHTTPError(self.provider, f"request failed: {e!r}")

        if response.status_code != 200:
            raise ProviderHTTPError(
                self.provider,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            raise ProviderHTTPError(self.provider, "response is not valid JSON")

        if not isinstance(data, dict):
            raise ProviderHTTPError(self.provider, "unexpected response shape")
        return data


class GoogleBooksClient(_JSONClient):
    """Google Books volumes search."""

    provider = "google_books"

    def __init__(self, api_key: str | None = None, timeout: float = DEFAULT_TIMEOUT):
        super().__init__(timeout=timeout)
        self.api_key = api_key

    async def search(self, query: str, max_results: int = 20) -> dict[str, Any]:
        """Search volumes; `max_results` is clamped to the API's 1-40 range."""
        params: dict[str, Any] = {
            "q": query,
            "maxResults": max(1, min(max_results, GOOGLE_BOOKS_MAX_RESULTS)),
            "printType": "books",
        }
        if self.api_key:
            params["key"] = self.api_key
        return await self._get_json(GOOGLE_BOOKS_URL, params)


class OpenLibraryClient(_JSONClient):
    """Open Library search API."""

    provider = "open_library"

    async def search(self, query: str, limit: int = 20) -> dict[str, Any]:
        return await self._get_json(
            OPEN_LIBRARY_SEARCH_URL,
            {"q": query, "limit": max(1, limit), "fields": OPEN_LIBRARY_FIELDS},
        )
