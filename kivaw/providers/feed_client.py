"""Feed fetching (httpx), parsing (feedparser) and article meta lookup (BeautifulSoup)."""

from typing import Any

import feedparser
import httpx
from bs4 import BeautifulSoup

from kivaw.content.text import clean_html_text
from kivaw.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = "KivawFeedBot/1.0 (+https://kivaw.com)"
DEFAULT_TIMEOUT = 15.0
MAX_PAGE_BYTES = 512 * 1024

_DESCRIPTION_KEYS = ("og:description", "twitter:description", "description")


class FeedFetchError(Exception):
    """A feed could not be downloaded or parsed."""


def extract_meta_description(page_html: str) -> str | None:
    """Return the page's og/twitter/plain description meta content, in that order."""
    soup = BeautifulSoup(page_html, "html.parser")
    found: dict[str, str] = {}
    for tag in soup.find_all("meta"):
        key = (tag.get("property") or tag.get("name") or "").strip().lower()
        content = (tag.get("content") or "").strip()
        if key in _DESCRIPTION_KEYS and content and key not in found:
            found[key] = content

    for key in _DESCRIPTION_KEYS:
        if key in found:
            return clean_html_text(found[key])
    return None


class FeedClient:
    """Downloads feeds and article pages."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, backfill_timeout: float = 5.0):
        self.timeout = timeout
        self.backfill_timeout = backfill_timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def fetch_feed(self, url: str) -> list[dict[str, Any]]:
        """Download and parse a feed.

        Args:
            url: Feed URL

        Returns:
            feedparser entries

        Raises:
            FeedFetchError: On transport errors, non-200 responses or unparseable feeds
        """
        client = await self._get_client()
        try:
            response = await client.get(
                url,
                headers={"Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml"},
            )
        except httpx.HTTPError as e:
            raise FeedFetchError(f"request failed: {e!r}") from e

        if response.status_code != 200:
            raise FeedFetchError(f"HTTP {response.status_code}")

        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            raise FeedFetchError(f"unparseable feed: {parsed.get('bozo_exception')!r}")

        return list(parsed.entries)

    async def fetch_page_description(self, url: str) -> str | None:
        """Best-effort article description, or None on any fetch problem."""
        client = await self._get_client()
        try:
            response = await client.get(
                url,
                timeout=self.backfill_timeout,
                headers={"Accept": "text/html"},
            )
        except httpx.HTTPError as e:
            logger.debug(f"Summary backfill failed for {url}: {e!r}")
            return None

        if response.status_code != 200 or "html" not in response.headers.get("content-type", ""):
            return None

        return extract_meta_description(response.text[:MAX_PAGE_BYTES])
