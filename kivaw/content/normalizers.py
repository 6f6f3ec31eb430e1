"""Provider payload normalization.

Each provider family has one normalizer turning a raw record into a
`NormalizedContentItem` (or a `FeedEntry` for syndicated feeds). Records
without identity fields raise `NormalizationError`; batch helpers skip and
log those so one bad record never sinks a batch.
"""

import calendar
import hashlib
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from kivaw.content.text import clean_html_text, clean_text, pick_first, truncate
from kivaw.core.contracts import ContentType, NormalizedContentItem, TagResult
from kivaw.core.scoring import parse_timestamp
from kivaw.core.tagging import classify, derive_book_tags, derive_feed_tags, derive_tmdb_tags
from kivaw.logging import get_logger
from kivaw.providers.tmdb_client import genre_ids_to_names

logger = get_logger(__name__)

TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w500"
TMDB_WEB_BASE_URL = "https://www.themoviedb.org"
OPEN_LIBRARY_BASE_URL = "https://openlibrary.org"
OPEN_LIBRARY_COVER_URL = "https://covers.openlibrary.org/b/id/{cover_id}-L.jpg"

FEED_SUMMARY_MAX_CHARS = 1200
GOOGLE_BOOKS_COVER_PREFERENCE = (
    "extraLarge", "large", "medium", "small", "thumbnail", "smallThumbnail",
)

_OL_WORK_RE = re.compile(r"^OL\d+W$")
_OL_EDITION_RE = re.compile(r"^OL\d+M$")


class NormalizationError(ValueError):
    """Raised when a provider record lacks the fields needed to identify it."""


@dataclass
class FeedEntry:
    """A normalized syndicated-feed entry."""

    identity: str
    feed_url: str
    raw_id: str
    title: str
    url: str | None = None
    summary: str | None = None
    author: str | None = None
    image_url: str | None = None
    published_at: datetime | None = None
    categories: list[str] = field(default_factory=list)

    def to_content_item(self) -> NormalizedContentItem:
        """Cache representation of the entry, so feed content is recommendable."""
        return NormalizedContentItem(
            provider="rss",
            provider_id=self.identity,
            type=ContentType.READ.value,
            title=self.title,
            description=self.summary,
            image_url=self.image_url,
            url=self.url,
            raw={
                "feed_url": self.feed_url,
                "raw_id": self.raw_id,
                "author": self.author,
                "published_at": self.published_at.isoformat() if self.published_at else None,
                "categories": self.categories,
            },
        )


@dataclass
class TaggedItem:
    """A normalized item with its inferred labels and topical tags."""

    item: NormalizedContentItem
    tags: TagResult
    topics: list[str] = field(default_factory=list)


def _require_mapping(record: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(record, Mapping):
        raise NormalizationError(f"{what} is not an object: {type(record).__name__}")
    return record


def _is_http_url(value: Any) -> bool:
    return isinstance(value, str) and value.lower().startswith(("http://", "https://"))


def feed_identity(feed_url: str, raw_id: str) -> str:
    """Stable identity hash of a feed entry within its feed."""
    return hashlib.sha1(f"rss:{feed_url}:{raw_id}".encode("utf-8")).hexdigest()


# ------------------------------------------------------------------
# Feeds
# ------------------------------------------------------------------

def _struct_time_to_datetime(value: Any) -> datetime | None:
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _entry_published(entry: Mapping[str, Any]) -> datetime | None:
    """Validated publish time, or None. Never substitutes the current time."""
    for parsed_field in ("published_parsed", "updated_parsed"):
        value = entry.get(parsed_field)
        if value:
            parsed = _struct_time_to_datetime(value)
            if parsed is not None:
                return parsed

    for text_field in ("published", "updated", "pubDate"):
        parsed = parse_timestamp(entry.get(text_field))
        if parsed is not None:
            return parsed
    return None


def _entry_summary(entry: Mapping[str, Any]) -> str | None:
    content = entry.get("content")
    if isinstance(content, list):
        for block in content:
            value = block.get("value") if isinstance(block, Mapping) else None
            if value:
                return clean_html_text(value)

    for text_field in ("summary", "description"):
        value = pick_first(entry.get(text_field))
        if value:
            return clean_html_text(value)
    return None


def _entry_image(entry: Mapping[str, Any]) -> str | None:
    for media_field in ("media_thumbnail", "media_content"):
        for media in entry.get(media_field) or []:
            if not isinstance(media, Mapping):
                continue
            media_type = str(media.get("type") or media.get("medium") or "image")
            if "image" in media_type and _is_http_url(media.get("url")):
                return media["url"]

    for enclosure in entry.get("enclosures") or []:
        if not isinstance(enclosure, Mapping):
            continue
        url = enclosure.get("href") or enclosure.get("url")
        if str(enclosure.get("type") or "").startswith("image/") and _is_http_url(url):
            return url
    return None


def _entry_author(entry: Mapping[str, Any]) -> str | None:
    author = pick_first(entry.get("author"))
    if not author:
        detail = entry.get("author_detail")
        if isinstance(detail, Mapping):
            author = detail.get("name")
    return clean_text(author) if author else None


def _entry_categories(entry: Mapping[str, Any]) -> list[str]:
    categories = []
    for tag in entry.get("tags") or []:
        term = tag.get("term") if isinstance(tag, Mapping) else tag
        if term:
            categories.append(str(term))
    category = entry.get("category")
    if isinstance(category, str) and category and category not in categories:
        categories.append(category)
    return categories


def normalize_feed_entry(entry: Mapping[str, Any], feed_url: str) -> FeedEntry:
    """Normalize one feedparser entry (RSS or Atom).

    Args:
        entry: feedparser entry dict
        feed_url: URL of the feed the entry came from

    Returns:
        FeedEntry; `published_at` is None when the entry has no valid date

    Raises:
        NormalizationError: If the entry has no guid, id or link
    """
    entry = _require_mapping(entry, "Feed entry")
    link = pick_first(entry.get("link"))
    raw_id = pick_first(entry.get("id")) or pick_first(entry.get("guid")) or link
    if not raw_id:
        raise NormalizationError(f"Feed entry without guid/id/link in {feed_url}")

    raw_id = str(raw_id).strip()
    summary = truncate(_entry_summary(entry), FEED_SUMMARY_MAX_CHARS)

    return FeedEntry(
        identity=feed_identity(feed_url, raw_id),
        feed_url=feed_url,
        raw_id=raw_id,
        title=clean_html_text(pick_first(entry.get("title"))) or "Untitled",
        url=link if _is_http_url(link) else None,
        summary=summary,
        author=_entry_author(entry),
        image_url=_entry_image(entry),
        published_at=_entry_published(entry),
        categories=_entry_categories(entry),
    )


# ------------------------------------------------------------------
# Movies and TV
# ------------------------------------------------------------------

def normalize_tmdb(record: Mapping[str, Any], media_type: str | None = None) -> NormalizedContentItem:
    """Normalize a TMDB movie or TV record.

    Raises:
        NormalizationError: If the record has no id
    """
    record = _require_mapping(record, "TMDB record")
    tmdb_id = record.get("id")
    if tmdb_id in (None, ""):
        raise NormalizationError("TMDB record without id")

    media_type = media_type or record.get("media_type") or "movie"
    if media_type not in ("movie", "tv"):
        raise NormalizationError(f"Unsupported TMDB media type: {media_type}")

    if media_type == "movie":
        title = record.get("title") or record.get("original_title")
    else:
        title = record.get("name") or record.get("original_name")

    poster_path = record.get("poster_path")
    return NormalizedContentItem(
        provider="tmdb",
        provider_id=f"{media_type}:{tmdb_id}",
        type=ContentType.WATCH.value,
        title=clean_text(title) or "Untitled",
        description=clean_html_text(record.get("overview")),
        image_url=f"{TMDB_IMAGE_BASE_URL}{poster_path}" if poster_path else None,
        url=f"{TMDB_WEB_BASE_URL}/{media_type}/{tmdb_id}",
        raw=dict(record),
    )


def tmdb_genre_names(record: Mapping[str, Any]) -> list[str]:
    names = genre_ids_to_names(record.get("genre_ids") or [])
    for genre in record.get("genres") or []:
        if isinstance(genre, Mapping) and genre.get("name"):
            names.append(genre["name"])
    return names


# ------------------------------------------------------------------
# Books
# ------------------------------------------------------------------

def _https(url: str | None) -> str | None:
    if url and url.startswith("http://"):
        return "https://" + url[len("http://"):]
    return url


def normalize_google_book(volume: Mapping[str, Any]) -> NormalizedContentItem:
    """Normalize a Google Books volume.

    Raises:
        NormalizationError: If the volume has no id
    """
    volume = _require_mapping(volume, "Google Books volume")
    volume_id = volume.get("id")
    if not volume_id:
        raise NormalizationError("Google Books volume without id")

    info = volume.get("volumeInfo")
    if not isinstance(info, Mapping):
        info = {}
    image_links = info.get("imageLinks")
    if not isinstance(image_links, Mapping):
        image_links = {}
    image_url = next(
        (image_links[size] for size in GOOGLE_BOOKS_COVER_PREFERENCE if image_links.get(size)),
        None,
    )

    return NormalizedContentItem(
        provider="google_books",
        provider_id=str(volume_id),
        type=ContentType.READ.value,
        title=clean_text(info.get("title")) or "Untitled",
        description=clean_html_text(info.get("description")),
        image_url=_https(image_url),
        url=info.get("infoLink") or info.get("canonicalVolumeLink"),
        raw=dict(volume),
    )


def _open_library_url(key: str) -> str | None:
    if key.startswith(("/works/", "/books/")):
        return f"{OPEN_LIBRARY_BASE_URL}{key}"
    if _OL_WORK_RE.match(key):
        return f"{OPEN_LIBRARY_BASE_URL}/works/{key}"
    if _OL_EDITION_RE.match(key):
        return f"{OPEN_LIBRARY_BASE_URL}/books/{key}"
    return None


def _first_sentence(value: Any) -> str | None:
    if isinstance(value, list):
        value = " ".join(str(v) for v in value if v)
    elif isinstance(value, Mapping):
        value = value.get("value")
    return clean_text(value) if value else None


def normalize_open_library(doc: Mapping[str, Any]) -> NormalizedContentItem:
    """Normalize an Open Library search doc.

    Raises:
        NormalizationError: If the doc has neither a key nor an edition key
    """
    doc = _require_mapping(doc, "Open Library doc")
    key = doc.get("key") or pick_first(doc.get("edition_key"))
    if not key:
        raise NormalizationError("Open Library doc without key or edition_key")
    key = str(key)

    author = pick_first(doc.get("author_name"))
    sentence = _first_sentence(doc.get("first_sentence"))
    if author and sentence:
        description = f"{author}: {sentence}"
    else:
        description = sentence or (f"by {author}" if author else None)

    cover_id = doc.get("cover_i")
    return NormalizedContentItem(
        provider="open_library",
        provider_id=key,
        type=ContentType.READ.value,
        title=clean_text(doc.get("title")) or "Untitled",
        description=description,
        image_url=OPEN_LIBRARY_COVER_URL.format(cover_id=cover_id) if cover_id else None,
        url=_open_library_url(key),
        raw=dict(doc),
    )


# ------------------------------------------------------------------
# Batches
# ------------------------------------------------------------------

def normalize_batch(
    normalizer: Callable[..., NormalizedContentItem],
    records: Iterable[Mapping[str, Any]],
    **kwargs: Any,
) -> list[NormalizedContentItem]:
    """Normalize records, skipping (and logging) malformed ones."""
    items = []
    for record in records:
        try:
            items.append(normalizer(record, **kwargs))
        except NormalizationError as e:
            logger.warning(f"Skipping malformed record: {e}")
    return items


def tag_item(item: NormalizedContentItem, overrides: TagResult | None = None) -> TaggedItem:
    """Classify a normalized item and derive its topical tags."""
    if item.provider == "tmdb":
        genres = tmdb_genre_names(item.raw)
        return TaggedItem(
            item=item,
            tags=classify(item, genres=genres, overrides=overrides),
            topics=derive_tmdb_tags(item.raw, genres),
        )

    if item.provider in ("google_books", "open_library"):
        topics = derive_book_tags(item.raw)
        return TaggedItem(
            item=item,
            tags=classify(item, categories=topics, overrides=overrides),
            topics=topics,
        )

    categories = item.raw.get("categories") or []
    return TaggedItem(
        item=item,
        tags=classify(item, categories=categories, overrides=overrides),
        topics=derive_feed_tags(categories, item.title, item.description),
    )


PAYLOAD_RECORDS: dict[str, tuple[str, Callable[..., NormalizedContentItem]]] = {
    "tmdb": ("results", normalize_tmdb),
    "google_books": ("items", normalize_google_book),
    "open_library": ("docs", normalize_open_library),
}


def ingest_payload(
    provider: str,
    payload: Mapping[str, Any],
    media_type: str | None = None,
) -> list[TaggedItem]:
    """Normalize and classify a raw provider response.

    Args:
        provider: Provider name (tmdb, google_books, open_library)
        payload: Raw JSON response
        media_type: TMDB media type when records don't carry one

    Returns:
        Tagged items, malformed records skipped

    Raises:
        ValueError: If the provider is unknown
    """
    if provider not in PAYLOAD_RECORDS:
        raise ValueError(f"Unknown provider: {provider}")

    records_key, normalizer = PAYLOAD_RECORDS[provider]
    records = payload.get(records_key) or []
    kwargs = {"media_type": media_type} if provider == "tmdb" and media_type else {}

    items = normalize_batch(normalizer, records, **kwargs)
    return [tag_item(item) for item in items]
