"""Mode/focus classification and topical tag normalization."""

import re
from collections.abc import Iterable
from typing import Any

from kivaw.core.contracts import ContentType, Focus, Mode, NormalizedContentItem, TagResult
from kivaw.core.keywords import extract_keywords
from kivaw.logging import get_logger

logger = get_logger(__name__)

MAX_TAG_LENGTH = 50
MIN_TAG_LENGTH = 2
MAX_TAGS = 10
MIN_CATEGORY_TAGS = 3
FALLBACK_MODE = Mode.COMFORT.value
FALLBACK_FEED_TAG = "rss"

# Substring keywords per mode, matched against a lowercased haystack
MODE_KEYWORDS: dict[str, tuple[str, ...]] = {
    Mode.RESET.value: (
        "reset", "calm", "peace", "quiet", "zen", "meditation", "mindfulness",
        "relax", "rest", "pause", "break", "breathe", "stillness", "silence",
    ),
    Mode.BEAUTY.value: (
        "beauty", "aesthetic", "art", "visual", "design", "nature", "landscape",
        "photography", "cinematography", "gorgeous", "stunning", "breathtaking",
        "scenic", "picturesque", "elegant", "graceful",
    ),
    Mode.LOGIC.value: (
        "science", "logic", "reason", "analysis", "thinking", "philosophy",
        "theory", "research", "study", "academic", "intellectual", "rational",
        "critical thinking", "problem solving", "mathematics", "physics",
        "engineering",
    ),
    Mode.FAITH.value: (
        "faith", "spiritual", "religion", "prayer", "god", "divine", "sacred",
        "bible", "scripture", "worship", "devotion", "blessing", "grace",
        "salvation", "heaven", "soul", "spirit", "holy",
    ),
    Mode.REFLECT.value: (
        "reflection", "introspection", "self", "awareness", "mindfulness",
        "journal", "diary", "thought", "contemplation", "meditation", "inner",
        "personal", "growth", "development", "insight", "wisdom",
    ),
    Mode.COMFORT.value: (
        "comfort", "cozy", "warm", "safe", "home", "family", "love", "care",
        "support", "healing", "recovery", "nurture", "gentle", "soft", "tender",
        "compassion", "empathy", "kindness", "hug",
    ),
}

TYPE_TO_FOCUS: dict[str, str] = {
    ContentType.WATCH.value: Focus.WATCH.value,
    ContentType.READ.value: Focus.READ.value,
    ContentType.LISTEN.value: Focus.MUSIC.value,
    ContentType.EVENT.value: Focus.MOVE.value,
}

_SEPARATOR_RE = re.compile(r"[\s_]+")
_INVALID_CHARS_RE = re.compile(r"[^a-z0-9\-.]")


def normalize_tag(tag: Any) -> str | None:
    """Normalize a free-form tag to a lowercase slug.

    Whitespace and underscore runs become one hyphen, characters outside
    `[a-z0-9-.]` are dropped, leading/trailing hyphens and dots are trimmed.
    Tags shorter than two characters are rejected; long tags are cut to 50.
    """
    if tag is None:
        return None

    value = str(tag).strip().lower()
    value = _SEPARATOR_RE.sub("-", value)
    value = _INVALID_CHARS_RE.sub("", value)
    # Truncation can expose a trailing separator
    value = value.strip("-.")[:MAX_TAG_LENGTH].strip("-.")

    if len(value) < MIN_TAG_LENGTH:
        return None
    return value


def normalize_tags(tags: Iterable[Any] | None) -> list[str]:
    """Normalize tags, dropping rejects and exact duplicates, keeping order."""
    if not tags:
        return []

    seen: set[str] = set()
    result: list[str] = []
    for tag in tags:
        normalized = normalize_tag(tag)
        if normalized and normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result


def infer_focus(content_type: str | None) -> str:
    """Map a provider content type to its focus; unknown types map to watch."""
    return TYPE_TO_FOCUS.get((content_type or "").lower(), Focus.WATCH.value)


def infer_modes(
    title: str | None = None,
    description: str | None = None,
    genres: Iterable[str] | None = None,
    categories: Iterable[str] | None = None,
) -> frozenset[str]:
    """Infer modes by keyword containment over all text fields.

    Never returns an empty set: with no keyword hit the result is `{comfort}`.
    """
    parts = [title or "", description or ""]
    parts.extend(str(g) for g in genres or ())
    parts.extend(str(c) for c in categories or ())
    haystack = " ".join(parts).lower()

    modes = frozenset(
        mode
        for mode, keywords in MODE_KEYWORDS.items()
        if any(keyword in haystack for keyword in keywords)
    )
    return modes or frozenset({FALLBACK_MODE})


def merge_with_overrides(auto: TagResult, overrides: TagResult | None) -> TagResult:
    """Merge manual overrides into inferred tags.

    Overrides only ever add labels; inferred labels are never removed.
    """
    if overrides is None:
        return auto
    return TagResult(
        modes=auto.modes | overrides.modes,
        focus=auto.focus | overrides.focus,
    )


def classify(
    item: NormalizedContentItem,
    genres: Iterable[str] | None = None,
    categories: Iterable[str] | None = None,
    overrides: TagResult | None = None,
) -> TagResult:
    """Infer the full mode/focus tag set for a normalized item."""
    auto = TagResult(
        modes=infer_modes(item.title, item.description, genres, categories),
        focus=frozenset({infer_focus(item.type)}),
    )
    return merge_with_overrides(auto, overrides)


# ------------------------------------------------------------------
# Topical tags
# ------------------------------------------------------------------

def derive_feed_tags(
    categories: Iterable[str] | str | None,
    title: str | None,
    summary: str | None,
) -> list[str]:
    """Topical tags for a feed entry.

    Categories come first; keywords from title and summary are added when
    fewer than three categories survive normalization.
    """
    if isinstance(categories, str):
        categories = [categories]
    tags = normalize_tags(categories)

    if len(tags) < MIN_CATEGORY_TAGS:
        text = " ".join(part for part in (title, summary) if part)
        tags.extend(extract_keywords(text, 5))

    tags = list(dict.fromkeys(tags))[:MAX_TAGS]
    return tags or [FALLBACK_FEED_TAG]


def derive_tmdb_tags(record: dict[str, Any], genre_names: Iterable[str] | None = None) -> list[str]:
    """Topical tags for a TMDB record from genre names."""
    names: list[str] = list(genre_names or ())
    for genre in record.get("genres") or []:
        if isinstance(genre, dict) and genre.get("name"):
            names.append(genre["name"])
        elif isinstance(genre, str):
            names.append(genre)
    return normalize_tags(names)[:MAX_TAGS]


def derive_book_tags(record: dict[str, Any]) -> list[str]:
    """Topical tags for a book from categories and subjects.

    Accepts Google Books volumes (`volumeInfo.categories`) and Open Library
    docs (`subject`).
    """
    info = record.get("volumeInfo")
    if not isinstance(info, dict):
        info = {}
    raw: list[Any] = []
    for field_value in (
        info.get("categories"),
        record.get("categories"),
        record.get("subject"),
        record.get("subjects"),
    ):
        if isinstance(field_value, list):
            raw.extend(field_value)
        elif field_value:
            raw.append(field_value)
    return normalize_tags(raw)[:MAX_TAGS]
