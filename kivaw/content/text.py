"""Text cleanup for provider and feed fields."""

import html
import re
from typing import Any

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
# Zero-width characters, bidi marks and isolates, BOM
_INVISIBLE_RE = re.compile("[\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]")
_WHITESPACE_RE = re.compile(r"\s+")

# UTF-8 bytes decoded as cp1252
MOJIBAKE_MAP: dict[str, str] = {
    "â€™": "’",
    "â€˜": "‘",
    "â€œ": "“",
    "â€\u009d": "”",
    "â€“": "–",
    "â€”": "—",
    "â€¦": "…",
    "Ã©": "é",
    "Ã¨": "è",
    "Ã¡": "á",
    "Ã¶": "ö",
    "Ã¼": "ü",
    "Ã±": "ñ",
    "Â ": " ",
}


def strip_html(text: str) -> str:
    """Remove script/style blocks and markup tags, keeping text content."""
    text = _SCRIPT_STYLE_RE.sub(" ", text)
    return _TAG_RE.sub(" ", text)


def fix_mojibake(text: str) -> str:
    for broken, fixed in MOJIBAKE_MAP.items():
        if broken in text:
            text = text.replace(broken, fixed)
    return text


def clean_text(text: str | None) -> str | None:
    """Remove invisible characters and collapse whitespace.

    Returns None when nothing printable is left.
    """
    if text is None:
        return None
    text = _CONTROL_RE.sub(" ", str(text))
    text = _INVISIBLE_RE.sub("", text)
    text = fix_mojibake(text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return text or None


def clean_html_text(text: str | None) -> str | None:
    """Turn an HTML-bearing field into plain display text.

    Markup is stripped, decimal/hex/named entities decoded, control and
    zero-width characters removed and common mojibake repaired.
    """
    if text is None:
        return None
    text = strip_html(str(text))
    text = html.unescape(text)
    # Escaped markup only becomes visible after decoding
    text = strip_html(text)
    return clean_text(text)


def truncate(text: str | None, max_chars: int) -> str | None:
    if text is None or len(text) <= max_chars:
        return text
    return text[:max_chars].rstrip()


def pick_first(value: Any) -> Any:
    """Coalesce a possibly multi-valued field to its first present value.

    Lists and tuples yield their first non-empty element; scalars pass through.
    """
    if isinstance(value, (list, tuple)):
        for element in value:
            if element not in (None, "", [], {}):
                return element
        return None
    return value
