"""Content text cleanup and provider normalization."""

from kivaw.content.text import clean_html_text, clean_text, pick_first, strip_html, truncate

__all__ = [
    "clean_html_text",
    "clean_text",
    "pick_first",
    "strip_html",
    "truncate",
]
