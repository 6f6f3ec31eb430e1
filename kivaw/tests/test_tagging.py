"""Tests for mode/focus classification and tag normalization."""

import pytest

from kivaw.core.contracts import NormalizedContentItem, TagResult
from kivaw.core.tagging import (
    classify,
    derive_book_tags,
    derive_feed_tags,
    derive_tmdb_tags,
    infer_focus,
    infer_modes,
    merge_with_overrides,
    normalize_tag,
    normalize_tags,
)


# Tag normalization

@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Mental Health", "mental-health"),
        ("  self_care  ", "self-care"),
        ("Rock 'n' Roll", "rock-n-roll"),
        ("--Node.js--", "node.js"),
        ("C++", None),
        ("a", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_tag(raw, expected):
    assert normalize_tag(raw) == expected


def test_normalize_tag_output_shape():
    """Normalized tags are lowercase, 2-50 chars and free of separators at the edges."""
    samples = [
        "Hello World",
        "x" * 80,
        "ab" + "-" * 60 + "cd",
        "Ünïcödé Tag",
        "...dots...",
        "tab\tand\nnewline",
        "a" * 49 + " b",
    ]
    for sample in samples:
        tag = normalize_tag(sample)
        if tag is None:
            continue
        assert 2 <= len(tag) <= 50
        assert tag == tag.lower()
        assert not tag.startswith(("-", "."))
        assert not tag.endswith(("-", "."))
        assert all(c.isalnum() or c in "-." for c in tag)


def test_normalize_tag_is_idempotent():
    for sample in ["Mental Health", "x" * 80, "Self__Care!!", "a" * 49 + " b", "Sci-Fi & Fantasy"]:
        once = normalize_tag(sample)
        if once is not None:
            assert normalize_tag(once) == once


def test_normalize_tag_truncation_never_leaves_trailing_hyphen():
    tag = normalize_tag("a" * 49 + " bcd")
    assert tag == "a" * 49


def test_normalize_tags_dedupes_in_order():
    assert normalize_tags(["Health", "health", "Self Care", "x", "self-care"]) == [
        "health",
        "self-care",
    ]
    assert normalize_tags(None) == []


# Focus and mode inference

def test_infer_focus_mapping():
    assert infer_focus("watch") == "watch"
    assert infer_focus("read") == "read"
    assert infer_focus("listen") == "music"
    assert infer_focus("event") == "move"
    assert infer_focus("something-else") == "watch"
    assert infer_focus(None) == "watch"


def test_infer_modes_keyword_hits():
    modes = infer_modes("A calm meditation", "with stunning landscape photography")
    assert "reset" in modes
    assert "beauty" in modes
    assert "reflect" in modes


def test_infer_modes_uses_genres_and_categories():
    assert "faith" in infer_modes("Untitled", None, genres=["Spiritual Drama"])
    assert "logic" in infer_modes("Untitled", None, categories=["Physics"])


def test_infer_modes_never_empty():
    assert infer_modes("Zzz", "qqq") == frozenset({"comfort"})
    assert infer_modes() == frozenset({"comfort"})


# Overrides

def test_merge_with_overrides_is_set_union():
    auto = TagResult(modes=frozenset({"comfort"}), focus=frozenset({"watch"}))
    overrides = TagResult(modes=frozenset({"faith", "comfort"}), focus=frozenset({"reflect"}))

    merged = merge_with_overrides(auto, overrides)

    assert merged.modes == frozenset({"comfort", "faith"})
    assert merged.focus == frozenset({"watch", "reflect"})
    assert auto.modes <= merged.modes
    assert auto.focus <= merged.focus


def test_merge_with_empty_overrides_keeps_auto():
    auto = TagResult(modes=frozenset({"logic"}), focus=frozenset({"read"}))
    assert merge_with_overrides(auto, None) == auto
    assert merge_with_overrides(auto, TagResult(frozenset(), frozenset())) == auto


def test_classify_item():
    item = NormalizedContentItem(
        provider="google_books",
        provider_id="abc",
        type="read",
        title="The Science of Rest",
        description="Research on sleep and recovery",
    )

    tags = classify(item)

    assert tags.focus == frozenset({"read"})
    assert {"logic", "reset", "comfort"} <= tags.modes
    assert ("logic", "read") in tags.pairs()


# Topical tags

def test_derive_feed_tags_prefers_categories():
    tags = derive_feed_tags(["Mental Health", "Sleep", "Habits"], "Title words", "Summary words")
    assert tags == ["mental-health", "sleep", "habits"]


def test_derive_feed_tags_backfills_keywords():
    tags = derive_feed_tags(
        ["Wellness"],
        "Gardening for beginners",
        "Gardening tips: soil, gardening tools and seasonal planting",
    )
    assert tags[0] == "wellness"
    assert "gardening" in tags
    assert len(tags) <= 10


def test_derive_feed_tags_fallback():
    assert derive_feed_tags(None, None, None) == ["rss"]
    assert derive_feed_tags([], "the and of", "") == ["rss"]


def test_derive_feed_tags_accepts_single_string():
    assert derive_feed_tags("Poetry", None, None) == ["poetry"]


def test_derive_tmdb_tags():
    record = {"genres": [{"id": 18, "name": "Drama"}, "Science Fiction"]}
    assert derive_tmdb_tags(record, ["Family"]) == ["family", "drama", "science-fiction"]


def test_derive_book_tags_google_and_open_library():
    google = {"volumeInfo": {"categories": ["Self-Help", "Psychology"]}}
    assert derive_book_tags(google) == ["self-help", "psychology"]

    open_library = {"subject": ["Mindfulness (Psychology)", "Meditation"]}
    assert derive_book_tags(open_library) == ["mindfulness-psychology", "meditation"]
