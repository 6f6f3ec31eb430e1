"""Tests for text cleanup and keyword extraction."""

from kivaw.content.text import clean_html_text, clean_text, fix_mojibake, pick_first, strip_html, truncate
from kivaw.core.keywords import extract_keywords, tokenize


def test_clean_html_text_strips_markup_and_entities():
    text = "<p>Tom &amp; Jerry&#39;s <b>great</b> &#x2014; escape</p>"
    assert clean_html_text(text) == "Tom & Jerry's great — escape"


def test_clean_html_text_removes_escaped_markup():
    assert clean_html_text("&lt;em&gt;Quiet&lt;/em&gt; mornings") == "Quiet mornings"


def test_clean_html_text_drops_scripts_and_styles():
    text = "<style>p { color: red }</style>Visible<script>alert('x')</script> text"
    assert clean_html_text(text) == "Visible text"


def test_clean_text_removes_invisible_characters():
    text = "\ufeffHello\u200b world\u200e\x07  again\n"
    assert clean_text(text) == "Hello world again"


def test_clean_text_empty_becomes_none():
    assert clean_text("   \u200b  ") is None
    assert clean_text(None) is None
    assert clean_html_text("<br/>") is None


def test_fix_mojibake():
    assert fix_mojibake("Itâ€™s a cafÃ© â€œclassicâ€\u009d") == "It’s a café “classic”"
    assert fix_mojibake("plain text") == "plain text"


def test_strip_html_keeps_text():
    assert strip_html("<a href='x'>link</a>").split() == ["link"]


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("a long sentence here", 7) == "a long"
    assert truncate(None, 5) is None


def test_pick_first():
    assert pick_first(["", None, "value", "other"]) == "value"
    assert pick_first([]) is None
    assert pick_first("scalar") == "scalar"
    assert pick_first(None) is None


# Keywords

def test_tokenize_drops_stopwords_and_short_words():
    assert tokenize("The cat and <b>the</b> garden, in June!") == ["cat", "garden", "june"]


def test_extract_keywords_by_frequency_then_alphabetical():
    text = "river stone river forest stone river bird"
    assert extract_keywords(text, 3) == ["river", "stone", "bird"]


def test_extract_keywords_limits_and_empty_input():
    assert len(extract_keywords("alpha beta gamma delta epsilon zeta eta", 5)) == 5
    assert extract_keywords("", 5) == []
    assert extract_keywords(None) == []
    assert extract_keywords("the and with", 5) == []
