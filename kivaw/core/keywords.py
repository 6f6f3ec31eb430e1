"""Frequency-based keyword extraction used when categorical tags are sparse."""

import re
from collections import Counter

from kivaw.content.text import strip_html

STOPWORDS: frozenset[str] = frozenset(
    {
        # articles, conjunctions, prepositions
        "the", "a", "an", "and", "or", "but", "nor", "yet", "in", "on", "at",
        "to", "for", "of", "with", "by", "from", "as", "into", "onto", "upon",
        "about", "above", "across", "after", "against", "along", "among",
        "around", "before", "behind", "below", "beneath", "beside", "between",
        "beyond", "during", "except", "inside", "near", "outside", "through",
        "throughout", "toward", "towards", "underneath", "within", "without",
        "via", "per", "since", "until", "while",
        # auxiliaries and modals
        "is", "was", "are", "were", "be", "been", "being", "have", "has",
        "had", "do", "does", "did", "will", "would", "could", "should", "may",
        "might", "must", "can", "shall",
        # pronouns and determiners
        "i", "you", "he", "she", "we", "me", "him", "her", "us", "it", "its",
        "they", "them", "their", "theirs", "our", "ours", "your", "yours",
        "his", "hers", "my", "mine", "this", "that", "these", "those",
        "what", "which", "who", "whom", "whose",
        # adverbs and quantifiers
        "when", "where", "why", "how", "all", "each", "every", "some", "any",
        "no", "not", "only", "just", "more", "most", "very", "too", "so",
        "than", "then", "there", "here", "up", "down", "out", "off", "over",
        "under", "again", "further", "once", "twice", "also", "even", "still",
        "such", "own", "same", "other", "both", "few", "many", "much", "now",
        # common feed boilerplate
        "new", "get", "got", "one", "two", "like",
    }
)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def tokenize(text: str) -> list[str]:
    """Lowercased alphanumeric tokens of at least three characters, minus stopwords."""
    words = strip_html(text).lower().split()
    tokens = []
    for word in words:
        token = _NON_ALNUM_RE.sub("", word)
        if len(token) >= 3 and token not in STOPWORDS:
            tokens.append(token)
    return tokens


def extract_keywords(text: str | None, max_keywords: int = 5) -> list[str]:
    """Extract the most frequent meaningful words from free text.

    Ties in frequency are broken alphabetically. Results are normalized
    tags, deduplicated, at most `max_keywords` long.

    Args:
        text: Free text, may contain markup
        max_keywords: Maximum number of keywords to return

    Returns:
        Normalized keyword tags
    """
    from kivaw.core.tagging import normalize_tags

    if not text or max_keywords <= 0:
        return []

    counts = Counter(tokenize(text))
    ranked = sorted(counts.items(), key=lambda pair: (-pair[1], pair[0]))
    return normalize_tags(word for word, _ in ranked[:max_keywords])
