"""
Term extraction for keyword search.

Turns a free-text question into the ordered set of terms that get sent to
the search capability:

    "How does the TokenCounter truncate text?"
        split   → How, does, the, TokenCounter, truncate, text
        escape  → (no-op here; metacharacters become literal)
        filter  → TokenCounter, truncate, text
        dedupe  → TokenCounter, truncate, text
"""

from __future__ import annotations

import re
from typing import AbstractSet, Iterable

MIN_TERM_LENGTH = 3

_SPLIT_PATTERN = re.compile(r"\W+", re.ASCII)
_REGEX_METACHARACTERS = re.compile(r"[$()*+./?\[\\\]^{|}\-]")

# Closed list of English function words. Compared case-insensitively.
STOPWORDS: frozenset[str] = frozenset({
    "a", "about", "above", "after", "again", "against", "all", "am", "an",
    "and", "any", "are", "as", "at", "be", "because", "been", "before",
    "being", "below", "between", "both", "but", "by", "can", "could", "did",
    "do", "does", "doing", "down", "during", "each", "few", "for", "from",
    "further", "had", "has", "have", "having", "he", "her", "here", "hers",
    "herself", "him", "himself", "his", "how", "i", "if", "in", "into", "is",
    "it", "its", "itself", "just", "me", "more", "most", "my", "myself", "no",
    "nor", "not", "now", "of", "off", "on", "once", "only", "or", "other",
    "our", "ours", "ourselves", "out", "over", "own", "same", "she", "should",
    "so", "some", "such", "than", "that", "the", "their", "theirs", "them",
    "themselves", "then", "there", "these", "they", "this", "those",
    "through", "to", "too", "under", "until", "up", "very", "was", "we",
    "were", "what", "when", "where", "which", "while", "who", "whom", "why",
    "will", "with", "would", "you", "your", "yours", "yourself",
    "yourselves",
})


def escape_regex(token: str) -> str:
    """Backslash-escape regex metacharacters so the token matches literally."""
    return _REGEX_METACHARACTERS.sub(lambda match: "\\" + match.group(0), token)


def remove_stopwords(tokens: Iterable[str], stopwords: AbstractSet[str] = STOPWORDS) -> list[str]:
    return [token for token in tokens if token.lower() not in stopwords]


def extract_terms(
    query: str,
    stopwords: AbstractSet[str] = STOPWORDS,
    min_length: int = MIN_TERM_LENGTH,
) -> list[str]:
    """
    Extract the significant terms of a query.

    Steps, in order: split on runs of non-word characters (ASCII word
    characters only, so "façade" splits), escape regex metacharacters,
    drop stopwords, drop tokens shorter than ``min_length``, and dedupe
    keeping first-seen order. Token case is preserved because mixed case
    is a relevance signal for the ranker.

    Args:
        query: Free-text question
        stopwords: Lower-case words to discard
        min_length: Shortest term kept

    Returns:
        Ordered, duplicate-free list of terms
    """
    if not query:
        return []

    tokens = [escape_regex(token) for token in _SPLIT_PATTERN.split(query)]
    filtered = [token for token in remove_stopwords(tokens, stopwords) if len(token) >= min_length]
    return list(dict.fromkeys(filtered))
