from __future__ import annotations

import re
from collections import Counter

STOP_WORDS: frozenset[str] = frozenset({
    "the", "and", "to", "of", "a", "in", "that", "is", "it", "for",
    "you", "are", "with", "on", "as", "this", "was", "be", "have", "not",
    "what", "who", "when", "where", "why", "how", "which", "would", "could",
    "should", "an", "my", "your", "his", "her", "their", "our", "but",
})

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_MIN_TOKEN_LENGTH = 4


def content_words(text: str) -> list[str]:
    """Lowercased words of 4+ characters that are not stop words."""
    cleaned = _PUNCTUATION_RE.sub("", text.lower())
    return [
        word
        for word in cleaned.split()
        if len(word) >= _MIN_TOKEN_LENGTH and word not in STOP_WORDS
    ]


def top_words(words: list[str], limit: int) -> list[str]:
    # Counter.most_common is stable, so ties keep first-seen order.
    return [word for word, _ in Counter(words).most_common(limit)]


def extract_topics(text: str, limit: int = 3) -> list[str]:
    """Return up to ``limit`` topic keywords ordered by frequency."""
    if not text:
        return []
    return top_words(content_words(text), limit)
