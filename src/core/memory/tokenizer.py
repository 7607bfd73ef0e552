"""Tokenizer for lexical memory retrieval."""

from __future__ import annotations

import re

_SPLIT_PATTERN = re.compile(r"[^a-z0-9]+")

MIN_TOKEN_LENGTH = 3

STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
        "in", "on", "at", "to", "for", "of", "with", "by", "from", "as",
        "and", "or", "but", "not", "no", "this", "that", "it", "its",
        "has", "have", "had", "do", "does", "did", "will", "would", "shall",
        "should", "may", "might", "can", "could", "must", "need",
        # domain noise
        "mon", "via", "bps", "token",
    }
)


def tokenize(text: str) -> list[str]:
    """Lowercase, split on non-alphanumerics, drop short tokens and stop words."""
    return [
        token
        for token in _SPLIT_PATTERN.split(text.lower())
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOP_WORDS
    ]
