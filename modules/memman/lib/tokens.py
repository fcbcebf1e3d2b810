"""Shared token estimation and word-set similarity utilities."""

import math
import re
from typing import Set

_WORD_SPLIT_RE = re.compile(r"\W+")


def estimate_tokens(text: str) -> int:
    """Estimate token count as ceil(chars / 4).

    A budgeting heuristic, not a tokenizer. Only relative ordering and
    running totals are meaningful.
    """
    return math.ceil(len(text) / 4)


def word_set(text: str, min_length: int = 3) -> Set[str]:
    """Lowercase word runs of at least ``min_length`` chars, as a set."""
    return {w for w in _WORD_SPLIT_RE.split(text.lower()) if len(w) >= min_length}


def jaccard(a: Set[str], b: Set[str]) -> float:
    """Jaccard index of two token sets.

    Two empty sets are identical (1.0); exactly one empty set shares
    nothing (0.0).
    """
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    intersection = len(a & b)
    return intersection / (len(a) + len(b) - intersection)


def text_similarity(a: str, b: str, min_length: int = 3) -> float:
    """Jaccard similarity over the word sets of two texts."""
    return jaccard(word_set(a, min_length), word_set(b, min_length))
