"""
Title similarity scoring.

Titles are compared case-insensitively after collapsing whitespace, using
1 - normalized Levenshtein distance (edit distance divided by the length of
the longer title).
"""
import re

from rapidfuzz.distance import Levenshtein

from bookmerge.constants import DEFAULT_TITLE_SIMILARITY_THRESHOLD

_WHITESPACE = re.compile(r'\s+')


def normalize_title(title: str) -> str:
    """Lowercase a title and collapse runs of whitespace."""
    return _WHITESPACE.sub(' ', title or '').strip().lower()


def title_similarity(a: str, b: str) -> float:
    """
    Score how similar two titles are.

    Args:
        a: First title
        b: Second title

    Returns:
        Score in [0, 1]; 1.0 for titles equal after normalization

    Example:
        >>> title_similarity("Python  Docs", "python docs")
        1.0
    """
    left = normalize_title(a)
    right = normalize_title(b)
    if left == right:
        return 1.0
    return float(Levenshtein.normalized_similarity(left, right))


def is_title_similar(a: str, b: str, threshold: float = DEFAULT_TITLE_SIMILARITY_THRESHOLD) -> bool:
    return title_similarity(a, b) >= threshold
