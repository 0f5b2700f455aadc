"""
Pairwise duplicate classification.

A pair of bookmarks is checked against the matching strategies from most to
least specific; the first strategy that matches decides the duplicate type:

1. exact: raw URL strings are identical
2. normalized: URLs are identical after normalize_url()
3. title-similar: title similarity reaches the configured threshold
"""
import logging
from typing import Iterable, List, Optional

from bookmerge.constants import (
    EXACT_URL_WEIGHT,
    MIN_REALTIME_URL_LENGTH,
    NORMALIZED_URL_WEIGHT,
    TITLE_WEIGHT,
)
from bookmerge.records import (
    BookmarkRecord,
    DetectionOptions,
    DuplicateMatch,
    DuplicateType,
    SimilarityScore,
)
from bookmerge.similarity import title_similarity
from bookmerge.urls import normalize_url

logger = logging.getLogger(__name__)

_DEFAULT_OPTIONS = DetectionOptions()


def _has_title(record: BookmarkRecord) -> bool:
    return bool(record.title and record.title.strip())


def classify(a: BookmarkRecord, b: BookmarkRecord,
             options: Optional[DetectionOptions] = None) -> Optional[DuplicateMatch]:
    """
    Decide whether two bookmarks are duplicates.

    Args:
        a: First bookmark
        b: Second bookmark (must be a different record)
        options: Enabled strategies and title threshold

    Returns:
        DuplicateMatch with the type and similarity, or None for no match

    Raises:
        ValueError: If both arguments are the same record
    """
    if a.id == b.id:
        raise ValueError(f"Cannot classify bookmark {a.id} against itself")

    opts = options or _DEFAULT_OPTIONS

    if opts.exact_url_matching and a.url == b.url:
        return DuplicateMatch(DuplicateType.EXACT, 1.0)

    if opts.normalized_url_matching and normalize_url(a.url) == normalize_url(b.url):
        return DuplicateMatch(DuplicateType.NORMALIZED, 1.0)

    if opts.title_similarity_matching and _has_title(a) and _has_title(b):
        score = title_similarity(a.title, b.title)
        if score >= opts.title_similarity_threshold:
            return DuplicateMatch(DuplicateType.TITLE_SIMILAR, score)

    return None


def similarity_score(a: BookmarkRecord, b: BookmarkRecord) -> SimilarityScore:
    """Break down how similar two bookmarks are under every strategy."""
    exact = 1.0 if a.url == b.url else 0.0
    normalized = 1.0 if normalize_url(a.url) == normalize_url(b.url) else 0.0
    title = title_similarity(a.title, b.title)
    overall = exact * EXACT_URL_WEIGHT + normalized * NORMALIZED_URL_WEIGHT + title * TITLE_WEIGHT

    return SimilarityScore(exact=exact, normalized=normalized, title=title, overall=overall)


def check_for_duplicate(candidate: BookmarkRecord, existing: Iterable[BookmarkRecord],
                        options: Optional[DetectionOptions] = None) -> List[BookmarkRecord]:
    """
    Find stored bookmarks that a not-yet-saved bookmark would duplicate.

    Args:
        candidate: Bookmark about to be added
        existing: Bookmarks already in the collection
        options: Enabled strategies and title threshold

    Returns:
        Matching bookmarks in collection order
    """
    matches = []
    for record in existing:
        if record.id == candidate.id:
            continue
        if classify(candidate, record, options) is not None:
            matches.append(record)
    return matches


def check_url(url: str, existing: Iterable[BookmarkRecord],
              options: Optional[DetectionOptions] = None) -> List[BookmarkRecord]:
    """
    URL-only duplicate check, e.g. while a URL is being typed.

    Title matching is always off here, and very short inputs return nothing.
    """
    if not url or len(url) < MIN_REALTIME_URL_LENGTH:
        return []

    opts = options or _DEFAULT_OPTIONS
    url_only = DetectionOptions(
        exact_url_matching=opts.exact_url_matching,
        normalized_url_matching=opts.normalized_url_matching,
        title_similarity_matching=False,
        title_similarity_threshold=opts.title_similarity_threshold,
    )
    candidate = BookmarkRecord(id='', title='', url=url)
    return check_for_duplicate(candidate, existing, url_only)
