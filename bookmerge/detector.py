"""
Detection orchestrator.

Runs a frozen snapshot of the collection through the grouping engine, times
the run and wraps the groups in an immutable DuplicateDetectionResult.

Group ids are generated fresh on every run, so they are only meaningful
within one result. Group membership is stable: scanning the same unchanged
collection twice yields the same groups in the same order.
"""
import logging
import time
from typing import Iterable, List, Optional

from bookmerge.classifier import check_for_duplicate, check_url, similarity_score
from bookmerge.grouping import group_duplicates
from bookmerge.progress import spinner
from bookmerge.records import (
    BookmarkRecord,
    DetectionOptions,
    DuplicateDetectionResult,
    MergeOptions,
    SimilarityScore,
)

logger = logging.getLogger(__name__)


@spinner("Scanning for duplicates")
def detect_all_duplicates(records: Iterable[BookmarkRecord],
                          options: Optional[DetectionOptions] = None) -> DuplicateDetectionResult:
    """
    Find every duplicate group in a bookmark collection.

    Args:
        records: Bookmarks in collection order
        options: Enabled strategies and title threshold

    Returns:
        Immutable detection result with groups and statistics
    """
    snapshot = tuple(records)

    start = time.perf_counter()
    groups = group_duplicates(snapshot, options) if len(snapshot) > 1 else []
    elapsed_ms = int(round((time.perf_counter() - start) * 1000))

    result = DuplicateDetectionResult(
        duplicate_groups=tuple(groups),
        scanned_bookmarks=len(snapshot),
        detection_time_ms=elapsed_ms,
    )

    stats = result.stats
    logger.info(
        f"Scanned {stats.scanned_bookmarks} bookmarks in {stats.detection_time_ms} ms: "
        f"{stats.total_groups} duplicate groups, {stats.total_duplicates} bookmarks "
        f"({stats.percentage_duplicates}%)"
    )
    return result


class DuplicateDetector:
    """
    Detection front end that remembers its options and the last result.

    Example:
        >>> detector = DuplicateDetector(DetectionOptions(title_similarity_threshold=0.9))
        >>> result = detector.detect(records)
        >>> detector.check_url("https://example.com/page", records)
    """

    def __init__(self, options: Optional[DetectionOptions] = None):
        self.options = options or DetectionOptions()
        self.last_result: Optional[DuplicateDetectionResult] = None

    def detect(self, records: Iterable[BookmarkRecord]) -> DuplicateDetectionResult:
        self.last_result = detect_all_duplicates(records, self.options)
        return self.last_result

    def check_for_duplicate(self, candidate: BookmarkRecord,
                            existing: Iterable[BookmarkRecord]) -> List[BookmarkRecord]:
        return check_for_duplicate(candidate, existing, self.options)

    def check_url(self, url: str, existing: Iterable[BookmarkRecord]) -> List[BookmarkRecord]:
        return check_url(url, existing, self.options)

    def similarity_score(self, a: BookmarkRecord, b: BookmarkRecord) -> SimilarityScore:
        return similarity_score(a, b)

    def update_options(self, **changes) -> DetectionOptions:
        """Replace some detection options, keeping the rest."""
        merged = {**self.options.to_dict(), **changes}
        self.options = DetectionOptions(**merged)
        return self.options

    @staticmethod
    def default_detection_options() -> DetectionOptions:
        return DetectionOptions()

    @staticmethod
    def default_merge_options() -> MergeOptions:
        return MergeOptions()
