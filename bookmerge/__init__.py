"""
bookmerge - Duplicate detection and merging for bookmark collections

Finds bookmarks that point at the same resource (identical URLs, URLs that
only differ cosmetically, or near-identical titles), groups them
transitively and collapses each group into one bookmark under configurable
per-field rules.

Design Principles:
- The engine works on immutable snapshots and never holds a storage handle
- Merges and deletes are expressed as update/delete operations for the
  storage collaborator to carry out
- Detection results never change after a scan; consuming a group yields a
  new result

Example Usage:
    >>> from bookmerge import Database, detect_all_duplicates, MergeSession
    >>> db = Database()  # Uses config default
    >>> result = detect_all_duplicates(db.snapshot())
    >>> session = MergeSession(result, db)
    >>> session.merge_all()
"""

__version__ = "0.1.0"
__author__ = "bookmerge Contributors"

# Engine
from bookmerge.urls import normalize_url, normalize_url_parts
from bookmerge.similarity import title_similarity
from bookmerge.classifier import classify, similarity_score, check_for_duplicate, check_url
from bookmerge.grouping import DisjointSet, group_duplicates
from bookmerge.detector import DuplicateDetector, detect_all_duplicates
from bookmerge.resolver import resolve_merge, merge_with_existing, pending_group
from bookmerge.applier import (
    MergeSession, plan_merge, plan_delete, plan_update, apply_operations, merge_into_existing,
)

# Data types
from bookmerge.records import (
    BookmarkRecord,
    DetectionOptions,
    DuplicateDetectionResult,
    DuplicateGroup,
    DuplicateStats,
    DuplicateType,
    MergeOptions,
)

# Errors
from bookmerge.errors import (
    BookmergeError,
    MalformedUrlError,
    InvalidMergeError,
    InvalidOptionError,
    GroupNotFoundError,
    BookmarkNotFoundError,
)

# Storage and configuration
from bookmerge.db import Database, get_db
from bookmerge.config import BookmergeConfig, get_config, init_config

__all__ = [
    # Engine
    "normalize_url",
    "normalize_url_parts",
    "title_similarity",
    "classify",
    "similarity_score",
    "check_for_duplicate",
    "check_url",
    "DisjointSet",
    "group_duplicates",
    "DuplicateDetector",
    "detect_all_duplicates",
    "resolve_merge",
    "merge_with_existing",
    "pending_group",
    "MergeSession",
    "plan_merge",
    "plan_delete",
    "plan_update",
    "apply_operations",
    "merge_into_existing",
    # Data types
    "BookmarkRecord",
    "DetectionOptions",
    "DuplicateDetectionResult",
    "DuplicateGroup",
    "DuplicateStats",
    "DuplicateType",
    "MergeOptions",
    # Errors
    "BookmergeError",
    "MalformedUrlError",
    "InvalidMergeError",
    "InvalidOptionError",
    "GroupNotFoundError",
    "BookmarkNotFoundError",
    # Storage and configuration
    "Database",
    "get_db",
    "BookmergeConfig",
    "get_config",
    "init_config",
]
