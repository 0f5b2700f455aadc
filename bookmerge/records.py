"""
Core data types for duplicate detection and merging.

The engine works on immutable snapshots: BookmarkRecord instances are read-only
copies of what the storage collaborator holds, and a DuplicateDetectionResult
never changes after a scan (removing a group returns a new result).
"""
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from bookmerge.constants import DEFAULT_TITLE_SIMILARITY_THRESHOLD
from bookmerge.errors import GroupNotFoundError, InvalidOptionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> datetime:
    """
    Coerce a timestamp into an aware datetime.

    Accepts datetime objects, epoch seconds and ISO-8601 strings (a trailing
    'Z' is understood). Naive values are assumed to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Unrecognized timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _first_present(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class BookmarkRecord:
    """
    Read-only bookmark snapshot as supplied by the storage collaborator.

    Attributes:
        id: Unique, stable identifier
        title: Bookmark title
        url: Raw URL exactly as stored
        category: Single category path (e.g. "Work/Projects")
        tags: Tags in display order; compare with tag_set
        description: Optional description
        favicon: Optional favicon reference (emoji, icon name or URL)
        is_favorite: Favorite flag
        date_added: When the bookmark was created
        date_modified: When the bookmark was last changed
        visits: Non-negative visit counter
    """
    id: str
    title: str
    url: str
    category: str = ''
    tags: Tuple[str, ...] = ()
    description: Optional[str] = None
    favicon: Optional[str] = None
    is_favorite: bool = False
    date_added: datetime = field(default_factory=utcnow)
    date_modified: datetime = field(default_factory=utcnow)
    visits: int = 0

    def __post_init__(self):
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, 'tags', tuple(self.tags))
        if self.visits < 0:
            raise ValueError(f"visits must be non-negative, got {self.visits}")

    @property
    def tag_set(self) -> FrozenSet[str]:
        return frozenset(self.tags)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'url': self.url,
            'description': self.description,
            'favicon': self.favicon,
            'category': self.category,
            'tags': list(self.tags),
            'is_favorite': self.is_favorite,
            'date_added': self.date_added.isoformat(),
            'date_modified': self.date_modified.isoformat(),
            'visits': self.visits,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BookmarkRecord":
        """
        Build a record from a dictionary.

        Both snake_case and the camelCase keys used by exported collections
        (isFavorite, dateAdded, dateModified) are accepted.
        """
        if 'id' not in data or 'url' not in data:
            raise ValueError("Bookmark dictionaries need at least 'id' and 'url'")

        now = utcnow()
        added = _first_present(data, 'date_added', 'dateAdded', 'added')
        modified = _first_present(data, 'date_modified', 'dateModified')

        return cls(
            id=str(data['id']),
            title=data.get('title') or '',
            url=data['url'],
            category=data.get('category') or '',
            tags=tuple(data.get('tags') or ()),
            description=data.get('description'),
            favicon=data.get('favicon'),
            is_favorite=bool(_first_present(data, 'is_favorite', 'isFavorite', 'stars', default=False)),
            date_added=parse_datetime(added) if added is not None else now,
            date_modified=parse_datetime(modified) if modified is not None else now,
            visits=int(_first_present(data, 'visits', 'visit_count', default=0)),
        )


class DuplicateType(str, Enum):
    """How two bookmarks were found to be duplicates, most specific first."""
    EXACT = 'exact'
    NORMALIZED = 'normalized'
    TITLE_SIMILAR = 'title-similar'

    @property
    def rank(self) -> int:
        return _TYPE_RANK[self]

    @classmethod
    def strongest(cls, types: Iterable["DuplicateType"]) -> "DuplicateType":
        return max(types, key=lambda t: t.rank)


_TYPE_RANK = {
    DuplicateType.EXACT: 3,
    DuplicateType.NORMALIZED: 2,
    DuplicateType.TITLE_SIMILAR: 1,
}


@dataclass(frozen=True)
class DuplicateMatch:
    """Outcome of classifying one pair of bookmarks."""
    duplicate_type: DuplicateType
    similarity: float


@dataclass(frozen=True)
class SimilarityScore:
    """Per-strategy similarity breakdown for a pair of bookmarks."""
    exact: float
    normalized: float
    title: float
    overall: float

    def to_dict(self) -> Dict[str, float]:
        return {
            'exact': self.exact,
            'normalized': self.normalized,
            'title': self.title,
            'overall': self.overall,
        }


@dataclass(frozen=True)
class DuplicateGroup:
    """
    A cluster of bookmarks connected by at least one chain of matches.

    Attributes:
        id: Run-local identifier (not stable across scans)
        duplicate_type: Strongest match type seen on any edge of the cluster
        similarity: Weakest edge similarity in the cluster
        bookmarks: Members in original collection order
        match_types: Every match type seen on the cluster's edges
        url: The first member's URL
        normalized_url: Normalized form of the first member's URL
        detected_at: When the scan that produced this group ran
    """
    id: str
    duplicate_type: DuplicateType
    similarity: float
    bookmarks: Tuple[BookmarkRecord, ...]
    match_types: FrozenSet[DuplicateType] = frozenset()
    url: str = ''
    normalized_url: str = ''
    detected_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        if not isinstance(self.bookmarks, tuple):
            object.__setattr__(self, 'bookmarks', tuple(self.bookmarks))
        if not isinstance(self.match_types, frozenset):
            object.__setattr__(self, 'match_types', frozenset(self.match_types))
        if not 0.0 <= self.similarity <= 1.0:
            raise ValueError(f"similarity must be within [0, 1], got {self.similarity}")

    @property
    def size(self) -> int:
        return len(self.bookmarks)

    @property
    def ids(self) -> List[str]:
        return [b.id for b in self.bookmarks]

    @property
    def first(self) -> BookmarkRecord:
        return self.bookmarks[0]

    @property
    def last(self) -> BookmarkRecord:
        return self.bookmarks[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'duplicate_type': self.duplicate_type.value,
            'match_types': sorted(t.value for t in self.match_types),
            'similarity': self.similarity,
            'url': self.url,
            'normalized_url': self.normalized_url,
            'detected_at': self.detected_at.isoformat(),
            'bookmarks': [b.to_dict() for b in self.bookmarks],
        }


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class DuplicateStats:
    """Aggregate statistics for one detection result."""
    total_groups: int = 0
    total_duplicates: int = 0
    percentage_duplicates: int = 0
    detection_time_ms: int = 0
    exact_matches: int = 0
    normalized_matches: int = 0
    title_similar_matches: int = 0
    scanned_bookmarks: int = 0

    @classmethod
    def compute(cls, groups: Iterable[DuplicateGroup], scanned_bookmarks: int,
                detection_time_ms: int = 0) -> "DuplicateStats":
        groups = list(groups)
        total_duplicates = sum(g.size for g in groups)
        percentage = round_half_up(total_duplicates / scanned_bookmarks * 100) if scanned_bookmarks else 0

        return cls(
            total_groups=len(groups),
            total_duplicates=total_duplicates,
            percentage_duplicates=percentage,
            detection_time_ms=detection_time_ms,
            exact_matches=sum(1 for g in groups if DuplicateType.EXACT in g.match_types),
            normalized_matches=sum(1 for g in groups if DuplicateType.NORMALIZED in g.match_types),
            title_similar_matches=sum(1 for g in groups if DuplicateType.TITLE_SIMILAR in g.match_types),
            scanned_bookmarks=scanned_bookmarks,
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            'total_groups': self.total_groups,
            'total_duplicates': self.total_duplicates,
            'percentage_duplicates': self.percentage_duplicates,
            'detection_time_ms': self.detection_time_ms,
            'exact_matches': self.exact_matches,
            'normalized_matches': self.normalized_matches,
            'title_similar_matches': self.title_similar_matches,
            'scanned_bookmarks': self.scanned_bookmarks,
        }


@dataclass(frozen=True)
class DuplicateDetectionResult:
    """
    Immutable outcome of one detection run.

    Groups are pairwise disjoint over bookmark ids. Consuming a group through
    a merge or delete produces a new result via without_group(); remaining
    groups are never reclassified.
    """
    duplicate_groups: Tuple[DuplicateGroup, ...] = ()
    scanned_bookmarks: int = 0
    detection_time_ms: int = 0

    def __post_init__(self):
        if not isinstance(self.duplicate_groups, tuple):
            object.__setattr__(self, 'duplicate_groups', tuple(self.duplicate_groups))

    @property
    def total_duplicates(self) -> int:
        return sum(g.size for g in self.duplicate_groups)

    @property
    def stats(self) -> DuplicateStats:
        return DuplicateStats.compute(self.duplicate_groups, self.scanned_bookmarks, self.detection_time_ms)

    def get_group(self, group_id: str) -> DuplicateGroup:
        for group in self.duplicate_groups:
            if group.id == group_id:
                return group
        raise GroupNotFoundError(group_id)

    def without_group(self, group_id: str) -> "DuplicateDetectionResult":
        """Return a copy of this result with one group removed."""
        self.get_group(group_id)
        remaining = tuple(g for g in self.duplicate_groups if g.id != group_id)
        return replace(self, duplicate_groups=remaining)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'duplicate_groups': [g.to_dict() for g in self.duplicate_groups],
            'total_duplicates': self.total_duplicates,
            'duplicate_stats': self.stats.to_dict(),
        }


@dataclass(frozen=True)
class DetectionOptions:
    """Which matching strategies run during a scan, and the title threshold."""
    exact_url_matching: bool = True
    normalized_url_matching: bool = True
    title_similarity_matching: bool = True
    title_similarity_threshold: float = DEFAULT_TITLE_SIMILARITY_THRESHOLD

    def __post_init__(self):
        if not 0.0 <= self.title_similarity_threshold <= 1.0:
            raise InvalidOptionError(
                f"title_similarity_threshold must be within [0, 1], got {self.title_similarity_threshold}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'exact_url_matching': self.exact_url_matching,
            'normalized_url_matching': self.normalized_url_matching,
            'title_similarity_matching': self.title_similarity_matching,
            'title_similarity_threshold': self.title_similarity_threshold,
        }


class TitlePolicy(str, Enum):
    FIRST = 'first'
    LAST = 'last'
    LONGEST = 'longest'


class DescriptionPolicy(str, Enum):
    FIRST = 'first'
    LAST = 'last'
    LONGEST = 'longest'


class CategoryPolicy(str, Enum):
    FIRST = 'first'
    LAST = 'last'


class FaviconPolicy(str, Enum):
    FIRST = 'first'
    LAST = 'last'


class FavoritePolicy(str, Enum):
    ANY = 'any'
    ALL = 'all'
    FIRST = 'first'
    LAST = 'last'


class VisitsPolicy(str, Enum):
    SUM = 'sum'
    MAX = 'max'
    FIRST = 'first'
    LAST = 'last'


class DatesPolicy(str, Enum):
    EARLIEST = 'earliest'
    LATEST = 'latest'


_POLICY_FIELDS = {
    'keep_title': TitlePolicy,
    'keep_description': DescriptionPolicy,
    'keep_category': CategoryPolicy,
    'keep_favicon': FaviconPolicy,
    'keep_favorite_status': FavoritePolicy,
    'keep_visits': VisitsPolicy,
    'keep_dates': DatesPolicy,
}


def _coerce_policy(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise InvalidOptionError(f"Invalid value for {name}: {value!r} (choose from {choices})") from None


@dataclass(frozen=True)
class MergeOptions:
    """
    Per-field rules for collapsing a duplicate group into one bookmark.

    Policy fields accept either the enum member or its string value. The
    custom_* overrides, when set, win over the matching policy.
    """
    keep_title: TitlePolicy = TitlePolicy.LONGEST
    keep_description: DescriptionPolicy = DescriptionPolicy.LONGEST
    keep_category: CategoryPolicy = CategoryPolicy.FIRST
    keep_favicon: FaviconPolicy = FaviconPolicy.FIRST
    combine_tags: bool = True
    keep_favorite_status: FavoritePolicy = FavoritePolicy.ANY
    keep_visits: VisitsPolicy = VisitsPolicy.SUM
    keep_dates: DatesPolicy = DatesPolicy.EARLIEST
    custom_title: Optional[str] = None
    custom_description: Optional[str] = None
    custom_category: Optional[str] = None
    custom_favicon: Optional[str] = None

    def __post_init__(self):
        for name, enum_cls in _POLICY_FIELDS.items():
            object.__setattr__(self, name, _coerce_policy(enum_cls, getattr(self, name), name))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MergeOptions":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and v is not None}
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise InvalidOptionError(f"Unknown merge options: {', '.join(sorted(unknown))}")
        return cls(**known)

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            data[name] = value.value if isinstance(value, Enum) else value
        return data
