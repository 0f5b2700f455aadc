"""
Transitive grouping of duplicate bookmarks.

Every unordered pair of bookmarks is classified; each match unions the two
bookmarks in a disjoint-set forest keyed by bookmark id. Components with two
or more members become duplicate groups, so chains of matches end up in one
group even when the ends of a chain would not match each other directly.

Pairwise classification is O(n^2), which is fine for collections of tens of
thousands of bookmarks. Larger collections should bucket candidates first
(by normalized URL, by title tokens) before classifying.
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Set

from bookmerge.classifier import classify
from bookmerge.constants import GROUP_ID_LENGTH, GROUP_ID_PREFIX
from bookmerge.records import (
    BookmarkRecord,
    DetectionOptions,
    DuplicateGroup,
    DuplicateMatch,
    DuplicateType,
    utcnow,
)
from bookmerge.urls import normalize_url

logger = logging.getLogger(__name__)


class DisjointSet:
    """
    Union-find forest with path halving and union by rank.

    Keys are kept in insertion order so components() is deterministic.
    """

    def __init__(self, keys: Iterable[Hashable] = ()):
        self._parent: Dict[Hashable, Hashable] = {}
        self._rank: Dict[Hashable, int] = {}
        for key in keys:
            self.add(key)

    def __len__(self) -> int:
        return len(self._parent)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._parent

    def add(self, key: Hashable) -> None:
        if key not in self._parent:
            self._parent[key] = key
            self._rank[key] = 0

    def find(self, key: Hashable) -> Hashable:
        parent = self._parent
        while parent[key] != key:
            parent[key] = parent[parent[key]]
            key = parent[key]
        return key

    def union(self, left: Hashable, right: Hashable) -> Hashable:
        """Merge the sets holding two keys and return the surviving root."""
        left_root = self.find(left)
        right_root = self.find(right)
        if left_root == right_root:
            return left_root

        if self._rank[left_root] < self._rank[right_root]:
            self._parent[left_root] = right_root
            return right_root

        if self._rank[left_root] > self._rank[right_root]:
            self._parent[right_root] = left_root
            return left_root

        self._parent[right_root] = left_root
        self._rank[left_root] += 1
        return left_root

    def connected(self, left: Hashable, right: Hashable) -> bool:
        return self.find(left) == self.find(right)

    def components(self) -> Dict[Hashable, List[Hashable]]:
        """Map each root to its members, both in insertion order."""
        components: Dict[Hashable, List[Hashable]] = {}
        for key in self._parent:
            components.setdefault(self.find(key), []).append(key)
        return components


def new_group_id() -> str:
    """Generate a run-local group identifier."""
    return f"{GROUP_ID_PREFIX}{uuid.uuid4().hex[:GROUP_ID_LENGTH]}"


def _classify_pair(a: BookmarkRecord, b: BookmarkRecord,
                   options: Optional[DetectionOptions]) -> Optional[DuplicateMatch]:
    # A failure on one pair counts as "no match" and never aborts the scan
    try:
        return classify(a, b, options)
    except Exception as e:
        logger.debug(f"Skipping pair ({a.id}, {b.id}): {e}")
        return None


def group_duplicates(records: Sequence[BookmarkRecord],
                     options: Optional[DetectionOptions] = None,
                     id_factory: Optional[Callable[[], str]] = None,
                     detected_at: Optional[datetime] = None) -> List[DuplicateGroup]:
    """
    Partition bookmarks into disjoint duplicate groups.

    Args:
        records: Bookmarks in collection order
        options: Enabled strategies and title threshold
        id_factory: Callable producing group ids (defaults to new_group_id)
        detected_at: Timestamp stamped on every group

    Returns:
        Groups ordered by the collection position of their first member

    Raises:
        ValueError: If two records share an id
    """
    records = tuple(records)
    make_id = id_factory or new_group_id
    stamp = detected_at or utcnow()

    by_id: Dict[str, BookmarkRecord] = {}
    for record in records:
        if record.id in by_id:
            raise ValueError(f"Duplicate bookmark id in collection: {record.id}")
        by_id[record.id] = record

    forest = DisjointSet(by_id)
    edges = []

    for i, a in enumerate(records):
        for b in records[i + 1:]:
            match = _classify_pair(a, b, options)
            if match is None:
                continue
            forest.union(a.id, b.id)
            edges.append((a.id, match))

    edge_types: Dict[Hashable, Set[DuplicateType]] = defaultdict(set)
    weakest: Dict[Hashable, float] = {}
    for anchor_id, match in edges:
        root = forest.find(anchor_id)
        edge_types[root].add(match.duplicate_type)
        weakest[root] = min(weakest.get(root, 1.0), match.similarity)

    groups = []
    for root, member_ids in forest.components().items():
        if len(member_ids) < 2:
            continue

        members = tuple(by_id[member_id] for member_id in member_ids)
        groups.append(DuplicateGroup(
            id=make_id(),
            duplicate_type=DuplicateType.strongest(edge_types[root]),
            similarity=weakest[root],
            bookmarks=members,
            match_types=frozenset(edge_types[root]),
            url=members[0].url,
            normalized_url=normalize_url(members[0].url),
            detected_at=stamp,
        ))

    logger.debug(f"Grouped {len(records)} bookmarks into {len(groups)} duplicate groups "
                 f"from {len(edges)} matching pairs")
    return groups
