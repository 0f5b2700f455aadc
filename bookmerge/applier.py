"""
Turning merge and delete decisions into storage operations.

The engine holds no storage handle. A merge or delete is first expressed as
an ordered list of StorageOperation instructions; apply_operations() then
issues them against any object implementing the BookmarkStorage protocol
(update_bookmark / delete_bookmark). Storage that also offers
apply(operations) gets each plan as one unit and commits it atomically.
Storage errors propagate unchanged and are never retried here.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from bookmerge.errors import InvalidMergeError
from bookmerge.progress import with_progress
from bookmerge.records import BookmarkRecord, DuplicateDetectionResult, DuplicateGroup, MergeOptions
from bookmerge.resolver import merge_with_existing, resolve_merge

logger = logging.getLogger(__name__)

UPDATE = 'update'
DELETE = 'delete'

# Fields written to the surviving bookmark by a merge
MERGED_FIELDS = (
    'title', 'url', 'description', 'category', 'tags', 'is_favorite',
    'visits', 'favicon', 'date_added', 'date_modified',
)


class BookmarkStorage(Protocol):
    """What the engine needs from the storage collaborator."""

    def update_bookmark(self, bookmark_id: str, fields: Dict[str, Any]) -> Any:
        ...

    def delete_bookmark(self, bookmark_id: str) -> Any:
        ...


@dataclass(frozen=True)
class StorageOperation:
    """A single update or delete the storage collaborator must perform."""
    kind: str
    bookmark_id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {'kind': self.kind, 'bookmark_id': self.bookmark_id}
        if self.kind == UPDATE:
            data['fields'] = {
                k: v.isoformat() if isinstance(v, datetime) else v
                for k, v in self.fields.items()
            }
        return data


@dataclass(frozen=True)
class MergePlan:
    """Outcome of merging a group: which id survives and which are deleted."""
    kept_id: str
    deleted_ids: Tuple[str, ...]
    operations: Tuple[StorageOperation, ...]
    merged: Optional[BookmarkRecord] = None


@dataclass(frozen=True)
class DeletePlan:
    """Outcome of deleting a group's bookmarks."""
    deleted_ids: Tuple[str, ...]
    operations: Tuple[StorageOperation, ...]


def merged_fields(record: BookmarkRecord) -> Dict[str, Any]:
    """Field values a merge writes to the surviving bookmark."""
    values = {name: getattr(record, name) for name in MERGED_FIELDS}
    values['tags'] = list(record.tags)
    return values


def plan_merge(group: DuplicateGroup, synthesized: BookmarkRecord) -> MergePlan:
    """
    Express a merge as one update followed by deletes.

    Args:
        group: The group being merged
        synthesized: Result of resolve_merge() for that group

    Returns:
        MergePlan updating the first member and deleting the rest in group order

    Raises:
        InvalidMergeError: If the group is too small or the synthesized
            bookmark does not carry the first member's id
    """
    if group.size < 2:
        raise InvalidMergeError(f"Group {group.id} has fewer than 2 members")

    kept_id = group.first.id
    if synthesized.id != kept_id:
        raise InvalidMergeError(
            f"Merged bookmark id {synthesized.id} does not match the group's first member {kept_id}"
        )

    deleted_ids = tuple(b.id for b in group.bookmarks[1:])
    operations = [StorageOperation(UPDATE, kept_id, merged_fields(synthesized))]
    operations.extend(StorageOperation(DELETE, bookmark_id) for bookmark_id in deleted_ids)

    return MergePlan(kept_id=kept_id, deleted_ids=deleted_ids,
                     operations=tuple(operations), merged=synthesized)


def plan_delete(group: DuplicateGroup, keep_first: bool = True) -> DeletePlan:
    """
    Express deleting a group's bookmarks.

    Args:
        group: The group whose bookmarks are deleted
        keep_first: Leave the first member untouched and delete the rest;
            when False every member is deleted

    Returns:
        DeletePlan with deletes in group order
    """
    members = group.bookmarks[1:] if keep_first else group.bookmarks
    deleted_ids = tuple(b.id for b in members)
    return DeletePlan(
        deleted_ids=deleted_ids,
        operations=tuple(StorageOperation(DELETE, bookmark_id) for bookmark_id in deleted_ids),
    )


def plan_update(existing: BookmarkRecord, merged: BookmarkRecord) -> Tuple[StorageOperation, ...]:
    """
    Express folding a not-yet-stored bookmark into an existing one.

    Args:
        existing: The stored bookmark that survives
        merged: Result of merge_with_existing() for that bookmark

    Returns:
        A single update of the existing bookmark; nothing is deleted

    Raises:
        InvalidMergeError: If the merged bookmark does not carry the existing id
    """
    if merged.id != existing.id:
        raise InvalidMergeError(
            f"Merged bookmark id {merged.id} does not match the existing bookmark {existing.id}"
        )
    return (StorageOperation(UPDATE, existing.id, merged_fields(merged)),)


def apply_operations(operations: Iterable[StorageOperation], storage: BookmarkStorage) -> int:
    """
    Issue storage operations in order.

    Storage offering apply(operations) receives the whole plan at once and
    must commit it atomically. Other storage gets one call per operation, so
    a failure there leaves the earlier operations applied.

    Returns:
        Number of operations applied

    Raises:
        Whatever the storage collaborator raises, unchanged
    """
    operations = list(operations)

    transactional = getattr(storage, 'apply', None)
    if callable(transactional):
        return transactional(operations)

    applied = 0
    try:
        for op in operations:
            if op.kind == UPDATE:
                storage.update_bookmark(op.bookmark_id, dict(op.fields))
            elif op.kind == DELETE:
                storage.delete_bookmark(op.bookmark_id)
            else:
                raise ValueError(f"Unknown storage operation: {op.kind}")
            applied += 1
    except Exception:
        if applied:
            logger.error(f"Storage left partially updated: {applied} of {len(operations)} operations applied")
        raise
    return applied


def merge_into_existing(existing: BookmarkRecord, incoming: BookmarkRecord,
                        storage: BookmarkStorage, options: Optional[MergeOptions] = None,
                        now: Optional[datetime] = None) -> BookmarkRecord:
    """
    Merge a bookmark that is about to be added into its stored duplicate.

    The incoming bookmark is never stored; the existing one is updated with
    the merged field values.

    Returns:
        The merged bookmark as written
    """
    merged = merge_with_existing(existing, incoming, options, now)
    apply_operations(plan_update(existing, merged), storage)
    logger.info(f"Merged incoming bookmark into {existing.id}")
    return merged


class MergeSession:
    """
    Applies merges and deletes group by group against a detection result.

    A group is removed from session.result only after its operations have
    been issued without error. With transactional storage (one offering
    apply(), such as Database) a failed plan changes nothing, so the result
    always matches storage for the groups it still lists.

    Example:
        >>> session = MergeSession(detect_all_duplicates(records), db)
        >>> plan = session.merge_group(session.result.duplicate_groups[0].id)
        >>> session.delete_group(other_group_id, keep_first=True)
    """

    def __init__(self, result: DuplicateDetectionResult, storage: BookmarkStorage):
        self.result = result
        self.storage = storage

    def merge_group(self, group_id: str, options: Optional[MergeOptions] = None,
                    now: Optional[datetime] = None) -> MergePlan:
        group = self.result.get_group(group_id)
        plan = plan_merge(group, resolve_merge(group, options, now))
        apply_operations(plan.operations, self.storage)
        self.result = self.result.without_group(group_id)
        logger.info(f"Merged {group.size} bookmarks into {plan.kept_id}, deleted {len(plan.deleted_ids)}")
        return plan

    def delete_group(self, group_id: str, keep_first: bool = True) -> DeletePlan:
        group = self.result.get_group(group_id)
        plan = plan_delete(group, keep_first)
        apply_operations(plan.operations, self.storage)
        self.result = self.result.without_group(group_id)
        logger.info(f"Deleted {len(plan.deleted_ids)} bookmarks from group {group_id}")
        return plan

    def merge_all(self, options: Optional[MergeOptions] = None,
                  now: Optional[datetime] = None) -> List[MergePlan]:
        """
        Merge every remaining group.

        A group that cannot be merged (InvalidMergeError) is logged and left
        in the result while the remaining groups are still processed. Storage
        errors stop the run and propagate unchanged.
        """
        return self._merge_groups(list(self.result.duplicate_groups), options, now)

    @with_progress("Merging duplicate groups")
    def _merge_groups(self, groups: List[DuplicateGroup], options: Optional[MergeOptions],
                      now: Optional[datetime]) -> List[MergePlan]:
        plans = []
        for group in groups:
            try:
                plans.append(self.merge_group(group.id, options, now))
            except InvalidMergeError as e:
                logger.warning(f"Merge of group {group.id} aborted: {e}")
        return plans
