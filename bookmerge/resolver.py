"""
Merge resolution: collapse a duplicate group into one synthesized bookmark.

Each field is chosen by the matching MergeOptions policy. "first" and "last"
refer to group order, which is the original collection order. The first
member's id and URL always survive.
"""
import logging
from datetime import datetime
from typing import List, Optional, Sequence

from bookmerge.classifier import classify
from bookmerge.errors import InvalidMergeError
from bookmerge.records import (
    BookmarkRecord,
    CategoryPolicy,
    DatesPolicy,
    DescriptionPolicy,
    DuplicateGroup,
    DuplicateMatch,
    DuplicateType,
    FaviconPolicy,
    FavoritePolicy,
    MergeOptions,
    TitlePolicy,
    VisitsPolicy,
    utcnow,
)
from bookmerge.similarity import title_similarity
from bookmerge.urls import normalize_url

logger = logging.getLogger(__name__)


def _title_source(members: Sequence[BookmarkRecord], policy: TitlePolicy) -> BookmarkRecord:
    if policy is TitlePolicy.LAST:
        return members[-1]
    if policy is TitlePolicy.LONGEST:
        # max() keeps the earliest member on ties
        return max(members, key=lambda b: len(b.title))
    return members[0]


def _description(members: Sequence[BookmarkRecord], policy: DescriptionPolicy) -> Optional[str]:
    present = [b.description for b in members if b.description and b.description.strip()]
    if not present:
        return None
    if policy is DescriptionPolicy.LAST:
        return present[-1]
    if policy is DescriptionPolicy.LONGEST:
        return max(present, key=len)
    return present[0]


def _category(members: Sequence[BookmarkRecord], policy: CategoryPolicy) -> str:
    return members[-1].category if policy is CategoryPolicy.LAST else members[0].category


def _favicon(members: Sequence[BookmarkRecord], policy: FaviconPolicy) -> Optional[str]:
    return members[-1].favicon if policy is FaviconPolicy.LAST else members[0].favicon


def combine_tags(members: Sequence[BookmarkRecord]) -> List[str]:
    """Union of all members' tags, deduplicated case-sensitively in first-seen order."""
    seen = set()
    tags = []
    for bookmark in members:
        for tag in bookmark.tags:
            if tag not in seen:
                seen.add(tag)
                tags.append(tag)
    return tags


def _is_favorite(members: Sequence[BookmarkRecord], policy: FavoritePolicy) -> bool:
    if policy is FavoritePolicy.ANY:
        return any(b.is_favorite for b in members)
    if policy is FavoritePolicy.ALL:
        return all(b.is_favorite for b in members)
    if policy is FavoritePolicy.LAST:
        return members[-1].is_favorite
    return members[0].is_favorite


def _visits(members: Sequence[BookmarkRecord], policy: VisitsPolicy) -> int:
    if policy is VisitsPolicy.SUM:
        return sum(b.visits for b in members)
    if policy is VisitsPolicy.MAX:
        return max(b.visits for b in members)
    if policy is VisitsPolicy.LAST:
        return members[-1].visits
    return members[0].visits


def _date_added(members: Sequence[BookmarkRecord], policy: DatesPolicy) -> datetime:
    dates = [b.date_added for b in members]
    return max(dates) if policy is DatesPolicy.LATEST else min(dates)


def resolve_merge(group: DuplicateGroup, options: Optional[MergeOptions] = None,
                  now: Optional[datetime] = None) -> BookmarkRecord:
    """
    Compute the bookmark that a merged group collapses into.

    Args:
        group: Duplicate group to merge
        options: Per-field merge policy (defaults to MergeOptions())
        now: Timestamp of the merge, used as date_modified (defaults to now)

    Returns:
        Synthesized bookmark carrying the first member's id and URL

    Raises:
        InvalidMergeError: If the group has fewer than two members
    """
    members = list(group.bookmarks)
    if len(members) < 2:
        raise InvalidMergeError(
            f"Group {group.id} has {len(members)} member(s); at least 2 are required to merge"
        )

    opts = options or MergeOptions()
    first = members[0]
    title_source = _title_source(members, opts.keep_title)

    merged = BookmarkRecord(
        id=first.id,
        title=opts.custom_title or title_source.title,
        url=first.url,
        category=opts.custom_category or _category(members, opts.keep_category),
        tags=tuple(combine_tags(members) if opts.combine_tags else title_source.tags),
        description=opts.custom_description or _description(members, opts.keep_description),
        favicon=opts.custom_favicon or _favicon(members, opts.keep_favicon),
        is_favorite=_is_favorite(members, opts.keep_favorite_status),
        date_added=_date_added(members, opts.keep_dates),
        date_modified=now or utcnow(),
        visits=_visits(members, opts.keep_visits),
    )

    logger.debug(f"Resolved merge of group {group.id} ({len(members)} bookmarks) into {merged.id}")
    return merged


def pending_group(existing: BookmarkRecord, incoming: BookmarkRecord) -> DuplicateGroup:
    """
    Two-member group pairing a stored bookmark with one about to be added.

    The pair is classified like any scanned pair so the group carries the
    type that actually links them. A pair no strategy matches is treated as
    title-similar at its title score, since the caller has already decided
    the two are duplicates.
    """
    if existing.id == incoming.id:
        match = DuplicateMatch(DuplicateType.EXACT, 1.0)
    else:
        match = classify(existing, incoming)
        if match is None:
            match = DuplicateMatch(DuplicateType.TITLE_SIMILAR,
                                   title_similarity(existing.title, incoming.title))
    return DuplicateGroup(
        id=f"pending-{existing.id}",
        duplicate_type=match.duplicate_type,
        similarity=match.similarity,
        bookmarks=(existing, incoming),
        match_types=frozenset({match.duplicate_type}),
        url=existing.url,
        normalized_url=normalize_url(existing.url),
    )


def merge_with_existing(existing: BookmarkRecord, incoming: BookmarkRecord,
                        options: Optional[MergeOptions] = None,
                        now: Optional[datetime] = None) -> BookmarkRecord:
    """
    Fold a bookmark that is about to be added into an existing duplicate.

    The existing bookmark counts as the first member, so its id and URL
    survive; the incoming bookmark is the last member.
    """
    return resolve_merge(pending_group(existing, incoming), options, now)
