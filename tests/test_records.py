"""
Tests for bookmerge/records.py data types and options.
"""
from datetime import datetime, timezone

import pytest

from bookmerge.errors import GroupNotFoundError, InvalidOptionError
from bookmerge.records import (
    BookmarkRecord,
    DetectionOptions,
    DuplicateDetectionResult,
    DuplicateGroup,
    DuplicateStats,
    DuplicateType,
    MergeOptions,
    TitlePolicy,
    VisitsPolicy,
    parse_datetime,
    round_half_up,
)


def make_group(group_id, *records, duplicate_type=DuplicateType.EXACT, match_types=None):
    return DuplicateGroup(
        id=group_id,
        duplicate_type=duplicate_type,
        similarity=1.0,
        bookmarks=records,
        match_types=match_types or {duplicate_type},
    )


class TestBookmarkRecord:
    """Test the bookmark snapshot type."""

    def test_is_frozen(self, make_record):
        record = make_record()
        with pytest.raises(AttributeError):
            record.title = "changed"

    def test_tags_become_tuple(self):
        record = BookmarkRecord(id="1", title="t", url="https://example.com", tags=["a", "b"])
        assert record.tags == ("a", "b")
        assert record.tag_set == frozenset({"a", "b"})

    def test_negative_visits_rejected(self):
        with pytest.raises(ValueError):
            BookmarkRecord(id="1", title="t", url="https://example.com", visits=-1)

    def test_to_dict(self, make_record):
        record = make_record("1", "https://example.com", "Ex", tags=("a",))
        data = record.to_dict()
        assert data["id"] == "1"
        assert data["tags"] == ["a"]
        assert data["date_added"] == record.date_added.isoformat()

    def test_from_dict_round_trip(self, make_record):
        record = make_record("1", "https://example.com", "Ex", tags=("a",), is_favorite=True, visits=4)
        assert BookmarkRecord.from_dict(record.to_dict()) == record

    def test_from_dict_camel_case(self):
        record = BookmarkRecord.from_dict({
            "id": 7,
            "url": "https://example.com",
            "title": "Ex",
            "isFavorite": True,
            "dateAdded": "2024-01-01T00:00:00Z",
            "dateModified": "2024-02-01T00:00:00Z",
        })
        assert record.id == "7"
        assert record.is_favorite is True
        assert record.date_added == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert record.date_modified == datetime(2024, 2, 1, tzinfo=timezone.utc)

    def test_from_dict_legacy_keys(self):
        record = BookmarkRecord.from_dict({
            "id": "1", "url": "https://example.com",
            "stars": True, "visit_count": 9, "added": "2023-02-24T13:59:56+00:00",
        })
        assert record.is_favorite is True
        assert record.visits == 9
        assert record.title == ""

    def test_from_dict_requires_id_and_url(self):
        with pytest.raises(ValueError):
            BookmarkRecord.from_dict({"title": "no id"})


class TestParseDatetime:

    def test_naive_becomes_utc(self):
        assert parse_datetime("2024-01-01T00:00:00").tzinfo == timezone.utc

    def test_epoch_seconds(self):
        assert parse_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_datetime(None)


class TestDuplicateType:

    def test_values(self):
        assert DuplicateType.EXACT.value == "exact"
        assert DuplicateType.NORMALIZED.value == "normalized"
        assert DuplicateType.TITLE_SIMILAR.value == "title-similar"

    def test_strongest(self):
        assert DuplicateType.strongest([DuplicateType.TITLE_SIMILAR, DuplicateType.NORMALIZED]) is DuplicateType.NORMALIZED
        assert DuplicateType.strongest(list(DuplicateType)) is DuplicateType.EXACT


class TestDuplicateGroup:

    def test_similarity_bounds(self, make_record):
        with pytest.raises(ValueError):
            DuplicateGroup(id="g", duplicate_type=DuplicateType.EXACT, similarity=1.5,
                           bookmarks=(make_record(), make_record()))

    def test_accessors(self, make_record):
        a, b = make_record("a"), make_record("b")
        group = make_group("g", a, b)
        assert group.size == 2
        assert group.ids == ["a", "b"]
        assert group.first is a
        assert group.last is b

    def test_to_dict(self, make_record):
        group = make_group("g", make_record("a"), make_record("b"))
        data = group.to_dict()
        assert data["duplicate_type"] == "exact"
        assert [b["id"] for b in data["bookmarks"]] == ["a", "b"]
        assert data["match_types"] == ["exact"]

    def test_to_dict_match_types_sorted(self, make_record):
        group = make_group("g", make_record("a"), make_record("b"),
                           match_types={DuplicateType.TITLE_SIMILAR, DuplicateType.EXACT,
                                        DuplicateType.NORMALIZED})
        assert group.to_dict()["match_types"] == ["exact", "normalized", "title-similar"]


class TestDuplicateStats:
    """Test aggregate statistics."""

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(33.3) == 33

    def test_percentage_rounds_half_up(self, make_record):
        """5 of 8 bookmarks is 62.5%, which rounds to 63."""
        groups = [
            make_group("g1", make_record(), make_record(), make_record()),
            make_group("g2", make_record(), make_record()),
        ]
        assert DuplicateStats.compute(groups, scanned_bookmarks=8).percentage_duplicates == 63

    def test_empty_collection(self):
        stats = DuplicateStats.compute([], scanned_bookmarks=0)
        assert stats.percentage_duplicates == 0
        assert stats.total_groups == 0

    def test_match_type_counts(self, make_record):
        groups = [
            make_group("g1", make_record(), make_record(),
                       duplicate_type=DuplicateType.NORMALIZED,
                       match_types={DuplicateType.NORMALIZED, DuplicateType.TITLE_SIMILAR}),
            make_group("g2", make_record(), make_record()),
        ]
        stats = DuplicateStats.compute(groups, scanned_bookmarks=10, detection_time_ms=4)
        assert stats.exact_matches == 1
        assert stats.normalized_matches == 1
        assert stats.title_similar_matches == 1
        assert stats.detection_time_ms == 4


class TestDuplicateDetectionResult:
    """Test result lookups and group removal."""

    def test_get_group(self, make_record):
        group = make_group("g1", make_record(), make_record())
        result = DuplicateDetectionResult((group,), scanned_bookmarks=2)
        assert result.get_group("g1") is group

    def test_get_missing_group(self):
        with pytest.raises(GroupNotFoundError):
            DuplicateDetectionResult().get_group("nope")

    def test_without_group_returns_new_result(self, make_record):
        g1 = make_group("g1", make_record(), make_record())
        g2 = make_group("g2", make_record(), make_record())
        result = DuplicateDetectionResult((g1, g2), scanned_bookmarks=4)

        remaining = result.without_group("g1")

        assert [g.id for g in remaining.duplicate_groups] == ["g2"]
        assert remaining.get_group("g2") is g2
        assert remaining.scanned_bookmarks == 4
        assert [g.id for g in result.duplicate_groups] == ["g1", "g2"]

    def test_without_missing_group(self):
        with pytest.raises(GroupNotFoundError):
            DuplicateDetectionResult().without_group("nope")

    def test_to_dict(self, make_record):
        result = DuplicateDetectionResult((make_group("g1", make_record(), make_record()),),
                                          scanned_bookmarks=4, detection_time_ms=2)
        data = result.to_dict()
        assert data["total_duplicates"] == 2
        assert data["duplicate_stats"]["percentage_duplicates"] == 50
        assert len(data["duplicate_groups"]) == 1


class TestDetectionOptions:

    def test_defaults(self):
        options = DetectionOptions()
        assert options.exact_url_matching
        assert options.normalized_url_matching
        assert options.title_similarity_matching
        assert options.title_similarity_threshold == 0.85

    @pytest.mark.parametrize("threshold", [-0.1, 1.01])
    def test_threshold_range(self, threshold):
        with pytest.raises(InvalidOptionError):
            DetectionOptions(title_similarity_threshold=threshold)

    def test_threshold_edges_allowed(self):
        DetectionOptions(title_similarity_threshold=0.0)
        DetectionOptions(title_similarity_threshold=1.0)


class TestMergeOptions:

    def test_defaults(self):
        options = MergeOptions()
        assert options.keep_title is TitlePolicy.LONGEST
        assert options.combine_tags is True
        assert options.keep_visits is VisitsPolicy.SUM

    def test_strings_coerced(self):
        assert MergeOptions(keep_title="FIRST").keep_title is TitlePolicy.FIRST

    def test_unknown_policy_value(self):
        with pytest.raises(InvalidOptionError):
            MergeOptions(keep_visits="average")

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(InvalidOptionError):
            MergeOptions.from_dict({"keep_color": "first"})

    def test_from_dict_ignores_none(self):
        assert MergeOptions.from_dict({"keep_title": None}) == MergeOptions()

    def test_to_dict_round_trip(self):
        options = MergeOptions(keep_title="last", combine_tags=False, custom_title="T")
        assert MergeOptions.from_dict(options.to_dict()) == options
