"""
Tests for bookmerge/classifier.py pairwise classification and quick checks.
"""
import pytest

from bookmerge.classifier import check_for_duplicate, check_url, classify, similarity_score
from bookmerge.records import BookmarkRecord, DetectionOptions, DuplicateType
from bookmerge.similarity import title_similarity


class TestClassify:
    """Test classification precedence and strategy toggles."""

    def test_exact_url(self, make_record):
        a = make_record(url="https://example.com/page", title="A")
        b = make_record(url="https://example.com/page", title="Totally different")
        match = classify(a, b)
        assert match.duplicate_type is DuplicateType.EXACT
        assert match.similarity == 1.0

    def test_exact_wins_over_title(self, make_record):
        """Identical URL and identical title is still an exact match."""
        a = make_record(url="https://example.com/", title="Same")
        b = make_record(url="https://example.com/", title="Same")
        assert classify(a, b).duplicate_type is DuplicateType.EXACT

    def test_normalized_url(self, make_record):
        a = make_record(url="https://example.com/page/", title="A")
        b = make_record(url="HTTPS://EXAMPLE.COM/page", title="B")
        match = classify(a, b)
        assert match.duplicate_type is DuplicateType.NORMALIZED
        assert match.similarity == 1.0

    def test_title_similar(self, make_record):
        a = make_record(url="https://react.dev/learn", title="React Documentation")
        b = make_record(url="https://legacy.reactjs.org/docs", title="React Documentations")
        match = classify(a, b)
        assert match.duplicate_type is DuplicateType.TITLE_SIMILAR
        assert match.similarity == pytest.approx(0.95)

    def test_threshold_is_inclusive(self, make_record):
        a = make_record(url="https://one.example/", title="Python Tutorial")
        b = make_record(url="https://two.example/", title="Python Tutorials")
        score = title_similarity(a.title, b.title)
        options = DetectionOptions(title_similarity_threshold=score)
        assert classify(a, b, options).duplicate_type is DuplicateType.TITLE_SIMILAR

    def test_below_threshold(self, make_record):
        a = make_record(url="https://react.dev/learn", title="React Documentation")
        b = make_record(url="https://legacy.reactjs.org/docs", title="React Docs")
        assert classify(a, b) is None

    def test_unrelated(self, make_record):
        a = make_record(url="https://a.example/", title="Alpha")
        b = make_record(url="https://b.example/", title="Omega")
        assert classify(a, b) is None

    def test_blank_titles_never_title_match(self, make_record):
        a = make_record(url="https://a.example/", title="")
        b = make_record(url="https://b.example/", title="   ")
        assert classify(a, b) is None

    def test_disabled_exact_falls_through_to_normalized(self, make_record):
        """Identical URLs also normalize identically."""
        a = make_record(url="https://example.com/page", title="A")
        b = make_record(url="https://example.com/page", title="B")
        options = DetectionOptions(exact_url_matching=False)
        assert classify(a, b, options).duplicate_type is DuplicateType.NORMALIZED

    def test_disabled_normalized(self, make_record):
        a = make_record(url="https://example.com/page/", title="A")
        b = make_record(url="https://example.com/page", title="B")
        options = DetectionOptions(normalized_url_matching=False)
        assert classify(a, b, options) is None

    def test_disabled_title(self, make_record):
        a = make_record(url="https://one.example/", title="Same Title")
        b = make_record(url="https://two.example/", title="Same Title")
        options = DetectionOptions(title_similarity_matching=False)
        assert classify(a, b, options) is None

    def test_all_disabled(self, make_record):
        a = make_record(url="https://example.com/", title="Same")
        b = make_record(url="https://example.com/", title="Same")
        options = DetectionOptions(False, False, False)
        assert classify(a, b, options) is None

    def test_symmetric(self, make_record):
        a = make_record(url="https://example.com/page/", title="React Documentation")
        b = make_record(url="https://example.com/page", title="React Documentations")
        assert classify(a, b) == classify(b, a)

    def test_same_record_rejected(self, make_record):
        a = make_record()
        with pytest.raises(ValueError):
            classify(a, a)

    def test_malformed_urls_compare_by_fallback(self, make_record):
        a = make_record(url="Example.com/Page", title="A")
        b = make_record(url="example.com/page ", title="B")
        assert classify(a, b).duplicate_type is DuplicateType.NORMALIZED


class TestSimilarityScore:
    """Test the weighted similarity breakdown."""

    def test_exact_duplicate_scores_one(self, make_record):
        a = make_record(url="https://example.com/", title="Same")
        b = make_record(url="https://example.com/", title="Same")
        score = similarity_score(a, b)
        assert score.exact == 1.0
        assert score.normalized == 1.0
        assert score.title == 1.0
        assert score.overall == pytest.approx(1.0)

    def test_normalized_only(self, make_record):
        a = make_record(url="https://example.com/", title="abc")
        b = make_record(url="https://EXAMPLE.com", title="xyz")
        score = similarity_score(a, b)
        assert score.exact == 0.0
        assert score.normalized == 1.0
        assert score.overall == pytest.approx(0.3)

    def test_title_weight(self, make_record):
        a = make_record(url="https://a.example/", title="Same")
        b = make_record(url="https://b.example/", title="Same")
        assert similarity_score(a, b).overall == pytest.approx(0.2)

    def test_to_dict(self, make_record):
        a = make_record(url="https://a.example/", title="abc")
        b = make_record(url="https://b.example/", title="xyz")
        assert similarity_score(a, b).to_dict() == {
            "exact": 0.0, "normalized": 0.0, "title": 0.0, "overall": 0.0,
        }


class TestCheckForDuplicate:
    """Test checking a bookmark before it is added."""

    def test_finds_matches_in_collection_order(self, sample_records):
        candidate = BookmarkRecord(id="", title="New", url="https://example.com/page/")
        matches = check_for_duplicate(candidate, sample_records)
        assert [r.id for r in matches] == ["a", "b"]

    def test_title_match(self, sample_records):
        candidate = BookmarkRecord(id="", title="python docs", url="https://elsewhere.example/")
        matches = check_for_duplicate(candidate, sample_records)
        assert [r.id for r in matches] == ["c"]

    def test_skips_itself(self, sample_records):
        matches = check_for_duplicate(sample_records[0], sample_records)
        assert [r.id for r in matches] == ["b"]

    def test_no_match(self, sample_records):
        candidate = BookmarkRecord(id="", title="Fresh", url="https://fresh.example/")
        assert check_for_duplicate(candidate, sample_records) == []


class TestCheckUrl:
    """Test URL-only checks while typing."""

    def test_short_input_returns_nothing(self, sample_records):
        assert check_url("https://", sample_records) == []

    def test_empty_input(self, sample_records):
        assert check_url("", sample_records) == []

    def test_normalized_url_match(self, sample_records):
        matches = check_url("https://docs.python.org/3/", sample_records)
        assert [r.id for r in matches] == ["c", "d"]

    def test_title_matching_never_applies(self, make_record):
        existing = [make_record(url="https://a.example/", title="")]
        assert check_url("https://b.example/", existing) == []

    def test_respects_disabled_strategies(self, sample_records):
        options = DetectionOptions(exact_url_matching=False, normalized_url_matching=False)
        assert check_url("https://example.com/page", sample_records, options) == []
