"""Tests for duplicate detection."""

import pytest

from memvault.errors import InvalidArgumentError, MissingVectorError
from memvault.memory.dedup import DedupStrategy, Deduplicator


class TestExactDedup:
    """Tests for the EXACT strategy."""

    def test_registered_content_is_duplicate(self) -> None:
        dedup = Deduplicator(DedupStrategy.EXACT)
        dedup.register("User likes green tea", "m1")
        assert dedup.is_duplicate("User likes green tea") == "m1"

    def test_unseen_content_is_not_duplicate(self) -> None:
        dedup = Deduplicator(DedupStrategy.EXACT)
        dedup.register("User likes green tea", "m1")
        assert dedup.is_duplicate("User likes coffee") is None

    def test_whitespace_variants_match(self) -> None:
        dedup = Deduplicator(DedupStrategy.EXACT)
        dedup.register("likes  green tea", "m1")
        assert dedup.is_duplicate("  likes green tea ") == "m1"

    def test_reregister_replaces_association(self) -> None:
        """Test re-registering an id drops its old content."""
        dedup = Deduplicator(DedupStrategy.EXACT)
        dedup.register("old content", "m1")
        dedup.register("new content", "m1")

        assert dedup.is_duplicate("old content") is None
        assert dedup.is_duplicate("new content") == "m1"
        assert dedup.size == 1

    def test_shared_fingerprint_keeps_other_ids(self) -> None:
        """Test dropping one of several ids with the same content keeps the rest."""
        dedup = Deduplicator(DedupStrategy.EXACT)
        dedup.register("the sky is blue", "a")
        dedup.register("grass is green", "b")
        dedup.register("the sky is blue", "b")

        assert dedup.is_duplicate("the sky is blue") == "a"
        dedup.forget("b")
        assert dedup.is_duplicate("the sky is blue") == "a"
        assert dedup.is_duplicate("grass is green") is None

    def test_earliest_surviving_id_reported(self) -> None:
        dedup = Deduplicator(DedupStrategy.EXACT)
        dedup.register("same", "a")
        dedup.register("same", "b")
        dedup.forget("a")

        assert dedup.is_duplicate("same") == "b"
        assert dedup.size == 1

    def test_forget(self) -> None:
        dedup = Deduplicator(DedupStrategy.EXACT)
        dedup.register("content", "m1")
        dedup.forget("m1")
        assert dedup.is_duplicate("content") is None
        assert dedup.size == 0

    def test_clear(self) -> None:
        dedup = Deduplicator()
        dedup.register("a", "1")
        dedup.register("b", "2")
        dedup.clear()
        assert dedup.size == 0


class TestSimilarityDedup:
    """Tests for the SIMILARITY strategy."""

    def test_requires_vector(self) -> None:
        dedup = Deduplicator(DedupStrategy.SIMILARITY)
        with pytest.raises(MissingVectorError):
            dedup.is_duplicate("content")
        with pytest.raises(MissingVectorError):
            dedup.register("content", "m1")

    def test_near_identical_vector_is_duplicate(self) -> None:
        dedup = Deduplicator(DedupStrategy.SIMILARITY, similarity_threshold=0.9)
        dedup.register("a", "m1", [1.0, 0.0, 0.0])
        assert dedup.is_duplicate("b", [0.99, 0.05, 0.0]) == "m1"

    def test_threshold_is_strict(self) -> None:
        """Test a score equal to the threshold is not a duplicate."""
        dedup = Deduplicator(DedupStrategy.SIMILARITY, similarity_threshold=1.0)
        dedup.register("a", "m1", [1.0, 0.0])
        assert dedup.is_duplicate("a", [1.0, 0.0]) is None

    def test_first_registered_match_wins(self) -> None:
        dedup = Deduplicator(DedupStrategy.SIMILARITY, similarity_threshold=0.5)
        dedup.register("a", "first", [1.0, 0.3])
        dedup.register("b", "second", [1.0, 0.0])
        assert dedup.is_duplicate("c", [1.0, 0.0]) == "first"

    def test_dissimilar_vector_is_not_duplicate(self) -> None:
        dedup = Deduplicator(DedupStrategy.SIMILARITY, similarity_threshold=0.9)
        dedup.register("a", "m1", [1.0, 0.0])
        assert dedup.is_duplicate("b", [0.0, 1.0]) is None

    def test_working_set_is_bounded(self) -> None:
        dedup = Deduplicator(DedupStrategy.SIMILARITY, similarity_threshold=0.9, working_set_size=2)
        dedup.register("a", "m1", [1.0, 0.0, 0.0])
        dedup.register("b", "m2", [0.0, 1.0, 0.0])
        dedup.register("c", "m3", [0.0, 0.0, 1.0])

        assert dedup.size == 2
        assert dedup.is_duplicate("x", [1.0, 0.0, 0.0]) is None
        assert dedup.is_duplicate("y", [0.0, 0.0, 1.0]) == "m3"


class TestDedupConfiguration:
    """Tests for strategy selection and validation."""

    def test_none_never_reports(self) -> None:
        dedup = Deduplicator(DedupStrategy.NONE)
        dedup.register("content", "m1")
        assert dedup.is_duplicate("content") is None
        assert dedup.size == 0

    def test_strategy_from_string(self) -> None:
        assert Deduplicator("similarity").strategy is DedupStrategy.SIMILARITY

    @pytest.mark.parametrize("threshold", [-1.5, 1.01])
    def test_threshold_out_of_range(self, threshold: float) -> None:
        with pytest.raises(InvalidArgumentError):
            Deduplicator(DedupStrategy.SIMILARITY, similarity_threshold=threshold)

    def test_working_set_must_be_positive(self) -> None:
        with pytest.raises(InvalidArgumentError):
            Deduplicator(working_set_size=0)
