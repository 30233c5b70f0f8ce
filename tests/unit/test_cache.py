"""Tests for the LRU embedding cache."""

import threading

import pytest

from memvault.errors import InvalidArgumentError
from memvault.memory.cache import CacheStats, EmbeddingCache


class TestEmbeddingCache:
    """Tests for EmbeddingCache."""

    def test_rejects_non_positive_capacity(self) -> None:
        with pytest.raises(InvalidArgumentError):
            EmbeddingCache(capacity=0)

    def test_put_and_get(self) -> None:
        cache = EmbeddingCache(capacity=4)
        cache.put("a", [1.0, 2.0])
        assert cache.get("a") == [1.0, 2.0]
        assert len(cache) == 1

    def test_miss_returns_none(self) -> None:
        cache = EmbeddingCache(capacity=4)
        assert cache.get("missing") is None
        assert cache.misses == 1

    def test_hit_rate_after_miss_then_hit(self) -> None:
        """Test one miss followed by one hit on the same key gives 0.5."""
        cache = EmbeddingCache(capacity=4)
        assert cache.get("k") is None
        cache.put("k", [0.5])
        assert cache.get("k") == [0.5]

        assert cache.hits == 1
        assert cache.misses == 1
        assert cache.hit_rate == pytest.approx(0.5)

    def test_hit_rate_without_lookups(self) -> None:
        assert EmbeddingCache().hit_rate == 0.0

    def test_touched_entry_survives_eviction(self) -> None:
        """Test get() refreshes recency so the untouched key is evicted."""
        cache = EmbeddingCache(capacity=2)
        cache.put("x", [1.0])
        cache.put("y", [2.0])
        cache.get("x")
        cache.put("z", [3.0])

        assert cache.contains("x")
        assert not cache.contains("y")
        assert cache.contains("z")

    def test_capacity_plus_one_evicts_oldest(self) -> None:
        cache = EmbeddingCache(capacity=3)
        for key in ["a", "b", "c", "d"]:
            cache.put(key, [0.0])

        assert "a" not in cache
        assert all(key in cache for key in ["b", "c", "d"])
        assert cache.size == 3

    def test_contains_does_not_refresh(self) -> None:
        cache = EmbeddingCache(capacity=2)
        cache.put("x", [1.0])
        cache.put("y", [2.0])
        assert cache.contains("x")
        cache.put("z", [3.0])

        assert "x" not in cache
        assert "y" in cache

    def test_put_existing_key_refreshes(self) -> None:
        cache = EmbeddingCache(capacity=2)
        cache.put("x", [1.0])
        cache.put("y", [2.0])
        cache.put("x", [9.0])
        cache.put("z", [3.0])

        assert cache.get("x") == [9.0]
        assert "y" not in cache

    def test_returned_vector_is_a_copy(self) -> None:
        cache = EmbeddingCache(capacity=2)
        original = [1.0, 2.0]
        cache.put("x", original)
        original.append(3.0)
        fetched = cache.get("x")
        fetched[0] = 100.0

        assert cache.get("x") == [1.0, 2.0]

    def test_clear_resets_entries_and_stats(self) -> None:
        cache = EmbeddingCache(capacity=2)
        cache.put("x", [1.0])
        cache.get("x")
        cache.get("y")
        cache.clear()

        assert len(cache) == 0
        assert cache.hits == 0
        assert cache.misses == 0

    def test_stats_snapshot(self) -> None:
        cache = EmbeddingCache(capacity=5)
        cache.put("x", [1.0])
        cache.get("x")

        stats = cache.stats()
        assert stats == CacheStats(hits=1, misses=0, size=1, capacity=5)
        assert stats.hit_rate == 1.0

    def test_concurrent_puts_respect_capacity(self) -> None:
        cache = EmbeddingCache(capacity=50)

        def writer(offset: int) -> None:
            for i in range(200):
                cache.put(f"{offset}-{i}", [float(i)])
                cache.get(f"{offset}-{i}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert cache.size == 50
        assert cache.hits + cache.misses == 800
