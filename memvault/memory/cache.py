"""Bounded LRU cache of embeddings keyed by content fingerprint."""

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Sequence

from memvault.errors import InvalidArgumentError
from memvault.utils.logging import get_logger

logger = get_logger("memory.cache")


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache statistics."""

    hits: int
    misses: int
    size: int
    capacity: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class EmbeddingCache:
    """LRU cache for embeddings.

    Eviction is strict least-recently-used: get() and put() both refresh an
    entry, contains() does not. Vectors are copied on the way in and out so
    callers never share a slot with the cache.

    Args:
        capacity: Maximum number of entries; fixed for the cache's lifetime.
    """

    def __init__(self, capacity: int = 1000) -> None:
        if capacity <= 0:
            raise InvalidArgumentError(f"Cache capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._entries: OrderedDict[str, tuple[float, ...]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        logger.info(f"EmbeddingCache initialized with capacity: {capacity}")

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size

    def get(self, fingerprint: str) -> list[float] | None:
        """Look up a vector and mark it most recently used.

        Args:
            fingerprint: Content fingerprint.

        Returns:
            A copy of the cached vector, or None on a miss.
        """
        with self._lock:
            vector = self._entries.get(fingerprint)
            if vector is None:
                self._misses += 1
                return None
            self._entries.move_to_end(fingerprint)
            self._hits += 1
            return list(vector)

    def put(self, fingerprint: str, vector: Sequence[float]) -> None:
        """Insert or refresh an entry, evicting the LRU entry when full."""
        stored = tuple(float(x) for x in vector)
        with self._lock:
            if fingerprint in self._entries:
                self._entries[fingerprint] = stored
                self._entries.move_to_end(fingerprint)
                return
            while len(self._entries) >= self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Embedding cache evicted LRU: {evicted[:12]}")
            self._entries[fingerprint] = stored

    def contains(self, fingerprint: str) -> bool:
        """Membership test that leaves recency order untouched."""
        with self._lock:
            return fingerprint in self._entries

    def __contains__(self, fingerprint: str) -> bool:
        return self.contains(fingerprint)

    @property
    def hits(self) -> int:
        with self._lock:
            return self._hits

    @property
    def misses(self) -> int:
        with self._lock:
            return self._misses

    @property
    def hit_rate(self) -> float:
        """hits / (hits + misses), or 0.0 before any lookup."""
        return self.stats().hit_rate

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                capacity=self._capacity,
            )

    def clear(self) -> None:
        """Drop every entry and reset the statistics."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
        logger.debug("Embedding cache cleared")
