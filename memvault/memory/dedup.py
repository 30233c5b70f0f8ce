"""Duplicate detection for incoming memories.

Three strategies, fixed per collection:

    EXACT       fingerprint equality, O(1) per check
    SIMILARITY  cosine similarity against a bounded working set of recent
                vectors; the first registered vector scoring above the
                threshold wins, not the best-scoring one
    NONE        never reports a duplicate
"""

import threading
from collections import OrderedDict
from enum import Enum
from typing import Sequence

import numpy as np

from memvault.errors import InvalidArgumentError, MissingVectorError
from memvault.memory.embeddings import compute_fingerprint, cosine_similarity
from memvault.utils.logging import get_logger

logger = get_logger("memory.dedup")


class DedupStrategy(str, Enum):
    """Duplicate detection strategy."""

    EXACT = "exact"
    SIMILARITY = "similarity"
    NONE = "none"


class Deduplicator:
    """Registry of stored content used to reject redundant memories.

    Args:
        strategy: Detection strategy.
        similarity_threshold: Similarity a vector must exceed to count as a
            duplicate (SIMILARITY only).
        working_set_size: Most recent registrations kept for similarity
            checks; the oldest is dropped when full.
    """

    def __init__(
        self,
        strategy: DedupStrategy = DedupStrategy.EXACT,
        similarity_threshold: float = 0.95,
        working_set_size: int = 1000,
    ) -> None:
        if not -1.0 <= similarity_threshold <= 1.0:
            raise InvalidArgumentError(
                f"Similarity threshold must be within [-1, 1], got {similarity_threshold}"
            )
        if working_set_size <= 0:
            raise InvalidArgumentError(
                f"Working set size must be positive, got {working_set_size}"
            )
        self.strategy = DedupStrategy(strategy)
        self.similarity_threshold = similarity_threshold
        self.working_set_size = working_set_size

        self._lock = threading.Lock()
        # fingerprint -> ids sharing it, in registration order
        self._by_fingerprint: dict[str, dict[str, None]] = {}
        self._fingerprint_of: dict[str, str] = {}
        # id -> vector, in registration order
        self._working_set: OrderedDict[str, np.ndarray] = OrderedDict()

    @staticmethod
    def compute_hash(content: str) -> str:
        return compute_fingerprint(content)

    def is_duplicate(self, content: str, vector: Sequence[float] | None = None) -> str | None:
        """Return the id of an already registered duplicate, if any.

        Args:
            content: Candidate memory text.
            vector: Candidate embedding (required for SIMILARITY).

        Returns:
            Id of the matching record, or None.

        Raises:
            MissingVectorError: SIMILARITY strategy called without a vector.
        """
        if self.strategy is DedupStrategy.NONE:
            return None

        if self.strategy is DedupStrategy.EXACT:
            fingerprint = compute_fingerprint(content)
            with self._lock:
                ids = self._by_fingerprint.get(fingerprint)
                return next(iter(ids)) if ids else None

        if vector is None:
            raise MissingVectorError("Similarity deduplication requires a vector")

        with self._lock:
            for record_id, registered in self._working_set.items():
                score = cosine_similarity(vector, registered)
                if score > self.similarity_threshold:
                    logger.debug(
                        f"Similarity duplicate of {record_id} (score={score:.4f})"
                    )
                    return record_id
        return None

    def register(
        self, content: str, record_id: str, vector: Sequence[float] | None = None
    ) -> None:
        """Associate content (and its vector) with a stored record.

        Registering an id again replaces its previous association. Several
        ids may share one fingerprint; the earliest registered one is
        reported as the duplicate.

        Raises:
            MissingVectorError: SIMILARITY strategy called without a vector.
        """
        if self.strategy is DedupStrategy.NONE:
            return
        if self.strategy is DedupStrategy.SIMILARITY and vector is None:
            raise MissingVectorError("Similarity deduplication requires a vector")

        fingerprint = compute_fingerprint(content)
        with self._lock:
            self._drop(record_id)
            self._by_fingerprint.setdefault(fingerprint, {})[record_id] = None
            self._fingerprint_of[record_id] = fingerprint

            if self.strategy is DedupStrategy.SIMILARITY:
                self._working_set[record_id] = np.array(vector, dtype=np.float64)
                while len(self._working_set) > self.working_set_size:
                    oldest, _ = self._working_set.popitem(last=False)
                    self._drop(oldest)

    def forget(self, record_id: str) -> None:
        """Remove a record from the registry, e.g. after it is deleted."""
        with self._lock:
            self._drop(record_id)

    def _drop(self, record_id: str) -> None:
        fingerprint = self._fingerprint_of.pop(record_id, None)
        if fingerprint is not None:
            ids = self._by_fingerprint.get(fingerprint)
            if ids is not None:
                ids.pop(record_id, None)
                if not ids:
                    del self._by_fingerprint[fingerprint]
        self._working_set.pop(record_id, None)

    def clear(self) -> None:
        with self._lock:
            self._by_fingerprint.clear()
            self._fingerprint_of.clear()
            self._working_set.clear()

    @property
    def size(self) -> int:
        """Number of registered records."""
        with self._lock:
            return len(self._fingerprint_of)
