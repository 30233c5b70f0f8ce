"""In-process vector store with per-scope collections.

Provides CRUD operations for storing embeddings and exact top-k cosine
similarity search with optional metadata filtering.
"""

import dataclasses
import heapq
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Protocol, runtime_checkable

import numpy as np

from memvault.errors import (
    CollectionExistsError,
    CollectionNotFoundError,
    DimensionalityMismatchError,
    IdConflictError,
    InvalidArgumentError,
    InvalidQueryError,
    MemoryNotFoundError,
)
from memvault.filtering.filters import FilterQuery
from memvault.memory.embeddings import cosine_similarities
from memvault.utils.concurrency import Deadline, ReadWriteLock, check_deadline
from memvault.utils.logging import get_logger

logger = get_logger("memory.vector_store")

# Rows scored per numpy block between deadline checks
SEARCH_BLOCK_SIZE = 4096

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class Scope:
    """Partition key isolating one collection of memories."""

    user_id: str
    agent_id: Optional[str] = None
    run_id: Optional[str] = None

    def collection_name(self, prefix: str = "mem0") -> str:
        parts = [prefix, self.user_id]
        if self.agent_id:
            parts.append(self.agent_id)
        if self.run_id:
            parts.append(self.run_id)
        return "_".join(parts)

    def __str__(self) -> str:
        return self.collection_name("scope")


@dataclass
class MemoryRecord:
    """A memory record stored in the vector store."""

    id: str
    content: str = ""
    embedding: list[float] = field(default_factory=list)
    memory_type: str = "general"
    user_id: str = ""
    agent_id: str | None = None
    run_id: str | None = None
    fingerprint: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    similarity: float | None = None  # Set during search

    @property
    def scope(self) -> Scope:
        return Scope(self.user_id, self.agent_id, self.run_id)

    def filter_fields(self) -> dict[str, Any]:
        """Mapping that filters and aggregations are evaluated against.

        Metadata plus system fields; system fields win on a name clash.
        """
        fields = dict(self.metadata)
        fields.update(
            id=self.id,
            memory_type=self.memory_type,
            user_id=self.user_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
        if self.agent_id is not None:
            fields["agent_id"] = self.agent_id
        if self.run_id is not None:
            fields["run_id"] = self.run_id
        return {key: value for key, value in fields.items() if value is not None}

    def copy(self, **changes: Any) -> "MemoryRecord":
        """Detached copy; the embedding and metadata are not shared."""
        changes.setdefault("embedding", list(self.embedding))
        changes.setdefault("metadata", dict(self.metadata))
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "content": self.content,
            "memory_type": self.memory_type,
            "user_id": self.user_id,
            "agent_id": self.agent_id,
            "run_id": self.run_id,
            "fingerprint": self.fingerprint,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "similarity": self.similarity,
        }


@runtime_checkable
class VectorStore(Protocol):
    """Storage contract every backend implements.

    The orchestrator only talks to this interface, so a remote backend can
    replace InMemoryVectorStore without changes elsewhere.
    """

    def create_collection(self, scope: Scope, dimension: int) -> None:
        ...

    def collection_exists(self, scope: Scope) -> bool:
        ...

    def delete_collection(self, scope: Scope) -> bool:
        ...

    def upsert(self, scope: Scope, record: MemoryRecord) -> None:
        ...

    def replace(self, scope: Scope, record: MemoryRecord) -> None:
        ...

    def search(
        self,
        scope: Scope,
        query_vector: list[float],
        filter: FilterQuery | None = None,
        k: int = 5,
        min_similarity: float | None = None,
        deadline: Deadline | None = None,
    ) -> list[MemoryRecord]:
        ...

    def delete(self, scope: Scope, record_id: str) -> bool:
        ...

    def get(self, scope: Scope, record_id: str) -> MemoryRecord | None:
        ...

    def list(self, scope: Scope) -> list[MemoryRecord]:
        ...

    def locate(self, record_id: str) -> Scope | None:
        ...

    def count(self, scope: Scope | None = None) -> int:
        ...

    def close(self) -> None:
        ...


class _Collection:
    """Records of one scope plus a dense vector array for scanning.

    Deleting swaps the last row into the freed slot, so row order is not
    insertion order once anything has been deleted.
    """

    def __init__(self, scope: Scope, dimension: int) -> None:
        self.scope = scope
        self.dimension = dimension
        self.lock = ReadWriteLock()
        self.records: dict[str, MemoryRecord] = {}
        self.row_of: dict[str, int] = {}
        self.row_ids: list[str] = []
        self.vectors = np.empty((16, dimension), dtype=np.float64)

    def __len__(self) -> int:
        return len(self.row_ids)

    def put(self, record: MemoryRecord, vector: np.ndarray) -> None:
        row = self.row_of.get(record.id)
        if row is None:
            row = len(self.row_ids)
            if row == self.vectors.shape[0]:
                grown = np.empty((row * 2, self.dimension), dtype=np.float64)
                grown[:row] = self.vectors[:row]
                self.vectors = grown
            self.row_ids.append(record.id)
            self.row_of[record.id] = row
        self.vectors[row] = vector
        self.records[record.id] = record

    def remove(self, record_id: str) -> bool:
        row = self.row_of.pop(record_id, None)
        if row is None:
            return False
        last = len(self.row_ids) - 1
        if row != last:
            moved = self.row_ids[last]
            self.row_ids[row] = moved
            self.row_of[moved] = row
            self.vectors[row] = self.vectors[last]
        self.row_ids.pop()
        del self.records[record_id]
        return True


def _rank_key(record: MemoryRecord, score: float) -> tuple[float, float, str]:
    # similarity desc, then most recently updated, then id asc
    updated = record.updated_at or _EPOCH
    return (-score, -updated.timestamp(), record.id)


class InMemoryVectorStore:
    """In-memory vector store.

    Each scope owns a collection guarded by its own reader/writer lock, so
    searches run concurrently and operations on different scopes never
    contend. A small registry lock protects the scope table and the global
    id index.
    """

    def __init__(self) -> None:
        """Initialize in-memory store."""
        self._collections: dict[Scope, _Collection] = {}
        self._owner_of: dict[str, Scope] = {}
        self._registry_lock = threading.Lock()
        logger.info("InMemoryVectorStore initialized")

    def close(self) -> None:
        """No-op for in-memory store."""
        pass

    def _collection(self, scope: Scope) -> _Collection | None:
        with self._registry_lock:
            return self._collections.get(scope)

    def create_collection(self, scope: Scope, dimension: int) -> None:
        """Create a collection; a no-op if it exists with the same dimension.

        Raises:
            CollectionExistsError: If it exists with another dimension.
        """
        if dimension <= 0:
            raise InvalidArgumentError(f"Dimension must be positive, got {dimension}")
        with self._registry_lock:
            existing = self._collections.get(scope)
            if existing is not None:
                if existing.dimension != dimension:
                    raise CollectionExistsError(str(scope), existing.dimension, dimension)
                return
            self._collections[scope] = _Collection(scope, dimension)
        logger.debug(f"Created collection {scope} with dimension {dimension}")

    def collection_exists(self, scope: Scope) -> bool:
        return self._collection(scope) is not None

    def delete_collection(self, scope: Scope) -> bool:
        """Drop a collection and every record in it."""
        with self._registry_lock:
            collection = self._collections.pop(scope, None)
        if collection is None:
            return False
        with collection.lock.write_locked():
            ids = list(collection.records)
            collection.records.clear()
            collection.row_of.clear()
            collection.row_ids.clear()
            with self._registry_lock:
                for record_id in ids:
                    if self._owner_of.get(record_id) == scope:
                        del self._owner_of[record_id]
        logger.info(f"Deleted collection {scope} ({len(ids)} records)")
        return True

    def _prepare(
        self, scope: Scope, record: MemoryRecord, action: str
    ) -> tuple[_Collection, MemoryRecord, np.ndarray]:
        collection = self._collection(scope)
        if collection is None:
            raise CollectionNotFoundError(str(scope))

        vector = np.array(record.embedding, dtype=np.float64)
        if vector.ndim != 1 or vector.shape[0] != collection.dimension:
            actual = vector.shape[0] if vector.ndim == 1 else vector.size
            raise DimensionalityMismatchError(
                collection.dimension, actual, context=f"{action} into {scope}"
            )
        return collection, record.copy(embedding=vector.tolist(), similarity=None), vector

    def replace(self, scope: Scope, record: MemoryRecord) -> None:
        """Overwrite an existing record; never inserts.

        The existence check and the write share one write lock, so a record
        deleted in the meantime stays deleted.

        Raises:
            MemoryNotFoundError: If the id is not (or no longer) in the scope.
            CollectionNotFoundError: If the scope has no collection.
            DimensionalityMismatchError: If the vector has the wrong length.
        """
        collection, stored, vector = self._prepare(scope, record, "replace")
        with collection.lock.write_locked():
            if record.id not in collection.records:
                raise MemoryNotFoundError(record.id)
            collection.put(stored, vector)
        logger.debug(f"Replaced record {record.id} in {scope}")

    def upsert(self, scope: Scope, record: MemoryRecord) -> None:
        """Insert a record or replace the one with the same id.

        Raises:
            CollectionNotFoundError: If the scope has no collection.
            DimensionalityMismatchError: If the vector has the wrong length.
            IdConflictError: If the id belongs to another scope.
        """
        collection, stored, vector = self._prepare(scope, record, "upsert")
        with collection.lock.write_locked():
            with self._registry_lock:
                owner = self._owner_of.get(record.id)
                if owner is not None and owner != scope:
                    raise IdConflictError(record.id, str(owner))
                if self._collections.get(scope) is not collection:
                    # dropped while we waited for the lock
                    raise CollectionNotFoundError(str(scope))
                self._owner_of[record.id] = scope
            collection.put(stored, vector)
        logger.debug(f"Upserted record {record.id} into {scope}")

    def search(
        self,
        scope: Scope,
        query_vector: list[float],
        filter: FilterQuery | None = None,
        k: int = 5,
        min_similarity: float | None = None,
        deadline: Deadline | None = None,
    ) -> list[MemoryRecord]:
        """Exact top-k cosine similarity search.

        Args:
            scope: Collection to search.
            query_vector: Query embedding.
            filter: Metadata predicate candidates must satisfy first.
            k: Maximum number of results.
            min_similarity: Drop results scoring below this.
            deadline: Aborts the scan with OperationCancelledError.

        Returns:
            Record copies with `similarity` set, best first; ties go to the
            most recently updated record, then the smallest id.

        Raises:
            DimensionalityMismatchError: If the query has the wrong length.
            InvalidQueryError: If k is negative or the filter is malformed.
        """
        if k < 0:
            raise InvalidQueryError(f"k must be non-negative, got {k}")
        if filter is not None:
            filter.validate()

        collection = self._collection(scope)
        if collection is None:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        if query.ndim != 1 or query.shape[0] != collection.dimension:
            actual = query.shape[0] if query.ndim == 1 else query.size
            raise DimensionalityMismatchError(
                collection.dimension, actual, context=f"search in {scope}"
            )

        with collection.lock.read_locked():
            if k == 0 or not len(collection):
                return []

            if filter is None:
                rows = np.arange(len(collection))
            else:
                matching = []
                for row, record_id in enumerate(collection.row_ids):
                    check_deadline(deadline, row, "search")
                    if filter.matches(collection.records[record_id].filter_fields()):
                        matching.append(row)
                rows = np.asarray(matching, dtype=np.int64)

            scored: list[tuple[tuple[float, float, str], MemoryRecord, float]] = []
            for start in range(0, len(rows), SEARCH_BLOCK_SIZE):
                if deadline is not None:
                    deadline.check("search")
                block = rows[start:start + SEARCH_BLOCK_SIZE]
                scores = cosine_similarities(query, collection.vectors[block])
                for row, score in zip(block.tolist(), scores.tolist()):
                    if min_similarity is not None and score < min_similarity:
                        continue
                    record = collection.records[collection.row_ids[row]]
                    scored.append((_rank_key(record, score), record, score))

            best = heapq.nsmallest(k, scored, key=lambda item: item[0])
            results = [record.copy(similarity=score) for _, record, score in best]

        logger.debug(f"Search in {scope} returned {len(results)} results")
        return results

    def delete(self, scope: Scope, record_id: str) -> bool:
        """Delete a record; deleting an absent id is not an error.

        Returns:
            True if a record was removed.
        """
        collection = self._collection(scope)
        if collection is None:
            return False
        with collection.lock.write_locked():
            removed = collection.remove(record_id)
            if removed:
                with self._registry_lock:
                    if self._owner_of.get(record_id) == scope:
                        del self._owner_of[record_id]
        if removed:
            logger.debug(f"Deleted record {record_id} from {scope}")
        return removed

    def locate(self, record_id: str) -> Scope | None:
        """Scope owning an id, or None."""
        with self._registry_lock:
            return self._owner_of.get(record_id)

    def scopes(self) -> list[Scope]:
        with self._registry_lock:
            return list(self._collections)

    def get(self, scope: Scope, record_id: str) -> MemoryRecord | None:
        """Get a record by id."""
        collection = self._collection(scope)
        if collection is None:
            return None
        with collection.lock.read_locked():
            record = collection.records.get(record_id)
            return record.copy() if record is not None else None

    def list(self, scope: Scope) -> list[MemoryRecord]:
        """All records of a scope, in no guaranteed order."""
        collection = self._collection(scope)
        if collection is None:
            return []
        with collection.lock.read_locked():
            return [record.copy() for record in collection.records.values()]

    def count(self, scope: Scope | None = None) -> int:
        """Number of records in one scope, or in the whole store."""
        if scope is None:
            with self._registry_lock:
                return len(self._owner_of)
        collection = self._collection(scope)
        if collection is None:
            return 0
        with collection.lock.read_locked():
            return len(collection)
