"""High-level semantic memory interface.

Combines the embedder, embedding cache, deduplicator, vector store and
filter engine behind add/search/update/delete/list operations.
"""

import asyncio
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from memvault.errors import (
    InvalidArgumentError,
    MemVaultError,
    MemoryNotFoundError,
)
from memvault.filtering.filters import FilterQuery
from memvault.filtering.query import FilterEngine, Query, QueryResult
from memvault.memory.batch import BatchOp, BatchOpType, BatchProcessor, BatchResult
from memvault.memory.cache import CacheStats, EmbeddingCache
from memvault.memory.dedup import DedupStrategy, Deduplicator
from memvault.memory.embeddings import Embedder, compute_fingerprint, create_embeddings
from memvault.memory.vector_store import (
    InMemoryVectorStore,
    MemoryRecord,
    Scope,
    VectorStore,
)
from memvault.utils.concurrency import Deadline
from memvault.utils.config import AppConfig, get_config
from memvault.utils.logging import get_logger

logger = get_logger("memory.semantic")


class MemoryType(str, Enum):
    """Types of memories that can be stored."""

    GENERAL = "general"
    FACT = "fact"
    PREFERENCE = "preference"
    INSIGHT = "insight"
    GOAL = "goal"
    CONTEXT = "context"


def _memory_type(value: str) -> "MemoryType | str":
    try:
        return MemoryType(value)
    except ValueError:
        return value


@dataclass
class Memory:
    """A semantic memory with content and metadata."""

    content: str
    memory_type: MemoryType | str
    user_id: str
    agent_id: str | None = None
    run_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    fingerprint: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    similarity: float | None = None

    @property
    def scope(self) -> Scope:
        return Scope(self.user_id, self.agent_id, self.run_id)

    @classmethod
    def from_record(cls, record: MemoryRecord) -> "Memory":
        """Create from MemoryRecord.

        Args:
            record: MemoryRecord from vector store.

        Returns:
            Memory instance.
        """
        return cls(
            id=record.id,
            content=record.content,
            memory_type=_memory_type(record.memory_type),
            user_id=record.user_id,
            agent_id=record.agent_id,
            run_id=record.run_id,
            metadata=record.metadata,
            fingerprint=record.fingerprint,
            created_at=record.created_at,
            updated_at=record.updated_at,
            similarity=record.similarity,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        memory_type = self.memory_type
        return {
            "id": self.id,
            "content": self.content,
            "memory_type": memory_type.value if isinstance(memory_type, MemoryType) else memory_type,
            "user_id": self.user_id,
            "agent_id": self.agent_id,
            "run_id": self.run_id,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "similarity": self.similarity,
        }


@dataclass
class AddResult:
    """Outcome of SemanticMemory.add().

    Attributes:
        memory: The stored memory, or the existing one it duplicates.
        duplicate: True when nothing new was stored.
    """

    memory: Memory
    duplicate: bool = False


def _type_value(memory_type: MemoryType | str) -> str:
    return memory_type.value if isinstance(memory_type, MemoryType) else str(memory_type)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _created_key(record: MemoryRecord) -> tuple[datetime, str]:
    return (record.created_at or _EPOCH, record.id)


class SemanticMemory:
    """High-level semantic memory interface.

    Write path: exact dedup check, cache-assisted embedding, similarity dedup
    check, upsert, dedup registration. Embedder calls run in a worker
    thread and never while a store, cache or dedup lock is held.
    """

    def __init__(
        self,
        embeddings: Embedder | None = None,
        vector_store: VectorStore | None = None,
        cache: EmbeddingCache | None = None,
        dedup_strategy: DedupStrategy | str | None = None,
        similarity_threshold: float | None = None,
        config: AppConfig | None = None,
        use_simple: bool = False,
    ) -> None:
        """Initialize semantic memory.

        Args:
            embeddings: Embedding generator. Created if not provided.
            vector_store: Vector store. InMemoryVectorStore if not provided.
            cache: Embedding cache. Created from config if not provided.
            dedup_strategy: Deduplication strategy for every scope.
            similarity_threshold: Threshold for similarity deduplication.
            config: Application config; the global one if not provided.
            use_simple: Use hash-based embeddings for testing.
        """
        self.config = config or get_config()

        if embeddings is None:
            embedding_config = self.config.embedding
            if use_simple or embedding_config.use_simple:
                embeddings = create_embeddings(use_simple=True, dimension=embedding_config.dimension)
            else:
                embeddings = create_embeddings(
                    model_name=embedding_config.model_name,
                    device=embedding_config.device,
                    dimension=embedding_config.dimension,
                )
        self.embeddings = embeddings
        self.vector_store = vector_store if vector_store is not None else InMemoryVectorStore()
        self.cache = cache if cache is not None else EmbeddingCache(self.config.cache.capacity)

        self.dedup_strategy = DedupStrategy(dedup_strategy or self.config.dedup.strategy)
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else self.config.dedup.similarity_threshold
        )
        self._deduplicators: dict[Scope, Deduplicator] = {}
        self._dedup_lock = threading.Lock()

        self.filter_engine = FilterEngine()
        self.batch_processor = BatchProcessor(self.config.memory.batch_size)

        logger.info(
            f"SemanticMemory initialized with "
            f"{type(self.embeddings).__name__} and {type(self.vector_store).__name__}"
        )

    @property
    def dimension(self) -> int:
        return self.embeddings.dimension

    async def close(self) -> None:
        """Close resources."""
        self.vector_store.close()

    def collection_name(self, scope: Scope) -> str:
        return scope.collection_name(self.config.memory.collection_prefix)

    def _deduplicator(self, scope: Scope) -> Deduplicator:
        with self._dedup_lock:
            dedup = self._deduplicators.get(scope)
            if dedup is None:
                dedup = Deduplicator(
                    self.dedup_strategy,
                    similarity_threshold=self.similarity_threshold,
                    working_set_size=self.config.dedup.working_set_size,
                )
                self._deduplicators[scope] = dedup
            return dedup

    def _ensure_collection(self, scope: Scope) -> None:
        self.vector_store.create_collection(scope, self.dimension)

    async def _embed(self, text: str, fingerprint: str | None = None) -> list[float]:
        """Embed text, consulting the cache first."""
        fingerprint = fingerprint or compute_fingerprint(text)
        cached = self.cache.get(fingerprint)
        if cached is not None:
            return cached
        vector = await asyncio.to_thread(self.embeddings.embed, text)
        self.cache.put(fingerprint, vector)
        return list(vector)

    async def _embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts with one batch call for the cache misses."""
        fingerprints = [compute_fingerprint(text) for text in texts]
        vectors: list[Optional[list[float]]] = [self.cache.get(fp) for fp in fingerprints]
        missing = [i for i, vector in enumerate(vectors) if vector is None]
        if missing:
            computed = await asyncio.to_thread(
                self.embeddings.embed_batch, [texts[i] for i in missing]
            )
            for i, vector in zip(missing, computed):
                self.cache.put(fingerprints[i], vector)
                vectors[i] = list(vector)
        return vectors  # type: ignore[return-value]

    def _existing(self, scope: Scope, record_id: str | None) -> MemoryRecord | None:
        if record_id is None:
            return None
        return self.vector_store.get(scope, record_id)

    def _exact_duplicate(self, scope: Scope, content: str) -> MemoryRecord | None:
        dedup = self._deduplicator(scope)
        if dedup.strategy is not DedupStrategy.EXACT:
            return None
        return self._existing(scope, dedup.is_duplicate(content))

    async def add(
        self,
        scope: Scope,
        content: str,
        memory_type: MemoryType | str = MemoryType.GENERAL,
        metadata: dict[str, Any] | None = None,
        vector: list[float] | None = None,
    ) -> AddResult:
        """Store a memory unless it duplicates one already in the scope.

        Args:
            scope: Scope to store into.
            content: Text content to remember.
            memory_type: Type of memory.
            metadata: Optional metadata.
            vector: Precomputed embedding; skips the embedder when given.

        Returns:
            AddResult with the stored (or duplicated) memory.

        Raises:
            InvalidArgumentError: If content is empty.
            DimensionalityMismatchError: If the embedding has the wrong length.
        """
        if not content or not content.strip():
            raise InvalidArgumentError("Memory content must not be empty")

        fingerprint = compute_fingerprint(content)
        dedup = self._deduplicator(scope)

        if dedup.strategy is DedupStrategy.EXACT:
            existing = self._exact_duplicate(scope, content)
            if existing is not None:
                logger.debug_with_data(
                    "Exact duplicate skipped", {"existing_id": existing.id, "scope": str(scope)}
                )
                return AddResult(Memory.from_record(existing), duplicate=True)

        if vector is None:
            vector = await self._embed(content, fingerprint)

        if dedup.strategy is DedupStrategy.SIMILARITY:
            existing = self._existing(scope, dedup.is_duplicate(content, vector))
            if existing is not None:
                logger.debug_with_data(
                    "Similar duplicate skipped", {"existing_id": existing.id, "scope": str(scope)}
                )
                return AddResult(Memory.from_record(existing), duplicate=True)

        self._ensure_collection(scope)

        now = _utc_now()
        record = MemoryRecord(
            id=str(uuid4()),
            content=content,
            embedding=list(vector),
            memory_type=_type_value(memory_type),
            user_id=scope.user_id,
            agent_id=scope.agent_id,
            run_id=scope.run_id,
            fingerprint=fingerprint,
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        self.vector_store.upsert(scope, record)
        dedup.register(content, record.id, vector)

        logger.info(f"Stored memory id={record.id} type={record.memory_type} in {scope}")
        return AddResult(Memory.from_record(record))

    async def search(
        self,
        scope: Scope,
        query: str,
        filter: FilterQuery | None = None,
        limit: int | None = None,
        min_similarity: float | None = None,
        deadline: Deadline | None = None,
    ) -> list[Memory]:
        """Retrieve the memories most similar to a query.

        Args:
            scope: Scope to search.
            query: Query text.
            filter: Metadata filter applied before ranking.
            limit: Maximum number of memories to return.
            min_similarity: Minimum similarity threshold.
            deadline: Aborts the scan when it expires.

        Returns:
            Memories sorted by descending similarity.
        """
        if filter is not None:
            filter.validate()
        limit = self.config.memory.search_limit if limit is None else limit

        embedding = await self._embed(query)
        records = self.vector_store.search(
            scope,
            embedding,
            filter=filter,
            k=limit,
            min_similarity=min_similarity,
            deadline=deadline,
        )

        memories = [Memory.from_record(r) for r in records]
        logger.debug(f"Recalled {len(memories)} memories in {scope}")
        return memories

    async def update(
        self,
        memory_id: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Memory:
        """Replace a memory's content (and optionally metadata) in place.

        The id and creation time are kept; the embedding, fingerprint and
        update time are refreshed. A delete that lands while the new content
        is being embedded wins.

        Raises:
            MemoryNotFoundError: If no memory has this id, or it was deleted
                before the update could be written.
        """
        if not content or not content.strip():
            raise InvalidArgumentError("Memory content must not be empty")

        scope = self.vector_store.locate(memory_id)
        current = self.vector_store.get(scope, memory_id) if scope is not None else None
        if current is None:
            raise MemoryNotFoundError(memory_id)

        fingerprint = compute_fingerprint(content)
        vector = await self._embed(content, fingerprint)
        now = _utc_now()
        if current.updated_at is not None and current.updated_at > now:
            now = current.updated_at

        updated = current.copy(
            content=content,
            embedding=list(vector),
            fingerprint=fingerprint,
            metadata=dict(metadata) if metadata is not None else dict(current.metadata),
            updated_at=now,
            similarity=None,
        )
        try:
            self.vector_store.replace(scope, updated)
        except MemoryNotFoundError:
            logger.warning_with_data(
                "Memory deleted while its update was embedding",
                {"memory_id": memory_id, "scope": str(scope)},
            )
            raise

        dedup = self._deduplicator(scope)
        dedup.register(content, memory_id, vector)
        if self.vector_store.get(scope, memory_id) is None:
            # deleted between replace and register
            dedup.forget(memory_id)

        logger.info(f"Updated memory id={memory_id}")
        return Memory.from_record(updated)

    async def delete(self, memory_id: str) -> bool:
        """Delete a memory; unknown ids are ignored.

        Returns:
            True if a memory was deleted.
        """
        scope = self.vector_store.locate(memory_id)
        if scope is None:
            return False
        removed = self.vector_store.delete(scope, memory_id)
        self._deduplicator(scope).forget(memory_id)
        if removed:
            logger.info(f"Deleted memory id={memory_id}")
        return removed

    async def get(self, memory_id: str) -> Memory:
        """Get a specific memory by id.

        Raises:
            MemoryNotFoundError: If no memory has this id.
        """
        scope = self.vector_store.locate(memory_id)
        record = self.vector_store.get(scope, memory_id) if scope is not None else None
        if record is None:
            raise MemoryNotFoundError(memory_id)
        return Memory.from_record(record)

    async def list_memories(
        self,
        scope: Scope,
        memory_type: MemoryType | str | None = None,
        limit: int | None = None,
    ) -> list[Memory]:
        """List a scope's memories, newest first.

        Args:
            scope: Scope to list.
            memory_type: Filter by type.
            limit: Maximum results.
        """
        records = self.vector_store.list(scope)
        if memory_type is not None:
            wanted = _type_value(memory_type)
            records = [r for r in records if r.memory_type == wanted]
        records.sort(key=_created_key, reverse=True)
        if limit is not None:
            records = records[:limit]
        return [Memory.from_record(r) for r in records]

    async def query(
        self,
        scope: Scope,
        query: Query,
        deadline: Deadline | None = None,
    ) -> QueryResult[Memory]:
        """Run a structured filter/aggregation query over a scope's metadata.

        Args:
            scope: Scope to query.
            query: Built query (see QueryBuilder).
            deadline: Aborts the scan when it expires.

        Returns:
            QueryResult whose items are Memory objects.
        """
        query.validate()
        records = self.vector_store.list(scope)
        records.sort(key=_created_key)
        result = self.filter_engine.execute(
            query, records, fields=MemoryRecord.filter_fields, deadline=deadline
        )
        return QueryResult(
            items=[Memory.from_record(r) for r in result.items],
            total=result.total,
            aggregation=result.aggregation,
        )

    async def count(self, scope: Scope | None = None) -> int:
        """Number of memories in a scope, or overall."""
        return self.vector_store.count(scope)

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    async def apply_batch(
        self,
        scope: Scope,
        ops: list[BatchOp],
        continue_on_error: bool | None = None,
    ) -> BatchResult:
        """Apply add/update/delete operations in chunks.

        Add contents of each chunk that are not exact duplicates are
        embedded with one batch call.

        Args:
            scope: Scope that adds go into.
            ops: Operations, applied in order.
            continue_on_error: Override the processor's setting.

        Returns:
            BatchResult with per-operation accounting.
        """
        keep_going = (
            self.batch_processor.continue_on_error
            if continue_on_error is None
            else continue_on_error
        )
        result = BatchResult(total=len(ops))

        for chunk in self.batch_processor.plan(ops):
            adds = list(dict.fromkeys(
                op.content
                for op in chunk
                if op.op_type is BatchOpType.ADD
                and op.content
                and op.content.strip()
                and self._exact_duplicate(scope, op.content) is None
            ))
            vectors = dict(zip(adds, await self._embed_many(adds))) if adds else {}

            for op in chunk:
                try:
                    memory_id = await self._apply_op(scope, op, vectors)
                except MemVaultError as e:
                    logger.error_with_data(
                        "Batch operation failed",
                        {"op": op.op_type.value, "memory_id": op.memory_id, "error": str(e)},
                    )
                    result.add_error(f"{op.op_type.value} {op.memory_id or ''}: {e}".strip())
                    if not keep_going:
                        raise
                    continue
                result.add_success(memory_id)

        logger.info(
            f"Batch applied to {scope}: {result.successful} succeeded, {result.failed} failed"
        )
        return result

    async def _apply_op(
        self, scope: Scope, op: BatchOp, vectors: dict[str, list[float]]
    ) -> str | None:
        if op.op_type is BatchOpType.ADD:
            added = await self.add(
                scope,
                op.content or "",
                memory_type=op.memory_type or MemoryType.GENERAL,
                metadata=op.metadata,
                vector=vectors.get(op.content or ""),
            )
            return added.memory.id
        if op.memory_id is None:
            raise InvalidArgumentError(f"{op.op_type.value} needs a memory id")
        if op.op_type is BatchOpType.UPDATE:
            updated = await self.update(op.memory_id, op.content or "", op.metadata)
            return updated.id
        await self.delete(op.memory_id)
        return op.memory_id


def create_semantic_memory(
    use_simple: bool = False,
    dedup_strategy: DedupStrategy | str | None = None,
    config: AppConfig | None = None,
) -> SemanticMemory:
    """Factory function to create semantic memory.

    Args:
        use_simple: Use hash-based embeddings.
        dedup_strategy: Deduplication strategy override.
        config: Application config override.

    Returns:
        Configured SemanticMemory instance.
    """
    return SemanticMemory(
        vector_store=InMemoryVectorStore(),
        dedup_strategy=dedup_strategy,
        config=config,
        use_simple=use_simple,
    )
