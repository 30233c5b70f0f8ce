"""Semantic Memory module for MemVault.

Provides vector-based semantic memory with deduplication and an embedding
cache for storing and retrieving context across sessions.
"""

from memvault.memory.batch import (
    BatchOp,
    BatchOpType,
    BatchProcessor,
    BatchResult,
)
from memvault.memory.cache import CacheStats, EmbeddingCache
from memvault.memory.dedup import DedupStrategy, Deduplicator
from memvault.memory.embeddings import (
    EMBEDDING_DIM,
    Embedder,
    LocalEmbeddings,
    SimpleEmbeddings,
    compute_fingerprint,
    cosine_similarity,
    create_embeddings,
)
from memvault.memory.mem0_layer import (
    Mem0Layer,
    MemoryStats,
    create_mem0_layer,
)
from memvault.memory.prompts import PromptManager, PromptTemplate
from memvault.memory.semantic import (
    AddResult,
    Memory,
    MemoryType,
    SemanticMemory,
    create_semantic_memory,
)
from memvault.memory.vector_store import (
    InMemoryVectorStore,
    MemoryRecord,
    Scope,
    VectorStore,
)

__all__ = [
    # Embeddings
    "EMBEDDING_DIM",
    "Embedder",
    "LocalEmbeddings",
    "SimpleEmbeddings",
    "compute_fingerprint",
    "create_embeddings",
    "cosine_similarity",
    # Cache and dedup
    "CacheStats",
    "EmbeddingCache",
    "DedupStrategy",
    "Deduplicator",
    # Vector Store
    "VectorStore",
    "InMemoryVectorStore",
    "MemoryRecord",
    "Scope",
    # Batch and prompts
    "BatchOp",
    "BatchOpType",
    "BatchProcessor",
    "BatchResult",
    "PromptManager",
    "PromptTemplate",
    # Semantic Memory
    "SemanticMemory",
    "AddResult",
    "Memory",
    "MemoryType",
    "create_semantic_memory",
    # Mem0 Layer
    "Mem0Layer",
    "MemoryStats",
    "create_mem0_layer",
]
