"""Local embedding generation and vector math for semantic memory.

Provides embeddings using sentence-transformers, with a hash-based
fallback for testing without models.
"""

import hashlib
import re
import unicodedata
from typing import Protocol, Sequence, runtime_checkable

import numpy as np

from memvault.errors import DimensionalityMismatchError
from memvault.utils.logging import get_logger

logger = get_logger("memory.embeddings")

# Embedding dimension for MiniLM-L6-v2
EMBEDDING_DIM = 384

_WHITESPACE = re.compile(r"\s+")


@runtime_checkable
class Embedder(Protocol):
    """Anything that turns text into fixed-length vectors."""

    def embed(self, text: str) -> list[float]:
        ...

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        ...

    @property
    def dimension(self) -> int:
        ...


def normalize_content(content: str) -> str:
    """Canonical form used for fingerprinting: NFC, trimmed, single spaces."""
    return _WHITESPACE.sub(" ", unicodedata.normalize("NFC", content)).strip()


def compute_fingerprint(content: str) -> str:
    """SHA-256 hex digest of the normalized content.

    Args:
        content: Memory text.

    Returns:
        64-character hex string; equal content always gives an equal value.
    """
    return hashlib.sha256(normalize_content(content).encode("utf-8")).hexdigest()


class LocalEmbeddings:
    """Local embedding generator using sentence-transformers.

    Uses all-MiniLM-L6-v2 by default (~80MB) for efficient
    local embedding generation.
    """

    def __init__(
        self,
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        device: str | None = None,
        dimension: int = EMBEDDING_DIM,
    ) -> None:
        """Initialize embeddings.

        Args:
            model_name: HuggingFace model name for embeddings.
            device: Device to use (None for auto-detect).
            dimension: Output dimension the model is expected to produce.
        """
        self.model_name = model_name
        self.device = device
        self._dimension = dimension
        self._model = None
        logger.info(f"LocalEmbeddings initialized with: {model_name}")

    def _ensure_loaded(self) -> None:
        """Load the model if not already loaded."""
        if self._model is None:
            logger.info(f"Loading embedding model: {self.model_name}")
            try:
                from sentence_transformers import SentenceTransformer

                self._model = SentenceTransformer(
                    self.model_name,
                    device=self.device,
                )
                logger.info("Embedding model loaded successfully")
            except Exception as e:
                logger.error(f"Failed to load embedding model: {e}")
                raise RuntimeError(f"Failed to load embedding model: {e}") from e

    def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Args:
            texts: List of texts to embed.

        Returns:
            List of embedding vectors.
        """
        self._ensure_loaded()

        embeddings = self._model.encode(
            texts,
            convert_to_numpy=True,
            normalize_embeddings=True,
        )

        return embeddings.tolist()

    @property
    def dimension(self) -> int:
        """Return embedding dimension."""
        return self._dimension


class SimpleEmbeddings:
    """Hash-based embeddings for testing without ML models.

    Texts sharing words get overlapping vectors, so similarity search
    behaves plausibly, and the same text always maps to the same vector.
    """

    def __init__(self, dimension: int = EMBEDDING_DIM) -> None:
        """Initialize simple embeddings.

        Args:
            dimension: Embedding dimension.
        """
        self._dimension = dimension
        logger.info(f"SimpleEmbeddings initialized with dimension: {dimension}")

    def _text_to_hash_vector(self, text: str) -> list[float]:
        """Convert text to a deterministic hash-based vector."""
        text_lower = text.lower().strip()
        words = text_lower.split()

        vector = np.zeros(self._dimension, dtype=np.float64)

        for i, word in enumerate(words):
            hash_input = f"{word}_{i % 10}"
            hash_bytes = hashlib.sha256(hash_input.encode()).digest()

            for j in range(0, len(hash_bytes), 2):
                idx = (hash_bytes[j] * 256 + hash_bytes[j + 1]) % self._dimension
                vector[idx] += 1.0 / (i + 1)

        # Also hash the full text for context
        full_hash = hashlib.sha256(text_lower.encode()).digest()
        for j in range(0, len(full_hash), 2):
            idx = (full_hash[j] * 256 + full_hash[j + 1]) % self._dimension
            vector[idx] += 0.5

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm

        return vector.tolist()

    def embed(self, text: str) -> list[float]:
        return self._text_to_hash_vector(text)

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self.embed(text) for text in texts]

    @property
    def dimension(self) -> int:
        """Return embedding dimension."""
        return self._dimension


def create_embeddings(
    use_simple: bool = False, **kwargs
) -> LocalEmbeddings | SimpleEmbeddings:
    """Factory function to create embeddings.

    Args:
        use_simple: If True, use SimpleEmbeddings for testing.
        **kwargs: Additional arguments for the embeddings class.

    Returns:
        Embeddings instance.
    """
    if use_simple:
        return SimpleEmbeddings(**kwargs)
    return LocalEmbeddings(**kwargs)


def cosine_similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors.

    Zero-norm vectors have similarity 0.0 with everything.

    Args:
        v1: First vector.
        v2: Second vector.

    Returns:
        Cosine similarity score in [-1, 1].

    Raises:
        DimensionalityMismatchError: If the vectors differ in length.
    """
    a = np.asarray(v1, dtype=np.float64)
    b = np.asarray(v2, dtype=np.float64)
    if a.shape != b.shape:
        raise DimensionalityMismatchError(a.shape[0], b.shape[0], context="cosine similarity")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.clip(np.dot(a, b) / (norm_a * norm_b), -1.0, 1.0))


def cosine_similarities(query: Sequence[float], matrix: np.ndarray) -> np.ndarray:
    """Cosine similarity of `query` against every row of `matrix`.

    Rows with zero norm, or a zero-norm query, score 0.0.
    """
    q = np.asarray(query, dtype=np.float64)
    if matrix.size == 0:
        return np.zeros(matrix.shape[0], dtype=np.float64)

    query_norm = np.linalg.norm(q)
    row_norms = np.linalg.norm(matrix, axis=1)
    denominators = row_norms * query_norm
    dots = matrix @ q

    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    np.divide(dots, denominators, out=scores, where=denominators > 0)
    return np.clip(scores, -1.0, 1.0)
