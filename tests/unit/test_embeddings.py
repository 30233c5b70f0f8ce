"""Tests for embeddings, fingerprints and cosine similarity."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from memvault.errors import DimensionalityMismatchError
from memvault.memory.embeddings import (
    EMBEDDING_DIM,
    Embedder,
    LocalEmbeddings,
    SimpleEmbeddings,
    compute_fingerprint,
    cosine_similarities,
    cosine_similarity,
    create_embeddings,
    normalize_content,
)


class TestSimpleEmbeddings:
    """Tests for SimpleEmbeddings."""

    def test_default_dimension(self) -> None:
        """Test SimpleEmbeddings uses the MiniLM dimension by default."""
        embeddings = SimpleEmbeddings()
        assert embeddings.dimension == EMBEDDING_DIM

    def test_custom_dimension(self) -> None:
        embeddings = SimpleEmbeddings(dimension=128)
        assert embeddings.dimension == 128
        assert len(embeddings.embed("hello")) == 128

    def test_embed_batch(self) -> None:
        """Test embedding multiple texts."""
        embeddings = SimpleEmbeddings()
        results = embeddings.embed_batch(["Hello", "World", "Test"])

        assert len(results) == 3
        assert all(len(r) == EMBEDDING_DIM for r in results)

    def test_embeddings_are_normalized(self) -> None:
        embeddings = SimpleEmbeddings()
        result = embeddings.embed("Test normalization")
        assert np.linalg.norm(result) == pytest.approx(1.0)

    def test_deterministic(self) -> None:
        """Test that same text produces same embedding."""
        embeddings = SimpleEmbeddings()
        assert embeddings.embed("Consistent text") == embeddings.embed("Consistent text")

    def test_different_texts_differ(self) -> None:
        embeddings = SimpleEmbeddings()
        assert embeddings.embed("First text") != embeddings.embed("Second text")

    def test_satisfies_embedder_protocol(self) -> None:
        assert isinstance(SimpleEmbeddings(), Embedder)


class TestLocalEmbeddings:
    """Tests for LocalEmbeddings with the model mocked out."""

    def test_model_loaded_lazily(self) -> None:
        embeddings = LocalEmbeddings()
        assert embeddings._model is None
        assert embeddings.dimension == EMBEDDING_DIM

    def test_embed_uses_sentence_transformer(self) -> None:
        """Test encode is called with normalization enabled."""
        model = MagicMock()
        model.encode.return_value = np.ones((1, 4))
        embeddings = LocalEmbeddings(dimension=4)
        embeddings._model = model

        result = embeddings.embed("hello")

        assert result == [1.0, 1.0, 1.0, 1.0]
        model.encode.assert_called_once_with(
            ["hello"], convert_to_numpy=True, normalize_embeddings=True
        )

    def test_load_failure_raises_runtime_error(self) -> None:
        embeddings = LocalEmbeddings(model_name="missing-model")
        with patch(
            "sentence_transformers.SentenceTransformer", side_effect=OSError("no such model")
        ):
            with pytest.raises(RuntimeError, match="Failed to load embedding model"):
                embeddings.embed("hello")


class TestCreateEmbeddings:
    """Tests for create_embeddings factory."""

    def test_create_simple(self) -> None:
        assert isinstance(create_embeddings(use_simple=True), SimpleEmbeddings)

    def test_create_local(self) -> None:
        embeddings = create_embeddings(model_name="some/model", dimension=16)
        assert isinstance(embeddings, LocalEmbeddings)
        assert embeddings.model_name == "some/model"
        assert embeddings.dimension == 16


class TestFingerprint:
    """Tests for content fingerprints."""

    def test_is_sha256_hex(self) -> None:
        fingerprint = compute_fingerprint("hello")
        assert len(fingerprint) == 64
        int(fingerprint, 16)

    def test_whitespace_is_normalized(self) -> None:
        """Test surrounding and repeated whitespace do not change the fingerprint."""
        assert compute_fingerprint("  likes   green tea \n") == compute_fingerprint(
            "likes green tea"
        )

    def test_unicode_is_nfc_normalized(self) -> None:
        composed = "caf\u00e9"
        decomposed = "cafe\u0301"
        assert compute_fingerprint(composed) == compute_fingerprint(decomposed)

    def test_case_is_preserved(self) -> None:
        assert compute_fingerprint("Tea") != compute_fingerprint("tea")

    def test_normalize_content(self) -> None:
        assert normalize_content("\ta  b\n c ") == "a b c"


class TestCosineSimilarity:
    """Tests for cosine similarity function."""

    def test_identical_vectors(self) -> None:
        v = [0.3, -1.2, 4.0]
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_orthogonal_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite_vectors(self) -> None:
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector_scores_zero(self) -> None:
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_bounded(self, unit_vector) -> None:
        """Test random pairs always land in [-1, 1]."""
        for _ in range(20):
            score = cosine_similarity(unit_vector(), unit_vector())
            assert -1.0 <= score <= 1.0

    def test_length_mismatch_raises(self) -> None:
        with pytest.raises(DimensionalityMismatchError) as exc_info:
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])
        assert exc_info.value.expected == 2
        assert exc_info.value.actual == 3

    def test_vectorized_matches_scalar(self, unit_vector) -> None:
        query = unit_vector(8)
        rows = [unit_vector(8) for _ in range(5)]
        scores = cosine_similarities(query, np.array(rows))

        for row, score in zip(rows, scores):
            assert score == pytest.approx(cosine_similarity(query, row))

    def test_vectorized_zero_rows(self) -> None:
        scores = cosine_similarities([1.0, 0.0], np.array([[0.0, 0.0], [2.0, 0.0]]))
        assert scores.tolist() == pytest.approx([0.0, 1.0])
