"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from memvault.memory.embeddings import SimpleEmbeddings  # noqa: E402
from memvault.memory.semantic import SemanticMemory  # noqa: E402
from memvault.memory.vector_store import InMemoryVectorStore, Scope  # noqa: E402
from memvault.utils.config import AppConfig, reset_config  # noqa: E402

TEST_DIM = 64


@pytest.fixture(autouse=True)
def _reset_global_config():
    """Keep the global config from leaking between tests."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def app_config() -> AppConfig:
    """Default configuration with small hash embeddings."""
    config = AppConfig()
    config.embedding.dimension = TEST_DIM
    config.embedding.use_simple = True
    return config


@pytest.fixture
def embeddings() -> SimpleEmbeddings:
    return SimpleEmbeddings(dimension=TEST_DIM)


@pytest.fixture
def scope() -> Scope:
    return Scope("u1")


@pytest.fixture
def semantic_memory(app_config: AppConfig, embeddings: SimpleEmbeddings) -> SemanticMemory:
    """Semantic memory backed by hash embeddings and an in-memory store."""
    return SemanticMemory(
        embeddings=embeddings,
        vector_store=InMemoryVectorStore(),
        config=app_config,
    )


@pytest.fixture
def unit_vector():
    """Factory for normalized random vectors of a given dimension."""
    rng = np.random.default_rng(42)

    def _make(dimension: int = TEST_DIM) -> list[float]:
        v = rng.standard_normal(dimension)
        return (v / np.linalg.norm(v)).tolist()

    return _make
