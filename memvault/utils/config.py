"""Configuration management for memvault."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding backend."""

    model_name: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimension: int = 384
    device: Optional[str] = None
    use_simple: bool = False

    @classmethod
    def from_env(cls) -> "EmbeddingConfig":
        """Create configuration from environment variables.

        Returns:
            EmbeddingConfig instance populated from environment.
        """
        load_dotenv()
        return cls(
            model_name=os.getenv(
                "MEMVAULT_EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"
            ),
            dimension=int(os.getenv("MEMVAULT_EMBEDDING_DIM", "384")),
            device=os.getenv("MEMVAULT_EMBEDDING_DEVICE") or None,
            use_simple=_env_bool("MEMVAULT_USE_SIMPLE_EMBEDDINGS", "false"),
        )


@dataclass
class CacheConfig:
    """Configuration for the embedding cache."""

    capacity: int = 1000

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Returns:
            CacheConfig instance populated from environment.
        """
        load_dotenv()
        return cls(capacity=int(os.getenv("MEMVAULT_CACHE_CAPACITY", "1000")))


@dataclass
class DedupConfig:
    """Configuration for duplicate detection.

    The strategy applies to every collection created by one engine.
    """

    strategy: str = "exact"
    similarity_threshold: float = 0.95
    working_set_size: int = 1000

    @classmethod
    def from_env(cls) -> "DedupConfig":
        """Create configuration from environment variables.

        Returns:
            DedupConfig instance populated from environment.
        """
        load_dotenv()
        return cls(
            strategy=os.getenv("MEMVAULT_DEDUP_STRATEGY", "exact").lower(),
            similarity_threshold=float(os.getenv("MEMVAULT_DEDUP_THRESHOLD", "0.95")),
            working_set_size=int(os.getenv("MEMVAULT_DEDUP_WORKING_SET", "1000")),
        )


@dataclass
class MemoryConfig:
    """Configuration for the memory orchestrator."""

    collection_prefix: str = "mem0"
    search_limit: int = 5
    batch_size: int = 32

    @classmethod
    def from_env(cls) -> "MemoryConfig":
        """Create configuration from environment variables.

        Returns:
            MemoryConfig instance populated from environment.
        """
        load_dotenv()
        return cls(
            collection_prefix=os.getenv("MEMVAULT_COLLECTION_PREFIX", "mem0"),
            search_limit=int(os.getenv("MEMVAULT_SEARCH_LIMIT", "5")),
            batch_size=int(os.getenv("MEMVAULT_BATCH_SIZE", "32")),
        )


@dataclass
class OllamaConfig:
    """Configuration for the Ollama generation backend."""

    host: str = "http://localhost:11434"
    model: str = "llama3.1:8b"
    temperature: float = 0.1
    timeout: int = 120

    @classmethod
    def from_env(cls) -> "OllamaConfig":
        """Create configuration from environment variables.

        Returns:
            OllamaConfig instance populated from environment.
        """
        load_dotenv()
        return cls(
            host=os.getenv("OLLAMA_HOST", "http://localhost:11434"),
            model=os.getenv("OLLAMA_MODEL", "llama3.1:8b"),
            temperature=float(os.getenv("OLLAMA_TEMPERATURE", "0.1")),
            timeout=int(os.getenv("OLLAMA_TIMEOUT", "120")),
        )


@dataclass
class AppConfig:
    """Main application configuration."""

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    dedup: DedupConfig = field(default_factory=DedupConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create full application configuration from environment.

        Returns:
            AppConfig instance populated from environment.
        """
        load_dotenv()
        return cls(
            embedding=EmbeddingConfig.from_env(),
            cache=CacheConfig.from_env(),
            dedup=DedupConfig.from_env(),
            memory=MemoryConfig.from_env(),
            ollama=OllamaConfig.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


# Global config instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get or create the global configuration instance.

    Returns:
        Global AppConfig instance.
    """
    global _config
    if _config is None:
        _config = AppConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
