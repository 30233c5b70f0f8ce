"""Generator factory for text generation backends.

The memory layer only needs `generate(prompt, params) -> str`. Chat models
from LangChain are adapted to that interface; Ollama is the default backend.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

from memvault.errors import GenerationError
from memvault.utils.config import get_config
from memvault.utils.logging import get_logger

logger = get_logger("utils.llm_factory")


@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters passed to a generator."""

    max_tokens: Optional[int] = 1024
    temperature: Optional[float] = 0.7
    top_p: Optional[float] = 0.9
    top_k: Optional[int] = None
    stop_sequences: Optional[tuple[str, ...]] = None

    def to_model_kwargs(self) -> dict[str, Any]:
        """Keyword arguments understood by LangChain chat models."""
        kwargs: dict[str, Any] = {}
        if self.max_tokens is not None:
            kwargs["num_predict"] = self.max_tokens
        if self.temperature is not None:
            kwargs["temperature"] = self.temperature
        if self.top_p is not None:
            kwargs["top_p"] = self.top_p
        if self.top_k is not None:
            kwargs["top_k"] = self.top_k
        if self.stop_sequences:
            kwargs["stop"] = list(self.stop_sequences)
        return kwargs


@runtime_checkable
class Generator(Protocol):
    """Protocol for text generators."""

    async def generate(self, prompt: str, params: Optional[GenerationParams] = None) -> str:
        """Generate a completion for `prompt`."""
        ...


@runtime_checkable
class ChatModel(Protocol):
    """Protocol for chat model interface."""

    def invoke(self, messages: Any, **kwargs) -> Any:
        """Synchronous invoke."""
        ...

    async def ainvoke(self, messages: Any, **kwargs) -> Any:
        """Asynchronous invoke."""
        ...


class ChatModelGenerator:
    """Adapts a LangChain chat model to the Generator protocol.

    Args:
        model: Chat model exposing `ainvoke`.
        model_name: Name used in logs.
    """

    def __init__(self, model: ChatModel, model_name: str = "chat-model") -> None:
        self.model = model
        self.model_name = model_name

    async def generate(self, prompt: str, params: Optional[GenerationParams] = None) -> str:
        """Generate text from a prompt.

        Raises:
            GenerationError: If the backend call fails.
        """
        params = params or GenerationParams()
        try:
            response = await self.model.ainvoke(prompt, **params.to_model_kwargs())
        except Exception as e:
            logger.error(f"Generation failed on {self.model_name}: {e}")
            raise GenerationError(f"Generation failed on {self.model_name}: {e}") from e

        content = getattr(response, "content", response)
        return content if isinstance(content, str) else str(content)


def create_generator(
    backend: str = "ollama",
    model_name: str | None = None,
    temperature: float | None = None,
    **kwargs,
) -> ChatModelGenerator:
    """Create a generator using the configured backend.

    Args:
        backend: Backend to use. Only 'ollama' is supported.
        model_name: Model name override.
        temperature: Temperature override.
        **kwargs: Additional backend-specific parameters.

    Returns:
        ChatModelGenerator wrapping the backend's chat model.

    Raises:
        RuntimeError: If the backend library is not installed.
        ValueError: If the backend is unknown.
    """
    logger.info(f"Creating generator with backend: {backend}")

    if backend != "ollama":
        raise ValueError(f"Unknown backend: {backend}")

    config = get_config().ollama
    try:
        from langchain_ollama import ChatOllama
    except ImportError as e:
        logger.error(f"LangChain Ollama not available: {e}")
        raise RuntimeError(
            "LangChain Ollama is not available. Install with: pip install langchain-ollama"
        ) from e

    name = model_name or config.model
    model = ChatOllama(
        model=name,
        temperature=temperature if temperature is not None else config.temperature,
        base_url=kwargs.get("base_url", config.host),
    )
    return ChatModelGenerator(model, model_name=name)
