"""
Embedding gateway contract and provider registry.

The vector store only needs one capability from an embedding provider:
turn text into a fixed-length vector, or fail with EmbeddingProviderError.
Providers register under a name and are selected by EMBEDDING_PROVIDER.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, TypeVar

from docvector.embedding.config import EmbeddingConfig


class EmbeddingGateway(ABC):
    """
    Abstract embedding provider.

    Implementations raise EmbeddingProviderError for upstream failures
    (timeouts, authentication, quota, model errors) and never retry
    internally; retry policy belongs to the caller.
    """

    provider_name: str = "abstract"

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Length of the vectors this provider returns."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """
        Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector
        """
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Embed several texts, preserving order.

        The default implementation embeds one text at a time; providers with a
        native batch API override it.
        """
        return [await self.embed(text) for text in texts]

    async def close(self) -> None:
        """Release provider resources."""
        return None


G = TypeVar("G", bound=type[EmbeddingGateway])

_PROVIDERS: dict[str, type[EmbeddingGateway]] = {}


def register_embedding_provider(name: str) -> Callable[[G], G]:
    """
    Class decorator registering an EmbeddingGateway under a config key.

    Usage:
        @register_embedding_provider("http")
        class HttpEmbeddingGateway(EmbeddingGateway):
            ...
    """

    def decorator(cls: G) -> G:
        if name in _PROVIDERS and _PROVIDERS[name] is not cls:
            raise ValueError(f"Embedding provider '{name}' is already registered")
        _PROVIDERS[name] = cls
        cls.provider_name = name
        return cls

    return decorator


def registered_providers() -> list[str]:
    """Names of all registered embedding providers."""
    return sorted(_PROVIDERS)


def create_embedding_gateway(
    config: EmbeddingConfig | None = None,
    **kwargs: Any,
) -> EmbeddingGateway:
    """
    Instantiate the provider selected by config.provider.

    Args:
        config: Embedding configuration (uses defaults if None)
        **kwargs: Extra constructor arguments (e.g. redis_client, http_client)

    Returns:
        Configured EmbeddingGateway

    Raises:
        ValueError: If the provider name is not registered
    """
    config = config or EmbeddingConfig()
    # Import for the registration side effect of the built-in providers
    import docvector.embedding.http  # noqa: F401
    import docvector.embedding.service  # noqa: F401

    provider_cls = _PROVIDERS.get(config.provider.lower())
    if provider_cls is None:
        raise ValueError(
            f"Unknown embedding provider '{config.provider}'. "
            f"Registered providers: {', '.join(registered_providers())}"
        )
    return provider_cls(config=config, **kwargs)
