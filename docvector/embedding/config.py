"""
Embedding provider configuration.

Provides Pydantic settings for selecting and configuring the embedding
provider: local transformer models (with optional Redis caching) or an
OpenAI-compatible HTTP endpoint.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EmbeddingConfig(BaseSettings):
    """
    Configuration for the embedding gateway.

    Settings can be overridden via environment variables prefixed with EMBEDDING_.
    """

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    # Provider selection (registry key)
    provider: str = Field(
        default="transformers",
        description="Registered embedding provider name (transformers, http)",
    )

    # Model configuration
    model_name: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Model name (HuggingFace id or remote model identifier)",
    )
    embedding_dim: int = Field(
        default=384,
        ge=1,
        description="Embedding vector dimension produced by the model",
    )
    max_sequence_length: int = Field(
        default=256,
        ge=8,
        description="Maximum token sequence length for the model",
    )

    # Processing configuration
    batch_size: int = Field(
        default=32,
        ge=1,
        le=2048,
        description="Number of texts to embed per batch",
    )
    use_fp16: bool = Field(
        default=True,
        description="Use FP16 (half precision) for GPU acceleration",
    )
    device: Literal["auto", "cpu", "cuda", "mps"] = Field(
        default="auto",
        description="Device for model inference (auto detects best available)",
    )
    chunk_overlap: int = Field(
        default=32,
        ge=0,
        description="Number of overlapping tokens between chunks of long texts",
    )

    # Caching configuration
    cache_enabled: bool = Field(
        default=False,
        description="Enable Redis caching for embeddings",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL used when caching is enabled",
    )
    cache_ttl_hours: int = Field(
        default=168,
        ge=1,
        description="Cache TTL in hours (default: 1 week)",
    )
    cache_key_prefix: str = Field(
        default="emb:",
        description="Redis key prefix for cached embeddings",
    )

    # HTTP provider
    base_url: str = Field(
        default="http://localhost:11434/v1",
        description="Base URL of an OpenAI-compatible embeddings API",
    )
    api_key: str | None = Field(
        default=None,
        description="Bearer token for the embeddings API",
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="HTTP request timeout in seconds",
    )

    @property
    def cache_ttl_seconds(self) -> int:
        """Get cache TTL in seconds."""
        return self.cache_ttl_hours * 3600
