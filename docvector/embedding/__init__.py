"""
Embedding gateway package.

Main components:
- EmbeddingGateway: provider contract (embed, embed_batch, dimensions)
- TransformersEmbeddingGateway: local HuggingFace model ("transformers")
- HttpEmbeddingGateway: OpenAI-compatible HTTP endpoint ("http")
- create_embedding_gateway: builds the provider named by EMBEDDING_PROVIDER
"""

from docvector.embedding.base import (
    EmbeddingGateway,
    create_embedding_gateway,
    register_embedding_provider,
    registered_providers,
)
from docvector.embedding.config import EmbeddingConfig
from docvector.embedding.http import HttpEmbeddingGateway
from docvector.embedding.service import TransformersEmbeddingGateway

__all__ = [
    "EmbeddingConfig",
    "EmbeddingGateway",
    "HttpEmbeddingGateway",
    "TransformersEmbeddingGateway",
    "create_embedding_gateway",
    "register_embedding_provider",
    "registered_providers",
]
