"""Pytest fixtures for embedding tests."""

from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest
import torch

from docvector.embedding.config import EmbeddingConfig
from docvector.embedding.service import TransformersEmbeddingGateway

EMBED_DIM = 16


@pytest.fixture
def embedding_config() -> EmbeddingConfig:
    """Configuration for testing."""
    return EmbeddingConfig(
        _env_file=None,
        provider="transformers",
        model_name="sentence-transformers/all-MiniLM-L6-v2",
        embedding_dim=EMBED_DIM,
        max_sequence_length=64,
        batch_size=2,
        use_fp16=False,
        device="cpu",
        chunk_overlap=8,
        cache_enabled=False,
    )


@pytest.fixture
def http_config() -> EmbeddingConfig:
    return EmbeddingConfig(
        _env_file=None,
        provider="http",
        model_name="text-embedding-3-small",
        embedding_dim=3,
        batch_size=2,
        base_url="https://embeddings.test/v1",
        api_key="sk-test",
        request_timeout=5.0,
    )


@pytest.fixture
def mock_tokenizer():
    """Tokenizer that treats each whitespace-separated word as one token."""
    tokenizer = MagicMock()

    def encode_side_effect(text, add_special_tokens=True):
        return list(range(len(text.split())))

    def decode_side_effect(tokens, skip_special_tokens=True):
        return " ".join(["word"] * len(tokens))

    tokenizer.encode = MagicMock(side_effect=encode_side_effect)
    tokenizer.decode = MagicMock(side_effect=decode_side_effect)
    return tokenizer


@pytest.fixture
def mock_gateway(embedding_config, mock_tokenizer) -> TransformersEmbeddingGateway:
    """Gateway with model loading skipped and deterministic chunk embeddings."""
    gateway = TransformersEmbeddingGateway(config=embedding_config)
    gateway._tokenizer = mock_tokenizer
    gateway._model = MagicMock()
    gateway._device = torch.device("cpu")
    gateway._initialized = True

    def mock_embed_single(text):
        rng = np.random.default_rng(sum(ord(c) for c in text))
        emb = rng.standard_normal(EMBED_DIM).astype(np.float32)
        return emb / np.linalg.norm(emb)

    gateway._embed_single = MagicMock(side_effect=mock_embed_single)
    return gateway


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client."""
    redis_mock = AsyncMock()
    redis_mock.get = AsyncMock(return_value=None)
    redis_mock.setex = AsyncMock()
    redis_mock.aclose = AsyncMock()
    return redis_mock
