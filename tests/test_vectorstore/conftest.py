"""Pytest fixtures for vectorstore tests."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from docvector.vectorstore.config import VectorStoreConfig
from docvector.vectorstore.memory_store import InMemoryDocumentStore


@pytest.fixture
def vector_store_config() -> VectorStoreConfig:
    """Configuration matching the shared collection_schema fixture."""
    return VectorStoreConfig(
        backend="memory",
        collection_name="test_docs",
        index_name="test_docs_vector_idx",
        dimensions=4,
        metadata_fields_to_filter=["author", "type", "year", "lang", "draft"],
        default_top_k=3,
        default_similarity_threshold=0.0,
    )


@pytest.fixture
def memory_store(collection_schema, fake_gateway) -> InMemoryDocumentStore:
    return InMemoryDocumentStore(collection_schema, fake_gateway)


@pytest.fixture
def mock_connection() -> AsyncMock:
    """Mock asyncpg connection used inside transactions."""
    conn = AsyncMock()
    conn.execute = AsyncMock(return_value="OK")
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=None)
    return conn


@pytest.fixture
def mock_database(mock_connection) -> AsyncMock:
    """Mock Database instance whose transaction() yields mock_connection."""
    db = AsyncMock()
    db.fetch = AsyncMock(return_value=[])
    db.fetchval = AsyncMock(return_value=None)
    db.fetchrow = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value="INSERT 0 1")

    @asynccontextmanager
    async def transaction():
        yield mock_connection

    db.transaction = transaction
    return db
