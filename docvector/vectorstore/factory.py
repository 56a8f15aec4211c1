"""Store construction from configuration."""

import structlog

from docvector.embedding.base import EmbeddingGateway
from docvector.storage.database import Database
from docvector.vectorstore.base import DocumentStore
from docvector.vectorstore.config import VectorStoreConfig
from docvector.vectorstore.memory_store import InMemoryDocumentStore
from docvector.vectorstore.pgvector_store import PgVectorDocumentStore

logger = structlog.get_logger(__name__)


def create_document_store(
    config: VectorStoreConfig,
    embedding_gateway: EmbeddingGateway,
    database: Database | None = None,
) -> DocumentStore:
    """
    Build the store selected by config.backend.

    Args:
        config: Vector store settings (schema, backend, candidate multiplier)
        embedding_gateway: Provider for documents without a vector
        database: Connected Database, required for the pgvector backend

    Returns:
        DocumentStore bound to config.to_schema()
    """
    schema = config.to_schema()
    if embedding_gateway.dimensions != schema.dimensions:
        logger.warning(
            "Embedding provider dimensions differ from collection",
            provider=embedding_gateway.provider_name,
            provider_dimensions=embedding_gateway.dimensions,
            collection_dimensions=schema.dimensions,
        )

    if config.backend == "memory":
        return InMemoryDocumentStore(schema, embedding_gateway)

    if config.backend == "pgvector":
        if database is None:
            raise ValueError("The pgvector backend requires a Database")
        return PgVectorDocumentStore(
            database,
            schema,
            embedding_gateway,
            num_candidates_multiplier=config.num_candidates_multiplier,
        )

    raise ValueError(f"Unknown vector store backend: {config.backend!r}")
