"""
Vector store module for document storage and similarity search.

Main components:
- DocumentStore: abstract store bound to one CollectionSchema
- PgVectorDocumentStore: PostgreSQL + pgvector implementation
- InMemoryDocumentStore: exact search for tests and local development
- SimilaritySearchEngine: validated, filtered, thresholded search
- VectorStoreConfig: VECTORSTORE_ settings
"""

from docvector.vectorstore.base import Document, DocumentStore, ScoredDocument
from docvector.vectorstore.config import VectorStoreConfig
from docvector.vectorstore.engine import SearchRequest, SearchStage, SimilaritySearchEngine
from docvector.vectorstore.factory import create_document_store
from docvector.vectorstore.memory_store import InMemoryDocumentStore
from docvector.vectorstore.pgvector_store import PgVectorDocumentStore
from docvector.vectorstore.schema import (
    BootstrapAction,
    CollectionSchema,
    SchemaBootstrapResult,
    SimilarityMetric,
)

__all__ = [
    "BootstrapAction",
    "CollectionSchema",
    "Document",
    "DocumentStore",
    "InMemoryDocumentStore",
    "PgVectorDocumentStore",
    "ScoredDocument",
    "SchemaBootstrapResult",
    "SearchRequest",
    "SearchStage",
    "SimilarityMetric",
    "SimilaritySearchEngine",
    "VectorStoreConfig",
    "create_document_store",
]
