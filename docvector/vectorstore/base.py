"""
Abstract base class and data models for document store implementations.

Defines the interface every storage backend implements, plus the shared
Document and ScoredDocument records.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from docvector.embedding.base import EmbeddingGateway
from docvector.exceptions import InvalidRequestError, SchemaLockedError
from docvector.filters.backends import QueryBackend
from docvector.vectorstore.schema import (
    CollectionSchema,
    SchemaBootstrapResult,
    SimilarityMetric,
)

MetadataValue = str | int | float | bool


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Document:
    """
    A stored unit of content.

    Metadata and embedding are copied on construction into a read-only
    mapping and a tuple, so a document never changes after it is built.

    Attributes:
        content: Text the embedding is computed from
        metadata: Scalar attributes, the targets of filter expressions
        embedding: Vector for content, computed on add when missing
        id: Caller-assigned identifier, or a UUID4 string when omitted
    """

    content: str
    metadata: Mapping[str, MetadataValue] = field(default_factory=dict)
    embedding: tuple[float, ...] | None = None
    id: str = field(default_factory=_new_id)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise ValueError("Document id must be a non-empty string")
        if not isinstance(self.content, str):
            raise ValueError(f"Document content must be a string, got {type(self.content).__name__}")
        if not isinstance(self.metadata, Mapping):
            raise ValueError(f"Document metadata must be a mapping, got {type(self.metadata).__name__}")
        for key, value in self.metadata.items():
            if not isinstance(key, str):
                raise ValueError(f"Metadata keys must be strings, got {key!r}")
            if not isinstance(value, (str, int, float, bool)):
                raise ValueError(
                    f"Metadata value for '{key}' must be a string, number or boolean, "
                    f"got {type(value).__name__}"
                )
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
        if self.embedding is not None:
            object.__setattr__(self, "embedding", tuple(float(x) for x in self.embedding))

    def with_embedding(self, embedding: Sequence[float]) -> "Document":
        """Return a copy carrying the given embedding."""
        return Document(
            content=self.content,
            metadata=self.metadata,
            embedding=embedding,
            id=self.id,
        )


@dataclass(frozen=True)
class ScoredDocument:
    """
    A search hit.

    Attributes:
        document: The matched document
        score: Normalized similarity in [0, 1], higher is more similar
    """

    document: Document
    score: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.score <= 1.0:
            raise ValueError(f"Score must be between 0.0 and 1.0, got {self.score}")


class DocumentStore(ABC):
    """
    Abstract base class for document store implementations.

    A store is bound to one CollectionSchema and one EmbeddingGateway for its
    lifetime. Several stores with different schemas may coexist in one process.

    All I/O methods are async.
    """

    def __init__(self, schema: CollectionSchema, embedding_gateway: EmbeddingGateway):
        self._schema = schema
        self._embedding = embedding_gateway

    @property
    def schema(self) -> CollectionSchema:
        return self._schema

    @property
    def embedding_gateway(self) -> EmbeddingGateway:
        return self._embedding

    @property
    def filterable_fields(self) -> frozenset[str]:
        return self._schema.filterable_fields

    @property
    @abstractmethod
    def query_backend(self) -> QueryBackend:
        """Filter dialect query_similar accepts as compiled_filter."""

    def _check_schema(self, schema: CollectionSchema | None) -> CollectionSchema:
        if schema is not None and schema != self._schema:
            raise SchemaLockedError(
                f"Store is bound to collection '{self._schema.collection_name}' "
                f"({self._schema.dimensions} dims, {self._schema.similarity_metric.value}); "
                f"refusing to bootstrap a different schema"
            )
        return self._schema

    def _check_dimensions(self, vector: Sequence[float], what: str) -> None:
        if len(vector) != self._schema.dimensions:
            raise InvalidRequestError(
                f"{what} has {len(vector)} dimensions, "
                f"collection '{self._schema.collection_name}' expects {self._schema.dimensions}"
            )

    async def _resolve_embedding(self, document: Document) -> Document:
        """Embed the document if it carries no vector, then check its length."""
        if document.embedding is None:
            document = document.with_embedding(await self._embedding.embed(document.content))
        self._check_dimensions(document.embedding, f"Embedding of document '{document.id}'")
        return document

    @abstractmethod
    async def ensure_schema(
        self, schema: CollectionSchema | None = None
    ) -> SchemaBootstrapResult:
        """
        Create the collection and vector index if absent.

        Idempotent. An existing index is never altered; a mismatch with the
        bound schema is reported as a SchemaMismatchWarning.

        Raises:
            SchemaLockedError: If schema differs from the bound schema
        """
        ...

    @abstractmethod
    async def add(self, documents: Sequence[Document]) -> list[str]:
        """
        Embed (where needed) and persist documents, one at a time, in order.

        There is no batch rollback: on failure, documents before the failing
        one remain stored.

        Returns:
            Ids of the stored documents, in input order

        Raises:
            InvalidRequestError: If an embedding has the wrong dimensionality
            EmbeddingProviderError: If embedding fails
            StorageWriteError: If the backend rejects a write
        """
        ...

    @abstractmethod
    async def delete(self, ids: Sequence[str]) -> int:
        """
        Delete documents by id.

        Returns:
            Number of documents actually removed; absent ids are not an error
        """
        ...

    @abstractmethod
    async def query_similar(
        self,
        vector: Sequence[float],
        top_k: int,
        compiled_filter: Any = None,
        similarity_metric: SimilarityMetric | None = None,
    ) -> list[ScoredDocument]:
        """
        Approximate nearest-neighbor search.

        Args:
            vector: Query vector
            top_k: Maximum number of results
            compiled_filter: Fragment in this store's query_backend dialect
            similarity_metric: Must match the index metric when given

        Returns:
            Up to top_k results sorted by descending score

        Raises:
            StorageReadError: If the backend query fails
        """
        ...

    @abstractmethod
    async def get_by_ids(self, ids: Sequence[str]) -> list[Document]:
        """Retrieve stored documents by id; missing ids are skipped."""
        ...

    def _check_metric(self, similarity_metric: SimilarityMetric | str | None) -> SimilarityMetric:
        if similarity_metric is None:
            return self._schema.similarity_metric
        metric = SimilarityMetric.parse(similarity_metric)
        if metric != self._schema.similarity_metric:
            raise InvalidRequestError(
                f"Index '{self._schema.vector_index_name}' uses "
                f"{self._schema.similarity_metric.value}, not {metric.value}"
            )
        return metric

    async def close(self) -> None:
        """Release store resources."""
        return None
