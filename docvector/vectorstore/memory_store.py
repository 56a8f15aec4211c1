"""
In-process document store with exact nearest-neighbor search.

Vectors live in a dict keyed by document id and are scored with numpy.
Filters use the mapping dialect and are evaluated per document. Suitable for
tests, local development and small collections.
"""

from collections.abc import Sequence
from typing import Any

import numpy as np
import structlog

from docvector.embedding.base import EmbeddingGateway
from docvector.filters.backends import MappingQueryBackend, matches_fragment
from docvector.observability.metrics import get_metrics
from docvector.vectorstore.base import Document, DocumentStore, ScoredDocument
from docvector.vectorstore.schema import (
    BootstrapAction,
    CollectionSchema,
    SchemaBootstrapResult,
    SimilarityMetric,
    score_from_distance,
    score_from_similarity,
)

logger = structlog.get_logger(__name__)


class InMemoryDocumentStore(DocumentStore):
    """
    Document store backed by a Python dict.

    Writes never await between reading and mutating the dict, so concurrent
    tasks on one event loop see consistent state without a lock.
    """

    def __init__(self, schema: CollectionSchema, embedding_gateway: EmbeddingGateway):
        super().__init__(schema, embedding_gateway)
        self._backend = MappingQueryBackend()
        self._documents: dict[str, Document] = {}
        self._collection_created = False
        self._index_created = False

    @property
    def query_backend(self) -> MappingQueryBackend:
        return self._backend

    def __len__(self) -> int:
        return len(self._documents)

    async def ensure_schema(
        self, schema: CollectionSchema | None = None
    ) -> SchemaBootstrapResult:
        self._check_schema(schema)
        metrics = get_metrics()

        collection = (
            BootstrapAction.FOUND_EXISTING if self._collection_created else BootstrapAction.CREATED
        )
        index = BootstrapAction.FOUND_EXISTING if self._index_created else BootstrapAction.CREATED
        self._collection_created = True
        self._index_created = True

        metrics.record_schema_action("collection", collection.value)
        metrics.record_schema_action("index", index.value)
        logger.info(
            "Schema ensured",
            collection=self._schema.collection_name,
            collection_action=collection.value,
            index_action=index.value,
        )
        return SchemaBootstrapResult(collection=collection, index=index)

    async def add(self, documents: Sequence[Document]) -> list[str]:
        ids: list[str] = []
        for document in documents:
            document = await self._resolve_embedding(document)
            self._documents[document.id] = document
            get_metrics().record_documents_added(self._schema.collection_name)
            ids.append(document.id)

        logger.debug("Added documents", collection=self._schema.collection_name, count=len(ids))
        return ids

    async def delete(self, ids: Sequence[str]) -> int:
        deleted = 0
        for doc_id in dict.fromkeys(ids):
            if self._documents.pop(doc_id, None) is not None:
                deleted += 1

        get_metrics().record_documents_deleted(self._schema.collection_name, deleted)
        logger.debug(
            "Deleted documents",
            collection=self._schema.collection_name,
            requested=len(ids),
            deleted=deleted,
        )
        return deleted

    async def get_by_ids(self, ids: Sequence[str]) -> list[Document]:
        return [self._documents[doc_id] for doc_id in ids if doc_id in self._documents]

    def _similarities(
        self, metric: SimilarityMetric, query: np.ndarray, matrix: np.ndarray
    ) -> np.ndarray:
        """Raw per-row similarity, higher is closer; euclidean is the negated distance."""
        if metric == SimilarityMetric.EUCLIDEAN:
            return -np.linalg.norm(matrix - query, axis=1)

        raw = matrix @ query
        if metric == SimilarityMetric.COSINE:
            norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
            # Zero vectors have no direction; treat them as orthogonal
            raw = np.divide(raw, norms, out=np.zeros_like(raw), where=norms > 0)
        return raw

    @staticmethod
    def _normalize(metric: SimilarityMetric, similarity: float) -> float:
        if metric == SimilarityMetric.EUCLIDEAN:
            return score_from_distance(metric, -similarity)
        return score_from_similarity(metric, similarity)

    async def query_similar(
        self,
        vector: Sequence[float],
        top_k: int,
        compiled_filter: Any = None,
        similarity_metric: SimilarityMetric | None = None,
    ) -> list[ScoredDocument]:
        metric = self._check_metric(similarity_metric)
        if top_k <= 0 or not self._documents:
            return []

        candidates = [
            document
            for document in self._documents.values()
            if compiled_filter is None
            or matches_fragment(compiled_filter, {"id": document.id, "metadata": document.metadata})
        ]
        if not candidates:
            return []

        query = np.asarray(vector, dtype=np.float64)
        matrix = np.asarray([document.embedding for document in candidates], dtype=np.float64)
        similarities = self._similarities(metric, query, matrix)

        # Rank on raw similarity; stable, so equal similarities keep insertion order
        order = np.argsort(-similarities, kind="stable")[:top_k]
        return [
            ScoredDocument(
                document=candidates[i], score=self._normalize(metric, float(similarities[i]))
            )
            for i in order
        ]
