"""
Similarity search orchestration.

SimilaritySearchEngine turns a SearchRequest into ranked results by running
it through fixed stages:

    INIT -> VECTOR_RESOLVED -> FILTER_COMPILED -> QUERIED -> THRESHOLDED -> DONE

Any stage may end in FAILED; the error is logged once with its kind and
re-raised unchanged. Nothing is retried here.
"""

import math
import numbers
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from docvector.embedding.base import EmbeddingGateway
from docvector.exceptions import FilterError, InvalidRequestError, VectorStoreError
from docvector.filters.converter import FilterExpressionConverter
from docvector.filters.expression import (
    Comparison,
    FilterExpression,
    Logical,
    referenced_fields,
)
from docvector.filters.parser import parse_filter
from docvector.observability.metrics import get_metrics
from docvector.observability.tracing import get_tracer, traced
from docvector.vectorstore.base import Document, DocumentStore, ScoredDocument
from docvector.vectorstore.config import VectorStoreConfig
from docvector.vectorstore.schema import SchemaBootstrapResult

logger = structlog.get_logger(__name__)


class SearchStage(str, Enum):
    """Stages of a search, in execution order."""

    INIT = "init"
    VECTOR_RESOLVED = "vector_resolved"
    FILTER_COMPILED = "filter_compiled"
    QUERIED = "queried"
    THRESHOLDED = "thresholded"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class SearchRequest:
    """
    A similarity search.

    Exactly one of query_text and query_vector must be set. A string filter
    is parsed with parse_filter.
    """

    query_text: str | None = None
    query_vector: Sequence[float] | None = None
    top_k: int = 4
    similarity_threshold: float = 0.0
    filter: FilterExpression | str | None = None


class SimilaritySearchEngine:
    """
    Runs similarity searches against one DocumentStore.

    Usage:
        engine = SimilaritySearchEngine(store, gateway, config)
        results = await engine.search(
            SearchRequest(query_text="storage outage", top_k=5, filter="team == 'infra'")
        )
    """

    def __init__(
        self,
        store: DocumentStore,
        embedding_gateway: EmbeddingGateway,
        config: VectorStoreConfig | None = None,
    ):
        """
        Initialize the engine.

        Args:
            store: Document store to search
            embedding_gateway: Provider used to embed query text
            config: Defaults for top_k, threshold and schema bootstrap
        """
        self._store = store
        self._embedding = embedding_gateway
        self._config = config or VectorStoreConfig()
        self._converter = FilterExpressionConverter(
            store.filterable_fields, store.query_backend
        )
        self._tracer = get_tracer(__name__)

    @property
    def store(self) -> DocumentStore:
        return self._store

    @property
    def converter(self) -> FilterExpressionConverter:
        return self._converter

    async def initialize(self) -> SchemaBootstrapResult | None:
        """
        Bootstrap the store schema if initialize_schema is enabled.

        Returns:
            The bootstrap result, or None when bootstrap is disabled
        """
        if not self._config.initialize_schema:
            logger.debug(
                "Schema bootstrap disabled",
                collection=self._store.schema.collection_name,
            )
            return None
        return await self._store.ensure_schema()

    async def add(self, documents: Sequence[Document]) -> list[str]:
        """Embed where needed and store documents. See DocumentStore.add."""
        return await self._store.add(documents)

    async def delete(self, ids: Sequence[str]) -> int:
        """Delete documents by id. See DocumentStore.delete."""
        return await self._store.delete(ids)

    async def similarity_search(
        self,
        query: str | Sequence[float],
        top_k: int | None = None,
        threshold: float | None = None,
        filter: FilterExpression | str | None = None,
    ) -> list[ScoredDocument]:
        """
        Search by text or vector using configured defaults.

        Args:
            query: Query text, or a query vector
            top_k: Maximum results (default: VECTORSTORE_DEFAULT_TOP_K)
            threshold: Minimum score (default: VECTORSTORE_DEFAULT_SIMILARITY_THRESHOLD)
            filter: Filter expression or filter text

        Returns:
            Ranked results
        """
        if top_k is None:
            top_k = self._config.default_top_k
        if threshold is None:
            threshold = self._config.default_similarity_threshold

        if isinstance(query, str):
            request = SearchRequest(
                query_text=query, top_k=top_k, similarity_threshold=threshold, filter=filter
            )
        else:
            request = SearchRequest(
                query_vector=query, top_k=top_k, similarity_threshold=threshold, filter=filter
            )
        return await self.search(request)

    async def search(self, request: SearchRequest) -> list[ScoredDocument]:
        """
        Run a search request through all stages.

        Returns:
            Up to top_k results with score >= similarity_threshold, by
            descending score

        Raises:
            InvalidRequestError: Malformed request
            FilterError: Filter cannot be parsed or compiled
            EmbeddingProviderError: Query text could not be embedded
            StorageReadError: Backend query failed
        """
        metrics = get_metrics()
        started = time.perf_counter()
        stage = SearchStage.INIT
        collection = self._store.schema.collection_name

        with traced(
            self._tracer,
            "similarity_search",
            {
                "docvector.collection": collection,
                "docvector.top_k": request.top_k if isinstance(request.top_k, int) else -1,
            },
        ) as span:
            try:
                stage_start = time.perf_counter()
                self._validate(request)
                stage = self._advance(stage, SearchStage.VECTOR_RESOLVED, stage_start)

                stage_start = time.perf_counter()
                vector = await self._resolve_vector(request)
                stage = self._advance(stage, SearchStage.FILTER_COMPILED, stage_start)

                stage_start = time.perf_counter()
                compiled = self._compile_filter(request.filter, span)
                stage = self._advance(stage, SearchStage.QUERIED, stage_start)

                stage_start = time.perf_counter()
                hits = await self._store.query_similar(
                    vector,
                    request.top_k,
                    compiled_filter=compiled,
                    similarity_metric=self._store.schema.similarity_metric,
                )
                stage = self._advance(stage, SearchStage.THRESHOLDED, stage_start)

                stage_start = time.perf_counter()
                results = self._apply_threshold(hits, request)
                stage = self._advance(stage, SearchStage.DONE, stage_start)
            except VectorStoreError as exc:
                self._fail(stage, exc.kind, exc, started)
                raise
            except Exception as exc:
                self._fail(stage, type(exc).__name__, exc, started)
                raise

            span.set_attribute("docvector.results", len(results))

        metrics.record_search("success", latency=time.perf_counter() - started, results=len(results))
        logger.debug(
            "Search completed",
            collection=collection,
            results=len(results),
            top_k=request.top_k,
            threshold=request.similarity_threshold,
        )
        return results

    # ── Stages ──────────────────────────────────────────────────────

    def _advance(self, current: SearchStage, nxt: SearchStage, stage_start: float) -> SearchStage:
        elapsed = time.perf_counter() - stage_start
        get_metrics().record_stage_latency(current.value, elapsed)
        logger.debug("Search stage finished", stage=current.value, next=nxt.value, seconds=elapsed)
        return nxt

    def _fail(self, stage: SearchStage, kind: str, exc: BaseException, started: float) -> None:
        get_metrics().record_search(kind, latency=time.perf_counter() - started)
        logger.warning(
            "Search failed",
            stage=stage.value,
            state=SearchStage.FAILED.value,
            kind=kind,
            error=str(exc),
        )

    def _validate(self, request: SearchRequest) -> None:
        top_k = request.top_k
        if isinstance(top_k, bool) or not isinstance(top_k, int) or top_k <= 0:
            raise InvalidRequestError(f"top_k must be a positive integer, got {top_k!r}")

        threshold = request.similarity_threshold
        if (
            isinstance(threshold, bool)
            or not isinstance(threshold, (int, float))
            or math.isnan(threshold)
            or not 0.0 <= threshold <= 1.0
        ):
            raise InvalidRequestError(
                f"similarity_threshold must be between 0.0 and 1.0, got {threshold!r}"
            )

        has_text = request.query_text is not None
        has_vector = request.query_vector is not None
        if has_text == has_vector:
            raise InvalidRequestError("Exactly one of query_text or query_vector is required")

        if has_text and not request.query_text.strip():
            raise InvalidRequestError("query_text must not be blank")

        if has_vector:
            self._check_vector(request.query_vector, "query_vector")

    def _check_vector(self, vector: Sequence[float], what: str) -> None:
        if len(vector) == 0:
            raise InvalidRequestError(f"{what} must not be empty")
        expected = self._store.schema.dimensions
        if len(vector) != expected:
            raise InvalidRequestError(
                f"{what} has {len(vector)} dimensions, collection expects {expected}"
            )
        for x in vector:
            if isinstance(x, bool) or not isinstance(x, numbers.Real) or not math.isfinite(x):
                raise InvalidRequestError(f"{what} must contain finite numbers")

    async def _resolve_vector(self, request: SearchRequest) -> list[float]:
        if request.query_vector is not None:
            return [float(x) for x in request.query_vector]
        vector = await self._embedding.embed(request.query_text)
        self._check_vector(vector, "Embedding of query_text")
        return vector

    def _compile_filter(self, expression: FilterExpression | str | None, span: Any) -> Any:
        if expression is None:
            return None
        try:
            if isinstance(expression, str):
                expression = parse_filter(expression)
            if not isinstance(expression, (Comparison, Logical)):
                raise InvalidRequestError(
                    f"filter must be a FilterExpression or filter text, "
                    f"got {type(expression).__name__}"
                )
            compiled = self._converter.convert(expression)
            span.set_attribute("docvector.filter_fields", referenced_fields(expression))
            return compiled
        except FilterError as exc:
            get_metrics().record_filter_error(exc.kind)
            raise

    @staticmethod
    def _apply_threshold(
        hits: Sequence[ScoredDocument], request: SearchRequest
    ) -> list[ScoredDocument]:
        kept = [hit for hit in hits if hit.score >= request.similarity_threshold]
        # Stable: ties keep the store's order
        kept.sort(key=lambda hit: hit.score, reverse=True)
        return kept[: request.top_k]
