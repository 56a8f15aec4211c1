"""
Prometheus metrics for the vector store engine.

Defines and exposes metrics for:
- Search outcomes and per-stage latency
- Documents written and deleted
- Embedding generation latency and cache efficiency
- Filter compile errors
- Schema bootstrap actions and mismatch warnings

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    start_http_server,
)

from docvector.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


class MetricsCollector:
    """
    Prometheus metrics collector for docvector.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_search("success", latency=0.12)
        metrics.record_stage_latency("queried", 0.08)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Search metrics
        self.searches = Counter(
            "docvector_searches_total",
            "Total similarity searches by outcome",
            ["status"],  # success or the error kind
        )

        self.search_latency = Histogram(
            "docvector_search_latency_seconds",
            "End-to-end similarity search latency",
            buckets=LATENCY_BUCKETS,
        )

        self.search_stage_latency = Histogram(
            "docvector_search_stage_latency_seconds",
            "Latency of individual search stages",
            ["stage"],  # vector_resolved, filter_compiled, queried, thresholded
            buckets=LATENCY_BUCKETS,
        )

        self.search_results = Histogram(
            "docvector_search_results",
            "Number of results returned per search",
            buckets=(0, 1, 2, 4, 8, 16, 32, 64, 128),
        )

        # Document metrics
        self.documents_added = Counter(
            "docvector_documents_added_total",
            "Total documents written to a collection",
            ["collection"],
        )

        self.documents_deleted = Counter(
            "docvector_documents_deleted_total",
            "Total documents deleted from a collection",
            ["collection"],
        )

        self.storage_errors = Counter(
            "docvector_storage_errors_total",
            "Total backend storage failures",
            ["operation"],  # add, delete, query, ensure_schema
        )

        # Embedding metrics
        self.embedding_latency = Histogram(
            "docvector_embedding_latency_seconds",
            "Time to generate embeddings",
            ["provider", "operation"],  # operation: single, batch
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
        )

        self.embedding_errors = Counter(
            "docvector_embedding_errors_total",
            "Total embedding provider failures",
            ["provider", "reason"],
        )

        self.embedding_cache_hits = Counter(
            "docvector_embedding_cache_hits_total",
            "Total embedding cache hits",
        )

        self.embedding_cache_misses = Counter(
            "docvector_embedding_cache_misses_total",
            "Total embedding cache misses",
        )

        # Filter metrics
        self.filter_compile_errors = Counter(
            "docvector_filter_compile_errors_total",
            "Total filter expressions rejected at compile time",
            ["error_type"],
        )

        # Schema metrics
        self.schema_bootstrap_actions = Counter(
            "docvector_schema_bootstrap_actions_total",
            "Schema bootstrap outcomes",
            ["object", "action"],  # object: collection, index; action: created, found_existing
        )

        self.schema_mismatch_warnings = Counter(
            "docvector_schema_mismatch_warnings_total",
            "Existing indexes found to disagree with configuration",
            ["collection"],
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_search(self, status: str, latency: float | None = None, results: int | None = None) -> None:
        """
        Record a completed or failed search.

        Args:
            status: "success" or the error kind
            latency: Optional end-to-end latency in seconds
            results: Optional number of results returned
        """
        self.searches.labels(status=status).inc()
        if latency is not None:
            self.search_latency.observe(latency)
        if results is not None:
            self.search_results.observe(results)

    def record_stage_latency(self, stage: str, latency: float) -> None:
        """Record the latency of one search stage."""
        self.search_stage_latency.labels(stage=stage).observe(latency)

    def record_documents_added(self, collection: str, count: int = 1) -> None:
        """Record documents written to a collection."""
        if count > 0:
            self.documents_added.labels(collection=collection).inc(count)

    def record_documents_deleted(self, collection: str, count: int) -> None:
        """Record documents deleted from a collection."""
        if count > 0:
            self.documents_deleted.labels(collection=collection).inc(count)

    def record_storage_error(self, operation: str) -> None:
        """Record a backend storage failure."""
        self.storage_errors.labels(operation=operation).inc()

    def record_embedding_latency(self, provider: str, operation: str, latency: float) -> None:
        """
        Record embedding generation latency.

        Args:
            provider: Registered provider name
            operation: Operation type (single, batch)
            latency: Latency in seconds
        """
        self.embedding_latency.labels(provider=provider, operation=operation).observe(latency)

    def record_embedding_error(self, provider: str, reason: str) -> None:
        """Record an embedding provider failure."""
        self.embedding_errors.labels(provider=provider, reason=reason).inc()

    def record_embedding_cache(self, hit: bool) -> None:
        """
        Record embedding cache hit or miss.

        Args:
            hit: True for cache hit, False for miss
        """
        if hit:
            self.embedding_cache_hits.inc()
        else:
            self.embedding_cache_misses.inc()

    def record_filter_error(self, error_type: str) -> None:
        """Record a filter expression rejected at compile time."""
        self.filter_compile_errors.labels(error_type=error_type).inc()

    def record_schema_action(self, obj: str, action: str) -> None:
        """Record a schema bootstrap outcome for a collection or index."""
        self.schema_bootstrap_actions.labels(object=obj, action=action).inc()

    def record_schema_mismatch(self, collection: str) -> None:
        """Record an existing index that disagrees with configuration."""
        self.schema_mismatch_warnings.labels(collection=collection).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
