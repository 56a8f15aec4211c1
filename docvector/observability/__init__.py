"""Observability layer - logging, metrics, and tracing."""

from docvector.observability.logging import bind_context, clear_context, setup_logging
from docvector.observability.metrics import MetricsCollector, get_metrics
from docvector.observability.tracing import (
    get_tracer,
    setup_tracing,
    setup_tracing_from_settings,
    shutdown_tracing,
    traced,
)

__all__ = [
    "setup_logging",
    "bind_context",
    "clear_context",
    "MetricsCollector",
    "get_metrics",
    "setup_tracing",
    "setup_tracing_from_settings",
    "shutdown_tracing",
    "get_tracer",
    "traced",
]
