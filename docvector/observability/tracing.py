"""
OpenTelemetry tracing for searches and store operations.

Tracing is off until setup_tracing() runs. Before that get_tracer() hands
out OpenTelemetry's proxy tracer, so library code opens spans
unconditionally and pays nothing when tracing is disabled.

CLI commands are short-lived: call shutdown_tracing() before exit so the
batch processor flushes pending spans.

Usage:
    from docvector.observability.tracing import get_tracer, traced

    tracer = get_tracer(__name__)
    with traced(tracer, "similarity_search", {"docvector.top_k": 4}):
        ...
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import StatusCode, Tracer
from opentelemetry.trace.propagation import get_current_span

from docvector.config.settings import Settings

logger = logging.getLogger(__name__)

_provider: TracerProvider | None = None


def setup_tracing(
    service_name: str,
    otlp_endpoint: str | None = None,
    *,
    exporter: SpanExporter | None = None,
) -> TracerProvider:
    """
    Install a global TracerProvider.

    Spans go to an OTLP gRPC collector unless a custom exporter is given
    (tests pass InMemorySpanExporter, which is exported synchronously).

    Args:
        service_name: Value of the service.name resource attribute.
        otlp_endpoint: Collector endpoint, default "http://localhost:4317".
        exporter: Optional exporter replacing OTLP.

    Returns:
        The installed TracerProvider.
    """
    global _provider

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if exporter is None:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        exporter = OTLPSpanExporter(
            endpoint=otlp_endpoint or "http://localhost:4317",
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
    else:
        provider.add_span_processor(SimpleSpanProcessor(exporter))
    trace.set_tracer_provider(provider)

    _provider = provider
    logger.info(
        "OpenTelemetry tracing initialized: service=%s endpoint=%s",
        service_name,
        otlp_endpoint or "(custom exporter)",
    )
    return provider


def setup_tracing_from_settings(settings: Settings) -> TracerProvider | None:
    """Call setup_tracing() when TRACING_ENABLED is set; otherwise do nothing."""
    if not settings.tracing_enabled:
        return None
    return setup_tracing(
        settings.otel_service_name,
        settings.otel_exporter_otlp_endpoint,
    )


def shutdown_tracing() -> None:
    """Flush and shut down the provider installed by setup_tracing()."""
    global _provider
    if _provider is None:
        return
    _provider.shutdown()
    _provider = None


def get_tracer(name: str) -> Tracer:
    """Named tracer from the global provider (a no-op proxy until setup)."""
    return trace.get_tracer(name)


def is_tracing_enabled() -> bool:
    return _provider is not None


@contextmanager
def traced(
    tracer: Tracer,
    name: str,
    attributes: dict[str, Any] | None = None,
):
    """
    Open a span; on exception set ERROR status, record it, and re-raise.

    Args:
        tracer: Tracer instance.
        name: Span name.
        attributes: Optional span attributes.
    """
    with tracer.start_as_current_span(name) as span:
        if attributes:
            span.set_attributes(attributes)
        try:
            yield span
        except Exception as exc:
            span.set_status(StatusCode.ERROR, str(exc))
            span.record_exception(exc)
            raise


def add_trace_context(
    logger_: Any, method: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """
    Structlog processor adding trace_id and span_id of the active span.

    Lets a slow or failed search in the logs be looked up in the trace backend.
    """
    ctx = get_current_span().get_span_context()

    if ctx.is_valid:
        event_dict["trace_id"] = f"{ctx.trace_id:032x}"
        event_dict["span_id"] = f"{ctx.span_id:016x}"

    return event_dict
