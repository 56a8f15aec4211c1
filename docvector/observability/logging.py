"""
Structured logging configuration using structlog.

Logs are written to stderr; stdout belongs to CLI output (search results,
document ids) so it can be piped. LOG_FORMAT picks the renderer: "json",
"console", or "auto" (JSON in production, console elsewhere).
"""

import logging
import sys

import structlog
from structlog.types import Processor

from docvector.config.settings import Settings, get_settings
from docvector.observability.tracing import add_trace_context

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "asyncpg", "transformers", "filelock", "urllib3", "asyncio")


def _use_json(settings: Settings) -> bool:
    if settings.log_format == "auto":
        return settings.is_production
    return settings.log_format == "json"


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and the stdlib bridge.

    Usage:
        setup_logging()
        logger = structlog.get_logger(__name__)
        logger.info("Documents added", collection="vector_store", count=3)
    """
    settings = settings or get_settings()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_trace_context,
    ]

    if _use_json(settings):
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.log_level),
    )
    logging.getLogger("docvector").setLevel(getattr(logging, settings.log_level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """
    Bind key-value pairs to every subsequent log entry in this context.

    The CLI binds the collection and backend for the duration of a command.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
