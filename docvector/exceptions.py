"""
Error taxonomy for the vector store engine.

Callers decide on retries: nothing in docvector retries internally.

- InvalidRequestError: caller error (bad top_k/threshold/missing query)
- UnsupportedFieldError / InvalidOperatorError: filter compile errors,
  always caller-fixable, never worth retrying
- EmbeddingProviderError: upstream embedding failure, retryable with backoff
- StorageWriteError / StorageReadError: backend failure, retryable
- SchemaMismatchWarning: non-fatal, surfaced alongside a bootstrap result
"""

from collections.abc import Iterable


class VectorStoreError(Exception):
    """Base exception for all docvector errors."""

    kind = "error"


class InvalidRequestError(VectorStoreError, ValueError):
    """Raised when a search or write request is malformed."""

    kind = "invalid_request"


class FilterError(VectorStoreError):
    """Base exception for filter expressions that cannot be compiled."""

    kind = "filter_error"


class UnsupportedFieldError(FilterError):
    """Raised when a filter references a field not declared as filterable."""

    kind = "unsupported_field"

    def __init__(self, field: str, filterable_fields: Iterable[str]):
        self.field = field
        self.filterable_fields = frozenset(filterable_fields)
        declared = ", ".join(sorted(self.filterable_fields)) or "<none>"
        super().__init__(
            f"Field '{field}' is not filterable (declared filterable fields: {declared})"
        )


class InvalidOperatorError(FilterError):
    """Raised when an operator is applied to an incompatible value."""

    kind = "invalid_operator"


class FilterSyntaxError(FilterError, ValueError):
    """Raised when a textual filter expression cannot be parsed."""

    kind = "filter_syntax"

    def __init__(self, message: str, position: int | None = None):
        self.position = position
        if position is not None:
            message = f"{message} (at offset {position})"
        super().__init__(message)


class EmbeddingProviderError(VectorStoreError):
    """Raised when the embedding provider fails (timeout, auth, quota, ...)."""

    kind = "embedding_provider"

    def __init__(
        self,
        message: str,
        reason: str = "upstream",
        provider: str | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.provider = provider
        self.status_code = status_code


class StorageError(VectorStoreError):
    """Base exception for backend storage failures."""

    kind = "storage"


class StorageWriteError(StorageError):
    """Raised when the backend rejects or fails a write."""

    kind = "storage_write"


class StorageReadError(StorageError):
    """Raised when the backend fails a read or similarity query."""

    kind = "storage_read"


class SchemaLockedError(VectorStoreError):
    """Raised when a store is asked to bootstrap a schema other than its own."""

    kind = "schema_locked"


class SchemaMismatchWarning(UserWarning):
    """Emitted when an existing index disagrees with the configured schema."""
