"""
pgvector implementation of the DocumentStore interface.

Each collection is one table:

    id TEXT PRIMARY KEY, content TEXT, metadata JSONB,
    <vector_path_name> vector(<dimensions>), created_at, updated_at

with an HNSW index using the operator class of the configured metric and
an expression index per filterable metadata field. Filters arrive as
SqlPredicate fragments and are rendered with positional parameters.
"""

import json
import warnings
from collections.abc import Sequence
from typing import Any

import asyncpg
import structlog

from docvector.embedding.base import EmbeddingGateway
from docvector.exceptions import (
    SchemaMismatchWarning,
    StorageReadError,
    StorageWriteError,
)
from docvector.filters.backends import SqlPredicate, SqlQueryBackend, quote_literal
from docvector.observability.metrics import get_metrics
from docvector.storage.database import Database
from docvector.vectorstore.base import Document, DocumentStore, ScoredDocument
from docvector.vectorstore.schema import (
    INDEX_OPCLASSES,
    BootstrapAction,
    CollectionSchema,
    SchemaBootstrapResult,
    SimilarityMetric,
    score_from_distance,
)

logger = structlog.get_logger(__name__)

# hnsw.ef_search is capped at 1000 by pgvector
MAX_EF_SEARCH = 1000

_BACKEND_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def vector_literal(vector: Sequence[float]) -> str:
    """Format a vector in pgvector's text input format."""
    return "[" + ",".join(repr(float(x)) for x in vector) + "]"


def parse_vector(value: Any) -> list[float] | None:
    """Parse a vector column value returned as text or a sequence."""
    if value is None:
        return None
    if isinstance(value, str):
        body = value.strip().strip("[]")
        return [float(x) for x in body.split(",")] if body else []
    return [float(x) for x in value]


def num_candidates(top_k: int, multiplier: int) -> int:
    """ANN candidate list size for a query, within [top_k, MAX_EF_SEARCH]."""
    return max(top_k, min(top_k * multiplier, MAX_EF_SEARCH))


class PgVectorDocumentStore(DocumentStore):
    """
    PostgreSQL + pgvector document store.

    Features:
    - HNSW index per collection for approximate nearest neighbor search
    - JSONB metadata with compiled SQL filters and per-field expression indexes
    - Upsert by id, so retrying an add with caller ids is idempotent
    """

    def __init__(
        self,
        database: Database,
        schema: CollectionSchema,
        embedding_gateway: EmbeddingGateway,
        num_candidates_multiplier: int = 10,
    ):
        """
        Initialize pgvector store.

        Args:
            database: Connected Database instance
            schema: Collection this store is bound to
            embedding_gateway: Provider used for documents without a vector
            num_candidates_multiplier: ANN candidate list size as a multiple of top_k
        """
        super().__init__(schema, embedding_gateway)
        self._db = database
        self._backend = SqlQueryBackend(metadata_column="metadata")
        self._multiplier = num_candidates_multiplier

    @property
    def query_backend(self) -> SqlQueryBackend:
        return self._backend

    @property
    def _table(self) -> str:
        return self._schema.collection_name

    @property
    def _path(self) -> str:
        return self._schema.vector_path_name

    def _field_index_name(self, field: str) -> str:
        return f"{self._table}_meta_{field}_idx"[:63]

    # ── Schema bootstrap ────────────────────────────────────────────

    async def ensure_schema(
        self, schema: CollectionSchema | None = None
    ) -> SchemaBootstrapResult:
        schema = self._check_schema(schema)
        metrics = get_metrics()
        found_warnings: list[str] = []

        try:
            async with self._db.transaction() as conn:
                table_exists = await conn.fetchval(
                    "SELECT to_regclass($1) IS NOT NULL", self._table
                )
                if table_exists:
                    collection = BootstrapAction.FOUND_EXISTING
                    column_type = await conn.fetchval(
                        """
                        SELECT format_type(a.atttypid, a.atttypmod)
                        FROM pg_attribute a
                        WHERE a.attrelid = to_regclass($1)
                          AND a.attname = $2
                          AND NOT a.attisdropped
                        """,
                        self._table,
                        self._path,
                    )
                    expected_type = f"vector({schema.dimensions})"
                    if column_type != expected_type:
                        found_warnings.append(
                            f"Column {self._table}.{self._path} is {column_type or 'missing'}, "
                            f"configured {expected_type}"
                        )
                else:
                    collection = BootstrapAction.CREATED
                    await conn.execute(
                        f"""
                        CREATE TABLE IF NOT EXISTS {self._table} (
                            id TEXT PRIMARY KEY,
                            content TEXT NOT NULL,
                            metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
                            {self._path} vector({schema.dimensions}),
                            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                        )
                        """
                    )

                index_def = await conn.fetchval(
                    """
                    SELECT indexdef FROM pg_indexes
                    WHERE schemaname = current_schema() AND indexname = $1
                    """,
                    schema.vector_index_name,
                )
                if index_def is not None:
                    index = BootstrapAction.FOUND_EXISTING
                    if schema.index_opclass not in index_def:
                        live = next(
                            (m.value for m, opclass in INDEX_OPCLASSES.items() if opclass in index_def),
                            "unknown",
                        )
                        found_warnings.append(
                            f"Index {schema.vector_index_name} uses metric {live}, "
                            f"configured {schema.similarity_metric.value}"
                        )
                else:
                    index = BootstrapAction.CREATED
                    await conn.execute(
                        f"CREATE INDEX IF NOT EXISTS {schema.vector_index_name} "
                        f"ON {self._table} USING hnsw ({self._path} {schema.index_opclass})"
                    )

                for field in sorted(schema.filterable_fields):
                    await conn.execute(
                        f"CREATE INDEX IF NOT EXISTS {self._field_index_name(field)} "
                        f"ON {self._table} ((metadata -> {quote_literal(field)}))"
                    )
        except _BACKEND_ERRORS as exc:
            metrics.record_storage_error("ensure_schema")
            raise StorageWriteError(
                f"Schema bootstrap for '{self._table}' failed: {exc}"
            ) from exc

        for message in found_warnings:
            warnings.warn(message, SchemaMismatchWarning, stacklevel=2)
            logger.warning("Schema mismatch", collection=self._table, detail=message)
            metrics.record_schema_mismatch(self._table)

        metrics.record_schema_action("collection", collection.value)
        metrics.record_schema_action("index", index.value)
        logger.info(
            "Schema ensured",
            collection=self._table,
            collection_action=collection.value,
            index_action=index.value,
            warnings=len(found_warnings),
        )
        return SchemaBootstrapResult(collection=collection, index=index, warnings=found_warnings)

    # ── Writes ──────────────────────────────────────────────────────

    async def add(self, documents: Sequence[Document]) -> list[str]:
        """
        Embed and upsert documents one at a time.

        Each document is its own statement; a failure leaves the documents
        written before it in place.
        """
        sql = f"""
            INSERT INTO {self._table} (id, content, metadata, {self._path})
            VALUES ($1, $2, $3::jsonb, $4::vector)
            ON CONFLICT (id) DO UPDATE SET
                content = EXCLUDED.content,
                metadata = EXCLUDED.metadata,
                {self._path} = EXCLUDED.{self._path},
                updated_at = NOW()
        """
        ids: list[str] = []
        for document in documents:
            document = await self._resolve_embedding(document)
            try:
                await self._db.execute(
                    sql,
                    document.id,
                    document.content,
                    json.dumps(dict(document.metadata)),
                    vector_literal(document.embedding),
                )
            except _BACKEND_ERRORS as exc:
                get_metrics().record_storage_error("add")
                logger.error(
                    "Document write failed",
                    collection=self._table,
                    document_id=document.id,
                    written=len(ids),
                    error=str(exc),
                )
                raise StorageWriteError(
                    f"Failed to write document '{document.id}' to '{self._table}': {exc}"
                ) from exc
            get_metrics().record_documents_added(self._table)
            ids.append(document.id)

        logger.info(f"Added {len(ids)} documents", collection=self._table)
        return ids

    async def delete(self, ids: Sequence[str]) -> int:
        if not ids:
            return 0

        sql = f"""
            DELETE FROM {self._table}
            WHERE id = ANY($1::text[])
            RETURNING id
        """
        try:
            rows = await self._db.fetch(sql, list(ids))
        except _BACKEND_ERRORS as exc:
            get_metrics().record_storage_error("delete")
            raise StorageWriteError(f"Failed to delete from '{self._table}': {exc}") from exc

        deleted = len(rows)
        get_metrics().record_documents_deleted(self._table, deleted)
        logger.info(f"Deleted {deleted}/{len(ids)} documents", collection=self._table)
        return deleted

    # ── Reads ───────────────────────────────────────────────────────

    async def query_similar(
        self,
        vector: Sequence[float],
        top_k: int,
        compiled_filter: SqlPredicate | None = None,
        similarity_metric: SimilarityMetric | None = None,
    ) -> list[ScoredDocument]:
        """
        ANN search over the collection's HNSW index.

        The candidate list (hnsw.ef_search) is set per transaction to
        top_k * num_candidates_multiplier.
        """
        metric = self._check_metric(similarity_metric)
        if top_k <= 0:
            return []

        op = self._schema.distance_operator
        conditions = [f"{self._path} IS NOT NULL"]
        params: list[Any] = [vector_literal(vector)]

        if compiled_filter is not None:
            filter_sql, filter_params = compiled_filter.render(start=2)
            conditions.append(filter_sql)
            params.extend(filter_params)

        params.append(top_k)
        sql = f"""
            SELECT
                id,
                content,
                metadata,
                {self._path}::text AS embedding,
                {self._path} {op} $1::vector AS distance
            FROM {self._table}
            WHERE {" AND ".join(conditions)}
            ORDER BY {self._path} {op} $1::vector
            LIMIT ${len(params)}
        """
        candidates = num_candidates(top_k, self._multiplier)

        try:
            async with self._db.transaction() as conn:
                await conn.execute(f"SET LOCAL hnsw.ef_search = {int(candidates)}")
                rows = await conn.fetch(sql, *params)
        except _BACKEND_ERRORS as exc:
            get_metrics().record_storage_error("query_similar")
            raise StorageReadError(f"Similarity query on '{self._table}' failed: {exc}") from exc

        results = [
            ScoredDocument(
                document=self._row_to_document(row),
                score=score_from_distance(metric, float(row["distance"])),
            )
            for row in rows
        ]
        # Rows arrive by ascending distance; the sort keeps score ties in that order
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    async def get_by_ids(self, ids: Sequence[str]) -> list[Document]:
        if not ids:
            return []

        sql = f"""
            SELECT id, content, metadata, {self._path}::text AS embedding
            FROM {self._table}
            WHERE id = ANY($1::text[])
        """
        try:
            rows = await self._db.fetch(sql, list(ids))
        except _BACKEND_ERRORS as exc:
            get_metrics().record_storage_error("get_by_ids")
            raise StorageReadError(f"Lookup on '{self._table}' failed: {exc}") from exc

        by_id = {row["id"]: self._row_to_document(row) for row in rows}
        return [by_id[doc_id] for doc_id in ids if doc_id in by_id]

    def _row_to_document(self, row: Any) -> Document:
        """Convert database row to Document."""
        metadata = row["metadata"]
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        return Document(
            id=row["id"],
            content=row["content"],
            metadata=dict(metadata or {}),
            embedding=parse_vector(row["embedding"]),
        )
