"""
Command-line interface for docvector.

Usage:
    docvector init-schema            # Create collection and vector index
    docvector add docs.jsonl         # Embed and store JSON-lines documents
    docvector search "query text"    # Ranked similarity search
    docvector delete ID [ID ...]     # Delete documents by id
    docvector health                 # Check database connectivity
"""

import asyncio
import json
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import click
import structlog

from docvector.config.settings import get_settings
from docvector.embedding.base import create_embedding_gateway
from docvector.embedding.config import EmbeddingConfig
from docvector.exceptions import VectorStoreError
from docvector.observability.logging import bind_context, clear_context, setup_logging
from docvector.observability.tracing import setup_tracing_from_settings, shutdown_tracing
from docvector.storage.database import Database
from docvector.vectorstore.base import Document
from docvector.vectorstore.config import VectorStoreConfig
from docvector.vectorstore.engine import SimilaritySearchEngine
from docvector.vectorstore.factory import create_document_store

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def open_engine(bootstrap: bool = True) -> AsyncIterator[SimilaritySearchEngine]:
    """
    Build gateway, store and engine from the environment; close them on exit.

    With bootstrap, the schema is ensured first when VECTORSTORE_INITIALIZE_SCHEMA is set.
    """
    config = VectorStoreConfig()
    gateway = create_embedding_gateway(EmbeddingConfig())
    bind_context(collection=config.collection_name, backend=config.backend)
    database = None
    try:
        if config.backend == "pgvector":
            database = Database()
            await database.connect()
        store = create_document_store(config, gateway, database)
        engine = SimilaritySearchEngine(store, gateway, config)
        if bootstrap:
            await engine.initialize()
        yield engine
    finally:
        await gateway.close()
        if database is not None:
            await database.close()
        clear_context()


def _run(coro) -> None:
    """Run a command coroutine, turning library errors into CLI errors."""
    try:
        asyncio.run(coro)
    except VectorStoreError as e:
        raise click.ClickException(f"{e.kind}: {e}") from e


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, debug: bool) -> None:
    """docvector - document vector store with filtered similarity search."""
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    settings = get_settings()
    setup_logging(settings)
    if setup_tracing_from_settings(settings) is not None:
        ctx.call_on_close(shutdown_tracing)


@main.command("init-schema")
def init_schema() -> None:
    """Create the collection and vector index if absent."""

    async def run():
        async with open_engine(bootstrap=False) as engine:
            result = await engine.store.ensure_schema()

        click.echo(f"collection: {result.collection.value}")
        click.echo(f"index: {result.index.value}")
        if not result.created_anything:
            click.echo("Schema already up to date")
        for warning in result.warnings:
            click.echo(click.style(f"warning: {warning}", fg="yellow"))

    _run(run())


def _read_documents(stream) -> list[Document]:
    documents = []
    for line_no, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
            kwargs = {
                "content": record["content"],
                "metadata": record.get("metadata") or {},
                "embedding": record.get("embedding"),
            }
            if record.get("id") is not None:
                kwargs["id"] = str(record["id"])
            documents.append(Document(**kwargs))
        except (ValueError, KeyError, TypeError) as e:
            raise click.BadParameter(f"line {line_no}: {e}", param_hint="FILE") from e
    return documents


@main.command()
@click.argument("file", type=click.File("r"))
def add(file) -> None:
    """Embed and store documents from a JSON-lines FILE ('-' for stdin)."""
    documents = _read_documents(file)

    async def run():
        async with open_engine() as engine:
            ids = await engine.add(documents)
        for doc_id in ids:
            click.echo(doc_id)

    _run(run())


@main.command()
@click.argument("query")
@click.option("--top-k", type=int, default=None, help="Maximum number of results")
@click.option("--threshold", type=float, default=None, help="Minimum similarity score (0-1)")
@click.option("--filter", "filter_text", default=None, help="Filter, e.g. \"year >= 2020 && lang == 'en'\"")
def search(query: str, top_k: int | None, threshold: float | None, filter_text: str | None) -> None:
    """Search documents similar to QUERY."""

    async def run():
        async with open_engine() as engine:
            results = await engine.similarity_search(
                query, top_k=top_k, threshold=threshold, filter=filter_text
            )

        if not results:
            click.echo("No results")
            return
        for rank, hit in enumerate(results, start=1):
            preview = hit.document.content.replace("\n", " ")[:80]
            click.echo(f"{rank:>3}. {hit.score:.4f}  {hit.document.id}  {preview}")

    _run(run())


@main.command()
@click.argument("ids", nargs=-1, required=True)
def delete(ids: tuple[str, ...]) -> None:
    """Delete documents by id."""

    async def run():
        async with open_engine() as engine:
            deleted = await engine.delete(list(ids))
        click.echo(f"Deleted {deleted} document(s)")

    _run(run())


@main.command()
def health() -> None:
    """Check database connectivity."""

    async def check():
        db = Database()
        version = None
        try:
            await db.connect()
            healthy = await db.health_check()
            if healthy:
                version = await db.vector_extension_version()
        except Exception as e:
            healthy = False
            logger.error("Postgres health check failed", error=str(e))
        finally:
            if db.is_connected:
                await db.close()

        icon = "✓" if healthy else "✗"
        color = "green" if healthy else "red"
        click.echo(click.style(f"  {icon} postgres: {healthy}", fg=color))
        if version is not None:
            click.echo(f"    pgvector: {version}")
        return healthy

    healthy = asyncio.run(check())
    sys.exit(0 if healthy else 1)


if __name__ == "__main__":
    main()
