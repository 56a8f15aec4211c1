"""Tests for InMemoryDocumentStore."""

import pytest

from docvector.exceptions import InvalidRequestError, SchemaLockedError
from docvector.filters import FilterExpressionConverter, and_, eq
from docvector.vectorstore.base import Document
from docvector.vectorstore.memory_store import InMemoryDocumentStore
from docvector.vectorstore.schema import BootstrapAction, CollectionSchema, SimilarityMetric


class TestEnsureSchema:
    """Tests for schema bootstrap."""

    @pytest.mark.asyncio
    async def test_first_run_creates(self, memory_store):
        result = await memory_store.ensure_schema()

        assert result.collection == BootstrapAction.CREATED
        assert result.index == BootstrapAction.CREATED
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self, memory_store):
        await memory_store.ensure_schema()
        result = await memory_store.ensure_schema()

        assert result.collection == BootstrapAction.FOUND_EXISTING
        assert result.index == BootstrapAction.FOUND_EXISTING

    @pytest.mark.asyncio
    async def test_same_schema_accepted(self, memory_store, collection_schema):
        result = await memory_store.ensure_schema(collection_schema)
        assert result.collection == BootstrapAction.CREATED

    @pytest.mark.asyncio
    async def test_different_schema_rejected(self, memory_store, collection_schema):
        other = CollectionSchema(
            collection_name=collection_schema.collection_name,
            vector_index_name=collection_schema.vector_index_name,
            dimensions=8,
        )
        with pytest.raises(SchemaLockedError):
            await memory_store.ensure_schema(other)


class TestAdd:
    """Tests for add()."""

    @pytest.mark.asyncio
    async def test_returns_ids_in_order(self, memory_store, sample_documents):
        ids = await memory_store.add(sample_documents)

        assert ids == ["doc-a", "doc-b", "doc-c", "doc-d"]
        assert len(memory_store) == 4

    @pytest.mark.asyncio
    async def test_embeds_documents_without_vectors(self, memory_store, fake_gateway):
        ids = await memory_store.add([Document(content="north", id="n1")])

        stored = await memory_store.get_by_ids(ids)
        assert stored[0].embedding == (1.0, 0.0, 0.0, 0.0)
        assert fake_gateway.calls == ["north"]

    @pytest.mark.asyncio
    async def test_does_not_embed_documents_with_vectors(
        self, memory_store, fake_gateway, sample_documents
    ):
        await memory_store.add(sample_documents)
        assert fake_gateway.calls == []

    @pytest.mark.asyncio
    async def test_generated_id_returned(self, memory_store):
        ids = await memory_store.add([Document(content="east")])
        assert len(ids) == 1
        assert (await memory_store.get_by_ids(ids))[0].content == "east"

    @pytest.mark.asyncio
    async def test_wrong_dimensions_keeps_prefix(self, memory_store):
        """A failing document leaves earlier documents stored."""
        documents = [
            Document(content="ok", id="ok", embedding=[1.0, 0.0, 0.0, 0.0]),
            Document(content="bad", id="bad", embedding=[1.0, 0.0]),
            Document(content="never", id="never", embedding=[0.0, 1.0, 0.0, 0.0]),
        ]
        with pytest.raises(InvalidRequestError, match="2 dimensions"):
            await memory_store.add(documents)

        assert [d.id for d in await memory_store.get_by_ids(["ok", "bad", "never"])] == ["ok"]

    @pytest.mark.asyncio
    async def test_re_add_overwrites(self, memory_store):
        await memory_store.add([Document(content="v1", id="d", embedding=[1.0, 0.0, 0.0, 0.0])])
        await memory_store.add([Document(content="v2", id="d", embedding=[0.0, 1.0, 0.0, 0.0])])

        assert len(memory_store) == 1
        assert (await memory_store.get_by_ids(["d"]))[0].content == "v2"


class TestDelete:
    """Tests for delete()."""

    @pytest.mark.asyncio
    async def test_delete_twice(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)

        assert await memory_store.delete(["doc-a", "doc-b"]) == 2
        assert await memory_store.delete(["doc-a", "doc-b"]) == 0

    @pytest.mark.asyncio
    async def test_absent_ids_are_not_errors(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)
        assert await memory_store.delete(["doc-a", "missing"]) == 1

    @pytest.mark.asyncio
    async def test_duplicate_ids_counted_once(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)
        assert await memory_store.delete(["doc-c", "doc-c"]) == 1


class TestQuerySimilar:
    """Tests for query_similar()."""

    @pytest.mark.asyncio
    async def test_empty_collection(self, memory_store):
        assert await memory_store.query_similar([1.0, 0.0, 0.0, 0.0], top_k=5) == []

    @pytest.mark.asyncio
    async def test_added_document_ranks_first(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)
        target = sample_documents[2]

        results = await memory_store.query_similar(target.embedding, top_k=4)

        assert results[0].document.id == target.id
        assert results[0].score == 1.0

    @pytest.mark.asyncio
    async def test_ordering_and_top_k(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)

        results = await memory_store.query_similar([1.0, 0.0, 0.0, 0.0], top_k=3)

        assert [r.document.id for r in results] == ["doc-a", "doc-b", "doc-c"]
        assert [round(r.score, 6) for r in results] == [1.0, 0.9, 0.5]

    @pytest.mark.asyncio
    async def test_opposite_vector_scores_zero(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)
        results = await memory_store.query_similar([1.0, 0.0, 0.0, 0.0], top_k=4)
        assert results[-1].document.id == "doc-d"
        assert results[-1].score == 0.0

    @pytest.mark.asyncio
    async def test_compiled_filter(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)
        converter = FilterExpressionConverter(
            memory_store.filterable_fields, memory_store.query_backend
        )
        compiled = converter.convert(and_(eq("author", "A"), eq("type", "post")))

        results = await memory_store.query_similar([0.0, 1.0, 0.0, 0.0], top_k=4, compiled_filter=compiled)

        assert [r.document.id for r in results] == ["doc-a"]

    @pytest.mark.asyncio
    async def test_filter_matching_nothing(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)
        compiled = {"metadata.author": {"$eq": "nobody"}}
        assert await memory_store.query_similar([1.0, 0.0, 0.0, 0.0], 4, compiled) == []

    @pytest.mark.asyncio
    async def test_ties_keep_insertion_order(self, memory_store):
        await memory_store.add(
            [
                Document(content="first", id="first", embedding=[0.0, 0.0, 1.0, 0.0]),
                Document(content="second", id="second", embedding=[0.0, 0.0, 2.0, 0.0]),
            ]
        )
        results = await memory_store.query_similar([0.0, 0.0, 1.0, 0.0], top_k=2)
        assert [r.document.id for r in results] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_metric_mismatch_rejected(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)
        with pytest.raises(InvalidRequestError):
            await memory_store.query_similar(
                [1.0, 0.0, 0.0, 0.0], 2, similarity_metric=SimilarityMetric.EUCLIDEAN
            )


class TestOtherMetrics:
    """Euclidean and dot product collections."""

    @pytest.mark.asyncio
    async def test_euclidean(self, fake_gateway):
        store = InMemoryDocumentStore(
            CollectionSchema(dimensions=2, similarity_metric="euclidean"), fake_gateway
        )
        await store.add(
            [
                Document(content="near", id="near", embedding=[1.0, 1.0]),
                Document(content="far", id="far", embedding=[4.0, 5.0]),
            ]
        )

        results = await store.query_similar([1.0, 1.0], top_k=2)

        assert [r.document.id for r in results] == ["near", "far"]
        assert results[0].score == 1.0
        assert results[1].score == pytest.approx(1 / 6)

    @pytest.mark.asyncio
    async def test_dot_product(self, fake_gateway):
        store = InMemoryDocumentStore(
            CollectionSchema(dimensions=2, similarity_metric="dotProduct"), fake_gateway
        )
        await store.add(
            [
                Document(content="half", id="half", embedding=[0.5, 0.0]),
                Document(content="unit", id="unit", embedding=[1.0, 0.0]),
            ]
        )

        results = await store.query_similar([1.0, 0.0], top_k=2)

        assert [r.document.id for r in results] == ["unit", "half"]
        assert [r.score for r in results] == [1.0, 0.75]

    @pytest.mark.asyncio
    async def test_dot_product_ranks_beyond_clamped_score(self, fake_gateway):
        store = InMemoryDocumentStore(
            CollectionSchema(dimensions=2, similarity_metric="dotProduct"), fake_gateway
        )
        await store.add(
            [
                Document(content="weak", id="weak", embedding=[2.0, 0.0]),
                Document(content="strong", id="strong", embedding=[5.0, 0.0]),
                Document(content="medium", id="medium", embedding=[3.0, 0.0]),
            ]
        )

        results = await store.query_similar([1.0, 0.0], top_k=3)

        assert [r.document.id for r in results] == ["strong", "medium", "weak"]
        assert [r.score for r in results] == [1.0, 1.0, 1.0]

        top = await store.query_similar([1.0, 0.0], top_k=1)
        assert [r.document.id for r in top] == ["strong"]


class TestStoredDocumentImmutability:
    """Stored documents do not change when callers mutate their inputs or results."""

    @pytest.mark.asyncio
    async def test_caller_metadata_mutation_after_add(self, memory_store):
        converter = FilterExpressionConverter(
            memory_store.filterable_fields, memory_store.query_backend
        )
        metadata = {"author": "A"}
        embedding = [1.0, 0.0, 0.0, 0.0]
        await memory_store.add(
            [Document(content="x", id="x", metadata=metadata, embedding=embedding)]
        )

        metadata["author"] = "B"
        embedding[0] = -1.0

        stored = (await memory_store.get_by_ids(["x"]))[0]
        assert stored.metadata == {"author": "A"}
        assert stored.embedding == (1.0, 0.0, 0.0, 0.0)
        hits = await memory_store.query_similar(
            [1.0, 0.0, 0.0, 0.0], top_k=1, compiled_filter=converter.convert(eq("author", "A"))
        )
        assert [h.document.id for h in hits] == ["x"]

    @pytest.mark.asyncio
    async def test_result_metadata_is_read_only(self, memory_store, sample_documents):
        await memory_store.add(sample_documents)
        hit = (await memory_store.query_similar([1.0, 0.0, 0.0, 0.0], top_k=1))[0]

        with pytest.raises(TypeError):
            hit.document.metadata["author"] = "Z"
