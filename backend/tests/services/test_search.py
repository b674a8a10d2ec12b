"""
Tests for semantic search ranking.

This module tests:
- Distance to similarity conversion for each metric
- Minimum similarity filtering and order preservation
- Excerpts and display percentages
- Limit defaults and clamping
- Query validation and error propagation
"""

import pytest

from kbsearch.core.exceptions import EmbeddingError, StoreError, ValidationError
from kbsearch.services.rag.search import (
    SearchResult,
    SemanticSearchService,
    clamp_limit,
    make_excerpt,
    normalize_similarity,
)
from kbsearch.services.rag.vector_store import ScoredChunk
from tests.fakes import StaticVectorStore


def hit(content_item_id: str, distance: float, chunk_text: str = "Some chunk text") -> ScoredChunk:
    return ScoredChunk(
        content_item_id=content_item_id,
        chunk_text=chunk_text,
        distance=distance,
        title=f"Article {content_item_id}",
        category_name="Billing",
        subcategory_name="Invoices",
    )


class TestNormalizeSimilarity:
    """Test distance to similarity conversion."""

    def test_cosine(self):
        assert normalize_similarity(0.0, "cosine") == 1.0
        assert normalize_similarity(0.25, "cosine") == pytest.approx(0.75)
        assert normalize_similarity(1.0, "cosine") == 0.0

    def test_cosine_is_clamped(self):
        assert normalize_similarity(1.6, "cosine") == 0.0
        assert normalize_similarity(-0.01, "cosine") == 1.0

    def test_l2_on_unit_vectors(self):
        assert normalize_similarity(0.0, "l2") == 1.0
        # Orthogonal unit vectors are sqrt(2) apart
        assert normalize_similarity(2 ** 0.5, "l2") == pytest.approx(0.0)
        assert normalize_similarity(1.0, "l2") == pytest.approx(0.5)
        assert normalize_similarity(2.0, "l2") == 0.0

    def test_inner_product(self):
        assert normalize_similarity(-0.8, "inner_product") == pytest.approx(0.8)
        assert normalize_similarity(0.3, "inner_product") == 0.0
        assert normalize_similarity(-1.2, "inner_product") == 1.0

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            normalize_similarity(0.1, "manhattan")


class TestHelpers:
    """Test excerpts, percentages and limit clamping."""

    def test_short_excerpt_unchanged(self):
        assert make_excerpt("Short chunk.") == "Short chunk."

    def test_excerpt_exactly_at_limit_unchanged(self):
        text = "a" * 200
        assert make_excerpt(text) == text

    def test_long_excerpt_truncated(self):
        text = "b" * 250
        excerpt = make_excerpt(text)

        assert excerpt == "b" * 200 + "..."
        assert len(excerpt) == 203

    @pytest.mark.parametrize(
        "limit, expected",
        [(None, 10), (0, 1), (-5, 1), (1, 1), (25, 25), (50, 50), (51, 50), (1000, 50)],
    )
    def test_clamp_limit(self, limit, expected):
        assert clamp_limit(limit) == expected

    @pytest.mark.parametrize("similarity, percent", [(0.874, 87), (0.876, 88), (1.0, 100), (0.3, 30)])
    def test_similarity_percent(self, similarity, percent):
        result = SearchResult(
            content_item_id="item-1",
            title="Title",
            chunk_text="text",
            similarity=similarity,
            category_name=None,
            subcategory_name=None,
            excerpt="text",
        )
        assert result.similarity_percent == percent


@pytest.mark.asyncio
class TestSemanticSearchService:
    """Test the search pipeline with a static store."""

    async def test_results_filtered_and_ordered(self, embedding_client):
        # Similarities 0.92, 0.55, 0.31, 0.12
        store = StaticVectorStore([
            hit("a", 0.08),
            hit("b", 0.45),
            hit("c", 0.69),
            hit("d", 0.88),
        ])
        service = SemanticSearchService(embedding_client, store)

        results = await service.search("how do I export invoices?", limit=10)

        assert [r.content_item_id for r in results] == ["a", "b", "c"]
        assert [r.similarity_percent for r in results] == [92, 55, 31]
        assert results[0].title == "Article a"
        assert results[0].category_name == "Billing"
        assert results[0].subcategory_name == "Invoices"

    async def test_store_order_is_kept(self, embedding_client):
        store = StaticVectorStore([hit("a", 0.1), hit("b", 0.1), hit("c", 0.2)])
        service = SemanticSearchService(embedding_client, store)

        results = await service.search("invoices")

        assert [r.content_item_id for r in results] == ["a", "b", "c"]

    async def test_similarities_non_increasing(self, embedding_client):
        store = StaticVectorStore([hit(str(i), i * 0.05) for i in range(12)])
        service = SemanticSearchService(embedding_client, store)

        results = await service.search("invoices", limit=50)

        similarities = [r.similarity for r in results]
        assert similarities == sorted(similarities, reverse=True)
        assert all(0.3 <= s <= 1.0 for s in similarities)

    async def test_custom_min_similarity(self, embedding_client):
        store = StaticVectorStore([hit("a", 0.1), hit("b", 0.3)])
        service = SemanticSearchService(embedding_client, store, min_similarity=0.8)

        results = await service.search("invoices")

        assert [r.content_item_id for r in results] == ["a"]

    async def test_l2_store(self, embedding_client):
        store = StaticVectorStore([hit("a", 0.5), hit("b", 1.3)], distance_metric="l2")
        service = SemanticSearchService(embedding_client, store)

        results = await service.search("invoices")

        assert [r.content_item_id for r in results] == ["a"]
        assert results[0].similarity == pytest.approx(0.875)

    async def test_excerpt_built_from_chunk(self, embedding_client):
        store = StaticVectorStore([hit("a", 0.1, chunk_text="x" * 300)])
        service = SemanticSearchService(embedding_client, store)

        results = await service.search("invoices")

        assert results[0].excerpt == "x" * 200 + "..."
        assert results[0].chunk_text == "x" * 300

    @pytest.mark.parametrize("limit, expected", [(None, 10), (0, 1), (100, 50), (7, 7)])
    async def test_limit_is_clamped_before_store(self, embedding_client, limit, expected):
        store = StaticVectorStore([])
        service = SemanticSearchService(embedding_client, store)

        await service.search("invoices", limit=limit)

        assert store.search_calls == [{"limit": expected, "category_id": None}]

    async def test_category_filter_passed_to_store(self, embedding_client):
        store = StaticVectorStore([])
        service = SemanticSearchService(embedding_client, store)

        await service.search("invoices", category_id="cat-billing")

        assert store.search_calls[0]["category_id"] == "cat-billing"

    async def test_query_embedded_once(self, embedding_client, provider):
        store = StaticVectorStore([hit("a", 0.1)])
        service = SemanticSearchService(embedding_client, store)

        await service.search("  how do refunds work?  ")

        # Raw query, no rewriting
        assert provider.calls == ["  how do refunds work?  "]

    @pytest.mark.parametrize("query", [None, "", "   ", 42, ["refunds"]])
    async def test_invalid_query(self, embedding_client, provider, query):
        store = StaticVectorStore([hit("a", 0.1)])
        service = SemanticSearchService(embedding_client, store)

        with pytest.raises(ValidationError) as exc_info:
            await service.search(query)

        assert str(exc_info.value) == "Query is required"
        assert provider.calls == []
        assert store.search_calls == []

    async def test_embedding_failure_propagates(self, embedding_client, provider):
        provider.fail_texts.add("invoices")
        store = StaticVectorStore([hit("a", 0.1)])
        service = SemanticSearchService(embedding_client, store)

        with pytest.raises(EmbeddingError):
            await service.search("invoices")

        assert store.search_calls == []

    async def test_store_failure_propagates(self, embedding_client):
        store = StaticVectorStore([])
        store.error = StoreError("connection refused")
        service = SemanticSearchService(embedding_client, store)

        with pytest.raises(StoreError):
            await service.search("invoices")


@pytest.mark.asyncio
class TestSearchOverIngestedContent:
    """End-to-end ranking over the in-memory store."""

    async def test_exact_chunk_ranks_first(self, pipeline, content_source, search_service, vector_store):
        content_source.add("item-1", "Refunds", "Refunds are issued within five business days.")
        content_source.add("item-2", "Passwords", "Reset your password from the account settings page.")
        await pipeline.ingest("item-1")
        await pipeline.ingest("item-2")

        service = type(search_service)(
            search_service.embedding_client, vector_store, min_similarity=0.0
        )
        query = "Passwords\n\nReset your password from the account settings page."
        results = await service.search(query)

        assert results[0].content_item_id == "item-2"
        assert results[0].similarity_percent == 100

    async def test_category_filter(self, pipeline, content_source, embedding_client, vector_store):
        vector_store.catalog = {
            "item-1": {"category_id": "cat-billing", "title": "Refunds"},
            "item-2": {"category_id": "cat-account", "title": "Passwords"},
        }
        content_source.add("item-1", "Refunds", "Refunds are issued within five business days.")
        content_source.add("item-2", "Passwords", "Reset your password from the account settings page.")
        await pipeline.ingest("item-1")
        await pipeline.ingest("item-2")

        service = SemanticSearchService(embedding_client, vector_store, min_similarity=0.0)
        results = await service.search("refunds", category_id="cat-account")

        assert {r.content_item_id for r in results} == {"item-2"}
