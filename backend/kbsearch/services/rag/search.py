"""
Semantic Search Service

Answers a natural-language query with the most similar content chunks.

Search Pipeline:
----------------
1. Validate the query (non-empty string)
2. Embed the raw query once
3. Run one similarity search against the vector store
4. Convert each raw distance to a similarity in [0, 1]
5. Drop hits below SEARCH_MIN_SIMILARITY
6. Build excerpts and display percentages

The store's order is kept as-is. Every distance-to-similarity mapping used
here is monotone, so ascending distance is already descending similarity.
"""

from dataclasses import dataclass
from typing import Any, Optional

from kbsearch.core.config import settings
from kbsearch.core.exceptions import ValidationError
from kbsearch.core.logging import get_logger
from kbsearch.services.processors.embedder import RetryingEmbeddingClient
from kbsearch.services.rag.vector_store import DistanceMetric, VectorStore

logger = get_logger(__name__)

EXCERPT_MARKER = "..."


@dataclass(frozen=True)
class SearchResult:
    """One ranked search hit."""

    content_item_id: str
    title: str
    chunk_text: str
    similarity: float
    category_name: Optional[str]
    subcategory_name: Optional[str]
    excerpt: str

    @property
    def similarity_percent(self) -> int:
        """Similarity as a whole-number percentage (0-100)."""
        return round(self.similarity * 100)


def normalize_similarity(distance: float, metric: DistanceMetric) -> float:
    """
    Convert a raw store distance into a similarity in [0, 1].

    - cosine: similarity = 1 - distance
    - l2 (unit vectors): similarity = 1 - distance² / 2
    - inner_product (pgvector returns the negated product): similarity = -distance

    Args:
        distance: Raw distance reported by the store
        metric: What the distance measures

    Returns:
        Similarity clamped to [0, 1]
    """
    if metric == "cosine":
        similarity = 1.0 - distance
    elif metric == "l2":
        similarity = 1.0 - (distance * distance) / 2.0
    elif metric == "inner_product":
        similarity = -distance
    else:
        raise ValueError(f"Unknown distance metric: {metric}")

    return min(1.0, max(0.0, similarity))


def make_excerpt(chunk_text: str, length: int = None) -> str:
    """First `length` characters of a chunk, with "..." only if truncated."""
    length = length or settings.SEARCH_EXCERPT_LENGTH
    if len(chunk_text) <= length:
        return chunk_text
    return chunk_text[:length] + EXCERPT_MARKER


def clamp_limit(limit: Optional[int]) -> int:
    """
    Apply the default and bounds to a requested result count.

    None → SEARCH_DEFAULT_LIMIT, below 1 → 1, above SEARCH_MAX_LIMIT → SEARCH_MAX_LIMIT.
    """
    if limit is None:
        return settings.SEARCH_DEFAULT_LIMIT
    return max(1, min(limit, settings.SEARCH_MAX_LIMIT))


class SemanticSearchService:
    """
    Query-time ranking over the vector store.

    Usage:
    ------
    service = SemanticSearchService(embedding_client, vector_store)
    results = await service.search("how do refunds work?", limit=5)

    for result in results:
        print(result.title, result.similarity_percent, result.excerpt)
    """

    def __init__(
        self,
        embedding_client: RetryingEmbeddingClient,
        vector_store: VectorStore,
        min_similarity: float = None,
    ):
        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.min_similarity = (
            settings.SEARCH_MIN_SIMILARITY if min_similarity is None else min_similarity
        )

    async def search(
        self,
        query: Any,
        limit: Optional[int] = None,
        category_id: Optional[str] = None,
    ) -> list[SearchResult]:
        """
        Search content by meaning.

        Args:
            query: Natural-language query
            limit: Maximum results (default 10, clamped to 1..50)
            category_id: Only search this category

        Returns:
            Results ordered by decreasing similarity

        Raises:
            ValidationError: Query is missing, not a string or blank
            EmbeddingError: The query could not be embedded
            StoreError: The similarity search failed
        """
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Query is required")

        limit = clamp_limit(limit)

        query_vector = await self.embedding_client.embed(query)
        hits = await self.vector_store.similarity_search(
            query_vector,
            limit=limit,
            category_id=category_id,
        )

        metric = self.vector_store.distance_metric
        results = []
        for hit in hits:
            similarity = normalize_similarity(hit.distance, metric)
            if similarity < self.min_similarity:
                continue
            results.append(
                SearchResult(
                    content_item_id=hit.content_item_id,
                    title=hit.title,
                    chunk_text=hit.chunk_text,
                    similarity=similarity,
                    category_name=hit.category_name,
                    subcategory_name=hit.subcategory_name,
                    excerpt=make_excerpt(hit.chunk_text),
                )
            )

        logger.info(
            "search_completed",
            limit=limit,
            category_id=category_id,
            hits=len(hits),
            results=len(results),
        )
        return results
