"""
Vector Store

Persistence of embedded chunks and nearest-neighbour search over them.

Write Path (replace_chunks):
----------------------------
Every call writes a complete chunk set for one content item under a new
generation tag, in a single transaction:

1. Take a transaction-scoped advisory lock on the content item
2. INSERT the new generation's rows
3. DELETE every row of that item with a different generation
4. Stamp content_items.last_embedded_at
5. COMMIT

Concurrent readers see the complete old set until the commit and the
complete new set afterwards. The advisory lock keeps two writers for the
same item (API process and Celery worker, say) from interleaving.

Read Path (similarity_search):
------------------------------
pgvector cosine distance (<=>) ordered ascending, joined to content item,
subcategory and category for display names, optionally scoped to one
category. The HNSW index on document_chunks.embedding serves the ORDER BY;
hnsw.ef_search is raised per transaction so the post-scan filters still
leave `limit` rows when enough matching chunks exist.
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from sqlalchemy import delete, insert, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kbsearch.core.config import settings
from kbsearch.core.exceptions import StoreError
from kbsearch.core.logging import get_logger
from kbsearch.models.content import Category, ContentChunk, ContentItem, Subcategory

logger = get_logger(__name__)

DistanceMetric = Literal["cosine", "l2", "inner_product"]

# Upper bound pgvector accepts for hnsw.ef_search
HNSW_MAX_EF_SEARCH = 1000


@dataclass(frozen=True)
class ChunkRecord:
    """One chunk of a content item, ready to persist."""

    chunk_index: int
    chunk_text: str
    vector: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ScoredChunk:
    """A similarity search hit with its raw store distance."""

    content_item_id: str
    chunk_text: str
    distance: float
    title: str
    category_name: Optional[str] = None
    subcategory_name: Optional[str] = None


class VectorStore(ABC):
    """
    Storage for embedded chunks.

    distance_metric declares what ScoredChunk.distance means so callers
    can turn it into a similarity:
    - "cosine": cosine distance, 0 (identical) .. 2 (opposite)
    - "l2": Euclidean distance
    - "inner_product": negated inner product (pgvector's <#>)
    """

    distance_metric: DistanceMetric = "cosine"

    @abstractmethod
    async def replace_chunks(self, content_item_id: str, chunks: Sequence[ChunkRecord]) -> int:
        """Atomically replace the item's chunk set. Returns rows written."""

    @abstractmethod
    async def similarity_search(
        self,
        query_vector: Sequence[float],
        limit: int,
        category_id: Optional[str] = None,
    ) -> list[ScoredChunk]:
        """Nearest chunks to query_vector, ordered by increasing distance."""

    @abstractmethod
    async def delete_chunks(self, content_item_id: str) -> int:
        """Remove every chunk of the item. Returns rows deleted."""


def validate_chunk_records(chunks: Sequence[ChunkRecord], dimension: int) -> None:
    """
    Reject a chunk set that would break the store invariants.

    Raises:
        StoreError: If chunk_index values are not exactly 0..N-1 in order,
            or a vector has the wrong dimension
    """
    for position, chunk in enumerate(chunks):
        if chunk.chunk_index != position:
            raise StoreError(
                f"chunk_index values must be contiguous from 0, got {chunk.chunk_index} at position {position}"
            )
        if len(chunk.vector) != dimension:
            raise StoreError(
                f"Chunk {chunk.chunk_index} has a {len(chunk.vector)}-dimensional vector, expected {dimension}"
            )


def new_generation() -> str:
    """Generation tag for one ingestion run."""
    return uuid.uuid4().hex


class PgVectorStore(VectorStore):
    """
    PostgreSQL + pgvector implementation.

    Usage:
    ------
    store = PgVectorStore(AsyncSessionLocal)
    await store.replace_chunks(item_id, records)
    hits = await store.similarity_search(query_vector, limit=10)
    """

    distance_metric: DistanceMetric = "cosine"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dimension: int = None,
    ):
        self.session_factory = session_factory
        self.dimension = dimension or settings.EMBEDDING_DIMENSION

    async def _lock_item(self, session: AsyncSession, content_item_id: str) -> None:
        # Released automatically at COMMIT/ROLLBACK
        await session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"document_chunks:{content_item_id}"},
        )

    async def _widen_index_scan(self, session: AsyncSession, limit: int, filtered: bool) -> None:
        """
        Size the HNSW candidate list for this transaction.

        The is_active and category filters run after the index scan, and
        the scan returns at most hnsw.ef_search rows, so ef_search must be
        at least the limit (and larger when a category filter drops rows).
        """
        ef_search = max(settings.SEARCH_HNSW_EF_SEARCH, limit)
        if filtered:
            ef_search *= settings.SEARCH_FILTER_OVERFETCH
        ef_search = min(ef_search, HNSW_MAX_EF_SEARCH)

        # set_config(..., true) is SET LOCAL with a bindable value
        await session.execute(
            text("SELECT set_config('hnsw.ef_search', :value, true)"),
            {"value": str(ef_search)},
        )

    async def replace_chunks(self, content_item_id: str, chunks: Sequence[ChunkRecord]) -> int:
        """
        Swap in a new chunk generation for a content item.

        An empty chunk list still commits: the item ends up with no chunks.

        Args:
            content_item_id: Item whose chunks are replaced
            chunks: Complete new chunk set, ordered by chunk_index

        Returns:
            Number of chunks written

        Raises:
            StoreError: If the chunk set is invalid or the database fails
        """
        validate_chunk_records(chunks, self.dimension)

        generation = new_generation()
        rows = [
            {
                "content_item_id": content_item_id,
                "generation": generation,
                "chunk_index": chunk.chunk_index,
                "chunk_text": chunk.chunk_text,
                "embedding": list(chunk.vector),
                "chunk_metadata": chunk.metadata,
            }
            for chunk in chunks
        ]

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._lock_item(session, content_item_id)

                    if rows:
                        await session.execute(insert(ContentChunk), rows)

                    deleted = await session.execute(
                        delete(ContentChunk)
                        .where(
                            ContentChunk.content_item_id == content_item_id,
                            ContentChunk.generation != generation,
                        )
                        .execution_options(synchronize_session=False)
                    )

                    await session.execute(
                        update(ContentItem)
                        .where(ContentItem.id == content_item_id)
                        # updated_at is set explicitly so onupdate doesn't bump it
                        .values(
                            last_embedded_at=datetime.now(timezone.utc),
                            updated_at=ContentItem.updated_at,
                        )
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError as e:
            logger.error(
                "chunk_replace_failed",
                content_item_id=content_item_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreError(f"Failed to store chunks for content item {content_item_id}") from e

        logger.info(
            "chunks_replaced",
            content_item_id=content_item_id,
            generation=generation,
            chunks_written=len(rows),
            chunks_removed=deleted.rowcount,
        )
        return len(rows)

    async def similarity_search(
        self,
        query_vector: Sequence[float],
        limit: int,
        category_id: Optional[str] = None,
    ) -> list[ScoredChunk]:
        """
        Find the chunks nearest to a query vector.

        Args:
            query_vector: Query embedding
            limit: Maximum number of hits
            category_id: Only search content in this category

        Returns:
            Hits ordered by increasing cosine distance
        """
        if len(query_vector) != self.dimension:
            raise StoreError(
                f"Query vector has {len(query_vector)} dimensions, expected {self.dimension}"
            )

        distance = ContentChunk.embedding.cosine_distance(list(query_vector)).label("distance")

        query = (
            select(
                ContentChunk.content_item_id,
                ContentChunk.chunk_text,
                ContentItem.title,
                Category.name.label("category_name"),
                Subcategory.name.label("subcategory_name"),
                distance,
            )
            .select_from(ContentChunk)
            .join(ContentItem, ContentChunk.content_item_id == ContentItem.id)
            .join(Subcategory, ContentItem.subcategory_id == Subcategory.id)
            .join(Category, Subcategory.category_id == Category.id)
            .where(ContentItem.is_active.is_(True))
        )

        if category_id:
            query = query.where(Category.id == category_id)

        query = query.order_by(distance).limit(limit)

        try:
            async with self.session_factory() as session:
                await self._widen_index_scan(session, limit, filtered=bool(category_id))
                result = await session.execute(query)
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error("similarity_search_failed", error=str(e), error_type=type(e).__name__)
            raise StoreError("Similarity search failed") from e

        return [
            ScoredChunk(
                content_item_id=row.content_item_id,
                chunk_text=row.chunk_text,
                distance=float(row.distance),
                title=row.title,
                category_name=row.category_name,
                subcategory_name=row.subcategory_name,
            )
            for row in rows
        ]

    async def delete_chunks(self, content_item_id: str) -> int:
        """
        Delete all chunks of a content item.

        Returns:
            Number of rows deleted
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._lock_item(session, content_item_id)
                    result = await session.execute(
                        delete(ContentChunk)
                        .where(ContentChunk.content_item_id == content_item_id)
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError as e:
            logger.error("chunk_delete_failed", content_item_id=content_item_id, error=str(e))
            raise StoreError(f"Failed to delete chunks for content item {content_item_id}") from e

        logger.info("chunks_deleted", content_item_id=content_item_id, chunks_removed=result.rowcount)
        return result.rowcount
