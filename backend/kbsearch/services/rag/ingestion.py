"""
Ingestion Pipeline

Turns one content item into a fresh, complete set of embedded chunks.

Pipeline:
---------
1. Load the item from the content source (NotFoundError if missing)
2. Chunk "title + blank line + body"
3. Embed every chunk (bounded concurrency, results kept in chunk order)
4. Hand the full chunk set to the vector store, which swaps it in atomically

If any embedding fails, or the run is cancelled, nothing is written and the
previous chunk set stays in place. Runs for the same content item are
serialized in-process; the pgvector store additionally serializes them
across processes.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from kbsearch.core.config import settings
from kbsearch.core.exceptions import NotFoundError
from kbsearch.core.logging import get_logger
from kbsearch.services.content_source import ContentSource
from kbsearch.services.processors.chunker import TextChunker
from kbsearch.services.processors.embedder import RetryingEmbeddingClient
from kbsearch.services.rag.vector_store import ChunkRecord, VectorStore

logger = get_logger(__name__)


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or awaits it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __contains__(self, key: str) -> bool:
        return key in self._locks


class IngestionPipeline:
    """
    Chunk, embed and store content items.

    Usage:
    ------
    pipeline = IngestionPipeline(
        content_source=SqlContentSource(AsyncSessionLocal),
        embedding_client=RetryingEmbeddingClient(provider),
        vector_store=PgVectorStore(AsyncSessionLocal),
    )
    chunks_created = await pipeline.ingest(content_item_id)
    """

    def __init__(
        self,
        content_source: ContentSource,
        embedding_client: RetryingEmbeddingClient,
        vector_store: VectorStore,
        chunker: Optional[TextChunker] = None,
        concurrency: int = None,
    ):
        self.content_source = content_source
        self.embedding_client = embedding_client
        self.vector_store = vector_store
        self.chunker = chunker or TextChunker()
        self.concurrency = concurrency or settings.EMBEDDING_CONCURRENCY
        self._item_locks = KeyedLock()

    async def ingest(self, content_item_id: str) -> int:
        """
        Re-index one content item.

        Args:
            content_item_id: Item to index

        Returns:
            Number of chunks created (0 for an item with no body)

        Raises:
            NotFoundError: The item does not exist
            EmbeddingError: A chunk could not be embedded
            StoreError: The vector store failed
        """
        async with self._item_locks.acquire(content_item_id):
            document = await self.content_source.get(content_item_id)
            if document is None:
                raise NotFoundError(content_item_id)

            chunk_texts = self.chunker.chunk(document.text_to_index)

            logger.info(
                "ingestion_started",
                content_item_id=content_item_id,
                chunks=len(chunk_texts),
            )

            vectors = await self._embed_all(chunk_texts)

            metadata = {"title": document.title, "subcategory_id": document.subcategory_id}
            records = [
                ChunkRecord(
                    chunk_index=index,
                    chunk_text=chunk_text,
                    vector=vector,
                    metadata=metadata,
                )
                for index, (chunk_text, vector) in enumerate(zip(chunk_texts, vectors))
            ]

            chunks_created = await self.vector_store.replace_chunks(content_item_id, records)

        logger.info(
            "ingestion_completed",
            content_item_id=content_item_id,
            chunks_created=chunks_created,
        )
        return chunks_created

    async def delete(self, content_item_id: str) -> int:
        """
        Remove every chunk of a content item.

        Returns:
            Number of chunks deleted
        """
        async with self._item_locks.acquire(content_item_id):
            return await self.vector_store.delete_chunks(content_item_id)

    async def _embed_all(self, texts: list[str]) -> list[list[float]]:
        """
        Embed texts concurrently, returning vectors in input order.

        On the first failure (or cancellation) every outstanding embedding
        task is cancelled before the error propagates.
        """
        if not texts:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_one(chunk_text: str) -> list[float]:
            async with semaphore:
                return await self.embedding_client.embed(chunk_text)

        tasks = [asyncio.create_task(embed_one(chunk_text)) for chunk_text in texts]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
