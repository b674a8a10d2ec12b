"""
Celery tasks for content embedding.

This module contains background tasks for:
- (Re)indexing a single content item
- Periodically re-indexing content that changed since it was last embedded

Each worker process keeps one event loop and one ingestion pipeline, so
the embedding model is loaded once and pooled database connections stay
bound to the loop they were opened on.
"""

import asyncio
import concurrent.futures
from typing import Optional

from celery import Task

from kbsearch.core.config import settings
from kbsearch.core.exceptions import EmbeddingError, NotFoundError, StoreError
from kbsearch.core.logging import get_logger
from kbsearch.db.session import AsyncSessionLocal
from kbsearch.services.content_source import SqlContentSource
from kbsearch.services.processors.chunker import TextChunker
from kbsearch.services.processors.embedder import RetryingEmbeddingClient, create_embedding_provider
from kbsearch.services.rag.ingestion import IngestionPipeline
from kbsearch.services.rag.vector_store import PgVectorStore
from kbsearch.workers.celery_app import celery_app

logger = get_logger(__name__)


# ========================================
# Async Helper
# ========================================

_worker_loop: Optional[asyncio.AbstractEventLoop] = None


def get_worker_loop() -> asyncio.AbstractEventLoop:
    """Event loop reused by every task run in this worker process."""
    global _worker_loop

    if _worker_loop is None or _worker_loop.is_closed():
        _worker_loop = asyncio.new_event_loop()

    return _worker_loop


def run_async(coro):
    """
    Run async coroutine, handling both event loop and no event loop scenarios.

    This helper allows tasks to work in both:
    - Production (Celery worker with no event loop) - uses the worker loop
    - Tests (pytest with existing event loop) - runs in thread pool
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No event loop running - we're in a Celery worker
        return get_worker_loop().run_until_complete(coro)

    # Event loop is running - we're probably in tests
    # Run in a new thread to avoid "loop already running" error
    with concurrent.futures.ThreadPoolExecutor() as executor:
        future = executor.submit(asyncio.run, coro)
        return future.result()


# ========================================
# Pipeline Construction
# ========================================

_pipeline: Optional[IngestionPipeline] = None


async def build_ingestion_pipeline() -> IngestionPipeline:
    """Create an ingestion pipeline wired to Postgres and the configured provider."""
    provider = create_embedding_provider(settings)
    await provider.initialize()

    return IngestionPipeline(
        content_source=SqlContentSource(AsyncSessionLocal),
        embedding_client=RetryingEmbeddingClient(provider),
        vector_store=PgVectorStore(AsyncSessionLocal, dimension=settings.EMBEDDING_DIMENSION),
        chunker=TextChunker(),
    )


async def get_ingestion_pipeline() -> IngestionPipeline:
    """Get or create this worker's ingestion pipeline."""
    global _pipeline

    if _pipeline is None:
        _pipeline = await build_ingestion_pipeline()

    return _pipeline


def get_content_source() -> SqlContentSource:
    return SqlContentSource(AsyncSessionLocal)


# ========================================
# Base Task Class
# ========================================

class EmbeddingTask(Task):
    """
    Base task class with retry logic.

    Only transient failures are retried. A missing content item will not
    appear by retrying, so NotFoundError is reported instead.
    """

    autoretry_for = (EmbeddingError, StoreError)
    retry_kwargs = {'max_retries': 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True


# ========================================
# Main Tasks
# ========================================

@celery_app.task(
    base=EmbeddingTask,
    name='embedding.ingest_content_item',
    bind=True,
)
def ingest_content_item(self, content_item_id: str) -> dict:
    """
    Chunk and embed a content item, replacing its stored chunks.

    Args:
        content_item_id: ID of the ContentItem

    Returns:
        Dictionary with processing results:
        {
            'success': bool,
            'content_item_id': str,
            'chunks_created': int,   # on success
            'error': str,            # on failure
        }
    """
    async def _ingest() -> int:
        pipeline = await get_ingestion_pipeline()
        return await pipeline.ingest(content_item_id)

    try:
        chunks_created = run_async(_ingest())
    except NotFoundError as e:
        logger.warning("ingest_task_content_missing", content_item_id=content_item_id)
        return {
            'success': False,
            'content_item_id': content_item_id,
            'error': str(e),
        }

    return {
        'success': True,
        'content_item_id': content_item_id,
        'chunks_created': chunks_created,
    }


@celery_app.task(
    name='embedding.reembed_stale_content',
    bind=True,
)
def reembed_stale_content(self, limit: Optional[int] = None) -> dict:
    """
    Queue ingestion for content that was never embedded or changed since.

    Periodic task (see beat_schedule).

    Args:
        limit: Maximum items to queue in one run (default REEMBED_BATCH_SIZE)

    Returns:
        {'queued': int, 'content_item_ids': list[str]}
    """
    limit = limit or settings.REEMBED_BATCH_SIZE

    content_item_ids = run_async(get_content_source().list_stale_ids(limit=limit))

    for content_item_id in content_item_ids:
        ingest_content_item.delay(content_item_id)

    logger.info("stale_content_queued", queued=len(content_item_ids), limit=limit)

    return {
        'queued': len(content_item_ids),
        'content_item_ids': content_item_ids,
    }
