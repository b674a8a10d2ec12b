"""
Celery tasks for background processing.
"""

from kbsearch.tasks.embedding_tasks import (
    ingest_content_item,
    reembed_stale_content,
)

__all__ = [
    "ingest_content_item",
    "reembed_stale_content",
]
