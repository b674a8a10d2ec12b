"""
Content Source

Read-only access to the knowledge-base articles that get indexed.
The ingestion pipeline only needs an article's title, body and
subcategory; the re-embed task also needs to find stale articles.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kbsearch.core.exceptions import StoreError
from kbsearch.core.logging import get_logger
from kbsearch.models.content import ContentItem

logger = get_logger(__name__)


@dataclass(frozen=True)
class ContentDocument:
    """Snapshot of a content item taken at ingestion time."""

    id: str
    title: str
    content: str
    subcategory_id: Optional[str] = None

    @property
    def text_to_index(self) -> str:
        """
        Text that gets chunked and embedded: title, blank line, body.

        An empty or whitespace-only body yields "" so the item produces
        no chunks.
        """
        if not self.content or not self.content.strip():
            return ""
        return f"{self.title}\n\n{self.content}"


class ContentSource(Protocol):
    async def get(self, content_item_id: str) -> Optional[ContentDocument]:
        ...


class SqlContentSource:
    """Content source reading the content_items table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get(self, content_item_id: str) -> Optional[ContentDocument]:
        """
        Load a content item.

        Returns:
            ContentDocument, or None if no such item exists
        """
        query = select(
            ContentItem.id,
            ContentItem.title,
            ContentItem.content,
            ContentItem.subcategory_id,
        ).where(ContentItem.id == content_item_id)

        try:
            async with self.session_factory() as session:
                row = (await session.execute(query)).one_or_none()
        except SQLAlchemyError as e:
            logger.error("content_lookup_failed", content_item_id=content_item_id, error=str(e))
            raise StoreError(f"Failed to load content item {content_item_id}") from e

        if row is None:
            return None

        return ContentDocument(
            id=row.id,
            title=row.title,
            content=row.content or "",
            subcategory_id=row.subcategory_id,
        )

    async def list_stale_ids(self, limit: int = 100) -> list[str]:
        """
        Find active items that were never embedded or changed since.

        Args:
            limit: Maximum number of ids to return

        Returns:
            Content item ids, least recently updated first
        """
        query = (
            select(ContentItem.id)
            .where(
                ContentItem.is_active.is_(True),
                or_(
                    ContentItem.last_embedded_at.is_(None),
                    ContentItem.updated_at > ContentItem.last_embedded_at,
                ),
            )
            .order_by(ContentItem.updated_at.asc())
            .limit(limit)
        )

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("stale_content_lookup_failed", error=str(e))
            raise StoreError("Failed to list stale content items") from e
