"""
Content Models

This module contains the knowledge-base content models and the chunk table
that backs semantic search.

Models Included:
----------------
1. Category - Top-level grouping of knowledge-base content
2. Subcategory - Second-level grouping, belongs to one category
3. ContentItem - A long-form article, belongs to one subcategory
4. ContentChunk - An embedded slice of a content item's text

Database Tables:
----------------
- categories
- subcategories
- content_items
- document_chunks

Ownership:
----------
Categories, subcategories and content items are authored by the surrounding
knowledge-base application. This service only reads them, except for the
content_items.last_embedded_at bookkeeping column. document_chunks is written
exclusively by the ingestion pipeline.

Relationships:
--------------
- Category (1) ←→ (Many) Subcategory
- Subcategory (1) ←→ (Many) ContentItem
- ContentItem (1) ←→ (Many) ContentChunk

Learning Resources:
-------------------
- pgvector-python: https://github.com/pgvector/pgvector-python
- JSONB in PostgreSQL: https://www.postgresql.org/docs/current/datatype-json.html
"""

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kbsearch.core.config import settings
from kbsearch.db.base import BaseModel, String255, String500, UUIDString


class Category(BaseModel):
    """
    Top-level knowledge-base category.

    Search can be scoped to a single category; results report the
    category name alongside each hit.
    """

    __tablename__ = "categories"

    name: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        comment="Display name"
    )

    description: Mapped[str | None] = mapped_column(
        String500,
        nullable=True,
    )

    sort_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    subcategories: Mapped[list["Subcategory"]] = relationship(
        "Subcategory",
        back_populates="category",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name='{self.name}')>"


class Subcategory(BaseModel):
    """Second-level grouping inside a category."""

    __tablename__ = "subcategories"

    category_id: Mapped[str] = mapped_column(
        UUIDString,
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String255, nullable=False)

    description: Mapped[str | None] = mapped_column(String500, nullable=True)

    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    category: Mapped["Category"] = relationship(
        "Category",
        back_populates="subcategories",
        lazy="joined"
    )

    def __repr__(self) -> str:
        return f"<Subcategory(id={self.id}, name='{self.name}')>"


class ContentItem(BaseModel):
    """
    Content item model - one knowledge-base article.

    Table: content_items
    --------------------
    The text that gets indexed is the title followed by a blank line and
    the body. An item with an empty body produces no chunks.

    Bookkeeping:
    ------------
    last_embedded_at is stamped in the same transaction that swaps in a
    new chunk generation. The periodic re-embed task compares it against
    updated_at to find stale items:

        stale = select(ContentItem.id).where(
            or_(
                ContentItem.last_embedded_at.is_(None),
                ContentItem.updated_at > ContentItem.last_embedded_at,
            )
        )
    """

    __tablename__ = "content_items"

    subcategory_id: Mapped[str] = mapped_column(
        UUIDString,
        ForeignKey("subcategories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Foreign key to subcategories table"
    )

    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        comment="Article title"
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Article body (markdown)"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        index=True,
        comment="Inactive items are kept but not re-embedded"
    )

    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_embedded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the current chunk generation was written (UTC)"
    )
    # NULL = never embedded

    subcategory: Mapped["Subcategory"] = relationship(
        "Subcategory",
        lazy="joined"
    )

    def __repr__(self) -> str:
        return f"<ContentItem(id={self.id}, title='{self.title[:50]}')>"


class ContentChunk(BaseModel):
    """
    Content chunk model - one embedded slice of a content item.

    Table: document_chunks
    ----------------------
    Each row carries the chunk text, its embedding and a small metadata
    snapshot of the parent item taken at ingestion time:

        {"title": "Getting started", "subcategory_id": "6f1c..."}

    Generations:
    ------------
    Every ingestion run writes its rows under a fresh generation tag, then
    deletes the rows of any other generation for the same item inside the
    same transaction. Readers therefore see either the complete old set or
    the complete new set, and chunk_index within the visible set is always
    0..N-1.

    Similarity Search:
    ------------------
    The embedding column is indexed with HNSW (vector_cosine_ops), so
    ORDER BY embedding <=> :query uses the index.
    """

    __tablename__ = "document_chunks"

    content_item_id: Mapped[str] = mapped_column(
        UUIDString,
        ForeignKey("content_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Foreign key to content_items table"
    )
    # CASCADE: Delete content item → delete all its chunks

    generation: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="Ingestion run that wrote this row"
    )

    chunk_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Order of this chunk within the content item (0-indexed)"
    )

    chunk_text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="The actual text content of this chunk"
    )

    embedding = mapped_column(
        Vector(settings.EMBEDDING_DIMENSION),
        nullable=False,
        comment="Embedding vector for semantic search"
    )

    chunk_metadata: Mapped[dict | None] = mapped_column(
        JSONB,
        nullable=True,
        comment="Parent item snapshot (title, subcategory_id)"
    )

    content_item: Mapped["ContentItem"] = relationship(
        "ContentItem",
        lazy="joined"
    )

    __table_args__ = (
        UniqueConstraint(
            'content_item_id',
            'generation',
            'chunk_index',
            name='uq_document_chunks_item_generation_index'
        ),
        # Same index as the migration, so create_all builds it too
        Index(
            'ix_document_chunks_embedding_hnsw',
            'embedding',
            postgresql_using='hnsw',
            postgresql_with={'m': 16, 'ef_construction': 64},
            postgresql_ops={'embedding': 'vector_cosine_ops'},
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ContentChunk(id={self.id}, content_item_id={self.content_item_id}, "
            f"chunk_index={self.chunk_index})>"
        )
