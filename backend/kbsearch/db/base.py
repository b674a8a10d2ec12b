"""
Database Base Classes and Common Utilities

This module provides the foundation for all database models in the application.

Key Concepts:
--------------
1. DeclarativeBase: SQLAlchemy's base class that enables ORM functionality
2. CommonTableAttributes: Shared columns/methods used across all models
3. orm_registry: Central registry that tracks all models and their metadata

Identifiers are UUID strings. The knowledge-base application that owns
categories and content items addresses them by UUID, and the HTTP API
passes them around as plain strings.

Learning Resources:
- SQLAlchemy Declarative Base: https://docs.sqlalchemy.org/en/20/orm/declarative_config.html
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, registry


# ================================
# Naming Convention for Constraints
# ================================
# Format examples:
# - ix_document_chunks_content_item_id: Index on 'document_chunks.content_item_id'
# - fk_subcategories_category_id_categories: Foreign key to 'categories'
# - pk_content_items: Primary key on 'content_items'
convention = {
    "ix": "ix_%(column_0_label)s",  # Index
    "uq": "uq_%(table_name)s_%(column_0_name)s",  # Unique constraint
    "ck": "ck_%(table_name)s_%(constraint_name)s",  # Check constraint
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # Foreign key
    "pk": "pk_%(table_name)s",  # Primary key
}

metadata = MetaData(naming_convention=convention)

orm_registry = registry(metadata=metadata)


def generate_uuid() -> str:
    """Default primary key value: a random UUID4 as text."""
    return str(uuid.uuid4())


# ================================
# Base DeclarativeBase Class
# ================================
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        class Category(Base):
            __tablename__ = "categories"
            id: Mapped[str] = mapped_column(UUIDString, primary_key=True)
    """

    registry = orm_registry
    metadata = metadata

    __tablename__: str


# ================================
# Common Table Attributes Mixin
# ================================
class CommonTableAttributes:
    """
    Mixin that provides common fields to all models.

    Common Fields Added:
    --------------------
    - id: Primary key (UUID string, generated client-side)
    - created_at: When the record was created (set once, never changes)
    - updated_at: When the record was last modified (updates automatically)

    Timestamps are timezone-aware UTC. Convert to a user's timezone in the
    presentation layer, never in storage.
    """

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        comment="UUID primary key"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="Timestamp when record was created (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="Timestamp when record was last updated (UTC)"
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"


# ================================
# Convenient Base Model
# ================================
class BaseModel(Base, CommonTableAttributes):
    """
    Ready-to-use base class for all application models.

    Every model automatically gets:
    - Primary key (id)
    - Creation timestamp (created_at)
    - Update timestamp (updated_at)
    - __repr__() with the id
    """

    __abstract__ = True


# ================================
# String Length Constraints
# ================================
UUIDString = String(36)
String255 = String(255)  # Example: category names
String500 = String(500)  # Example: descriptions
