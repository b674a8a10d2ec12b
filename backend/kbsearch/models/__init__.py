"""
Database Models

Import models from this module to ensure they're registered with SQLAlchemy:

    from kbsearch.models import Category, Subcategory, ContentItem, ContentChunk

This ensures that Alembic can detect all models for migrations.
"""

from kbsearch.models.content import (
    Category,
    ContentChunk,
    ContentItem,
    Subcategory,
)

__all__ = [
    "Category",
    "Subcategory",
    "ContentItem",
    "ContentChunk",
]
