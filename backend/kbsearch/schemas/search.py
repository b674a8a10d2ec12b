"""
Pydantic schemas for the embedding and search API

Request and response bodies use camelCase keys (contentItemId, chunksCreated)
to match the knowledge-base frontend that calls these endpoints.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serializing to and accepting camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ========================================
# Embedding Schemas
# ========================================

class EmbedRequest(CamelModel):
    """Request schema for (re)embedding a content item."""

    content_item_id: Optional[str] = Field(
        default=None,
        description="ID of the content item to embed"
    )


class EmbedResponse(CamelModel):
    """Response schema for a completed ingestion."""

    success: bool = True
    chunks_created: int = Field(description="Number of chunks stored")


class DeleteEmbeddingsResponse(CamelModel):
    """Response schema for removing a content item's chunks."""

    success: bool = True
    chunks_deleted: int = Field(description="Number of chunks removed")


# ========================================
# Search Schemas
# ========================================

class SearchRequest(CamelModel):
    """Request schema for semantic search."""

    # Type is checked by the search service so non-strings get the same 400
    query: Any = Field(default=None, description="Natural-language query")
    limit: Optional[int] = Field(
        default=None,
        description="Maximum number of results (default 10, clamped to 1..50)"
    )
    category_id: Optional[str] = Field(default=None, description="Only search this category")


class SearchResultResponse(CamelModel):
    """Response schema for one search hit."""

    content_item_id: str
    title: str
    excerpt: str
    similarity: int = Field(description="Similarity as a percentage (0-100)")
    category: Optional[str] = None
    subcategory: Optional[str] = None


class SearchResponse(CamelModel):
    """Response schema for semantic search."""

    results: List[SearchResultResponse]
