"""Request/response schemas."""

from kbsearch.schemas.search import (
    DeleteEmbeddingsResponse,
    EmbedRequest,
    EmbedResponse,
    SearchRequest,
    SearchResponse,
    SearchResultResponse,
)

__all__ = [
    "EmbedRequest",
    "EmbedResponse",
    "DeleteEmbeddingsResponse",
    "SearchRequest",
    "SearchResponse",
    "SearchResultResponse",
]
