"""
Embedding API Routes

This module provides endpoints for (re)indexing content items:
- Embed a content item (chunk, embed, atomically replace its chunks)
- Delete a content item's chunks

All endpoints require authentication.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from kbsearch.api.deps import get_ingestion_pipeline
from kbsearch.core.auth import Principal, get_current_principal
from kbsearch.core.logging import get_logger
from kbsearch.schemas.search import DeleteEmbeddingsResponse, EmbedRequest, EmbedResponse
from kbsearch.services.rag.ingestion import IngestionPipeline

logger = get_logger(__name__)

router = APIRouter(prefix="/embed", tags=["embeddings"])


@router.post("", response_model=EmbedResponse)
async def embed_content_item(
    request: EmbedRequest,
    principal: Principal = Depends(get_current_principal),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """
    Generate embeddings for a content item.

    Replaces any chunks stored for the item. Runs synchronously so the
    response can report how many chunks were created.

    Args:
        request: Content item ID
        principal: Authenticated caller
        pipeline: Ingestion pipeline

    Returns:
        Number of chunks created
    """
    content_item_id = (request.content_item_id or "").strip()
    if not content_item_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Content item ID is required"
        )

    try:
        chunks_created = await pipeline.ingest(content_item_id)
    except Exception as e:
        logger.error(
            "embed_request_failed",
            content_item_id=content_item_id,
            subject=principal.subject,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while generating embeddings"
        )

    return EmbedResponse(chunks_created=chunks_created)


@router.delete("/{content_item_id}", response_model=DeleteEmbeddingsResponse)
async def delete_content_embeddings(
    content_item_id: str,
    principal: Principal = Depends(get_current_principal),
    pipeline: IngestionPipeline = Depends(get_ingestion_pipeline),
):
    """
    Remove all chunks of a content item (e.g. after the item was deleted).
    """
    try:
        chunks_deleted = await pipeline.delete(content_item_id)
    except Exception as e:
        logger.error(
            "delete_embeddings_failed",
            content_item_id=content_item_id,
            subject=principal.subject,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete embeddings"
        )

    return DeleteEmbeddingsResponse(chunks_deleted=chunks_deleted)
