"""
Search API Routes

Semantic search over embedded knowledge-base content.

All endpoints require authentication.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from kbsearch.api.deps import get_search_service
from kbsearch.core.auth import Principal, get_current_principal
from kbsearch.core.exceptions import ValidationError
from kbsearch.core.logging import get_logger
from kbsearch.schemas.search import SearchRequest, SearchResponse, SearchResultResponse
from kbsearch.services.rag.search import SemanticSearchService

logger = get_logger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


@router.post("", response_model=SearchResponse)
async def search_content(
    request: SearchRequest,
    principal: Principal = Depends(get_current_principal),
    search_service: SemanticSearchService = Depends(get_search_service),
):
    """
    Search content by meaning.

    Args:
        request: Query, optional limit and category filter
        principal: Authenticated caller
        search_service: Semantic search service

    Returns:
        Results ordered by decreasing similarity
    """
    try:
        results = await search_service.search(
            request.query,
            limit=request.limit,
            category_id=request.category_id,
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
    except Exception as e:
        logger.error(
            "search_request_failed",
            subject=principal.subject,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred while searching"
        )

    return SearchResponse(
        results=[
            SearchResultResponse(
                content_item_id=result.content_item_id,
                title=result.title,
                excerpt=result.excerpt,
                similarity=result.similarity_percent,
                category=result.category_name,
                subcategory=result.subcategory_name,
            )
            for result in results
        ]
    )
