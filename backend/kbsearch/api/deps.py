"""
Service dependencies for API routes.

The embedding provider, vector store, ingestion pipeline and search service
are built once in the application lifespan and kept on app.state. Tests
replace these dependencies with app.dependency_overrides.
"""

from fastapi import Request

from kbsearch.services.rag.ingestion import IngestionPipeline
from kbsearch.services.rag.search import SemanticSearchService


def get_ingestion_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.ingestion_pipeline


def get_search_service(request: Request) -> SemanticSearchService:
    return request.app.state.search_service
