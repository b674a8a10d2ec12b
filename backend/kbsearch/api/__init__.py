"""
API routes initialization.

This module aggregates all API routers and provides a single router
to include in the main application.
"""

from fastapi import APIRouter

from kbsearch.api.routes import embeddings, search

# Create main API router
api_router = APIRouter()

# Include embedding (ingestion) routes
api_router.include_router(embeddings.router)

# Include semantic search routes
api_router.include_router(search.router)
