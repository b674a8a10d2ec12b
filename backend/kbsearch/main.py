"""
Main FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from kbsearch.core.config import settings
from kbsearch.core.exceptions import ValidationError
from kbsearch.core.logging import get_logger, setup_logging
from kbsearch.db.session import AsyncSessionLocal, check_db_health, close_db, init_db
from kbsearch.services.content_source import SqlContentSource
from kbsearch.services.processors.chunker import TextChunker
from kbsearch.services.processors.embedder import RetryingEmbeddingClient, create_embedding_provider
from kbsearch.services.rag.ingestion import IngestionPipeline
from kbsearch.services.rag.search import SemanticSearchService
from kbsearch.services.rag.vector_store import PgVectorStore

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events.
    Handles startup and shutdown tasks.
    """
    # Startup
    logger.info(
        "starting_application",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        version="0.1.0",
    )

    # Initialize database connection pool
    await init_db()

    # Load the embedding model once and share it between ingestion and search
    provider = create_embedding_provider(settings)
    await provider.initialize()

    embedding_client = RetryingEmbeddingClient(provider)
    vector_store = PgVectorStore(AsyncSessionLocal, dimension=settings.EMBEDDING_DIMENSION)

    app.state.embedding_provider = provider
    app.state.ingestion_pipeline = IngestionPipeline(
        content_source=SqlContentSource(AsyncSessionLocal),
        embedding_client=embedding_client,
        vector_store=vector_store,
        chunker=TextChunker(),
    )
    app.state.search_service = SemanticSearchService(embedding_client, vector_store)

    yield

    # Shutdown
    logger.info("shutting_down_application")

    await provider.shutdown()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Knowledge-base content embedding and semantic search API",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)


# Health check endpoint
@app.get("/health", tags=["health"])
async def health_check() -> JSONResponse:
    """
    Health check endpoint for monitoring.
    Includes database connectivity check.
    """

    db_healthy = await check_db_health()

    return JSONResponse(
        status_code=200 if db_healthy else 503,
        content={
            "status": "healthy" if db_healthy else "unhealthy",
            "app_name": settings.APP_NAME,
            "environment": settings.APP_ENV,
            "version": "0.1.0",
            "database": "connected" if db_healthy else "disconnected",
        }
    )


# Include API routers
from kbsearch.api import api_router  # noqa: E402
app.include_router(api_router, prefix=settings.API_PREFIX)


# ================================
# Exception Handlers
# ================================
# Error bodies are {"error": "<message>"}

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies are client errors (400, not 422)."""
    logger.info(
        "request_validation_failed",
        path=request.url.path,
        errors=len(exc.errors()),
    )
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body"},
    )


@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled errors.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred. Please try again later."},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kbsearch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
