"""
Retrieval Services

This package contains the services behind embedding and search:
- Vector store (pgvector persistence and similarity search)
- Ingestion pipeline (chunk, embed, atomic swap)
- Semantic search (query embedding, similarity normalization, excerpts)
"""

from kbsearch.services.rag.ingestion import IngestionPipeline, KeyedLock
from kbsearch.services.rag.search import SearchResult, SemanticSearchService, normalize_similarity
from kbsearch.services.rag.vector_store import ChunkRecord, PgVectorStore, ScoredChunk, VectorStore

__all__ = [
    "IngestionPipeline",
    "KeyedLock",
    "SearchResult",
    "SemanticSearchService",
    "normalize_similarity",
    "ChunkRecord",
    "PgVectorStore",
    "ScoredChunk",
    "VectorStore",
]
