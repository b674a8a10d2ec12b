"""
In-memory test doubles for the embedding and search services.

- FakeEmbeddingProvider: deterministic vectors derived from the text
- InMemoryContentSource: dict-backed content items
- InMemoryVectorStore: generation-swapping chunk store with cosine search
- StaticVectorStore: returns a fixed list of hits (for ranking tests)
"""

import asyncio
import hashlib
from collections.abc import Sequence
from typing import Any, Optional

import numpy as np

from kbsearch.core.exceptions import ProviderError, StoreError
from kbsearch.services.content_source import ContentDocument
from kbsearch.services.rag.vector_store import (
    ChunkRecord,
    ScoredChunk,
    VectorStore,
    new_generation,
    validate_chunk_records,
)


class FakeEmbeddingProvider:
    """
    Deterministic embedding provider.

    Identical texts always map to the same unit vector. Failures can be
    scripted per text:
    - fail_texts: texts that always raise ProviderError
    - transient_failures: number of initial calls that raise ProviderError
    - malformed_responses: number of initial calls returning a wrong-size vector
    """

    def __init__(self, dimension: int = 8, delay: float = 0.0):
        self._dimension = dimension
        self.delay = delay
        self.calls: list[str] = []
        self.fail_texts: set[str] = set()
        self.transient_failures = 0
        self.malformed_responses = 0
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    def vector_for(self, text: str) -> list[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
        vector = np.random.default_rng(seed).normal(size=self._dimension)
        return (vector / np.linalg.norm(vector)).tolist()

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)

            if text in self.fail_texts:
                raise ProviderError(f"provider rejected: {text[:20]}")
            if self.transient_failures > 0:
                self.transient_failures -= 1
                raise ProviderError("temporarily unavailable")
            if self.malformed_responses > 0:
                self.malformed_responses -= 1
                return [0.1] * (self._dimension + 1)

            return self.vector_for(text)
        finally:
            self.in_flight -= 1

    async def initialize(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass


class InMemoryContentSource:
    """Content source backed by a dict of ContentDocuments."""

    def __init__(self):
        self.documents: dict[str, ContentDocument] = {}

    def add(
        self,
        content_item_id: str,
        title: str,
        content: str,
        subcategory_id: Optional[str] = "sub-1",
    ) -> ContentDocument:
        document = ContentDocument(
            id=content_item_id,
            title=title,
            content=content,
            subcategory_id=subcategory_id,
        )
        self.documents[content_item_id] = document
        return document

    async def get(self, content_item_id: str) -> Optional[ContentDocument]:
        return self.documents.get(content_item_id)


class InMemoryVectorStore(VectorStore):
    """
    Chunk store with the same generation-swap semantics as PgVectorStore.

    New rows are staged under a fresh generation and swapped in with a
    single assignment, so readers never see a partial set. Setting
    `commit_gate` makes replace_chunks wait (after staging, before the
    swap) until the event is set; `staged` is set while it waits.
    """

    distance_metric = "cosine"

    def __init__(self, dimension: int = 8, catalog: Optional[dict[str, dict[str, Any]]] = None):
        self.dimension = dimension
        # content_item_id -> {"title", "category_id", "category_name", "subcategory_name"}
        self.catalog = catalog or {}
        self.committed: dict[str, tuple[str, list[ChunkRecord]]] = {}
        self.replace_calls = 0
        self.fail_on_replace = False
        self.commit_gate: Optional[asyncio.Event] = None
        self.staged = asyncio.Event()

    async def replace_chunks(self, content_item_id: str, chunks: Sequence[ChunkRecord]) -> int:
        self.replace_calls += 1
        validate_chunk_records(chunks, self.dimension)

        if self.fail_on_replace:
            raise StoreError("store unavailable")

        generation = new_generation()
        staged = list(chunks)

        if self.commit_gate is not None:
            self.staged.set()
            await self.commit_gate.wait()

        self.committed[content_item_id] = (generation, staged)
        return len(staged)

    async def similarity_search(
        self,
        query_vector: Sequence[float],
        limit: int,
        category_id: Optional[str] = None,
    ) -> list[ScoredChunk]:
        query = np.asarray(query_vector, dtype=np.float64)
        hits = []

        for content_item_id, (_, chunks) in self.committed.items():
            info = self.catalog.get(content_item_id, {})
            if category_id and info.get("category_id") != category_id:
                continue

            for chunk in chunks:
                vector = np.asarray(chunk.vector, dtype=np.float64)
                cosine = float(np.dot(query, vector) / (np.linalg.norm(query) * np.linalg.norm(vector)))
                hits.append(
                    ScoredChunk(
                        content_item_id=content_item_id,
                        chunk_text=chunk.chunk_text,
                        distance=1.0 - cosine,
                        title=info.get("title") or chunk.metadata.get("title", ""),
                        category_name=info.get("category_name"),
                        subcategory_name=info.get("subcategory_name"),
                    )
                )

        hits.sort(key=lambda hit: hit.distance)
        return hits[:limit]

    async def delete_chunks(self, content_item_id: str) -> int:
        _, chunks = self.committed.pop(content_item_id, (None, []))
        return len(chunks)

    def chunks_for(self, content_item_id: str) -> list[ChunkRecord]:
        return self.committed.get(content_item_id, (None, []))[1]

    def generation_for(self, content_item_id: str) -> Optional[str]:
        return self.committed.get(content_item_id, (None, []))[0]


class StaticVectorStore(VectorStore):
    """Returns preset hits and records the arguments of each search."""

    def __init__(self, hits: list[ScoredChunk], distance_metric: str = "cosine"):
        self.hits = hits
        self.distance_metric = distance_metric
        self.search_calls: list[dict[str, Any]] = []
        self.error: Optional[Exception] = None

    async def replace_chunks(self, content_item_id: str, chunks: Sequence[ChunkRecord]) -> int:
        raise NotImplementedError

    async def similarity_search(
        self,
        query_vector: Sequence[float],
        limit: int,
        category_id: Optional[str] = None,
    ) -> list[ScoredChunk]:
        self.search_calls.append({"limit": limit, "category_id": category_id})
        if self.error is not None:
            raise self.error
        return self.hits[:limit]

    async def delete_chunks(self, content_item_id: str) -> int:
        raise NotImplementedError
