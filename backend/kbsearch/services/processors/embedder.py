"""
Embedding Service

This module provides text embedding for chunk ingestion and query search.

Providers:
----------
1. SentenceTransformerEmbeddingService (default)
   - Local inference with sentence-transformers
   - sentence-transformers/all-MiniLM-L6-v2, 384 dimensions
   - Free (no API costs)
2. OpenAIEmbeddingService
   - OpenAI embeddings API (text-embedding-3-small)
   - Requested at EMBEDDING_DIMENSION dimensions

Both providers report transient failures as ProviderError. Callers never use
a provider directly; they go through RetryingEmbeddingClient, which retries
transient failures and malformed output with exponential backoff and raises
EmbeddingError once retries are exhausted.

Providers are created once at start-up (API lifespan, Celery worker init)
and passed to the services that need them.
"""

import asyncio
from typing import Any, Optional, Protocol, runtime_checkable

import numpy as np
import torch
from openai import APIError, AsyncOpenAI
from sentence_transformers import SentenceTransformer
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from kbsearch.core.config import Settings, settings
from kbsearch.core.exceptions import EmbeddingError, ProviderError
from kbsearch.core.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Maps text to a fixed-length float vector."""

    @property
    def dimension(self) -> int:
        ...

    async def embed(self, text: str) -> list[float]:
        ...


class SentenceTransformerEmbeddingService:
    """
    Service for generating embeddings using sentence-transformers.

    Features:
    ---------
    - Device selection (CPU/CUDA/MPS)
    - Normalization for cosine similarity
    - Inference runs in a worker thread so the event loop stays free

    Usage:
    ------
    embedder = SentenceTransformerEmbeddingService()
    await embedder.initialize()

    embedding = await embedder.embed("How do I reset my password?")
    """

    def __init__(
        self,
        model_name: str = None,
        device: str = None,
        dimension: int = None,
        normalize: bool = True
    ):
        """
        Initialize the embedding service.

        Args:
            model_name: Model name/path (default from settings)
            device: Device to use: cpu, cuda, mps (default from settings)
            dimension: Expected output dimension (default from settings)
            normalize: Whether to normalize embeddings (default True)
        """
        self.model_name = model_name or settings.EMBEDDING_MODEL
        self.device = device or settings.EMBEDDING_DEVICE
        self._dimension = dimension or settings.EMBEDDING_DIMENSION
        self.normalize = normalize

        self.model: Optional[SentenceTransformer] = None
        self._initialized = False

        # Validate device
        self._validate_device()

    def _validate_device(self) -> None:
        """Validate and adjust device setting based on availability."""
        if self.device == "cuda" and not torch.cuda.is_available():
            logger.warning("cuda_unavailable_falling_back_to_cpu")
            self.device = "cpu"
        elif self.device == "mps" and not torch.backends.mps.is_available():
            logger.warning("mps_unavailable_falling_back_to_cpu")
            self.device = "cpu"

    @property
    def dimension(self) -> int:
        return self._dimension

    async def initialize(self) -> None:
        """
        Initialize the embedding model.

        Downloads model if not cached, loads into memory.
        Should be called once at application startup.

        Raises:
            ValueError: If the model's dimension differs from the configured one
        """
        if self._initialized:
            return

        logger.info("loading_embedding_model", model=self.model_name, device=self.device)

        # Run model loading in thread pool (it's CPU-intensive)
        self.model = await asyncio.to_thread(
            SentenceTransformer,
            self.model_name,
            device=self.device
        )

        model_dimension = self.model.get_sentence_embedding_dimension()
        if model_dimension != self._dimension:
            raise ValueError(
                f"Model {self.model_name} produces {model_dimension}-dimensional "
                f"embeddings, but EMBEDDING_DIMENSION is {self._dimension}"
            )

        self._initialized = True
        logger.info("embedding_model_loaded", dimension=model_dimension, device=self.device)

    async def embed(self, text: str) -> list[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector as list of floats

        Raises:
            RuntimeError: If service not initialized
            ProviderError: If inference fails
        """
        if not self._initialized:
            raise RuntimeError("Embedding service not initialized. Call initialize() first.")

        try:
            embedding = await asyncio.to_thread(self._generate_single_embedding, text)
        except Exception as e:
            raise ProviderError(f"sentence-transformers inference failed: {e}") from e

        return embedding.tolist()

    def _generate_single_embedding(self, text: str) -> np.ndarray:
        """Generate embedding (sync, runs in thread pool)."""
        return self.model.encode(
            text,
            normalize_embeddings=self.normalize,
            show_progress_bar=False,
            convert_to_numpy=True
        )

    async def shutdown(self) -> None:
        """
        Shutdown the embedding service and free resources.

        Should be called at application shutdown.
        """
        if self.model is not None:
            # Clear CUDA cache if using GPU
            if self.device == "cuda":
                torch.cuda.empty_cache()

            del self.model
            self.model = None

        self._initialized = False
        logger.info("embedding_service_shut_down")


class OpenAIEmbeddingService:
    """
    Embedding provider backed by the OpenAI embeddings API.

    text-embedding-3 models accept a "dimensions" parameter, so the
    service requests vectors matching the configured column size.
    """

    def __init__(
        self,
        api_key: str,
        model_name: str = None,
        dimension: int = None,
        timeout: float = None,
        client: AsyncOpenAI | None = None,
    ):
        self.model_name = model_name or settings.OPENAI_EMBEDDING_MODEL
        self._dimension = dimension or settings.EMBEDDING_DIMENSION
        # Retries are handled by RetryingEmbeddingClient
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            timeout=timeout or settings.OPENAI_REQUEST_TIMEOUT,
            max_retries=0,
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    async def initialize(self) -> None:
        logger.info("openai_embedding_provider_ready", model=self.model_name, dimension=self._dimension)

    async def embed(self, text: str) -> list[float]:
        try:
            response = await self.client.embeddings.create(
                model=self.model_name,
                input=text,
                dimensions=self._dimension,
            )
        except APIError as e:
            raise ProviderError(f"OpenAI embeddings request failed: {e}") from e

        if not response.data:
            raise ProviderError("OpenAI embeddings response contained no data")

        return response.data[0].embedding

    async def shutdown(self) -> None:
        await self.client.close()


class RetryingEmbeddingClient:
    """
    Embedding client used by the ingestion pipeline and search service.

    Wraps a provider with bounded retries:
    - ProviderError (transient failure) is retried
    - Malformed output (wrong dimension, empty, NaN/inf) is retried
    - After max_attempts, EmbeddingError is raised

    Usage:
    ------
    client = RetryingEmbeddingClient(provider, max_attempts=3)
    vector = await client.embed("chunk text")
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        max_attempts: int = None,
        initial_wait: float = None,
        max_wait: float = None,
    ):
        self.provider = provider
        self.max_attempts = max_attempts or settings.EMBEDDING_MAX_RETRIES
        self.initial_wait = (
            settings.EMBEDDING_RETRY_INITIAL_WAIT_SECONDS if initial_wait is None else initial_wait
        )
        self.max_wait = settings.EMBEDDING_RETRY_MAX_WAIT_SECONDS if max_wait is None else max_wait

    @property
    def dimension(self) -> int:
        return self.provider.dimension

    async def embed(self, text: str) -> list[float]:
        """
        Embed text, retrying transient failures.

        Args:
            text: Text to embed

        Returns:
            Embedding vector with exactly `dimension` finite floats

        Raises:
            EmbeddingError: If every attempt failed or the provider raised
                an unexpected error
        """
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(ProviderError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.initial_wait,
                max=self.max_wait,
                jitter=self.initial_wait,
            ),
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    vector = self._validate(await self.provider.embed(text))
        except ProviderError as e:
            logger.error(
                "embedding_retries_exhausted",
                attempts=self.max_attempts,
                error=str(e),
            )
            raise EmbeddingError(f"Embedding failed after {self.max_attempts} attempts: {e}") from e
        except Exception as e:
            logger.error("embedding_provider_error", error=str(e), error_type=type(e).__name__)
            raise EmbeddingError(f"Embedding provider error: {e}") from e

        return vector

    def _validate(self, vector: Any) -> list[float]:
        """Check provider output, raising ProviderError so it is retried."""
        try:
            array = np.asarray(vector, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ProviderError(f"Malformed embedding: {e}") from e

        if array.ndim != 1 or array.size == 0:
            raise ProviderError(f"Malformed embedding: shape {array.shape}")
        if array.shape[0] != self.dimension:
            raise ProviderError(
                f"Malformed embedding: expected {self.dimension} dimensions, got {array.shape[0]}"
            )
        if not np.isfinite(array).all():
            raise ProviderError("Malformed embedding: non-finite values")

        return array.tolist()

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "embedding_retry",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_attempts,
            error=str(retry_state.outcome.exception()),
        )


# ========================================
# Provider Factory
# ========================================

def create_embedding_provider(config: Settings = settings):
    """
    Build the embedding provider selected by EMBEDDING_PROVIDER.

    The returned provider still needs `await provider.initialize()`.

    Args:
        config: Settings to read provider options from

    Returns:
        SentenceTransformerEmbeddingService or OpenAIEmbeddingService
    """
    if config.EMBEDDING_PROVIDER == "openai":
        if not config.OPENAI_API_KEY:
            raise ValueError("OPENAI_API_KEY is required when EMBEDDING_PROVIDER=openai")
        return OpenAIEmbeddingService(
            api_key=config.OPENAI_API_KEY,
            model_name=config.OPENAI_EMBEDDING_MODEL,
            dimension=config.EMBEDDING_DIMENSION,
            timeout=config.OPENAI_REQUEST_TIMEOUT,
        )

    return SentenceTransformerEmbeddingService(
        model_name=config.EMBEDDING_MODEL,
        device=config.EMBEDDING_DEVICE,
        dimension=config.EMBEDDING_DIMENSION,
    )
