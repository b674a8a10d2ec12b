"""
Error taxonomy for the embedding and search core.

Hierarchy:
----------
KnowledgeSearchError
├── ValidationError   bad/missing input (HTTP 400, caller must fix request)
├── NotFoundError     referenced content item does not exist
├── EmbeddingError    provider unavailable/malformed output after retries
├── StoreError        vector store unavailable or rejected the operation
└── ProviderError     raised by embedding providers, retried by the client

Only ValidationError carries a message meant for API callers; everything
else is logged and reported as a generic 500 at the HTTP boundary.
"""


class KnowledgeSearchError(Exception):
    """Base class for all core errors."""


class ValidationError(KnowledgeSearchError):
    """Request input is missing or malformed."""


class NotFoundError(KnowledgeSearchError):
    """A referenced content item does not exist."""

    def __init__(self, content_item_id: str):
        self.content_item_id = content_item_id
        super().__init__(f"Content item {content_item_id} not found")


class EmbeddingError(KnowledgeSearchError):
    """Embedding could not be produced after exhausting retries."""


class StoreError(KnowledgeSearchError):
    """The vector store failed to read or write."""


class ProviderError(KnowledgeSearchError):
    """Transient failure reported by an embedding provider."""
