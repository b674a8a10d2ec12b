"""Business logic services."""

from kbsearch.services.content_source import ContentDocument, SqlContentSource

__all__ = [
    "ContentDocument",
    "SqlContentSource",
]
