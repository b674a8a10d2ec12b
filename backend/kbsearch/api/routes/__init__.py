"""
API route modules.

Import all route modules here for easy access.
"""

from kbsearch.api.routes import embeddings, search

__all__ = ["embeddings", "search"]
