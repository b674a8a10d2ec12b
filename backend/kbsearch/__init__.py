"""Content embedding and semantic search backend."""

__version__ = "0.1.0"
