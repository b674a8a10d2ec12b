"""
Content Processors Package

This package contains services for turning article text into embeddings.

Modules:
--------
- chunker: Token-aware paragraph/sentence chunking with overlap
- embedder: Embedding providers and the retrying embedding client
"""
