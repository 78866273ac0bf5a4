"""Embedding provider implementations.

Two implementations of IEmbeddingProvider:
    1. HashingEmbeddingProvider -- deterministic feature hashing, offline.
       Default; used by tests and local development.
    2. OpenAIEmbeddingProvider  -- text-embedding-3-small (1536 dims) or any
       OpenAI-compatible endpoint, with a bounded request timeout.
"""

from tutorkb.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from tutorkb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["HashingEmbeddingProvider", "OpenAIEmbeddingProvider"]
