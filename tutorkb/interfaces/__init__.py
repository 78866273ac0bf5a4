"""Public interface definitions for every pluggable backend.

Business logic (orchestrator, bulk coordinator, retrieval) only talks to
these abstract base classes.  Concrete adapters live in
``tutorkb/providers/`` and are wired together in ``tutorkb/main.py``.

CONCRETE PROVIDER MAP:
    Interface               →  Concrete implementations
    ─────────────────────────────────────────────────────────
    IEmbeddingProvider      →  HashingEmbeddingProvider, OpenAIEmbeddingProvider
    IChunkStore             →  SQLiteChunkStore
    ISourceItemRepository   →  SQLiteSourceItemRepository
    IBlobStorage            →  LocalBlobStorage
    ITranscriptProvider     →  YouTubeTranscriptProvider
"""

from tutorkb.interfaces.blob_storage import IBlobStorage
from tutorkb.interfaces.chunk_store import IChunkStore
from tutorkb.interfaces.embedding_provider import IEmbeddingProvider
from tutorkb.interfaces.item_repository import ISourceItemRepository
from tutorkb.interfaces.transcript_provider import ITranscriptProvider

__all__ = [
    "IBlobStorage",
    "IChunkStore",
    "IEmbeddingProvider",
    "ISourceItemRepository",
    "ITranscriptProvider",
]
