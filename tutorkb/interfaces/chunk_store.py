"""Abstract base class for the chunk store.

The chunk store holds every embedded chunk, keyed by
``(source_kind, source_id, chunk_index)``.  A source's chunks are only ever
written as a complete set through :meth:`IChunkStore.replace_chunks`, so a
concurrent reader sees either the previous set or the new one.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tutorkb.models.knowledge import SourceKind
from tutorkb.models.rag import CorpusStats, KnowledgeChunk, ScoredChunk


# Concrete implementations:
#   SQLiteChunkStore -- aiosqlite + numpy cosine similarity
# Located in: tutorkb/providers/chunk_store/
class IChunkStore(ABC):
    """Contract for durable chunk storage with similarity search."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create the backing schema if it does not exist."""

    @abstractmethod
    async def replace_chunks(
        self,
        source_kind: SourceKind,
        source_id: str,
        chunks: list[KnowledgeChunk],
        *,
        require_processing: bool = False,
    ) -> int:
        """Atomically replace every chunk of one source.

        Parameters
        ----------
        source_kind, source_id:
            The owning Source Item.
        chunks:
            The complete new chunk set.  Indices must be ``0..len-1`` and
            every embedding must have the store's dimension.
        require_processing:
            When true, refuse the write unless the owning Source Item exists
            and is ``processing`` at commit time.

        Returns
        -------
        int
            Number of chunks written.

        Raises
        ------
        tutorkb.utils.errors.PersistenceError
            If validation or the write fails.  The previous set is intact.
        """

    @abstractmethod
    async def delete_chunks(self, source_kind: SourceKind, source_id: str) -> int:
        """Delete every chunk of one source.  Idempotent; returns rows removed."""

    @abstractmethod
    async def similarity_search(
        self,
        query_vector: list[float],
        threshold: float,
        limit: int,
    ) -> list[ScoredChunk]:
        """Return chunks with cosine similarity ``>= threshold``.

        Results are ordered by descending similarity and truncated to
        ``limit``.  An empty list is a normal result.
        """

    @abstractmethod
    async def get_chunks(self, source_kind: SourceKind, source_id: str) -> list[KnowledgeChunk]:
        """Return one source's chunks in index order, embeddings included."""

    @abstractmethod
    async def count_chunks(self, source_kind: SourceKind, source_id: str) -> int:
        """Return how many chunks a source currently has."""

    @abstractmethod
    async def get_stats(self) -> CorpusStats:
        """Return aggregate chunk statistics."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this store."""
