"""Chunk store implementations."""

from tutorkb.providers.chunk_store.sqlite_chunk_store import SQLiteChunkStore

__all__ = ["SQLiteChunkStore"]
