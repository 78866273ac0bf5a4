"""Retrieval data models for the tutorKB knowledge base.

Defines Pydantic v2 models for stored chunks, similarity search hits,
retrieved context handed to the chat step, ingestion results and corpus
statistics.  All models use frozen config.

    1. INGESTION: an item's text is split into overlapping windows.
    2. EMBEDDING: each window becomes a unit-length vector.
    3. STORAGE: windows + vectors are written to the chunk store as one set.
    4. RETRIEVAL: a query is embedded and compared by cosine similarity.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tutorkb.models.knowledge import SourceKind


# ---------------------------------------------------------------------------
# KnowledgeChunk -- the unit stored in the chunk store.
# ---------------------------------------------------------------------------
class KnowledgeChunk(BaseModel):
    """A bounded text window derived from one Source Item.

    ``(source_kind, source_id, chunk_index)`` is the chunk's identity.
    ``embedding`` is empty on chunks returned from searches.
    """

    model_config = ConfigDict(frozen=True)

    source_kind: SourceKind
    source_id: str
    chunk_index: int = Field(ge=0)
    content: str
    embedding: list[float] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="title, file_name or video_url/platform, chunk_of.",
    )

    @property
    def chunk_id(self) -> str:
        return f"{self.source_kind.value}:{self.source_id}:{self.chunk_index}"


class ScoredChunk(BaseModel):
    """A chunk returned from similarity search with its cosine similarity."""

    model_config = ConfigDict(frozen=True)

    chunk: KnowledgeChunk
    similarity: float = Field(ge=-1.0, le=1.0)


class RetrievedContext(BaseModel):
    """One piece of context handed to the downstream chat step."""

    model_config = ConfigDict(frozen=True)

    content: str
    source_metadata: dict[str, Any] = Field(default_factory=dict)
    source_kind: SourceKind
    source_id: str
    chunk_index: int
    similarity: float


# ---------------------------------------------------------------------------
# Results and stats
# ---------------------------------------------------------------------------
class IngestionResult(BaseModel):
    """Summary of one ingestion run, returned by the orchestrator."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    status: str
    chunk_count: int = Field(default=0, ge=0)
    total_characters: int = Field(default=0, ge=0)
    ingestion_time: float = Field(default=0.0, ge=0.0, description="Wall-clock seconds.")
    error_message: str | None = None
    error_kind: str | None = None


class CorpusStats(BaseModel):
    """Aggregate statistics about the knowledge base."""

    model_config = ConfigDict(frozen=True)

    total_chunks: int = Field(default=0, ge=0)
    total_sources: int = Field(default=0, ge=0)
    chunks_by_kind: dict[str, int] = Field(default_factory=dict)
    items_by_status: dict[str, int] = Field(default_factory=dict)
    embedding_dimension: int = 0
