"""Shared pytest fixtures for the tutorKB test suite."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from tutorkb.interfaces.transcript_provider import ITranscriptProvider
from tutorkb.models.bulk import UploadedFile
from tutorkb.pipeline.status_tracker import StatusTracker
from tutorkb.providers.chunk_store.sqlite_chunk_store import SQLiteChunkStore
from tutorkb.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from tutorkb.providers.items.sqlite_item_repository import SQLiteSourceItemRepository
from tutorkb.providers.storage.local_blob_storage import LocalBlobStorage
from tutorkb.services.ingestion.bulk_coordinator import BulkSubmissionService
from tutorkb.services.ingestion.chunker import TextChunker
from tutorkb.services.ingestion.extractors.text_extractor import TextExtractor
from tutorkb.services.ingestion.ingestion_service import IngestionService
from tutorkb.services.ingestion.submission_service import SubmissionService
from tutorkb.services.retrieval_service import RetrievalService
from tutorkb.utils.errors import TranscriptUnavailableError

TEST_DIMENSION = 64


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeTranscriptProvider(ITranscriptProvider):
    """Serves canned transcripts keyed by URL; unknown URLs have no captions."""

    def __init__(self, transcripts: dict[str, str] | None = None) -> None:
        self.transcripts = dict(transcripts or {})
        self.calls: list[str] = []

    def supports(self, video_url: str) -> bool:
        return "youtube.com" in video_url or "youtu.be" in video_url

    async def fetch_transcript(self, video_url: str) -> str:
        self.calls.append(video_url)
        if video_url not in self.transcripts:
            raise TranscriptUnavailableError(
                message="Could not fetch YouTube transcript.",
                provider_name=self.get_provider_name(),
            )
        return self.transcripts[video_url]

    def get_provider_name(self) -> str:
        return "fake_transcripts"


class GatedEmbedder(HashingEmbeddingProvider):
    """Blocks inside embed() until the test opens the gate."""

    def __init__(self, dimension: int) -> None:
        super().__init__(dimension=dimension)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.entered.set()
        await self.gate.wait()
        return await super().embed(texts)


def _build_text(length: int, seed: str) -> str:
    words = f"{seed} numerator denominator halves thirds quarters equivalent simplify".split()
    text = " ".join(words * (length // 40 + 2))[:length]
    # A trailing space would be stripped by normalization.
    return text[:-1] + "x" if text.endswith(" ") else text


@pytest.fixture
def make_text():
    """Return a builder for single-spaced prose of an exact length."""

    def _make(length: int, seed: str = "fractions") -> str:
        return _build_text(length, seed)

    return _make


@pytest.fixture
def text_file():
    """Return a builder for an in-memory text upload."""

    def _make(name: str, text: str, content_type: str | None = "text/plain") -> UploadedFile:
        return UploadedFile(file_name=name, content=text.encode("utf-8"), content_type=content_type)

    return _make


# ---------------------------------------------------------------------------
# Provider fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "knowledge.db"


@pytest.fixture
async def item_repository(db_path: Path) -> SQLiteSourceItemRepository:
    repo = SQLiteSourceItemRepository(db_path=db_path)
    await repo.initialize()
    return repo


@pytest.fixture
async def chunk_store(db_path: Path) -> SQLiteChunkStore:
    store = SQLiteChunkStore(db_path=db_path, dimension=TEST_DIMENSION)
    await store.initialize()
    return store


@pytest.fixture
def blob_storage(tmp_path: Path) -> LocalBlobStorage:
    return LocalBlobStorage(root=tmp_path / "uploads")


@pytest.fixture
def embedding_provider() -> HashingEmbeddingProvider:
    return HashingEmbeddingProvider(dimension=TEST_DIMENSION)


@pytest.fixture
def transcript_provider() -> FakeTranscriptProvider:
    return FakeTranscriptProvider()


@pytest.fixture
def status_tracker() -> StatusTracker:
    return StatusTracker()


# ---------------------------------------------------------------------------
# Service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ingestion_service(
    item_repository,
    chunk_store,
    blob_storage,
    embedding_provider,
    status_tracker,
    transcript_provider,
) -> IngestionService:
    return IngestionService(
        item_repository=item_repository,
        chunk_store=chunk_store,
        blob_storage=blob_storage,
        extractor=TextExtractor(),
        chunker=TextChunker(chunk_size=1000, overlap=200),
        embedding_provider=embedding_provider,
        status_tracker=status_tracker,
        transcript_provider=transcript_provider,
        embed_batch_size=2,
        embed_concurrency=2,
    )


@pytest.fixture
def submission_service(
    item_repository,
    blob_storage,
    chunk_store,
    status_tracker,
) -> SubmissionService:
    return SubmissionService(
        item_repository=item_repository,
        blob_storage=blob_storage,
        chunk_store=chunk_store,
        status_tracker=status_tracker,
        max_upload_bytes=1024 * 1024,
    )


@pytest.fixture
def bulk_service(submission_service, ingestion_service) -> BulkSubmissionService:
    return BulkSubmissionService(
        submission_service=submission_service,
        ingestion_service=ingestion_service,
        concurrency=1,
        await_ingestion=True,
    )


@pytest.fixture
def retrieval_service(embedding_provider, chunk_store) -> RetrievalService:
    return RetrievalService(
        embedding_provider=embedding_provider,
        chunk_store=chunk_store,
        default_threshold=0.3,
        default_limit=3,
    )


@pytest.fixture
def gated_embedder() -> GatedEmbedder:
    return GatedEmbedder(dimension=TEST_DIMENSION)


@pytest.fixture
def gated_service(
    item_repository, chunk_store, blob_storage, status_tracker, gated_embedder
) -> IngestionService:
    """An ingestion service whose embed stage waits on ``gated_embedder.gate``."""
    return IngestionService(
        item_repository=item_repository,
        chunk_store=chunk_store,
        blob_storage=blob_storage,
        extractor=TextExtractor(),
        chunker=TextChunker(chunk_size=1000, overlap=200),
        embedding_provider=gated_embedder,
        status_tracker=status_tracker,
    )
