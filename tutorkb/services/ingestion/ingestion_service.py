"""Orchestrator for the per-item ingestion pipeline.

Pipeline stages: **fetch -> extract -> chunk -> embed -> store**.

The :class:`IngestionService` drives one Source Item through its state
machine and coordinates the collaborators that do the work (blob storage,
transcript provider, text extractor, chunker, embedding provider, chunk
store) without any of them knowing about each other::

    pending --claim--> processing --replace_chunks--> completed
                           |
                           +--any stage error--> failed (message + kind)

Every status write is committed immediately and published to the
:class:`StatusTracker`, so pollers and subscribers observe each transition
as it happens.  :meth:`IngestionService.ingest` never raises for a stage
failure: it returns an :class:`IngestionResult` describing the terminal
state instead.

A :class:`CancellationToken` is checked at every stage boundary.  Firing it
lets the running stage finish, then records the item as failed with kind
``IngestionCancelled``.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog

from tutorkb.models.knowledge import ItemStatus, SourceItem, SourceKind
from tutorkb.models.rag import IngestionResult, KnowledgeChunk
from tutorkb.services.ingestion.chunker import TextChunker
from tutorkb.services.ingestion.extractors.text_extractor import TextExtractor
from tutorkb.utils.concurrency import CancellationToken, throttled_gather
from tutorkb.utils.errors import (
    EmbeddingError,
    EmptyContentError,
    IngestionCancelledError,
    InvalidTransitionError,
    ItemNotFoundError,
    KnowledgeBaseError,
    TranscriptUnavailableError,
)

if TYPE_CHECKING:
    from tutorkb.interfaces.blob_storage import IBlobStorage
    from tutorkb.interfaces.chunk_store import IChunkStore
    from tutorkb.interfaces.embedding_provider import IEmbeddingProvider
    from tutorkb.interfaces.item_repository import ISourceItemRepository
    from tutorkb.interfaces.transcript_provider import ITranscriptProvider
    from tutorkb.pipeline.status_tracker import StatusTracker

logger = structlog.get_logger(logger_name=__name__)

_INTERNAL_ERROR_KIND = "InternalError"


class IngestionService:
    """Runs the fetch -> extract -> chunk -> embed -> store pipeline for one item.

    Parameters
    ----------
    item_repository:
        Source Item persistence; owns the status state machine.
    chunk_store:
        Durable chunk table with atomic per-source replace.
    blob_storage:
        Where uploaded documents and caption files live.
    extractor:
        Converts raw bytes or transcripts into normalized text.
    chunker:
        Splits text into overlapping windows.
    embedding_provider:
        Turns chunk text into unit-length vectors.
    status_tracker:
        Receives a snapshot after every status transition.
    transcript_provider:
        Optional remote transcript fetcher for videos without a caption file.
    embed_batch_size:
        Chunks sent to the embedder per call.
    embed_concurrency:
        Maximum embedder calls in flight for one item.
    """

    def __init__(
        self,
        item_repository: ISourceItemRepository,
        chunk_store: IChunkStore,
        blob_storage: IBlobStorage,
        extractor: TextExtractor,
        chunker: TextChunker,
        embedding_provider: IEmbeddingProvider,
        status_tracker: StatusTracker,
        transcript_provider: ITranscriptProvider | None = None,
        embed_batch_size: int = 64,
        embed_concurrency: int = 4,
    ) -> None:
        self._items = item_repository
        self._chunk_store = chunk_store
        self._blob_storage = blob_storage
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_provider = embedding_provider
        self._status_tracker = status_tracker
        self._transcript_provider = transcript_provider
        self._embed_batch_size = max(1, embed_batch_size)
        self._embed_concurrency = max(1, embed_concurrency)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ingest(
        self,
        item_id: str,
        token: CancellationToken | None = None,
    ) -> IngestionResult:
        """Drive a ``pending`` item to ``completed`` or ``failed``.

        Parameters
        ----------
        item_id:
            The Source Item to ingest.
        token:
            Optional cancellation token checked between stages.

        Returns
        -------
        IngestionResult
            The terminal status, chunk count and timing.  When the item
            cannot be claimed (unknown id, or not ``pending``) the result
            carries the claim error and the item is left untouched.
        """
        token = token or CancellationToken()
        started = time.monotonic()

        try:
            item = await self._claim(item_id)
        except KnowledgeBaseError as exc:
            logger.warning("ingestion_skipped", item_id=item_id, reason=exc.message, kind=exc.kind)
            snapshot = await self._safe_status(item_id)
            return IngestionResult(
                item_id=item_id,
                status=snapshot.status.value if snapshot else "missing",
                chunk_count=snapshot.chunk_count if snapshot else 0,
                error_message=exc.message,
                error_kind=exc.kind,
            )

        logger.info("ingestion_started", item_id=item_id, kind=item.kind.value, title=item.title)

        try:
            token.raise_if_cancelled("extract")
            text = await self._load_text(item)

            token.raise_if_cancelled("chunk")
            windows = self._chunker.chunk(text)
            if not windows:
                raise EmptyContentError(message=f"No chunks produced for {item.title}")

            token.raise_if_cancelled("embed")
            vectors = await self._embed_chunks(windows)

            token.raise_if_cancelled("store")
            chunks = self._build_chunks(item, windows, vectors)
            written = await self._chunk_store.replace_chunks(
                item.kind, item.id, chunks, require_processing=True
            )

            completed = await self._items.transition(
                item.id, ItemStatus.COMPLETED, chunk_count=written
            )
        except KnowledgeBaseError as exc:
            return await self._fail(item, exc.message, exc.kind, started)
        except asyncio.CancelledError:
            await asyncio.shield(
                self._fail(
                    item,
                    "Ingestion task was cancelled",
                    IngestionCancelledError.kind,
                    started,
                )
            )
            raise
        except Exception as exc:
            logger.exception("ingestion_unexpected_error", item_id=item.id, error=str(exc))
            return await self._fail(item, f"Unexpected error: {exc}", _INTERNAL_ERROR_KIND, started)

        await self._status_tracker.publish(completed.snapshot())
        elapsed = time.monotonic() - started
        logger.info(
            "ingestion_complete",
            item_id=item.id,
            chunk_count=written,
            total_characters=len(text),
            elapsed_s=round(elapsed, 3),
        )
        return IngestionResult(
            item_id=item.id,
            status=ItemStatus.COMPLETED.value,
            chunk_count=written,
            total_characters=len(text),
            ingestion_time=elapsed,
        )

    async def reset_for_reprocess(self, item_id: str) -> SourceItem:
        """Move a terminal item back to ``pending`` and delete its chunks.

        Raises
        ------
        ItemNotFoundError
            If the item does not exist.
        InvalidTransitionError
            If the item is ``pending`` or ``processing``.
        """
        item = await self._items.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(f"Source item not found: {item_id}")
        if not item.status.is_terminal:
            raise InvalidTransitionError(
                f"Item {item_id} is {item.status.value}; only completed or failed items can be reprocessed"
            )

        pending = await self._items.transition(item_id, ItemStatus.PENDING)
        removed = await self._chunk_store.delete_chunks(item.kind, item_id)
        await self._status_tracker.publish(pending.snapshot())
        logger.info("reprocess_reset", item_id=item_id, chunks_removed=removed)
        return pending

    async def reprocess(
        self,
        item_id: str,
        token: CancellationToken | None = None,
    ) -> IngestionResult:
        """Reset a terminal item and re-run the full pipeline."""
        await self.reset_for_reprocess(item_id)
        return await self.ingest(item_id, token)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _claim(self, item_id: str) -> SourceItem:
        # Compare-and-set in the repository: a second runner loses here.
        processing = await self._items.transition(item_id, ItemStatus.PROCESSING)
        await self._status_tracker.publish(processing.snapshot())
        return processing

    async def _load_text(self, item: SourceItem) -> str:
        """Fetch the item's raw source and return its normalized text."""
        if item.kind is SourceKind.DOCUMENT:
            data = await self._blob_storage.download(item.location)
            return await asyncio.to_thread(
                self._extractor.extract, data, item.file_type, item.file_name
            )

        if item.caption_path:
            data = await self._blob_storage.download(item.caption_path)
            return await asyncio.to_thread(
                self._extractor.extract_captions, data, item.caption_file_name
            )

        if (
            item.video_url
            and self._transcript_provider is not None
            and self._transcript_provider.supports(item.video_url)
        ):
            raw = await self._transcript_provider.fetch_transcript(item.video_url)
            return self._extractor.finalize(raw, source=item.video_url)

        platform = item.platform or "this platform"
        raise TranscriptUnavailableError(
            message=(
                f"No transcript is available for {platform} videos. "
                "Upload an SRT or VTT caption file instead."
            )
        )

    async def _embed_chunks(self, windows: list[str]) -> list[list[float]]:
        """Embed all windows in bounded-concurrency batches, order preserved."""
        size = self._embed_batch_size
        batches = [windows[i : i + size] for i in range(0, len(windows), size)]
        results = await throttled_gather(
            [self._embedding_provider.embed(batch) for batch in batches],
            limit=self._embed_concurrency,
        )
        vectors = [vector for batch in results for vector in batch]

        if len(vectors) != len(windows):
            raise EmbeddingError(
                message=f"Embedder returned {len(vectors)} vectors for {len(windows)} chunks",
                provider_name=self._embedding_provider.get_provider_name(),
            )
        dimension = self._embedding_provider.get_dimension()
        for vector in vectors:
            if len(vector) != dimension:
                raise EmbeddingError(
                    message=f"Embedding dimension {len(vector)} does not match {dimension}",
                    provider_name=self._embedding_provider.get_provider_name(),
                )

        logger.debug("chunks_embedded", chunks=len(vectors), batches=len(batches))
        return vectors

    @staticmethod
    def _build_chunks(
        item: SourceItem,
        windows: list[str],
        vectors: list[list[float]],
    ) -> list[KnowledgeChunk]:
        metadata: dict[str, Any] = {"title": item.title, "chunk_of": len(windows)}
        if item.kind is SourceKind.DOCUMENT:
            metadata["file_name"] = item.file_name
        else:
            metadata["video_url"] = item.video_url
            metadata["platform"] = item.platform
            metadata["caption_file_name"] = item.caption_file_name

        return [
            KnowledgeChunk(
                source_kind=item.kind,
                source_id=item.id,
                chunk_index=index,
                content=content,
                embedding=vector,
                metadata=metadata,
            )
            for index, (content, vector) in enumerate(zip(windows, vectors))
        ]

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _fail(
        self,
        item: SourceItem,
        message: str,
        kind: str,
        started: float,
    ) -> IngestionResult:
        elapsed = time.monotonic() - started
        logger.warning(
            "ingestion_failed",
            item_id=item.id,
            error=message,
            error_kind=kind,
            elapsed_s=round(elapsed, 3),
        )
        try:
            failed = await self._items.transition(
                item.id,
                ItemStatus.FAILED,
                error_message=message,
                error_kind=kind,
                chunk_count=0,
            )
            await self._status_tracker.publish(failed.snapshot())
        except KnowledgeBaseError as exc:
            # The item stays in processing until the next startup sweep.
            logger.error("failure_not_recorded", item_id=item.id, error=str(exc))

        return IngestionResult(
            item_id=item.id,
            status=ItemStatus.FAILED.value,
            ingestion_time=elapsed,
            error_message=message,
            error_kind=kind,
        )

    async def _safe_status(self, item_id: str):
        try:
            return await self._items.get_status(item_id)
        except KnowledgeBaseError:
            return None
