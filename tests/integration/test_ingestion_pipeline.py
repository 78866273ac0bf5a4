"""End-to-end ingestion tests: submission through chunk storage on SQLite."""

from __future__ import annotations

import asyncio

import aiosqlite
import pytest

from tutorkb.models.bulk import UploadedFile
from tutorkb.models.knowledge import ItemStatus, SourceKind, StatusSnapshot
from tutorkb.pipeline.status_tracker import ALL_ITEMS
from tutorkb.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from tutorkb.services.ingestion.chunker import TextChunker
from tutorkb.services.ingestion.extractors.text_extractor import TextExtractor
from tutorkb.services.ingestion.ingestion_service import IngestionService
from tutorkb.utils.concurrency import CancellationToken
from tutorkb.utils.errors import EmbeddingError, InvalidTransitionError

_SRT = (
    "1\n00:00:00,000 --> 00:00:02,500\nToday we look at equivalent fractions.\n\n"
    "2\n00:00:02,500 --> 00:00:05,000\nOne half equals two quarters.\n"
)


class _BrokenEmbedder(HashingEmbeddingProvider):
    async def embed(self, texts: list[str]) -> list[list[float]]:
        raise EmbeddingError(message="Embedding service returned 503", provider_name="broken")


# ─── Documents ───────────────────────────────────────────────────────────────


class TestDocumentIngestion:
    @pytest.mark.asyncio
    async def test_document_is_chunked_and_completed(
        self, submission_service, ingestion_service, chunk_store, item_repository, text_file, make_text
    ) -> None:
        item = await submission_service.submit_document(text_file("fractions.txt", make_text(2400)))
        assert item.status is ItemStatus.PENDING
        assert item.title == "fractions"

        result = await ingestion_service.ingest(item.id)

        assert result.status == "completed"
        assert result.chunk_count == 3
        assert result.total_characters == 2400
        stored = await item_repository.get_item(item.id)
        assert stored.status is ItemStatus.COMPLETED
        assert stored.chunk_count == 3
        assert stored.error_message is None

        chunks = await chunk_store.get_chunks(SourceKind.DOCUMENT, item.id)
        assert [c.chunk_index for c in chunks] == [0, 1, 2]
        assert chunks[0].metadata["title"] == "fractions"
        assert chunks[0].metadata["file_name"] == "fractions.txt"
        assert chunks[0].metadata["chunk_of"] == 3

    @pytest.mark.asyncio
    async def test_whitespace_document_fails_with_empty_content(
        self, submission_service, ingestion_service, item_repository, text_file
    ) -> None:
        item = await submission_service.submit_document(text_file("blank.txt", " \n\t \n"))

        result = await ingestion_service.ingest(item.id)

        assert result.status == "failed"
        assert result.error_kind == "EmptyContent"
        stored = await item_repository.get_item(item.id)
        assert stored.status is ItemStatus.FAILED
        assert stored.chunk_count == 0
        assert stored.error_kind == "EmptyContent"

    @pytest.mark.asyncio
    async def test_embedding_failure_is_recorded(
        self,
        submission_service,
        item_repository,
        chunk_store,
        blob_storage,
        status_tracker,
        text_file,
        make_text,
    ) -> None:
        service = IngestionService(
            item_repository=item_repository,
            chunk_store=chunk_store,
            blob_storage=blob_storage,
            extractor=TextExtractor(),
            chunker=TextChunker(chunk_size=1000, overlap=200),
            embedding_provider=_BrokenEmbedder(dimension=64),
            status_tracker=status_tracker,
        )
        item = await submission_service.submit_document(text_file("notes.txt", make_text(1500)))

        result = await service.ingest(item.id)

        assert result.status == "failed"
        assert result.error_kind == "EmbeddingFailure"
        assert "503" in result.error_message
        assert await chunk_store.count_chunks(SourceKind.DOCUMENT, item.id) == 0


# ─── Videos ──────────────────────────────────────────────────────────────────


class TestVideoIngestion:
    @pytest.mark.asyncio
    async def test_caption_file_is_used(self, submission_service, ingestion_service, chunk_store) -> None:
        caption = UploadedFile(file_name="lecture.srt", content=_SRT.encode("utf-8"))
        item = await submission_service.submit_video(title="Lecture 1", caption=caption)
        assert item.caption_path.startswith(f"captions/{item.id}_")

        result = await ingestion_service.ingest(item.id)

        assert result.status == "completed"
        assert result.chunk_count == 1
        chunks = await chunk_store.get_chunks(SourceKind.VIDEO, item.id)
        assert chunks[0].content == (
            "Today we look at equivalent fractions. One half equals two quarters."
        )
        assert chunks[0].metadata["caption_file_name"] == "lecture.srt"

    @pytest.mark.asyncio
    async def test_empty_caption_fails_with_empty_content(
        self, submission_service, ingestion_service, item_repository
    ) -> None:
        caption = UploadedFile(file_name="empty.srt", content=b"")
        item = await submission_service.submit_video(title="Silent", caption=caption)

        result = await ingestion_service.ingest(item.id)

        assert result.error_kind == "EmptyContent"
        assert (await item_repository.get_item(item.id)).chunk_count == 0

    @pytest.mark.asyncio
    async def test_remote_transcript_is_fetched(
        self, submission_service, ingestion_service, transcript_provider, make_text
    ) -> None:
        url = "https://www.youtube.com/watch?v=abc123xyz00"
        transcript_provider.transcripts[url] = make_text(1200, seed="division")
        item = await submission_service.submit_video(title="Long division", video_url=url)
        assert item.platform == "youtube"

        result = await ingestion_service.ingest(item.id)

        assert result.status == "completed"
        assert result.chunk_count == 2
        assert transcript_provider.calls == [url]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "url",
        ["https://www.youtube.com/watch?v=nocaptions0", "https://vimeo.com/123456"],
    )
    async def test_missing_transcript_fails(
        self, submission_service, ingestion_service, item_repository, url: str
    ) -> None:
        item = await submission_service.submit_video(title="No captions", video_url=url)

        result = await ingestion_service.ingest(item.id)

        assert result.status == "failed"
        assert result.error_kind == "TranscriptUnavailable"
        stored = await item_repository.get_item(item.id)
        assert stored.error_message

    @pytest.mark.asyncio
    async def test_video_needs_url_or_caption(self, submission_service) -> None:
        with pytest.raises(ValueError):
            await submission_service.submit_video(title="Nothing attached")


# ─── Reprocessing, cancellation, claims ──────────────────────────────────────


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_reprocess_is_idempotent(
        self, submission_service, ingestion_service, chunk_store, text_file, make_text
    ) -> None:
        item = await submission_service.submit_document(text_file("fractions.txt", make_text(2400)))
        first = await ingestion_service.ingest(item.id)

        second = await ingestion_service.reprocess(item.id)

        assert second.status == "completed"
        assert second.chunk_count == first.chunk_count
        chunks = await chunk_store.get_chunks(SourceKind.DOCUMENT, item.id)
        assert [c.chunk_index for c in chunks] == list(range(first.chunk_count))
        stats = await chunk_store.get_stats()
        assert stats.total_chunks == first.chunk_count

    @pytest.mark.asyncio
    async def test_reprocess_of_pending_item_is_rejected(
        self, submission_service, ingestion_service, text_file
    ) -> None:
        item = await submission_service.submit_document(text_file("a.txt", "some text"))
        with pytest.raises(InvalidTransitionError):
            await ingestion_service.reprocess(item.id)

    @pytest.mark.asyncio
    async def test_cancelled_token_fails_item(
        self, submission_service, ingestion_service, chunk_store, item_repository, text_file, make_text
    ) -> None:
        item = await submission_service.submit_document(text_file("a.txt", make_text(1500)))
        token = CancellationToken()
        token.cancel("Stopped by admin")

        result = await ingestion_service.ingest(item.id, token)

        assert result.status == "failed"
        assert result.error_kind == "IngestionCancelled"
        assert "Stopped by admin" in result.error_message
        assert (await item_repository.get_item(item.id)).status is ItemStatus.FAILED
        assert await chunk_store.count_chunks(SourceKind.DOCUMENT, item.id) == 0

    @pytest.mark.asyncio
    async def test_completed_item_is_not_claimed_again(
        self, submission_service, ingestion_service, text_file, make_text
    ) -> None:
        item = await submission_service.submit_document(text_file("a.txt", make_text(300)))
        await ingestion_service.ingest(item.id)

        again = await ingestion_service.ingest(item.id)

        assert again.status == "completed"
        assert again.chunk_count == 1
        assert again.error_kind == "InvalidTransition"

    @pytest.mark.asyncio
    async def test_unknown_item(self, ingestion_service) -> None:
        result = await ingestion_service.ingest("does-not-exist")
        assert result.status == "missing"
        assert result.error_kind == "ItemNotFound"

    @pytest.mark.asyncio
    async def test_status_transitions_are_published(
        self, submission_service, ingestion_service, status_tracker, text_file, make_text
    ) -> None:
        seen: list[str] = []

        def _record(snapshot: StatusSnapshot) -> None:
            seen.append(snapshot.status.value)

        status_tracker.register_listener(ALL_ITEMS, _record)
        item = await submission_service.submit_document(text_file("a.txt", make_text(300)))
        await ingestion_service.ingest(item.id)

        assert seen == ["pending", "processing", "completed"]
        assert status_tracker.get_status(item.id).chunk_count == 1

    @pytest.mark.asyncio
    async def test_delete_removes_chunks_and_blob(
        self, submission_service, ingestion_service, chunk_store, blob_storage, text_file, make_text
    ) -> None:
        item = await submission_service.submit_document(text_file("a.txt", make_text(1500)))
        await ingestion_service.ingest(item.id)

        await submission_service.delete_item(item.id)

        assert await chunk_store.count_chunks(SourceKind.DOCUMENT, item.id) == 0
        assert not await blob_storage.exists(item.location)


# ─── Delete racing ingestion ─────────────────────────────────────────────────


class TestDeleteDuringIngestion:
    @pytest.mark.asyncio
    async def test_delete_is_refused_while_claimed(
        self, submission_service, gated_service, gated_embedder, chunk_store, text_file, make_text
    ) -> None:
        item = await submission_service.submit_document(text_file("a.txt", make_text(1500)))
        task = asyncio.create_task(gated_service.ingest(item.id))
        await asyncio.wait_for(gated_embedder.entered.wait(), timeout=5)

        with pytest.raises(InvalidTransitionError):
            await submission_service.delete_item(item.id)

        gated_embedder.gate.set()
        result = await task

        assert result.status == "completed"
        assert await chunk_store.count_chunks(SourceKind.DOCUMENT, item.id) == result.chunk_count
        assert (await submission_service.get_item(item.id)).status is ItemStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_row_removed_mid_ingestion_leaves_no_chunks(
        self,
        submission_service,
        gated_service,
        gated_embedder,
        embedding_provider,
        chunk_store,
        db_path,
        text_file,
        make_text,
    ) -> None:
        item = await submission_service.submit_document(text_file("a.txt", make_text(1500)))
        task = asyncio.create_task(gated_service.ingest(item.id))
        await asyncio.wait_for(gated_embedder.entered.wait(), timeout=5)

        # A writer that skips the status check drops the row under the running ingestion.
        async with aiosqlite.connect(str(db_path)) as db:
            await db.execute("DELETE FROM source_items WHERE id = ?", (item.id,))
            await db.commit()
        gated_embedder.gate.set()
        result = await task

        assert result.status == "failed"
        assert result.error_kind == "PersistenceFailure"
        assert await chunk_store.count_chunks(SourceKind.DOCUMENT, item.id) == 0
        query = await embedding_provider.embed_single(make_text(200))
        hits = await chunk_store.similarity_search(query, threshold=-1.0, limit=100)
        assert [h for h in hits if h.chunk.source_id == item.id] == []

    @pytest.mark.asyncio
    async def test_ingest_after_delete_writes_nothing(
        self, submission_service, ingestion_service, chunk_store, text_file, make_text
    ) -> None:
        item = await submission_service.submit_document(text_file("a.txt", make_text(1500)))
        await submission_service.delete_item(item.id)

        result = await ingestion_service.ingest(item.id)

        assert result.status == "missing"
        assert result.error_kind == "ItemNotFound"
        assert await chunk_store.count_chunks(SourceKind.DOCUMENT, item.id) == 0
