"""Unit tests for SubmissionService validation, storage layout and admin operations."""

from __future__ import annotations

import pytest

from tutorkb.models.bulk import UploadedFile
from tutorkb.models.knowledge import ItemStatus, SourceKind
from tutorkb.services.ingestion.submission_service import safe_file_name, title_from_file_name
from tutorkb.utils.errors import (
    InvalidTransitionError,
    ItemNotFoundError,
    UnsupportedFormatError,
    UploadTooLargeError,
)


class TestFileNames:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("notes.pdf", "notes.pdf"),
            ("../../etc/passwd", "passwd"),
            ("C:\\Users\\kim\\Unit 3 review.docx", "Unit_3_review.docx"),
            ("...", "upload"),
        ],
    )
    def test_safe_file_name(self, raw: str, expected: str) -> None:
        assert safe_file_name(raw) == expected

    def test_title_from_file_name(self) -> None:
        assert title_from_file_name("Unit 3 review.docx") == "Unit 3 review"
        assert title_from_file_name("dir/notes.txt") == "notes"


class TestSubmitDocument:
    @pytest.mark.asyncio
    async def test_blob_and_pending_item_created(self, submission_service, blob_storage, text_file) -> None:
        item = await submission_service.submit_document(
            text_file("Unit 3.txt", "Equivalent fractions."),
            description="Week 3",
            uploaded_by="kim",
        )

        assert item.kind is SourceKind.DOCUMENT
        assert item.status is ItemStatus.PENDING
        assert item.location == f"documents/{item.id}_Unit_3.txt"
        assert item.file_size == len(b"Equivalent fractions.")
        assert item.file_type == "text/plain"
        assert await blob_storage.download(item.location) == b"Equivalent fractions."

    @pytest.mark.asyncio
    async def test_unsupported_type_creates_nothing(self, submission_service, item_repository) -> None:
        with pytest.raises(UnsupportedFormatError):
            await submission_service.submit_document(
                UploadedFile(file_name="report.doc", content=b"\xd0\xcf", content_type="application/msword")
            )
        assert await item_repository.list_items() == []

    @pytest.mark.asyncio
    async def test_too_large(self, submission_service) -> None:
        big = UploadedFile(file_name="big.txt", content=b"x" * (1024 * 1024 + 1), content_type="text/plain")
        with pytest.raises(UploadTooLargeError) as exc_info:
            await submission_service.submit_document(big)
        assert exc_info.value.kind == "UploadTooLarge"


class TestSubmitVideo:
    @pytest.mark.asyncio
    async def test_url_only(self, submission_service) -> None:
        item = await submission_service.submit_video(
            title="  Lecture 2 ", video_url="https://youtu.be/abc123xyz00"
        )
        assert item.title == "Lecture 2"
        assert item.platform == "youtube"
        assert item.location == "https://youtu.be/abc123xyz00"
        assert item.caption_path is None

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, submission_service) -> None:
        with pytest.raises(ValueError):
            await submission_service.submit_video(title="   ", video_url="https://youtu.be/x")

    @pytest.mark.asyncio
    async def test_caption_must_be_srt_or_vtt(self, submission_service) -> None:
        with pytest.raises(UnsupportedFormatError):
            await submission_service.submit_video(
                title="Lecture",
                caption=UploadedFile(file_name="notes.txt", content=b"hi"),
            )


class TestAdminOperations:
    @pytest.mark.asyncio
    async def test_delete_processing_item_is_rejected(
        self, submission_service, item_repository, text_file
    ) -> None:
        item = await submission_service.submit_document(text_file("a.txt", "text"))
        await item_repository.transition(item.id, ItemStatus.PROCESSING)

        with pytest.raises(InvalidTransitionError):
            await submission_service.delete_item(item.id)

    @pytest.mark.asyncio
    async def test_delete_pending_item(self, submission_service, blob_storage, text_file) -> None:
        item = await submission_service.submit_document(text_file("a.txt", "text"))

        await submission_service.delete_item(item.id)

        assert not await blob_storage.exists(item.location)
        with pytest.raises(ItemNotFoundError):
            await submission_service.get_item(item.id)

    @pytest.mark.asyncio
    async def test_tags_attached_at_submission(self, submission_service, text_file) -> None:
        tag = await submission_service.create_tag("  Algebra ")
        item = await submission_service.submit_document(text_file("a.txt", "text"), tag_ids=[tag.id])

        assert [t.name for t in item.tags] == ["Algebra"]
        assert [t.name for t in (await submission_service.get_item(item.id)).tags] == ["Algebra"]
