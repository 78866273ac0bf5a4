"""Submission of new Source Items and admin operations on existing ones.

A submission validates the upload, stores its bytes in blob storage and
creates the item in ``pending``.  It never runs the pipeline itself; the
caller hands the returned item id to the scheduler (API) or awaits
:meth:`IngestionService.ingest` directly (CLI, bulk).

Blob layout under the storage root::

    documents/<item id>_<sanitized file name>
    captions/<item id>_<sanitized file name>
"""

from __future__ import annotations

import os
import re
import uuid
from typing import TYPE_CHECKING

import structlog

from tutorkb.models.bulk import UploadedFile
from tutorkb.models.knowledge import ItemStatus, SourceItem, SourceKind, StatusSnapshot, Tag
from tutorkb.providers.transcript.youtube_transcript_provider import detect_platform
from tutorkb.services.ingestion.extractors.text_extractor import (
    CAPTION_FORMATS,
    DocumentFormat,
    resolve_format,
)
from tutorkb.utils.errors import (
    ItemNotFoundError,
    KnowledgeBaseError,
    UnsupportedFormatError,
    UploadTooLargeError,
)

if TYPE_CHECKING:
    from tutorkb.interfaces.blob_storage import IBlobStorage
    from tutorkb.interfaces.chunk_store import IChunkStore
    from tutorkb.interfaces.item_repository import ISourceItemRepository
    from tutorkb.pipeline.status_tracker import StatusTracker

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_file_name(file_name: str) -> str:
    """Reduce an uploaded file name to a storage-safe basename."""
    base = os.path.basename(file_name.replace("\\", "/")).strip()
    cleaned = _UNSAFE_NAME_CHARS.sub("_", base).strip("._")
    return cleaned or "upload"


def title_from_file_name(file_name: str) -> str:
    """Default item title: the file name without its extension."""
    stem = os.path.splitext(os.path.basename(file_name))[0].strip()
    return stem or file_name


class SubmissionService:
    """Creates Source Items from uploads and manages them afterwards.

    Parameters
    ----------
    item_repository:
        Source Item and tag persistence.
    blob_storage:
        Storage for raw document and caption bytes.
    chunk_store:
        Consulted only when an item is deleted.
    status_tracker:
        Receives the initial ``pending`` snapshot of each new item.
    max_upload_bytes:
        Largest accepted upload.
    """

    def __init__(
        self,
        item_repository: ISourceItemRepository,
        blob_storage: IBlobStorage,
        chunk_store: IChunkStore,
        status_tracker: StatusTracker,
        max_upload_bytes: int = _DEFAULT_MAX_UPLOAD_BYTES,
    ) -> None:
        self._items = item_repository
        self._blob_storage = blob_storage
        self._chunk_store = chunk_store
        self._status_tracker = status_tracker
        self._max_upload_bytes = max_upload_bytes

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def validate_document(self, file: UploadedFile) -> DocumentFormat:
        """Check size and format of a document upload without side effects.

        Raises
        ------
        UploadTooLargeError
            If the file exceeds ``max_upload_bytes``.
        UnsupportedFormatError
            If no extractor handles the declared type.
        """
        self._check_size(file)
        return resolve_format(file.content_type, file.file_name)

    async def submit_document(
        self,
        file: UploadedFile,
        title: str | None = None,
        description: str | None = None,
        tag_ids: list[str] | None = None,
        uploaded_by: str | None = None,
    ) -> SourceItem:
        """Store a document and create its ``pending`` item."""
        self.validate_document(file)

        item_id = uuid.uuid4().hex
        path = f"documents/{item_id}_{safe_file_name(file.file_name)}"
        await self._blob_storage.upload(path, file.content)

        item = SourceItem(
            id=item_id,
            kind=SourceKind.DOCUMENT,
            title=(title or "").strip() or title_from_file_name(file.file_name),
            description=description,
            location=path,
            file_name=file.file_name,
            file_type=file.content_type or None,
            file_size=file.size,
            uploaded_by=uploaded_by,
        )
        created = await self._create(item, tag_ids, blob_paths=[path])
        logger.info(
            "document_submitted",
            item_id=item_id,
            file_name=file.file_name,
            size=file.size,
        )
        return created

    async def submit_video(
        self,
        title: str,
        video_url: str | None = None,
        caption: UploadedFile | None = None,
        description: str | None = None,
        tag_ids: list[str] | None = None,
        uploaded_by: str | None = None,
    ) -> SourceItem:
        """Register a video by URL, caption file, or both.

        With a caption file the transcript comes from the file; otherwise
        it is fetched from the platform at ingestion time.

        Raises
        ------
        ValueError
            If the title is blank or neither a URL nor a caption is given.
        UnsupportedFormatError
            If the caption file is not SRT or WebVTT.
        """
        title = (title or "").strip()
        video_url = (video_url or "").strip() or None
        if not title:
            raise ValueError("A video title is required")
        if video_url is None and caption is None:
            raise ValueError("A video URL or a caption file is required")

        caption_path: str | None = None
        item_id = uuid.uuid4().hex
        if caption is not None:
            self._check_size(caption)
            fmt = resolve_format(caption.content_type, caption.file_name)
            if fmt not in CAPTION_FORMATS:
                raise UnsupportedFormatError(
                    message=f"Caption files must be SRT or VTT, got {caption.file_name}",
                )
            caption_path = f"captions/{item_id}_{safe_file_name(caption.file_name)}"
            await self._blob_storage.upload(caption_path, caption.content)

        item = SourceItem(
            id=item_id,
            kind=SourceKind.VIDEO,
            title=title,
            description=description,
            location=caption_path or video_url or "",
            video_url=video_url,
            platform=detect_platform(video_url),
            caption_file_name=caption.file_name if caption else None,
            caption_path=caption_path,
            uploaded_by=uploaded_by,
        )
        created = await self._create(
            item, tag_ids, blob_paths=[caption_path] if caption_path else []
        )
        logger.info(
            "video_submitted",
            item_id=item_id,
            platform=item.platform,
            has_caption=caption is not None,
        )
        return created

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_item(self, item_id: str) -> SourceItem:
        item = await self._items.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(f"Source item not found: {item_id}")
        return item

    async def get_status(self, item_id: str) -> StatusSnapshot:
        snapshot = await self._items.get_status(item_id)
        if snapshot is None:
            raise ItemNotFoundError(f"Source item not found: {item_id}")
        return snapshot

    async def list_items(
        self,
        kind: SourceKind | None = None,
        status: ItemStatus | None = None,
        limit: int = 50,
    ) -> list[SourceItem]:
        return await self._items.list_items(kind=kind, status=status, limit=limit)

    async def recent_activity(self, limit: int = 10) -> list[SourceItem]:
        """Latest submissions of either kind, newest first."""
        return await self._items.list_items(limit=limit)

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def delete_item(self, item_id: str) -> None:
        """Remove an item with its chunks, tag links and stored blobs.

        The row, its tag links and its chunks go in one repository
        transaction that refuses a ``processing`` item.

        Raises
        ------
        InvalidTransitionError
            If the item is currently ``processing``; cancel it first.
        """
        item = await self.get_item(item_id)
        if not await self._items.delete_item(item_id):
            raise ItemNotFoundError(f"Source item not found: {item_id}")

        # No-op when the chunk table shares the item database.
        removed = await self._chunk_store.delete_chunks(item.kind, item_id)
        self._status_tracker.forget(item_id)

        for path in (item.location if item.kind is SourceKind.DOCUMENT else None, item.caption_path):
            if path:
                await self._delete_blob(path)

        logger.info("item_removed", item_id=item_id, stray_chunks_removed=removed)

    async def create_tag(self, name: str, color: str | None = None) -> Tag:
        return await self._items.create_tag(name.strip(), color)

    async def list_tags(self) -> list[Tag]:
        return await self._items.list_tags()

    async def delete_tag(self, tag_id: str) -> bool:
        return await self._items.delete_tag(tag_id)

    async def set_item_tags(self, item_id: str, tag_ids: list[str]) -> list[Tag]:
        return await self._items.set_item_tags(item_id, tag_ids)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_size(self, file: UploadedFile) -> None:
        if file.size > self._max_upload_bytes:
            raise UploadTooLargeError(
                message=(
                    f"{file.file_name} is {file.size} bytes; "
                    f"the limit is {self._max_upload_bytes} bytes"
                )
            )

    async def _create(
        self,
        item: SourceItem,
        tag_ids: list[str] | None,
        blob_paths: list[str],
    ) -> SourceItem:
        try:
            created = await self._items.create_item(item)
        except KnowledgeBaseError:
            for path in blob_paths:
                await self._delete_blob(path)
            raise

        if tag_ids:
            tags = await self._items.set_item_tags(created.id, tag_ids)
            created = created.model_copy(update={"tags": tags})

        await self._status_tracker.publish(created.snapshot())
        return created

    async def _delete_blob(self, path: str) -> None:
        try:
            await self._blob_storage.delete(path)
        except KnowledgeBaseError as exc:
            logger.warning("blob_delete_failed", path=path, error=str(exc))
