"""Source item and tag models for the tutorKB knowledge base.

A Source Item is one uploaded document or registered video.  Its ``status``
field is driven through a small state machine by the ingestion
orchestrator (tutorkb/services/ingestion/ingestion_service.py):

    pending ──→ processing ──→ completed
                     │
                     └──────→ failed

    completed / failed ──(reprocess)──→ pending

All models are frozen; the SQLite repository returns fresh instances after
every write, so a caller holding an old SourceItem never sees it mutate.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class SourceKind(str, Enum):  # noqa: UP042 -- StrEnum requires Python 3.11+
    """What kind of source an item was created from."""

    DOCUMENT = "document"
    VIDEO = "video"


class ItemStatus(str, Enum):  # noqa: UP042
    """Processing status of a Source Item."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def can_transition_to(self, target: ItemStatus) -> bool:
        return target in _ALLOWED_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED)


_ALLOWED_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.PENDING: frozenset({ItemStatus.PROCESSING}),
    ItemStatus.PROCESSING: frozenset({ItemStatus.COMPLETED, ItemStatus.FAILED}),
    ItemStatus.COMPLETED: frozenset({ItemStatus.PENDING}),
    ItemStatus.FAILED: frozenset({ItemStatus.PENDING}),
}


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

DEFAULT_TAG_COLOR = "#1ECBE1"


class Tag(BaseModel):
    """A classification label that can be attached to many items."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = Field(min_length=1, max_length=64)
    color: str = Field(default=DEFAULT_TAG_COLOR, pattern=r"^#[0-9A-Fa-f]{6}$")
    created_at: datetime = Field(default_factory=_utcnow)


# ---------------------------------------------------------------------------
# Source items
# ---------------------------------------------------------------------------

class SourceItem(BaseModel):
    """One uploaded document or video awaiting or having undergone ingestion.

    ``location`` is the blob storage path for documents and caption files,
    or the external URL for a video without a caption file.  ``chunk_count``
    is only meaningful once ``status`` is ``completed``.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    kind: SourceKind
    title: str
    description: str | None = None
    location: str = Field(description="Blob storage path or external URL of the raw source.")
    status: ItemStatus = ItemStatus.PENDING
    error_message: str | None = None
    error_kind: str | None = None
    chunk_count: int = Field(default=0, ge=0)
    uploaded_by: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    # --- Document fields ---
    file_name: str | None = None
    file_type: str | None = Field(default=None, description="Declared MIME type or extension.")
    file_size: int | None = Field(default=None, ge=0)

    # --- Video fields ---
    video_url: str | None = None
    platform: str | None = None
    caption_file_name: str | None = None
    caption_path: str | None = None

    tags: list[Tag] = Field(default_factory=list)

    def snapshot(self) -> StatusSnapshot:
        """Return the pollable status fields of this item."""
        return StatusSnapshot(
            item_id=self.id,
            status=self.status,
            error_message=self.error_message,
            error_kind=self.error_kind,
            chunk_count=self.chunk_count,
            updated_at=self.updated_at,
        )


class StatusSnapshot(BaseModel):
    """The status fields external pollers and subscribers observe."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    status: ItemStatus
    error_message: str | None = None
    error_kind: str | None = None
    chunk_count: int = 0
    updated_at: datetime = Field(default_factory=_utcnow)
