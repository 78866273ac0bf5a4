"""Pydantic request/response schemas for the tutorKB API.

Defines the public contract for the REST endpoints: submission, item and
status reads, admin actions, tags, retrieval, corpus stats and health.

# --- HOW SCHEMAS WORK ---------------------------------------------------
#
# FastAPI uses these models to validate request bodies (invalid input gets
# a 422 with details), to serialize responses via ``response_model=...``
# and to generate the OpenAPI docs at /docs.
#
# Convention: request schemas end with "Request", response schemas end
# with "Response".  Multipart endpoints take form fields directly and have
# no request schema.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from tutorkb.models.bulk import BulkSubmissionReport
from tutorkb.models.knowledge import ItemStatus, SourceItem, SourceKind, StatusSnapshot, Tag


class TagResponse(BaseModel):
    """A tag as exposed over the API."""

    id: str
    name: str
    color: str
    created_at: datetime

    @classmethod
    def from_tag(cls, tag: Tag) -> TagResponse:
        return cls(id=tag.id, name=tag.name, color=tag.color, created_at=tag.created_at)


class ItemResponse(BaseModel):
    """One Source Item with its tags."""

    id: str
    kind: SourceKind
    title: str
    description: str | None = None
    status: ItemStatus
    error_message: str | None = None
    error_kind: str | None = None
    chunk_count: int = 0
    uploaded_by: str | None = None
    created_at: datetime
    updated_at: datetime
    file_name: str | None = None
    file_type: str | None = None
    file_size: int | None = None
    video_url: str | None = None
    platform: str | None = None
    caption_file_name: str | None = None
    tags: list[TagResponse] = Field(default_factory=list)

    @classmethod
    def from_item(cls, item: SourceItem) -> ItemResponse:
        data = item.model_dump(exclude={"location", "caption_path", "tags"})
        return cls(**data, tags=[TagResponse.from_tag(t) for t in item.tags])


class ItemListResponse(BaseModel):
    """A page of items, newest first."""

    items: list[ItemResponse]
    total: int


class ItemStatusResponse(BaseModel):
    """Pollable status of one item."""

    item_id: str
    status: ItemStatus
    error_message: str | None = None
    error_kind: str | None = None
    chunk_count: int = 0
    updated_at: datetime

    @classmethod
    def from_snapshot(cls, snapshot: StatusSnapshot) -> ItemStatusResponse:
        return cls(**snapshot.model_dump())


class BulkFailureResponse(BaseModel):
    file_name: str
    reason: str
    error_kind: str | None = None
    item_id: str | None = None


class BulkSuccessResponse(BaseModel):
    file_name: str
    item_id: str
    chunk_count: int = 0


class BulkSubmissionResponse(BaseModel):
    """Aggregate result of a bulk upload."""

    outcome: str
    title: str
    message: str
    attempted: list[str]
    succeeded: list[BulkSuccessResponse]
    failed: list[BulkFailureResponse]

    @classmethod
    def from_report(cls, report: BulkSubmissionReport) -> BulkSubmissionResponse:
        return cls(
            outcome=report.outcome.value,
            title=report.title,
            message=report.message,
            attempted=list(report.attempted),
            succeeded=[BulkSuccessResponse(**s.model_dump()) for s in report.succeeded],
            failed=[BulkFailureResponse(**f.model_dump()) for f in report.failed],
        )


class SetTagsRequest(BaseModel):
    """Replacement tag set for an item."""

    tag_ids: list[str] = Field(default_factory=list)


class CreateTagRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")


class CancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class RetrieveRequest(BaseModel):
    """Query for ranked context."""

    query: str = Field(..., max_length=4000)
    threshold: float | None = Field(default=None, ge=-1.0, le=1.0)
    limit: int | None = Field(default=None, ge=1, le=50)


class RetrievedContextResponse(BaseModel):
    content: str
    source_metadata: dict[str, Any] = Field(default_factory=dict)
    source_kind: SourceKind
    source_id: str
    chunk_index: int
    similarity: float


class RetrieveResponse(BaseModel):
    """Ranked context plus a prompt-ready rendering of it."""

    query: str
    results: list[RetrievedContextResponse]
    context: str


class CorpusStatsResponse(BaseModel):
    """Chunk and item counts for the knowledge base."""

    total_chunks: int = 0
    total_sources: int = 0
    chunks_by_kind: dict[str, int] = Field(default_factory=dict)
    items_by_status: dict[str, int] = Field(default_factory=dict)
    embedding_dimension: int = 0


class ActionResponse(BaseModel):
    """Acknowledgement of an admin action."""

    item_id: str
    action: str
    status: ItemStatus | None = None
    message: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
