"""Bulk submission models.

``UploadedFile`` is the transport-neutral input (the API builds it from
``UploadFile``, the CLI from a path).  ``BulkProgress`` is emitted after
each file so a caller can render live progress, and
``BulkSubmissionReport`` is the final, never-persisted result.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class UploadedFile(BaseModel):
    """Raw bytes of one file plus the metadata the client declared."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


class BulkOutcome(str, Enum):  # noqa: UP042
    """Overall classification of a bulk call."""

    ALL_SUCCEEDED = "all_succeeded"
    PARTIAL = "partial"
    ALL_FAILED = "all_failed"


class BulkFailure(BaseModel):
    """One file that could not be submitted or ingested."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    reason: str
    error_kind: str | None = None
    item_id: str | None = Field(
        default=None,
        description="Set when the item was created but its ingestion failed.",
    )


class BulkSuccess(BaseModel):
    """One file that produced a Source Item."""

    model_config = ConfigDict(frozen=True)

    file_name: str
    item_id: str
    chunk_count: int = 0


class BulkProgress(BaseModel):
    """Live progress of a running bulk call."""

    model_config = ConfigDict(frozen=True)

    current: int = Field(ge=0, description="1-based index of the file being processed.")
    total: int = Field(ge=0)
    current_file_name: str = ""
    succeeded: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


class BulkSubmissionReport(BaseModel):
    """Aggregate result of a bulk call, in submission order."""

    model_config = ConfigDict(frozen=True)

    attempted: list[str] = Field(default_factory=list)
    succeeded: list[BulkSuccess] = Field(default_factory=list)
    failed: list[BulkFailure] = Field(default_factory=list)

    @property
    def outcome(self) -> BulkOutcome:
        if not self.failed:
            return BulkOutcome.ALL_SUCCEEDED
        if not self.succeeded:
            return BulkOutcome.ALL_FAILED
        return BulkOutcome.PARTIAL

    @property
    def title(self) -> str:
        return {
            BulkOutcome.ALL_SUCCEEDED: "All documents uploaded",
            BulkOutcome.PARTIAL: "Partial upload complete",
            BulkOutcome.ALL_FAILED: "Upload failed",
        }[self.outcome]

    @property
    def message(self) -> str:
        outcome = self.outcome
        if outcome is BulkOutcome.ALL_SUCCEEDED:
            return f"{len(self.succeeded)} files uploaded successfully."
        if outcome is BulkOutcome.PARTIAL:
            return f"{len(self.succeeded)} succeeded, {len(self.failed)} failed."
        return f"All {len(self.failed)} files failed to upload."
