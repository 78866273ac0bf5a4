"""Bulk document submission with per-file failure isolation.

Each file is validated, stored, registered as an item and (by default)
ingested to a terminal status before it counts as succeeded.  Any error
for one file is recorded in the report and the batch moves on; the call
itself only raises for an empty file list.

Files run one at a time by default.  ``concurrency > 1`` processes several
files at once behind an ``asyncio.Semaphore``; the report keeps submission
order either way.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from tutorkb.models.bulk import (
    BulkFailure,
    BulkProgress,
    BulkSubmissionReport,
    BulkSuccess,
    UploadedFile,
)
from tutorkb.models.knowledge import ItemStatus
from tutorkb.services.ingestion.ingestion_service import IngestionService
from tutorkb.services.ingestion.submission_service import SubmissionService
from tutorkb.utils.errors import KnowledgeBaseError

if TYPE_CHECKING:
    from tutorkb.pipeline.scheduler import IngestionScheduler

logger = structlog.get_logger(logger_name=__name__)

ProgressCallback = Callable[[BulkProgress], object]


class BulkSubmissionService:
    """Submits many documents and aggregates a success/partial/failure report.

    Parameters
    ----------
    submission_service:
        Creates each item.
    ingestion_service:
        Runs each item's pipeline when ingestion is awaited.
    scheduler:
        Used instead of awaiting when ``await_ingestion`` is ``False``.
    concurrency:
        Files processed at once (default 1, sequential).
    await_ingestion:
        When ``True`` a file succeeds only if its item reaches ``completed``.
    """

    def __init__(
        self,
        submission_service: SubmissionService,
        ingestion_service: IngestionService,
        scheduler: IngestionScheduler | None = None,
        concurrency: int = 1,
        await_ingestion: bool = True,
    ) -> None:
        if not await_ingestion and scheduler is None:
            raise ValueError("A scheduler is required when ingestion is not awaited")
        self._submissions = submission_service
        self._ingestion = ingestion_service
        self._scheduler = scheduler
        self._concurrency = max(1, concurrency)
        self._await_ingestion = await_ingestion

    async def submit_bulk(
        self,
        files: list[UploadedFile],
        tag_ids: list[str] | None = None,
        uploaded_by: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BulkSubmissionReport:
        """Submit every file and return the aggregate report.

        Parameters
        ----------
        files:
            Uploaded files in submission order.
        tag_ids:
            Tags applied to every created item.
        uploaded_by:
            Opaque caller identity recorded on each item.
        on_progress:
            Sync or async callable receiving a :class:`BulkProgress` after
            each file finishes.

        Raises
        ------
        ValueError
            If *files* is empty.
        """
        if not files:
            raise ValueError("No files were provided")

        total = len(files)
        outcomes: list[BulkSuccess | BulkFailure | None] = [None] * total
        succeeded: list[str] = []
        failed: list[str] = []
        semaphore = asyncio.Semaphore(self._concurrency)
        progress_lock = asyncio.Lock()

        logger.info("bulk_started", files=total, concurrency=self._concurrency)

        async def _process(index: int, file: UploadedFile) -> None:
            async with semaphore:
                outcome = await self._submit_one(file, tag_ids, uploaded_by)
            outcomes[index] = outcome
            async with progress_lock:
                if isinstance(outcome, BulkSuccess):
                    succeeded.append(file.file_name)
                else:
                    failed.append(file.file_name)
                progress = BulkProgress(
                    current=len(succeeded) + len(failed),
                    total=total,
                    current_file_name=file.file_name,
                    succeeded=list(succeeded),
                    failed=list(failed),
                )
                await self._emit(on_progress, progress)

        await asyncio.gather(*(_process(i, f) for i, f in enumerate(files)))

        report = BulkSubmissionReport(
            attempted=[f.file_name for f in files],
            succeeded=[o for o in outcomes if isinstance(o, BulkSuccess)],
            failed=[o for o in outcomes if isinstance(o, BulkFailure)],
        )
        logger.info(
            "bulk_complete",
            outcome=report.outcome.value,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _submit_one(
        self,
        file: UploadedFile,
        tag_ids: list[str] | None,
        uploaded_by: str | None,
    ) -> BulkSuccess | BulkFailure:
        try:
            item = await self._submissions.submit_document(
                file, tag_ids=tag_ids, uploaded_by=uploaded_by
            )
        except KnowledgeBaseError as exc:
            logger.warning("bulk_item_failed", file_name=file.file_name, error=exc.message)
            return BulkFailure(file_name=file.file_name, reason=exc.message, error_kind=exc.kind)
        except Exception as exc:
            logger.exception("bulk_item_error", file_name=file.file_name, error=str(exc))
            return BulkFailure(file_name=file.file_name, reason=str(exc), error_kind="InternalError")

        if not self._await_ingestion:
            self._scheduler.schedule(item.id)
            return BulkSuccess(file_name=file.file_name, item_id=item.id)

        result = await self._ingestion.ingest(item.id)
        if result.status != ItemStatus.COMPLETED.value:
            logger.warning(
                "bulk_item_failed",
                file_name=file.file_name,
                item_id=item.id,
                error=result.error_message,
            )
            return BulkFailure(
                file_name=file.file_name,
                reason=result.error_message or "Ingestion failed",
                error_kind=result.error_kind,
                item_id=item.id,
            )
        return BulkSuccess(file_name=file.file_name, item_id=item.id, chunk_count=result.chunk_count)

    @staticmethod
    async def _emit(callback: ProgressCallback | None, progress: BulkProgress) -> None:
        if callback is None:
            return
        try:
            result = callback(progress)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:
            logger.warning("bulk_progress_callback_error", error=str(exc))
