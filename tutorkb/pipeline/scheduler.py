"""Background ingestion runs and their cancellation tokens.

The API hands new items to the scheduler and returns immediately; the
scheduler owns one :class:`CancellationToken` per running item so an admin
can cancel it, and keeps every task it created so shutdown can fire the
tokens and wait for the runs to record a terminal status.
"""

from __future__ import annotations

import asyncio

import structlog

from tutorkb.models.rag import IngestionResult
from tutorkb.services.ingestion.ingestion_service import IngestionService
from tutorkb.utils.concurrency import CancellationToken
from tutorkb.utils.logging import get_logger


class IngestionScheduler:
    """Runs ingestion in the background and tracks in-flight items."""

    def __init__(self, ingestion_service: IngestionService) -> None:
        self._service = ingestion_service
        self._tokens: dict[str, CancellationToken] = {}
        self._tasks: set[asyncio.Task] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, item_id: str) -> IngestionResult:
        """Ingest *item_id* with a registered cancellation token.

        Safe to hand to ``BackgroundTasks``: ingestion errors are recorded
        on the item, never raised.  The calling task is tracked for the
        duration of the run so :meth:`drain` waits for it as well.
        """
        token = CancellationToken()
        self._tokens[item_id] = token
        task = asyncio.current_task()
        if task is not None:
            self._tasks.add(task)
        try:
            return await self._service.ingest(item_id, token)
        finally:
            if self._tokens.get(item_id) is token:
                del self._tokens[item_id]
            if task is not None:
                self._tasks.discard(task)

    def schedule(self, item_id: str) -> asyncio.Task:
        """Start :meth:`run` as a task on the running loop."""
        task = asyncio.create_task(self.run(item_id), name=f"ingest-{item_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._logger.debug("ingestion_scheduled", item_id=item_id)
        return task

    def is_running(self, item_id: str) -> bool:
        return item_id in self._tokens

    def cancel(self, item_id: str, reason: str | None = None) -> bool:
        """Fire the token of a running item.  Returns ``False`` if none."""
        token = self._tokens.get(item_id)
        if token is None:
            return False
        token.cancel(reason or "Cancelled by administrator")
        self._logger.info("ingestion_cancel_requested", item_id=item_id)
        return True

    async def drain(self, timeout: float | None = 30.0) -> None:
        """Cancel every in-flight run and wait for them to finish."""
        for item_id, token in list(self._tokens.items()):
            token.cancel("Shutting down")
            self._logger.info("ingestion_cancelled_on_shutdown", item_id=item_id)

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        if not pending:
            return
        done, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
        self._logger.info(
            "scheduler_drained",
            finished=len(done),
            force_cancelled=len(still_running),
        )
