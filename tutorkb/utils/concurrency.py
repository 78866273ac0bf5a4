"""Shared concurrency primitives for the ingestion pipeline.

Two helpers are exposed:

1. **throttled_gather** -- A drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  Used to embed the
   chunks of one item in parallel and to run bulk submissions with a
   bounded number of in-flight items.

2. **CancellationToken** -- A cooperative cancel flag that the orchestrator
   checks between stages.  Firing it never interrupts a stage midway; the
   pipeline stops at the next boundary and records the item as failed.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

import structlog

from tutorkb.utils.errors import IngestionCancelledError
from tutorkb.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore | None = None,
    limit: int = 4,
    return_exceptions: bool = False,
) -> list[_T | BaseException]:
    """Run awaitables concurrently with semaphore throttling.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Optional shared semaphore.  When omitted, a private one sized by
        ``limit`` is created for this call.
    limit:
        Maximum in-flight awaitables when no semaphore is supplied.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines.
    """
    if semaphore is None:
        semaphore = asyncio.Semaphore(max(1, limit))

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


class CancellationToken:
    """Cooperative cancellation flag checked at pipeline stage boundaries."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = "Ingestion was cancelled"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        if reason:
            self._reason = reason
        self._cancelled = True

    def raise_if_cancelled(self, stage: str) -> None:
        """Raise :class:`IngestionCancelledError` if the token has fired."""
        if self._cancelled:
            _logger.info("ingestion_cancelled_at_stage", stage=stage)
            raise IngestionCancelledError(f"{self._reason} (before {stage})")
