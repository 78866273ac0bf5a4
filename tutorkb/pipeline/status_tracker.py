"""Item status tracking with callback-based listener notification.

Stores the latest :class:`StatusSnapshot` for every item the orchestrator
has touched and broadcasts each new snapshot to registered listeners.
Listeners are keyed by item id; the wildcard key ``"*"`` receives every
item's updates (used by activity feeds and the CLI's bulk progress view).

# --- HOW STATUS NOTIFICATION WORKS -------------------------------------
#
#   IngestionService --publish()--> StatusTracker --callback()--> WebSocket handler
#                                                 --callback()--> (any other listener)
#
#   1. The orchestrator publishes a snapshot after every status transition.
#   2. The tracker stores it and calls the item's listeners, then the
#      wildcard listeners.
#   3. A listener that raises is logged and skipped; it never blocks the
#      pipeline or the other listeners.
#   4. Sync and async callbacks are both accepted.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from tutorkb.models.knowledge import StatusSnapshot
from tutorkb.utils.logging import get_logger

ALL_ITEMS = "*"


class StatusTracker:
    """Tracks and broadcasts item status snapshots via callbacks."""

    def __init__(self) -> None:
        self._statuses: dict[str, StatusSnapshot] = {}
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def publish(self, snapshot: StatusSnapshot) -> None:
        """Record *snapshot* and notify the item's and wildcard listeners.

        Parameters
        ----------
        snapshot:
            The item's status immediately after a transition.
        """
        self._statuses[snapshot.item_id] = snapshot

        self._logger.debug(
            "status_published",
            item_id=snapshot.item_id,
            status=snapshot.status.value,
            chunk_count=snapshot.chunk_count,
        )

        await self._notify_listeners(snapshot.item_id, snapshot)
        await self._notify_listeners(ALL_ITEMS, snapshot)

    def register_listener(self, item_id: str, callback: Callable) -> None:
        """Register *callback* for one item's updates (or ``"*"`` for all).

        The callback receives the :class:`StatusSnapshot` and may be sync
        or async.
        """
        listeners = self._listeners.setdefault(item_id, [])
        if callback not in listeners:
            listeners.append(callback)
            self._logger.debug(
                "listener_registered",
                item_id=item_id,
                total_listeners=len(listeners),
            )

    def unregister_listener(self, item_id: str, callback: Callable) -> None:
        listeners = self._listeners.get(item_id, [])
        if callback in listeners:
            listeners.remove(callback)
            self._logger.debug(
                "listener_unregistered",
                item_id=item_id,
                remaining_listeners=len(listeners),
            )
        if not listeners:
            self._listeners.pop(item_id, None)

    def get_status(self, item_id: str) -> StatusSnapshot | None:
        """Return the last published snapshot for *item_id*, if any."""
        return self._statuses.get(item_id)

    def forget(self, item_id: str) -> None:
        """Drop the cached snapshot of a deleted item."""
        self._statuses.pop(item_id, None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _notify_listeners(self, key: str, snapshot: StatusSnapshot) -> None:
        # Copy: a listener may unregister itself while being notified.
        listeners = list(self._listeners.get(key, []))
        for callback in listeners:
            try:
                result = callback(snapshot)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "listener_callback_error",
                    item_id=snapshot.item_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
