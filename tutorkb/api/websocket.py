"""WebSocket endpoint for real-time item status updates.

Connects a client to one Source Item via the ``StatusTracker`` listener
mechanism.  Every status transition is pushed as a JSON message with
``item_id``, ``status``, ``error_message``, ``error_kind``,
``chunk_count`` and ``updated_at``.  The first message is the item's
current snapshot read from the repository, so a client connecting late
still starts from the right state.
"""

from __future__ import annotations

import contextlib

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from tutorkb.interfaces.item_repository import ISourceItemRepository
from tutorkb.models.knowledge import StatusSnapshot
from tutorkb.pipeline.status_tracker import StatusTracker
from tutorkb.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def _to_message(snapshot: StatusSnapshot) -> dict:
    return snapshot.model_dump(mode="json")


async def websocket_item_status(websocket: WebSocket, item_id: str) -> None:
    """Stream status snapshots of *item_id* to the client.

    Lifecycle:
        1. Accept the connection.
        2. Register a listener with the :class:`StatusTracker`.
        3. Send the current snapshot (or close with 4404 for unknown ids).
        4. Push a message on every transition.
        5. On disconnect, unregister the listener.
    """
    status_tracker: StatusTracker = websocket.app.state.status_tracker
    item_repository: ISourceItemRepository = websocket.app.state.item_repository

    await websocket.accept()
    _logger.info("websocket_connected", item_id=item_id)

    async def _on_status(snapshot: StatusSnapshot) -> None:
        # The socket may already be gone; cleanup happens in ``finally``.
        with contextlib.suppress(Exception):
            await websocket.send_json(_to_message(snapshot))

    status_tracker.register_listener(item_id, _on_status)

    try:
        snapshot = await item_repository.get_status(item_id)
        if snapshot is None:
            await websocket.send_json({"item_id": item_id, "error": "ItemNotFoundError"})
            await websocket.close(code=4404)
            return
        await websocket.send_json(_to_message(snapshot))

        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        _logger.info("websocket_disconnected", item_id=item_id)

    finally:
        status_tracker.unregister_listener(item_id, _on_status)
        _logger.debug("websocket_listener_cleaned_up", item_id=item_id)
