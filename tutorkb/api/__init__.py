"""tutorKB API layer -- routes, schemas, WebSocket, and middleware."""

from tutorkb.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from tutorkb.api.routes import router
from tutorkb.api.schemas import (
    BulkSubmissionResponse,
    ErrorResponse,
    HealthResponse,
    ItemResponse,
    ItemStatusResponse,
    RetrieveResponse,
)
from tutorkb.api.websocket import websocket_item_status

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "websocket_item_status",
    "BulkSubmissionResponse",
    "ErrorResponse",
    "HealthResponse",
    "ItemResponse",
    "ItemStatusResponse",
    "RetrieveResponse",
]
