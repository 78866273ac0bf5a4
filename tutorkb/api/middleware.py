"""API middleware -- CORS, request logging, and error handling.

Provides helper functions and middleware classes to configure cross-origin
resource sharing, structured request logging (via structlog), and
conversion of ``KnowledgeBaseError`` subclasses into JSON ``ErrorResponse``
bodies with a status code chosen by error class.

# --- MIDDLEWARE EXECUTION ORDER -----------------------------------------
#
# Starlette middleware is a stack (last added, first executed):
#
#   In main.py:
#     app.add_middleware(ErrorHandlingMiddleware)   # added 1st -> inner
#     app.add_middleware(RequestLoggingMiddleware)  # added 2nd -> outer
#
#   Request flow:
#     Client -> RequestLogging -> ErrorHandling -> route handler
#
# So RequestLoggingMiddleware sees the final status code, including the
# ones ErrorHandlingMiddleware produced.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from tutorkb.api.schemas import ErrorResponse
from tutorkb.utils.errors import (
    EmptyContentError,
    InvalidTransitionError,
    ItemNotFoundError,
    KnowledgeBaseError,
    UnsupportedFormatError,
    UploadTooLargeError,
)
from tutorkb.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

# First match wins; anything else derived from KnowledgeBaseError is a 500.
_STATUS_BY_ERROR: tuple[tuple[type[KnowledgeBaseError], int], ...] = (
    (ItemNotFoundError, 404),
    (InvalidTransitionError, 409),
    (UploadTooLargeError, 413),
    (UnsupportedFormatError, 415),
    (EmptyContentError, 422),
)


def status_code_for(exc: KnowledgeBaseError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware to the FastAPI application.

    Parameters
    ----------
    app:
        The FastAPI application instance.
    allowed_origins:
        Explicit list of allowed origins.  Defaults to ``["*"]`` for
        development; set ``CORS_ORIGINS`` in production.
    """
    origins = allowed_origins or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``KnowledgeBaseError`` subclasses and return structured JSON errors.

    The client receives the exception class name and its message.  Server
    errors (5xx) are logged at error level with the provider name; client
    errors (4xx) at info level.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except KnowledgeBaseError as exc:
            status_code = status_code_for(exc)
            log = _logger.error if status_code >= 500 else _logger.info
            log(
                "application_error",
                error_type=type(exc).__name__,
                error_kind=exc.kind,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
                status=status_code,
            )
            body = ErrorResponse(
                error=type(exc).__name__,
                detail=exc.message,
            )
            return JSONResponse(
                status_code=status_code,
                content=body.model_dump(),
            )
