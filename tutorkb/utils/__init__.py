"""Utility modules for tutorKB.

- **errors** -- Domain exception hierarchy rooted at KnowledgeBaseError;
  each ingestion stage raises its own subclass and every subclass exposes
  a ``kind`` name that is stored on failed items.
- **concurrency** -- semaphore-throttled gather and the cooperative
  cancellation token used by the orchestrator.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text** -- whitespace and control-character normalization applied to
  every extractor's output.
"""

# -- Domain exception hierarchy --------------------------------------------
from tutorkb.utils.errors import (
    ConfigurationError,
    EmbeddingError,
    EmbeddingTimeoutError,
    EmptyContentError,
    IngestionCancelledError,
    InvalidTransitionError,
    ItemNotFoundError,
    KnowledgeBaseError,
    PersistenceError,
    StorageUnavailableError,
    TranscriptTimeoutError,
    TranscriptUnavailableError,
    UnsupportedFormatError,
    UploadTooLargeError,
)

# -- Async concurrency helpers ---------------------------------------------
from tutorkb.utils.concurrency import CancellationToken, throttled_gather

# -- Structured logging setup ----------------------------------------------
from tutorkb.utils.logging import configure_logging, get_logger

# -- Text normalization ----------------------------------------------------
from tutorkb.utils.text import normalize_text

__all__ = [
    "CancellationToken",
    "ConfigurationError",
    "EmbeddingError",
    "EmbeddingTimeoutError",
    "EmptyContentError",
    "IngestionCancelledError",
    "InvalidTransitionError",
    "ItemNotFoundError",
    "KnowledgeBaseError",
    "PersistenceError",
    "StorageUnavailableError",
    "TranscriptTimeoutError",
    "TranscriptUnavailableError",
    "UnsupportedFormatError",
    "UploadTooLargeError",
    "configure_logging",
    "get_logger",
    "normalize_text",
    "throttled_gather",
]
