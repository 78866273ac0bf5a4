"""Custom exception hierarchy for tutorKB.

All application exceptions inherit from :class:`KnowledgeBaseError`, which
carries an optional ``provider_name`` so error handlers can identify which
backend (e.g. "openai", "youtube", "sqlite_chunks") caused the failure, and
a ``kind`` name that is recorded on a failed Source Item.

The hierarchy is organized by ingestion stage:

    KnowledgeBaseError  (base -- catch-all for any tutorKB error)
    +-- UnsupportedFormatError     (extract: no handler for declared type)
    +-- EmptyContentError          (extract: nothing left after normalizing)
    +-- TranscriptUnavailableError (extract: no caption track for a video)
    |   +-- TranscriptTimeoutError (transcript fetch exceeded its timeout)
    +-- StorageUnavailableError    (blob download / upload failure)
    +-- EmbeddingError             (embedder call failed)
    |   +-- EmbeddingTimeoutError  (embedder call exceeded its timeout)
    +-- PersistenceError           (chunk store / item table write failed)
    +-- UploadTooLargeError        (upload exceeds the configured limit)
    +-- IngestionCancelledError    (cancellation token fired mid-pipeline)
    +-- ItemNotFoundError          (unknown Source Item id)
    +-- InvalidTransitionError     (status change not allowed by the state machine)
    +-- ConfigurationError         (startup / missing config)

The orchestrator catches every subclass at its boundary and turns it into
a ``failed`` status carrying ``message`` and ``kind``.
"""


class KnowledgeBaseError(Exception):
    """Base exception for all tutorKB errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which backend triggered the error.  The
    ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[openai] Embedding request timed out``.
    """

    kind: str = "KnowledgeBaseError"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Extraction errors
# ---------------------------------------------------------------------------

class UnsupportedFormatError(KnowledgeBaseError):
    """Raised when a declared type matches no known extractor."""

    kind = "UnsupportedFormat"

    def __init__(
        self,
        message: str = "Unsupported source format",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmptyContentError(KnowledgeBaseError):
    """Raised when extraction yields no text after normalization."""

    kind = "EmptyContent"

    def __init__(
        self,
        message: str = "No text content could be extracted",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TranscriptUnavailableError(KnowledgeBaseError):
    """Raised when a video exposes no discoverable caption track."""

    kind = "TranscriptUnavailable"

    def __init__(
        self,
        message: str = (
            "Could not fetch YouTube transcript. Try uploading a caption file instead."
        ),
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TranscriptTimeoutError(TranscriptUnavailableError):
    """Raised when the remote transcript fetch exceeds its timeout."""

    kind = "TranscriptTimeout"

    def __init__(
        self,
        message: str = "Transcript fetch timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage / embedding / persistence errors
# ---------------------------------------------------------------------------

class StorageUnavailableError(KnowledgeBaseError):
    """Raised when a blob cannot be downloaded from or uploaded to storage."""

    kind = "StorageUnavailable"

    def __init__(
        self,
        message: str = "Blob storage is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingError(KnowledgeBaseError):
    """Raised when the embedder fails or returns malformed vectors."""

    kind = "EmbeddingFailure"

    def __init__(
        self,
        message: str = "Embedding generation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class EmbeddingTimeoutError(EmbeddingError):
    """Raised when a network embedding call exceeds its timeout."""

    kind = "EmbeddingTimeout"

    def __init__(
        self,
        message: str = "Embedding request timed out",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class PersistenceError(KnowledgeBaseError):
    """Raised when a chunk store or item table write fails."""

    kind = "PersistenceFailure"

    def __init__(
        self,
        message: str = "Failed to persist data",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UploadTooLargeError(KnowledgeBaseError):
    """Raised when an uploaded file exceeds ``max_upload_bytes``."""

    kind = "UploadTooLarge"

    def __init__(
        self,
        message: str = "Uploaded file is too large",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class IngestionCancelledError(KnowledgeBaseError):
    """Raised at a stage boundary once an ingestion's cancel token has fired."""

    kind = "IngestionCancelled"

    def __init__(
        self,
        message: str = "Ingestion was cancelled",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ItemNotFoundError(KnowledgeBaseError):
    """Raised when a Source Item id does not exist."""

    kind = "ItemNotFound"

    def __init__(
        self,
        message: str = "Source item not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidTransitionError(KnowledgeBaseError):
    """Raised when a status change is not allowed from the item's current status."""

    kind = "InvalidTransition"

    def __init__(
        self,
        message: str = "Invalid status transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KnowledgeBaseError):
    """Raised when configuration is invalid or missing at startup."""

    kind = "ConfigurationError"

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
