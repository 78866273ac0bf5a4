"""Abstract base class for raw-blob storage.

Uploaded documents and caption files are stored as opaque bytes under a
relative path (e.g. ``documents/3f2a..._notes.pdf``).  The Source Item
keeps that path in ``location`` / ``caption_path`` and the orchestrator
downloads it again at ingestion time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   LocalBlobStorage -- files under a root directory
# Located in: tutorkb/providers/storage/
class IBlobStorage(ABC):
    """Contract for storing and fetching raw source bytes."""

    @abstractmethod
    async def upload(self, path: str, data: bytes) -> str:
        """Store ``data`` at ``path`` and return the stored path.

        Raises
        ------
        tutorkb.utils.errors.StorageUnavailableError
            If the write fails.
        """

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the bytes stored at ``path``.

        Raises
        ------
        tutorkb.utils.errors.StorageUnavailableError
            If the blob is missing or unreadable.
        """

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Remove the blob at ``path``; ``False`` when it did not exist."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Return ``True`` if a blob is stored at ``path``."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this storage backend."""
