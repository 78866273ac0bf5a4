"""Filesystem blob storage.

Stores raw uploads under a root directory using the relative path the
caller supplies (``documents/<uuid>_<name>``).  File IO is blocking, so
every operation runs in a worker thread via ``asyncio.to_thread``.
Paths are resolved against the root and anything escaping it is rejected.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from tutorkb.interfaces.blob_storage import IBlobStorage
from tutorkb.utils.errors import StorageUnavailableError

logger = structlog.get_logger(logger_name=__name__)


class LocalBlobStorage(IBlobStorage):
    """Blob storage rooted at a local directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    async def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_name(target.name + ".part")
            tmp.write_bytes(data)
            tmp.replace(target)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageUnavailableError(
                message=f"Failed to store {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("blob_uploaded", path=path, size=len(data))
        return path

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            data = await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise StorageUnavailableError(
                message=f"Failed to download file: {path} not found",
                provider_name=self.get_provider_name(),
            ) from exc
        except OSError as exc:
            raise StorageUnavailableError(
                message=f"Failed to download file {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("blob_downloaded", path=path, size=len(data))
        return data

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)

        def _unlink() -> bool:
            try:
                target.unlink()
            except FileNotFoundError:
                return False
            return True

        try:
            removed = await asyncio.to_thread(_unlink)
        except OSError as exc:
            raise StorageUnavailableError(
                message=f"Failed to delete {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("blob_deleted", path=path, removed=removed)
        return removed

    async def exists(self, path: str) -> bool:
        target = self._resolve(path)
        return await asyncio.to_thread(target.is_file)

    def get_provider_name(self) -> str:
        return "local_storage"

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if target != self._root and self._root not in target.parents:
            raise StorageUnavailableError(
                message=f"Path escapes storage root: {path}",
                provider_name=self.get_provider_name(),
            )
        return target
