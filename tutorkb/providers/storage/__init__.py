"""Blob storage implementations."""

from tutorkb.providers.storage.local_blob_storage import LocalBlobStorage

__all__ = ["LocalBlobStorage"]
