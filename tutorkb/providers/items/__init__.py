"""Source Item repository implementations."""

from tutorkb.providers.items.sqlite_item_repository import SQLiteSourceItemRepository

__all__ = ["SQLiteSourceItemRepository"]
