"""Abstract base class for Source Item and Tag persistence.

The repository is the only writer of item rows.  Status changes go through
:meth:`ISourceItemRepository.transition`, which enforces the state machine
in :class:`~tutorkb.models.knowledge.ItemStatus` with a compare-and-set on
the current status, so two workers can never both move an item out of
``pending``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from tutorkb.models.knowledge import ItemStatus, SourceItem, SourceKind, StatusSnapshot, Tag


# Concrete implementations:
#   SQLiteSourceItemRepository -- aiosqlite, shares the chunk store's db file
# Located in: tutorkb/providers/items/
class ISourceItemRepository(ABC):
    """Contract for Source Item, Tag and item-tag persistence."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""

    # -- Items -------------------------------------------------------------

    @abstractmethod
    async def create_item(self, item: SourceItem) -> SourceItem:
        """Insert a new item (normally in ``pending``) and return it."""

    @abstractmethod
    async def get_item(self, item_id: str) -> SourceItem | None:
        """Return an item with its tags, or ``None``."""

    @abstractmethod
    async def get_status(self, item_id: str) -> StatusSnapshot | None:
        """Return the pollable status fields of an item without locking."""

    @abstractmethod
    async def list_items(
        self,
        kind: SourceKind | None = None,
        status: ItemStatus | None = None,
        limit: int = 50,
    ) -> list[SourceItem]:
        """Return items newest first, optionally filtered."""

    @abstractmethod
    async def transition(
        self,
        item_id: str,
        target: ItemStatus,
        *,
        error_message: str | None = None,
        error_kind: str | None = None,
        chunk_count: int | None = None,
    ) -> SourceItem:
        """Move an item to ``target`` and commit immediately.

        Raises
        ------
        tutorkb.utils.errors.ItemNotFoundError
            If the item does not exist.
        tutorkb.utils.errors.InvalidTransitionError
            If the current status cannot move to ``target`` (including when
            another worker changed it first).
        """

    @abstractmethod
    async def count_by_status(self) -> dict[str, int]:
        """Return the number of items in each status."""

    @abstractmethod
    async def fail_interrupted(self, message: str) -> int:
        """Mark every ``processing`` item as failed; returns the count."""

    @abstractmethod
    async def delete_item(self, item_id: str) -> bool:
        """Delete an item with its tag links and chunks in one transaction.

        Returns ``False`` if the item is absent.

        Raises
        ------
        tutorkb.utils.errors.InvalidTransitionError
            If the item is ``processing``.
        """

    # -- Tags --------------------------------------------------------------

    @abstractmethod
    async def create_tag(self, name: str, color: str | None = None) -> Tag:
        """Create a tag; names are unique (case-insensitive)."""

    @abstractmethod
    async def list_tags(self) -> list[Tag]:
        """Return all tags ordered by name."""

    @abstractmethod
    async def delete_tag(self, tag_id: str) -> bool:
        """Delete a tag and its item links."""

    @abstractmethod
    async def set_item_tags(self, item_id: str, tag_ids: list[str]) -> list[Tag]:
        """Replace an item's tags; unknown tag ids are ignored."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this repository."""
