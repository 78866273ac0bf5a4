"""SQLite-backed Source Item and Tag repository.

Persists items, tags and the ``item_tags`` join table with ``aiosqlite``,
normally in the same database file as the chunk store.  Every write opens
its own connection and commits before returning, so a status change is
visible to pollers as soon as :meth:`transition` returns.  The database
runs in WAL mode: status reads never wait on an in-flight ingestion.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from tutorkb.interfaces.item_repository import ISourceItemRepository
from tutorkb.models.knowledge import (
    DEFAULT_TAG_COLOR,
    ItemStatus,
    SourceItem,
    SourceKind,
    StatusSnapshot,
    Tag,
)
from tutorkb.utils.errors import InvalidTransitionError, ItemNotFoundError, PersistenceError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowledge.db")

_BUSY_TIMEOUT_SECONDS = 30.0

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS source_items (
    id                 TEXT    PRIMARY KEY,
    kind               TEXT    NOT NULL,
    title              TEXT    NOT NULL,
    description        TEXT,
    location           TEXT    NOT NULL,
    status             TEXT    NOT NULL DEFAULT 'pending',
    error_message      TEXT,
    error_kind         TEXT,
    chunk_count        INTEGER NOT NULL DEFAULT 0,
    uploaded_by        TEXT,
    file_name          TEXT,
    file_type          TEXT,
    file_size          INTEGER,
    video_url          TEXT,
    platform           TEXT,
    caption_file_name  TEXT,
    caption_path       TEXT,
    created_at         TEXT    NOT NULL,
    updated_at         TEXT    NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS tags (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL UNIQUE COLLATE NOCASE,
    color       TEXT NOT NULL,
    created_at  TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS item_tags (
    item_id  TEXT NOT NULL REFERENCES source_items(id) ON DELETE CASCADE,
    tag_id   TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (item_id, tag_id)
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_items_created ON source_items(created_at);",
    "CREATE INDEX IF NOT EXISTS idx_items_status ON source_items(status);",
    "CREATE INDEX IF NOT EXISTS idx_item_tags_tag ON item_tags(tag_id);",
]

_ITEM_COLUMNS = (
    "id", "kind", "title", "description", "location", "status", "error_message",
    "error_kind", "chunk_count", "uploaded_by", "file_name", "file_type", "file_size",
    "video_url", "platform", "caption_file_name", "caption_path", "created_at", "updated_at",
)

_INSERT_ITEM_SQL = (
    f"INSERT INTO source_items ({', '.join(_ITEM_COLUMNS)}) "
    f"VALUES ({', '.join('?' for _ in _ITEM_COLUMNS)});"
)

_SELECT_ITEM_SQL = f"SELECT {', '.join(_ITEM_COLUMNS)} FROM source_items WHERE id = ?;"

_SELECT_STATUS_SQL = """\
SELECT id, status, error_message, error_kind, chunk_count, updated_at
FROM source_items WHERE id = ?;
"""

_SELECT_ITEM_TAGS_SQL = """\
SELECT t.id, t.name, t.color, t.created_at, it.item_id
FROM tags t JOIN item_tags it ON it.tag_id = t.id
WHERE it.item_id IN ({placeholders})
ORDER BY t.name;
"""

_TRANSITION_SQL = """\
UPDATE source_items
SET status = ?, error_message = ?, error_kind = ?, chunk_count = ?, updated_at = ?
WHERE id = ? AND status = ?;
"""

_DELETE_ITEM_SQL = "DELETE FROM source_items WHERE id = ? AND status != ?;"

# The chunk store keeps its table in the same database file.
_DELETE_ITEM_CHUNKS_SQL = "DELETE FROM knowledge_chunks WHERE source_kind = ? AND source_id = ?;"


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


class SQLiteSourceItemRepository(ISourceItemRepository):
    """Source Item, Tag and item-tag persistence on SQLite."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(str(self._db_path), timeout=_BUSY_TIMEOUT_SECONDS)

    async def initialize(self) -> None:
        """Create the item, tag and join tables if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            await db.execute("PRAGMA journal_mode=WAL;")
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("item_db_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def create_item(self, item: SourceItem) -> SourceItem:
        row = self._item_to_row(item)
        try:
            async with self._connect() as db:
                await db.execute(_INSERT_ITEM_SQL, row)
                await db.commit()
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"Failed to create item {item.id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("item_created", item_id=item.id, kind=item.kind.value, title=item.title)
        return item

    async def get_item(self, item_id: str) -> SourceItem | None:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_ITEM_SQL, (item_id,))
            row = await cursor.fetchone()
            if row is None:
                return None
            tags = await self._load_tags(db, [item_id])
        return self._row_to_item(dict(row), tags.get(item_id, []))

    async def get_status(self, item_id: str) -> StatusSnapshot | None:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(_SELECT_STATUS_SQL, (item_id,))
            row = await cursor.fetchone()
        if row is None:
            return None
        return StatusSnapshot(
            item_id=row["id"],
            status=ItemStatus(row["status"]),
            error_message=row["error_message"],
            error_kind=row["error_kind"],
            chunk_count=row["chunk_count"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    async def list_items(
        self,
        kind: SourceKind | None = None,
        status: ItemStatus | None = None,
        limit: int = 50,
    ) -> list[SourceItem]:
        clauses: list[str] = []
        params: list[Any] = []
        if kind is not None:
            clauses.append("kind = ?")
            params.append(kind.value)
        if status is not None:
            clauses.append("status = ?")
            params.append(status.value)
        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        params.append(max(0, limit))

        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {', '.join(_ITEM_COLUMNS)} FROM source_items {where}"
                "ORDER BY created_at DESC, rowid DESC LIMIT ?",
                params,
            )
            rows = [dict(r) for r in await cursor.fetchall()]
            tags = await self._load_tags(db, [r["id"] for r in rows])

        return [self._row_to_item(r, tags.get(r["id"], [])) for r in rows]

    async def transition(
        self,
        item_id: str,
        target: ItemStatus,
        *,
        error_message: str | None = None,
        error_kind: str | None = None,
        chunk_count: int | None = None,
    ) -> SourceItem:
        try:
            async with self._connect() as db:
                db.row_factory = aiosqlite.Row
                # Take the write lock before reading so concurrent claims serialize.
                await db.execute("BEGIN IMMEDIATE;")
                try:
                    cursor = await db.execute(
                        "SELECT status, chunk_count FROM source_items WHERE id = ?", (item_id,)
                    )
                    row = await cursor.fetchone()
                    await cursor.close()
                    if row is None:
                        raise ItemNotFoundError(f"Source item not found: {item_id}")

                    current = ItemStatus(row["status"])
                    if not current.can_transition_to(target):
                        raise InvalidTransitionError(
                            f"Cannot move item {item_id} from {current.value} to {target.value}"
                        )

                    # Error fields only survive on a failed item.
                    if target is ItemStatus.FAILED:
                        new_count = row["chunk_count"] if chunk_count is None else chunk_count
                        new_error, new_kind = error_message, error_kind
                    elif target is ItemStatus.COMPLETED:
                        new_count = chunk_count or 0
                        new_error, new_kind = None, None
                    else:
                        new_count = 0 if target is ItemStatus.PENDING else row["chunk_count"]
                        new_error, new_kind = None, None

                    cursor = await db.execute(
                        _TRANSITION_SQL,
                        (target.value, new_error, new_kind, new_count, _now_iso(), item_id, current.value),
                    )
                    if cursor.rowcount == 0:
                        raise InvalidTransitionError(
                            f"Item {item_id} changed status concurrently; expected {current.value}"
                        )
                    await db.commit()
                except BaseException:
                    await db.rollback()
                    raise
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"Failed to update status of {item_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "status_transition",
            item_id=item_id,
            from_status=current.value,
            to_status=target.value,
            chunk_count=new_count,
            error_kind=new_kind,
        )
        item = await self.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(f"Source item not found: {item_id}")
        return item

    async def count_by_status(self) -> dict[str, int]:
        async with self._connect() as db:
            cursor = await db.execute("SELECT status, COUNT(*) FROM source_items GROUP BY status")
            rows = await cursor.fetchall()
        return {row[0]: int(row[1]) for row in rows}

    async def fail_interrupted(self, message: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "UPDATE source_items SET status = ?, error_message = ?, error_kind = ?, "
                "updated_at = ? WHERE status = ?",
                (ItemStatus.FAILED.value, message, "Interrupted", _now_iso(), ItemStatus.PROCESSING.value),
            )
            await db.commit()
            count = cursor.rowcount
        if count:
            logger.warning("interrupted_items_failed", count=count)
        return count

    async def delete_item(self, item_id: str) -> bool:
        chunks_removed = 0
        try:
            async with self._connect() as db:
                # Same write lock as transition(): a claim either lands before
                # this check (and the delete is refused) or after the commit.
                await db.execute("BEGIN IMMEDIATE;")
                try:
                    cursor = await db.execute(
                        "SELECT kind, status FROM source_items WHERE id = ?", (item_id,)
                    )
                    row = await cursor.fetchone()
                    await cursor.close()
                    if row is None:
                        await db.rollback()
                        logger.info("item_deleted", item_id=item_id, deleted=False)
                        return False
                    if row[1] == ItemStatus.PROCESSING.value:
                        raise InvalidTransitionError(
                            f"Item {item_id} is processing; cancel it before deleting"
                        )

                    if await self._has_chunk_table(db):
                        cursor = await db.execute(
                            _DELETE_ITEM_CHUNKS_SQL, (row[0], item_id)
                        )
                        chunks_removed = cursor.rowcount
                    await db.execute("DELETE FROM item_tags WHERE item_id = ?", (item_id,))
                    await db.execute(_DELETE_ITEM_SQL, (item_id, ItemStatus.PROCESSING.value))
                    await db.commit()
                except BaseException:
                    await db.rollback()
                    raise
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"Failed to delete item {item_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("item_deleted", item_id=item_id, deleted=True, chunks_removed=chunks_removed)
        return True

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    async def create_tag(self, name: str, color: str | None = None) -> Tag:
        tag = Tag(
            id=uuid.uuid4().hex,
            name=name.strip(),
            color=color or DEFAULT_TAG_COLOR,
        )
        try:
            async with self._connect() as db:
                await db.execute(
                    "INSERT INTO tags (id, name, color, created_at) VALUES (?, ?, ?, ?)",
                    (tag.id, tag.name, tag.color, tag.created_at.isoformat()),
                )
                await db.commit()
        except aiosqlite.IntegrityError as exc:
            raise ValueError(f"Tag already exists: {tag.name}") from exc

        logger.info("tag_created", tag_id=tag.id, name=tag.name)
        return tag

    async def list_tags(self) -> list[Tag]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT id, name, color, created_at FROM tags ORDER BY name")
            rows = await cursor.fetchall()
        return [self._row_to_tag(dict(r)) for r in rows]

    async def delete_tag(self, tag_id: str) -> bool:
        async with self._connect() as db:
            await db.execute("DELETE FROM item_tags WHERE tag_id = ?", (tag_id,))
            cursor = await db.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def set_item_tags(self, item_id: str, tag_ids: list[str]) -> list[Tag]:
        async with self._connect() as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT 1 FROM source_items WHERE id = ?", (item_id,))
            if await cursor.fetchone() is None:
                raise ItemNotFoundError(f"Source item not found: {item_id}")

            await db.execute("DELETE FROM item_tags WHERE item_id = ?", (item_id,))
            unique_ids = list(dict.fromkeys(tag_ids))
            if unique_ids:
                await db.executemany(
                    "INSERT INTO item_tags (item_id, tag_id) "
                    "SELECT ?, id FROM tags WHERE id = ?",
                    [(item_id, tid) for tid in unique_ids],
                )
            await db.commit()
            tags = await self._load_tags(db, [item_id])

        return tags.get(item_id, [])

    def get_provider_name(self) -> str:
        return "sqlite_items"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    async def _has_chunk_table(db: aiosqlite.Connection) -> bool:
        cursor = await db.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'knowledge_chunks'"
        )
        row = await cursor.fetchone()
        await cursor.close()
        return row is not None

    async def _load_tags(self, db: aiosqlite.Connection, item_ids: list[str]) -> dict[str, list[Tag]]:
        if not item_ids:
            return {}
        sql = _SELECT_ITEM_TAGS_SQL.format(placeholders=", ".join("?" for _ in item_ids))
        cursor = await db.execute(sql, item_ids)
        result: dict[str, list[Tag]] = {}
        for row in await cursor.fetchall():
            r = dict(row)
            result.setdefault(r["item_id"], []).append(self._row_to_tag(r))
        return result

    @staticmethod
    def _row_to_tag(row: dict[str, Any]) -> Tag:
        return Tag(
            id=row["id"],
            name=row["name"],
            color=row["color"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _item_to_row(item: SourceItem) -> tuple:
        data = item.model_dump()
        data["kind"] = item.kind.value
        data["status"] = item.status.value
        data["created_at"] = item.created_at.isoformat()
        data["updated_at"] = item.updated_at.isoformat()
        return tuple(data[col] for col in _ITEM_COLUMNS)

    @staticmethod
    def _row_to_item(row: dict[str, Any], tags: list[Tag]) -> SourceItem:
        data = dict(row)
        data["kind"] = SourceKind(data["kind"])
        data["status"] = ItemStatus(data["status"])
        data["created_at"] = datetime.fromisoformat(data["created_at"])
        data["updated_at"] = datetime.fromisoformat(data["updated_at"])
        return SourceItem(**data, tags=tags)
