"""SQLite-backed chunk store with numpy cosine similarity.

Chunks live in the ``knowledge_chunks`` table keyed by
``(source_kind, source_id, chunk_index)``.  Embeddings are stored as
little-endian float32 blobs.

Atomic replace: :meth:`SQLiteChunkStore.replace_chunks` deletes and
re-inserts a source's rows inside one ``BEGIN IMMEDIATE`` transaction.  The
database runs in WAL mode, so a reader that started before the commit
keeps reading the old snapshot and a reader that starts after it sees the
new rows; nobody sees a half-written set, and readers never wait on the
writer.

With ``require_processing=True`` the same transaction first checks that the
owning ``source_items`` row (same database file) still exists and is
``processing``, so an ingestion can never write chunks for an item that was
deleted or reset underneath it.

Similarity search loads the candidate vectors with one SELECT (one
snapshot), stacks them into a matrix and scores them with a single
matrix-vector product.
"""

from __future__ import annotations

import json
from pathlib import Path

import aiosqlite
import numpy as np
import structlog

from tutorkb.interfaces.chunk_store import IChunkStore
from tutorkb.models.knowledge import SourceKind
from tutorkb.models.rag import CorpusStats, KnowledgeChunk, ScoredChunk
from tutorkb.utils.errors import PersistenceError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/knowledge.db")

_BUSY_TIMEOUT_SECONDS = 30.0

_VECTOR_DTYPE = np.dtype("<f4")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS knowledge_chunks (
    source_kind  TEXT    NOT NULL,
    source_id    TEXT    NOT NULL,
    chunk_index  INTEGER NOT NULL,
    content      TEXT    NOT NULL,
    embedding    BLOB    NOT NULL,
    dimension    INTEGER NOT NULL,
    metadata     TEXT    NOT NULL DEFAULT '{}',
    created_at   TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (source_kind, source_id, chunk_index)
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_chunks_source ON knowledge_chunks(source_kind, source_id);",
]

_INSERT_SQL = """\
INSERT INTO knowledge_chunks
    (source_kind, source_id, chunk_index, content, embedding, dimension, metadata)
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

_DELETE_SOURCE_SQL = "DELETE FROM knowledge_chunks WHERE source_kind = ? AND source_id = ?;"

_SELECT_OWNER_STATUS_SQL = "SELECT status FROM source_items WHERE id = ? AND kind = ?;"

_SELECT_CANDIDATES_SQL = """\
SELECT source_kind, source_id, chunk_index, content, metadata, embedding
FROM knowledge_chunks
WHERE dimension = ?;
"""

_SELECT_SOURCE_SQL = """\
SELECT source_kind, source_id, chunk_index, content, metadata, embedding
FROM knowledge_chunks
WHERE source_kind = ? AND source_id = ?
ORDER BY chunk_index;
"""


class SQLiteChunkStore(IChunkStore):
    """Chunk store on a local SQLite database (WAL mode)."""

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        dimension: int = 1536,
    ) -> None:
        self._db_path = Path(db_path)
        self._dimension = dimension

    def _connect(self) -> aiosqlite.Connection:
        return aiosqlite.connect(str(self._db_path), timeout=_BUSY_TIMEOUT_SECONDS)

    async def initialize(self) -> None:
        """Create the chunk table and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self._connect() as db:
                await db.execute("PRAGMA journal_mode=WAL;")
                await db.execute(_CREATE_TABLE_SQL)
                for idx_sql in _CREATE_INDICES_SQL:
                    await db.execute(idx_sql)
                await db.commit()
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"Failed to initialize chunk store: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.info("chunk_store_initialized", path=str(self._db_path), dimension=self._dimension)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def replace_chunks(
        self,
        source_kind: SourceKind,
        source_id: str,
        chunks: list[KnowledgeChunk],
        *,
        require_processing: bool = False,
    ) -> int:
        rows = self._to_rows(source_kind, source_id, chunks)

        try:
            async with self._connect() as db:
                await db.execute("BEGIN IMMEDIATE;")
                try:
                    if require_processing:
                        await self._check_owner_processing(db, source_kind, source_id)
                    cursor = await db.execute(_DELETE_SOURCE_SQL, (source_kind.value, source_id))
                    removed = cursor.rowcount
                    await db.executemany(_INSERT_SQL, rows)
                    await db.commit()
                except BaseException:
                    await db.rollback()
                    raise
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"Failed to replace chunks for {source_kind.value}/{source_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "chunks_replaced",
            source_kind=source_kind.value,
            source_id=source_id,
            removed=removed,
            written=len(rows),
        )
        return len(rows)

    async def delete_chunks(self, source_kind: SourceKind, source_id: str) -> int:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_DELETE_SOURCE_SQL, (source_kind.value, source_id))
                await db.commit()
                removed = cursor.rowcount
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"Failed to delete chunks for {source_kind.value}/{source_id}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "chunks_deleted",
            source_kind=source_kind.value,
            source_id=source_id,
            removed=removed,
        )
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def similarity_search(
        self,
        query_vector: list[float],
        threshold: float,
        limit: int,
    ) -> list[ScoredChunk]:
        if limit <= 0:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        if query.shape != (self._dimension,):
            raise PersistenceError(
                message=(
                    f"Query vector has dimension {query.size}, "
                    f"store expects {self._dimension}"
                ),
                provider_name=self.get_provider_name(),
            )
        query_norm = float(np.linalg.norm(query))
        if query_norm == 0.0:
            return []

        try:
            async with self._connect() as db:
                cursor = await db.execute(_SELECT_CANDIDATES_SQL, (self._dimension,))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"Similarity search failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if not rows:
            return []

        matrix = np.vstack([np.frombuffer(r[5], dtype=_VECTOR_DTYPE) for r in rows])
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0.0] = np.inf
        similarities = (matrix @ query) / (norms * query_norm)

        candidates = np.flatnonzero(similarities >= threshold)
        if candidates.size == 0:
            return []
        # Stable sort keeps insertion order among equal scores.
        ranked = candidates[np.argsort(-similarities[candidates], kind="stable")][:limit]

        return [
            ScoredChunk(
                chunk=self._row_to_chunk(rows[i], with_embedding=False),
                similarity=float(np.clip(similarities[i], -1.0, 1.0)),
            )
            for i in ranked
        ]

    async def get_chunks(self, source_kind: SourceKind, source_id: str) -> list[KnowledgeChunk]:
        try:
            async with self._connect() as db:
                cursor = await db.execute(_SELECT_SOURCE_SQL, (source_kind.value, source_id))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise PersistenceError(
                message=f"Failed to read chunks: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return [self._row_to_chunk(r, with_embedding=True) for r in rows]

    async def count_chunks(self, source_kind: SourceKind, source_id: str) -> int:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM knowledge_chunks WHERE source_kind = ? AND source_id = ?",
                (source_kind.value, source_id),
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    async def get_stats(self) -> CorpusStats:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT source_kind, COUNT(*), COUNT(DISTINCT source_id) "
                "FROM knowledge_chunks GROUP BY source_kind"
            )
            rows = await cursor.fetchall()

        by_kind = {r[0]: int(r[1]) for r in rows}
        return CorpusStats(
            total_chunks=sum(by_kind.values()),
            total_sources=sum(int(r[2]) for r in rows),
            chunks_by_kind=by_kind,
            embedding_dimension=self._dimension,
        )

    def get_provider_name(self) -> str:
        return "sqlite_chunks"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _check_owner_processing(
        self,
        db: aiosqlite.Connection,
        source_kind: SourceKind,
        source_id: str,
    ) -> None:
        """Refuse a write for a source item that is gone or no longer processing.

        Runs inside the replace transaction, after the write lock is held, so
        an item delete cannot slip in between the check and the insert.
        """
        cursor = await db.execute(_SELECT_OWNER_STATUS_SQL, (source_id, source_kind.value))
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            raise PersistenceError(
                message=f"Source item {source_kind.value}/{source_id} no longer exists",
                provider_name=self.get_provider_name(),
            )
        if row[0] != "processing":
            raise PersistenceError(
                message=f"Source item {source_kind.value}/{source_id} is {row[0]}, not processing",
                provider_name=self.get_provider_name(),
            )

    def _to_rows(
        self,
        source_kind: SourceKind,
        source_id: str,
        chunks: list[KnowledgeChunk],
    ) -> list[tuple]:
        """Validate a chunk set and convert it to insert rows."""
        rows: list[tuple] = []
        for expected_index, chunk in enumerate(sorted(chunks, key=lambda c: c.chunk_index)):
            if chunk.source_kind != source_kind or chunk.source_id != source_id:
                raise PersistenceError(
                    message=f"Chunk {chunk.chunk_id} does not belong to {source_kind.value}/{source_id}",
                    provider_name=self.get_provider_name(),
                )
            if chunk.chunk_index != expected_index:
                raise PersistenceError(
                    message=(
                        f"Chunk indices must be contiguous from 0; "
                        f"expected {expected_index}, got {chunk.chunk_index}"
                    ),
                    provider_name=self.get_provider_name(),
                )
            vector = np.asarray(chunk.embedding, dtype=_VECTOR_DTYPE)
            if vector.shape != (self._dimension,):
                raise PersistenceError(
                    message=(
                        f"Chunk {chunk.chunk_id} has embedding dimension {vector.size}, "
                        f"store expects {self._dimension}"
                    ),
                    provider_name=self.get_provider_name(),
                )
            rows.append(
                (
                    source_kind.value,
                    source_id,
                    chunk.chunk_index,
                    chunk.content,
                    vector.tobytes(),
                    self._dimension,
                    json.dumps(chunk.metadata),
                )
            )
        return rows

    @staticmethod
    def _row_to_chunk(row: tuple, *, with_embedding: bool) -> KnowledgeChunk:
        embedding: list[float] = []
        if with_embedding:
            embedding = np.frombuffer(row[5], dtype=_VECTOR_DTYPE).astype(float).tolist()
        return KnowledgeChunk(
            source_kind=SourceKind(row[0]),
            source_id=row[1],
            chunk_index=row[2],
            content=row[3],
            metadata=json.loads(row[4]) if row[4] else {},
            embedding=embedding,
        )
