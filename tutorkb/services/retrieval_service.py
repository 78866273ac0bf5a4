"""Query-time retrieval of ranked context for the chat step.

Embeds the query with the same provider used at ingestion, asks the chunk
store for the nearest chunks above a similarity threshold, and returns
them as :class:`RetrievedContext` records.  Retrieval reads only what the
chunk store has committed, independent of any ingestion in progress.
"No results" is a normal, empty answer.
"""

from __future__ import annotations

import time

import structlog

from tutorkb.interfaces.chunk_store import IChunkStore
from tutorkb.interfaces.embedding_provider import IEmbeddingProvider
from tutorkb.models.rag import RetrievedContext

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_THRESHOLD = 0.3
_DEFAULT_LIMIT = 3


class RetrievalService:
    """Similarity-ranked context lookup over the chunk store."""

    def __init__(
        self,
        embedding_provider: IEmbeddingProvider,
        chunk_store: IChunkStore,
        default_threshold: float = _DEFAULT_THRESHOLD,
        default_limit: int = _DEFAULT_LIMIT,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._chunk_store = chunk_store
        self._default_threshold = default_threshold
        self._default_limit = default_limit

    async def retrieve(
        self,
        query: str,
        threshold: float | None = None,
        limit: int | None = None,
    ) -> list[RetrievedContext]:
        """Return up to *limit* chunks with similarity >= *threshold*.

        Parameters
        ----------
        query:
            Free-text question.  Blank queries return ``[]``.
        threshold:
            Minimum cosine similarity (default from config, 0.3).
        limit:
            Maximum results (default from config, 3).

        Returns
        -------
        list[RetrievedContext]
            Ordered by similarity, highest first.
        """
        threshold = self._default_threshold if threshold is None else threshold
        limit = self._default_limit if limit is None else limit

        if not query or not query.strip() or limit <= 0:
            return []

        started = time.monotonic()
        query_vector = await self._embedding_provider.embed_single(query.strip())
        hits = await self._chunk_store.similarity_search(query_vector, threshold, limit)

        results = [
            RetrievedContext(
                content=hit.chunk.content,
                source_metadata=dict(hit.chunk.metadata),
                source_kind=hit.chunk.source_kind,
                source_id=hit.chunk.source_id,
                chunk_index=hit.chunk.chunk_index,
                similarity=hit.similarity,
            )
            for hit in hits
        ]

        logger.info(
            "retrieval_complete",
            results=len(results),
            threshold=threshold,
            limit=limit,
            top_similarity=round(results[0].similarity, 4) if results else None,
            elapsed_ms=round((time.monotonic() - started) * 1000, 1),
        )
        return results

    @staticmethod
    def format_context(results: list[RetrievedContext]) -> str:
        """Render results as a prompt-ready block, one passage per source hit."""
        passages = []
        for result in results:
            title = result.source_metadata.get("title") or result.source_id
            passages.append(
                f"[Source: {title} ({result.source_kind.value}), "
                f"chunk {result.chunk_index + 1}, similarity {result.similarity:.3f}]\n"
                f"{result.content}"
            )
        return "\n\n---\n\n".join(passages)
