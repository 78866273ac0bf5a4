"""Unit tests for RetrievalService over a real chunk store and hashing embedder."""

from __future__ import annotations

import pytest

from tutorkb.models.knowledge import SourceKind
from tutorkb.models.rag import KnowledgeChunk, RetrievedContext
from tutorkb.services.retrieval_service import RetrievalService

_PASSAGES = [
    "To add fractions with unlike denominators, find a common denominator first.",
    "Photosynthesis turns light energy into chemical energy in plant cells.",
    "Long division repeats divide, multiply, subtract and bring down.",
]


async def _seed(chunk_store, embedding_provider, source_id: str = "doc-1") -> None:
    vectors = await embedding_provider.embed(_PASSAGES)
    chunks = [
        KnowledgeChunk(
            source_kind=SourceKind.DOCUMENT,
            source_id=source_id,
            chunk_index=i,
            content=text,
            embedding=vector,
            metadata={"title": "Grade 5 review", "chunk_of": len(_PASSAGES)},
        )
        for i, (text, vector) in enumerate(zip(_PASSAGES, vectors))
    ]
    await chunk_store.replace_chunks(SourceKind.DOCUMENT, source_id, chunks)


class TestRetrieve:
    @pytest.mark.asyncio
    async def test_best_match_first(self, retrieval_service, chunk_store, embedding_provider) -> None:
        await _seed(chunk_store, embedding_provider)

        results = await retrieval_service.retrieve(
            "how do I add fractions with unlike denominators", threshold=0.1
        )

        assert results
        assert results[0].chunk_index == 0
        assert results[0].source_metadata["title"] == "Grade 5 review"
        similarities = [r.similarity for r in results]
        assert similarities == sorted(similarities, reverse=True)
        assert all(s >= 0.1 for s in similarities)

    @pytest.mark.asyncio
    async def test_exact_passage_scores_one(self, retrieval_service, chunk_store, embedding_provider) -> None:
        await _seed(chunk_store, embedding_provider)
        results = await retrieval_service.retrieve(_PASSAGES[1], threshold=0.99, limit=1)

        assert len(results) == 1
        assert results[0].chunk_index == 1
        assert results[0].similarity == pytest.approx(1.0, abs=1e-5)

    @pytest.mark.asyncio
    async def test_limit_is_respected(self, retrieval_service, chunk_store, embedding_provider) -> None:
        await _seed(chunk_store, embedding_provider)
        results = await retrieval_service.retrieve("energy fractions division", threshold=-1.0, limit=2)
        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_no_match_is_empty(self, retrieval_service, chunk_store, embedding_provider) -> None:
        await _seed(chunk_store, embedding_provider)
        assert await retrieval_service.retrieve("zebra xylophone", threshold=0.9) == []

    @pytest.mark.asyncio
    async def test_empty_store_is_empty(self, retrieval_service) -> None:
        assert await retrieval_service.retrieve("anything at all") == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   "])
    async def test_blank_query_is_empty(self, retrieval_service, query: str) -> None:
        assert await retrieval_service.retrieve(query) == []

    @pytest.mark.asyncio
    async def test_non_positive_limit_is_empty(self, retrieval_service, chunk_store, embedding_provider) -> None:
        await _seed(chunk_store, embedding_provider)
        assert await retrieval_service.retrieve(_PASSAGES[0], limit=0) == []


class TestFormatContext:
    def test_renders_header_and_separator(self) -> None:
        results = [
            RetrievedContext(
                content="Find a common denominator.",
                source_metadata={"title": "Fractions"},
                source_kind=SourceKind.DOCUMENT,
                source_id="doc-1",
                chunk_index=0,
                similarity=0.8123,
            ),
            RetrievedContext(
                content="Keep dividing.",
                source_metadata={},
                source_kind=SourceKind.VIDEO,
                source_id="vid-9",
                chunk_index=2,
                similarity=0.41,
            ),
        ]

        text = RetrievalService.format_context(results)

        assert text == (
            "[Source: Fractions (document), chunk 1, similarity 0.812]\n"
            "Find a common denominator."
            "\n\n---\n\n"
            "[Source: vid-9 (video), chunk 3, similarity 0.410]\n"
            "Keep dividing."
        )

    def test_empty_results(self) -> None:
        assert RetrievalService.format_context([]) == ""
