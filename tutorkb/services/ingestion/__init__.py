"""Ingestion pipeline for the tutorKB knowledge base.

Pipeline stages: **fetch -> extract -> chunk -> embed -> store**.

1. **Fetch** -- raw bytes from blob storage, or a remote transcript for
   videos registered by URL only.

2. **Extract** (extractors/) -- PDF, DOCX, plain text, SRT and WebVTT are
   turned into one normalized plain-text document.

3. **Chunk** (chunker.py / TextChunker) -- fixed-size overlapping windows.

4. **Embed** (via IEmbeddingProvider) -- one unit-length vector per chunk.

5. **Store** (via IChunkStore) -- the item's whole chunk set is replaced
   in one transaction.

SubmissionService creates items, IngestionService drives them through the
status state machine and BulkSubmissionService runs many documents with
per-file failure isolation.
"""

from tutorkb.services.ingestion.bulk_coordinator import BulkSubmissionService
from tutorkb.services.ingestion.chunker import TextChunker
from tutorkb.services.ingestion.extractors import TextExtractor
from tutorkb.services.ingestion.ingestion_service import IngestionService
from tutorkb.services.ingestion.submission_service import SubmissionService

__all__ = [
    "BulkSubmissionService",
    "IngestionService",
    "SubmissionService",
    "TextChunker",
    "TextExtractor",
]
