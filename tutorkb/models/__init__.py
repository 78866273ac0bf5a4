"""tutorKB domain models -- re-exports all public model classes.

Import from here rather than from the individual modules:

    from tutorkb.models import SourceItem, ItemStatus, KnowledgeChunk
"""

from tutorkb.models.bulk import (
    BulkFailure,
    BulkOutcome,
    BulkProgress,
    BulkSubmissionReport,
    BulkSuccess,
    UploadedFile,
)
from tutorkb.models.knowledge import (
    DEFAULT_TAG_COLOR,
    ItemStatus,
    SourceItem,
    SourceKind,
    StatusSnapshot,
    Tag,
)
from tutorkb.models.rag import (
    CorpusStats,
    IngestionResult,
    KnowledgeChunk,
    RetrievedContext,
    ScoredChunk,
)

__all__ = [
    "DEFAULT_TAG_COLOR",
    "BulkFailure",
    "BulkOutcome",
    "BulkProgress",
    "BulkSubmissionReport",
    "BulkSuccess",
    "CorpusStats",
    "IngestionResult",
    "ItemStatus",
    "KnowledgeChunk",
    "RetrievedContext",
    "ScoredChunk",
    "SourceItem",
    "SourceKind",
    "StatusSnapshot",
    "Tag",
    "UploadedFile",
]
