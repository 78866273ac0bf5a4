"""Dependency-injection assembly shared by the web app and the CLI.

Builds every provider and service once from :class:`Settings` plus the
merged YAML config and returns them in a flat dict, which ``main.py``
copies onto ``app.state`` and the CLI reads directly.  Nothing here
touches the database or the network; call :func:`initialize_components`
before first use.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from tutorkb.config.settings import Settings
from tutorkb.interfaces.embedding_provider import IEmbeddingProvider
from tutorkb.pipeline.scheduler import IngestionScheduler
from tutorkb.pipeline.status_tracker import StatusTracker
from tutorkb.providers.chunk_store.sqlite_chunk_store import SQLiteChunkStore
from tutorkb.providers.embedding.hashing_embedding_provider import HashingEmbeddingProvider
from tutorkb.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider
from tutorkb.providers.items.sqlite_item_repository import SQLiteSourceItemRepository
from tutorkb.providers.storage.local_blob_storage import LocalBlobStorage
from tutorkb.providers.transcript.youtube_transcript_provider import YouTubeTranscriptProvider
from tutorkb.services.ingestion.bulk_coordinator import BulkSubmissionService
from tutorkb.services.ingestion.chunker import TextChunker
from tutorkb.services.ingestion.extractors.text_extractor import TextExtractor
from tutorkb.services.ingestion.ingestion_service import IngestionService
from tutorkb.services.ingestion.submission_service import SubmissionService
from tutorkb.services.retrieval_service import RetrievalService
from tutorkb.utils.errors import ConfigurationError
from tutorkb.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

_INTERRUPTED_MESSAGE = "Interrupted by restart"


def build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedding provider named by ``EMBEDDING_PROVIDER``.

    ``hashing`` (default) needs nothing; ``openai`` requires an API key.
    """
    choice = app_settings.embedding_provider.strip().lower()
    if choice == "openai":
        if not app_settings.openai_api_key:
            raise ConfigurationError("EMBEDDING_PROVIDER=openai requires OPENAI_API_KEY")
        return OpenAIEmbeddingProvider(settings=app_settings)
    if choice == "hashing":
        return HashingEmbeddingProvider(dimension=app_settings.embedding_dimension)
    raise ConfigurationError(f"Unknown embedding provider: {app_settings.embedding_provider}")


def build_components(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service.

    Parameters
    ----------
    app_settings:
        Environment-derived settings (paths, provider choice, secrets).
    app_config:
        Merged YAML config (chunking, retrieval, embedding, bulk, activity).

    Returns
    -------
    dict[str, Any]
        Components keyed by the ``app.state`` attribute they are stored as.
    """
    chunking = app_config.get("chunking", {})
    retrieval = app_config.get("retrieval", {})
    embedding = app_config.get("embedding", {})
    bulk = app_config.get("bulk", {})

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(app_settings.transcript_timeout_seconds),
        follow_redirects=True,
    )

    embedding_provider = build_embedding_provider(app_settings)
    item_repository = SQLiteSourceItemRepository(db_path=app_settings.database_path)
    chunk_store = SQLiteChunkStore(
        db_path=app_settings.database_path,
        dimension=embedding_provider.get_dimension(),
    )
    blob_storage = LocalBlobStorage(root=app_settings.storage_dir)
    transcript_provider = YouTubeTranscriptProvider(
        http_client=http_client,
        timeout=app_settings.transcript_timeout_seconds,
    )
    status_tracker = StatusTracker()

    ingestion_service = IngestionService(
        item_repository=item_repository,
        chunk_store=chunk_store,
        blob_storage=blob_storage,
        extractor=TextExtractor(),
        chunker=TextChunker(
            chunk_size=int(chunking.get("size", 1000)),
            overlap=int(chunking.get("overlap", 200)),
        ),
        embedding_provider=embedding_provider,
        status_tracker=status_tracker,
        transcript_provider=transcript_provider,
        embed_batch_size=int(embedding.get("batch_size", 64)),
        embed_concurrency=int(embedding.get("concurrency", 4)),
    )
    submission_service = SubmissionService(
        item_repository=item_repository,
        blob_storage=blob_storage,
        chunk_store=chunk_store,
        status_tracker=status_tracker,
        max_upload_bytes=app_settings.max_upload_bytes,
    )
    scheduler = IngestionScheduler(ingestion_service)
    bulk_service = BulkSubmissionService(
        submission_service=submission_service,
        ingestion_service=ingestion_service,
        scheduler=scheduler,
        concurrency=int(bulk.get("concurrency", 1)),
        await_ingestion=bool(bulk.get("await_ingestion", True)),
    )
    retrieval_service = RetrievalService(
        embedding_provider=embedding_provider,
        chunk_store=chunk_store,
        default_threshold=float(retrieval.get("threshold", 0.3)),
        default_limit=int(retrieval.get("limit", 3)),
    )

    _logger.debug(
        "components_built",
        embedding_provider=embedding_provider.get_provider_name(),
        dimension=embedding_provider.get_dimension(),
        database=app_settings.database_path,
    )

    return {
        "settings": app_settings,
        "config": app_config,
        "http_client": http_client,
        "embedding_provider": embedding_provider,
        "item_repository": item_repository,
        "chunk_store": chunk_store,
        "blob_storage": blob_storage,
        "transcript_provider": transcript_provider,
        "status_tracker": status_tracker,
        "ingestion_service": ingestion_service,
        "submission_service": submission_service,
        "scheduler": scheduler,
        "bulk_service": bulk_service,
        "retrieval_service": retrieval_service,
    }


async def initialize_components(
    components: dict[str, Any],
    *,
    sweep_interrupted: bool = True,
) -> int:
    """Create the SQLite schemas and fail items a previous run left processing.

    The CLI passes ``sweep_interrupted=False`` so it never fails items a
    running server is still ingesting.  Returns the number of items marked
    failed.
    """
    await components["item_repository"].initialize()
    await components["chunk_store"].initialize()
    if not sweep_interrupted:
        return 0
    return await components["item_repository"].fail_interrupted(_INTERRUPTED_MESSAGE)


async def close_components(components: dict[str, Any]) -> None:
    """Drain background ingestion and close the shared HTTP client."""
    await components["scheduler"].drain()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
