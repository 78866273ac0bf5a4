"""FastAPI routes for the tutorKB ingestion and retrieval pipeline.

Service dependencies are resolved from ``app.state`` via FastAPI's
``Depends`` using the ``Annotated`` pattern.

# --- API ROUTE MAP -----------------------------------------------------
#
# Endpoint                              Method  Description
# ---------------------------------------------------------------------
# /api/v1/documents                     POST    Upload one document (202, ingests in background)
# /api/v1/documents/bulk                POST    Upload many documents, returns the bulk report
# /api/v1/videos                        POST    Register a video by URL and/or caption file
# /api/v1/items                         GET     List items (kind, status, limit)
# /api/v1/items/recent                  GET     Recent processing activity
# /api/v1/items/{id}                    GET     Item detail with tags
# /api/v1/items/{id}/status             GET     Poll item status
# /api/v1/items/{id}/reprocess          POST    Reset to pending and re-run ingestion
# /api/v1/items/{id}/cancel             POST    Cancel an in-flight ingestion
# /api/v1/items/{id}                    DELETE  Remove item, chunks, tags and blob
# /api/v1/items/{id}/tags               PUT     Replace an item's tags
# /api/v1/tags                          GET     List tags
# /api/v1/tags                          POST    Create a tag
# /api/v1/tags/{id}                     DELETE  Delete a tag
# /api/v1/retrieve                      POST    Ranked context for a query
# /api/v1/corpus/stats                  GET     Chunk and item counts
# /api/v1/health                        GET     Health check + provider status
#
# Errors: KnowledgeBaseError subclasses raised here or in the services are
# turned into JSON by ErrorHandlingMiddleware (404/409/413/415/422/500).
# ValueError from input validation is mapped to 422 in the route.
# ----------------------------------------------------------------------
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
)

from tutorkb.api.schemas import (
    ActionResponse,
    BulkSubmissionResponse,
    CancelRequest,
    CorpusStatsResponse,
    CreateTagRequest,
    ErrorResponse,
    HealthResponse,
    ItemListResponse,
    ItemResponse,
    ItemStatusResponse,
    RetrievedContextResponse,
    RetrieveRequest,
    RetrieveResponse,
    SetTagsRequest,
    TagResponse,
)
from tutorkb.interfaces.chunk_store import IChunkStore
from tutorkb.interfaces.embedding_provider import IEmbeddingProvider
from tutorkb.interfaces.item_repository import ISourceItemRepository
from tutorkb.models.bulk import UploadedFile
from tutorkb.models.knowledge import ItemStatus, SourceKind
from tutorkb.pipeline.scheduler import IngestionScheduler
from tutorkb.services.ingestion.bulk_coordinator import BulkSubmissionService
from tutorkb.services.ingestion.ingestion_service import IngestionService
from tutorkb.services.ingestion.submission_service import SubmissionService
from tutorkb.services.retrieval_service import RetrievalService
from tutorkb.utils.errors import InvalidTransitionError, UploadTooLargeError
from tutorkb.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")

_VERSION = "0.1.0"

# Uploads are read in 64 KB increments so oversized files are rejected
# after buffering at most the limit, not the whole payload.
_UPLOAD_CHUNK_SIZE = 64 * 1024


# ---------------------------------------------------------------------------
# Dependency helpers
# ---------------------------------------------------------------------------


def _get_submission_service(request: Request) -> SubmissionService:
    return request.app.state.submission_service


def _get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


def _get_bulk_service(request: Request) -> BulkSubmissionService:
    return request.app.state.bulk_service


def _get_scheduler(request: Request) -> IngestionScheduler:
    return request.app.state.scheduler


def _get_retrieval_service(request: Request) -> RetrievalService:
    return request.app.state.retrieval_service


def _get_chunk_store(request: Request) -> IChunkStore:
    return request.app.state.chunk_store


def _get_item_repository(request: Request) -> ISourceItemRepository:
    return request.app.state.item_repository


def _get_config(request: Request) -> dict[str, Any]:
    return request.app.state.config


SubmissionDep = Annotated[SubmissionService, Depends(_get_submission_service)]
IngestionDep = Annotated[IngestionService, Depends(_get_ingestion_service)]
BulkDep = Annotated[BulkSubmissionService, Depends(_get_bulk_service)]
SchedulerDep = Annotated[IngestionScheduler, Depends(_get_scheduler)]
RetrievalDep = Annotated[RetrievalService, Depends(_get_retrieval_service)]
ChunkStoreDep = Annotated[IChunkStore, Depends(_get_chunk_store)]
ItemRepositoryDep = Annotated[ISourceItemRepository, Depends(_get_item_repository)]
ConfigDep = Annotated[dict, Depends(_get_config)]


async def _read_upload(file: UploadFile, max_bytes: int) -> UploadedFile:
    """Buffer an upload, rejecting it as soon as it exceeds *max_bytes*."""
    file_name = file.filename or "upload"
    parts: list[bytes] = []
    total = 0
    while True:
        part = await file.read(_UPLOAD_CHUNK_SIZE)
        if not part:
            break
        total += len(part)
        if total > max_bytes:
            raise UploadTooLargeError(
                message=f"{file_name} exceeds the upload limit of {max_bytes} bytes"
            )
        parts.append(part)
    return UploadedFile(file_name=file_name, content=b"".join(parts), content_type=file.content_type)


def _max_upload_bytes(config: dict[str, Any]) -> int:
    return int(config.get("storage", {}).get("max_upload_bytes", 20 * 1024 * 1024))


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@router.post(
    "/documents",
    response_model=ItemResponse,
    status_code=202,
    responses={
        413: {"model": ErrorResponse},
        415: {"model": ErrorResponse},
    },
    summary="Upload a document for ingestion",
)
async def submit_document(
    file: UploadFile,
    background_tasks: BackgroundTasks,
    submissions: SubmissionDep,
    scheduler: SchedulerDep,
    config: ConfigDep,
    title: Annotated[str | None, Form()] = None,
    description: Annotated[str | None, Form()] = None,
    tag_ids: Annotated[list[str] | None, Form()] = None,
    uploaded_by: Annotated[str | None, Form()] = None,
) -> ItemResponse:
    """Store the document, create a pending item and ingest it in the background."""
    upload = await _read_upload(file, _max_upload_bytes(config))
    item = await submissions.submit_document(
        upload,
        title=title,
        description=description,
        tag_ids=tag_ids,
        uploaded_by=uploaded_by,
    )
    background_tasks.add_task(scheduler.run, item.id)
    return ItemResponse.from_item(item)


@router.post(
    "/documents/bulk",
    response_model=BulkSubmissionResponse,
    responses={413: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Upload several documents and return the aggregate report",
)
async def submit_documents_bulk(
    files: list[UploadFile],
    bulk: BulkDep,
    config: ConfigDep,
    tag_ids: Annotated[list[str] | None, Form()] = None,
    uploaded_by: Annotated[str | None, Form()] = None,
) -> BulkSubmissionResponse:
    """Submit every file; one bad file never aborts the batch."""
    max_bytes = _max_upload_bytes(config)
    uploads: list[UploadedFile] = []
    for file in files:
        # One byte past the limit is enough for the coordinator to record
        # an oversized file as a per-file failure.
        data = await file.read(max_bytes + 1)
        uploads.append(
            UploadedFile(
                file_name=file.filename or "upload",
                content=data,
                content_type=file.content_type,
            )
        )

    try:
        report = await bulk.submit_bulk(uploads, tag_ids=tag_ids, uploaded_by=uploaded_by)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return BulkSubmissionResponse.from_report(report)


@router.post(
    "/videos",
    response_model=ItemResponse,
    status_code=202,
    responses={415: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Register a video by URL and/or caption file",
)
async def submit_video(
    background_tasks: BackgroundTasks,
    submissions: SubmissionDep,
    scheduler: SchedulerDep,
    config: ConfigDep,
    title: Annotated[str, Form()],
    video_url: Annotated[str | None, Form()] = None,
    caption: UploadFile | None = None,
    description: Annotated[str | None, Form()] = None,
    tag_ids: Annotated[list[str] | None, Form()] = None,
    uploaded_by: Annotated[str | None, Form()] = None,
) -> ItemResponse:
    """Create a pending video item; the transcript is resolved during ingestion."""
    caption_upload = None
    if caption is not None and caption.filename:
        caption_upload = await _read_upload(caption, _max_upload_bytes(config))

    try:
        item = await submissions.submit_video(
            title=title,
            video_url=video_url,
            caption=caption_upload,
            description=description,
            tag_ids=tag_ids,
            uploaded_by=uploaded_by,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    background_tasks.add_task(scheduler.run, item.id)
    return ItemResponse.from_item(item)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@router.get(
    "/items",
    response_model=ItemListResponse,
    summary="List items, newest first",
)
async def list_items(
    submissions: SubmissionDep,
    kind: SourceKind | None = None,
    status: ItemStatus | None = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> ItemListResponse:
    items = await submissions.list_items(kind=kind, status=status, limit=limit)
    return ItemListResponse(items=[ItemResponse.from_item(i) for i in items], total=len(items))


@router.get(
    "/items/recent",
    response_model=ItemListResponse,
    summary="Recent processing activity",
)
async def recent_activity(
    submissions: SubmissionDep,
    config: ConfigDep,
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
) -> ItemListResponse:
    limit = limit or int(config.get("activity", {}).get("recent_limit", 10))
    items = await submissions.recent_activity(limit=limit)
    return ItemListResponse(items=[ItemResponse.from_item(i) for i in items], total=len(items))


@router.get(
    "/items/{item_id}",
    response_model=ItemResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get one item with its tags",
)
async def get_item(item_id: str, submissions: SubmissionDep) -> ItemResponse:
    return ItemResponse.from_item(await submissions.get_item(item_id))


@router.get(
    "/items/{item_id}/status",
    response_model=ItemStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Poll an item's processing status",
)
async def get_item_status(item_id: str, submissions: SubmissionDep) -> ItemStatusResponse:
    return ItemStatusResponse.from_snapshot(await submissions.get_status(item_id))


@router.post(
    "/items/{item_id}/reprocess",
    response_model=ActionResponse,
    status_code=202,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Reset a completed or failed item and ingest it again",
)
async def reprocess_item(
    item_id: str,
    background_tasks: BackgroundTasks,
    ingestion: IngestionDep,
    scheduler: SchedulerDep,
) -> ActionResponse:
    """Chunks are deleted before the response; ingestion runs in the background."""
    item = await ingestion.reset_for_reprocess(item_id)
    background_tasks.add_task(scheduler.run, item_id)
    return ActionResponse(item_id=item_id, action="reprocess", status=item.status)


@router.post(
    "/items/{item_id}/cancel",
    response_model=ActionResponse,
    status_code=202,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Cancel an in-flight ingestion",
)
async def cancel_item(
    item_id: str,
    submissions: SubmissionDep,
    scheduler: SchedulerDep,
    body: CancelRequest | None = None,
) -> ActionResponse:
    item = await submissions.get_item(item_id)
    if not scheduler.cancel(item_id, body.reason if body else None):
        raise InvalidTransitionError(f"Item {item_id} is not being processed ({item.status.value})")
    return ActionResponse(
        item_id=item_id,
        action="cancel",
        status=item.status,
        message="Cancellation requested; the item fails at the next stage boundary.",
    )


@router.delete(
    "/items/{item_id}",
    response_model=ActionResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Delete an item with its chunks, tag links and stored file",
)
async def delete_item(item_id: str, submissions: SubmissionDep) -> ActionResponse:
    await submissions.delete_item(item_id)
    return ActionResponse(item_id=item_id, action="delete")


@router.put(
    "/items/{item_id}/tags",
    response_model=list[TagResponse],
    responses={404: {"model": ErrorResponse}},
    summary="Replace an item's tags",
)
async def set_item_tags(
    item_id: str,
    body: SetTagsRequest,
    submissions: SubmissionDep,
) -> list[TagResponse]:
    tags = await submissions.set_item_tags(item_id, body.tag_ids)
    return [TagResponse.from_tag(t) for t in tags]


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


@router.get("/tags", response_model=list[TagResponse], summary="List tags")
async def list_tags(submissions: SubmissionDep) -> list[TagResponse]:
    return [TagResponse.from_tag(t) for t in await submissions.list_tags()]


@router.post(
    "/tags",
    response_model=TagResponse,
    status_code=201,
    responses={409: {"model": ErrorResponse}},
    summary="Create a tag",
)
async def create_tag(body: CreateTagRequest, submissions: SubmissionDep) -> TagResponse:
    try:
        tag = await submissions.create_tag(body.name, body.color)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return TagResponse.from_tag(tag)


@router.delete(
    "/tags/{tag_id}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a tag",
)
async def delete_tag(tag_id: str, submissions: SubmissionDep) -> None:
    if not await submissions.delete_tag(tag_id):
        raise HTTPException(status_code=404, detail=f"Tag not found: {tag_id}")


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


@router.post(
    "/retrieve",
    response_model=RetrieveResponse,
    summary="Similarity-ranked context for a query",
)
async def retrieve(body: RetrieveRequest, retrieval: RetrievalDep) -> RetrieveResponse:
    """An empty result list is a normal answer, not an error."""
    results = await retrieval.retrieve(body.query, threshold=body.threshold, limit=body.limit)
    return RetrieveResponse(
        query=body.query,
        results=[RetrievedContextResponse(**r.model_dump()) for r in results],
        context=retrieval.format_context(results),
    )


@router.get(
    "/corpus/stats",
    response_model=CorpusStatsResponse,
    summary="Knowledge base statistics",
)
async def corpus_stats(
    chunk_store: ChunkStoreDep,
    item_repository: ItemRepositoryDep,
) -> CorpusStatsResponse:
    stats = await chunk_store.get_stats()
    return CorpusStatsResponse(
        total_chunks=stats.total_chunks,
        total_sources=stats.total_sources,
        chunks_by_kind=stats.chunks_by_kind,
        items_by_status=await item_repository.count_by_status(),
        embedding_dimension=stats.embedding_dimension,
    )


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Application health check",
)
async def health_check(request: Request) -> HealthResponse:
    """Return application health, version, and provider availability."""
    providers: dict[str, Any] = {}

    embedding_provider: IEmbeddingProvider | None = getattr(
        request.app.state, "embedding_provider", None
    )
    if embedding_provider is not None:
        providers["embedding"] = embedding_provider.is_available()
        providers["embedding_provider"] = embedding_provider.get_provider_name()

    chunk_store: IChunkStore | None = getattr(request.app.state, "chunk_store", None)
    if chunk_store is not None:
        try:
            stats = await chunk_store.get_stats()
            providers["chunk_store"] = True
            providers["chunks"] = stats.total_chunks
        except Exception as exc:
            _logger.warning("health_chunk_store_failed", error=str(exc))
            providers["chunk_store"] = False
            providers["chunks"] = 0

    if providers.get("chunk_store") and providers.get("embedding"):
        status = "healthy"
    elif providers.get("chunk_store"):
        status = "degraded"
    else:
        status = "unhealthy"

    return HealthResponse(status=status, version=_VERSION, providers=providers)
