# =============================================================================
# tutorkb/cli/ingest.py -- CLI for Knowledge Base Administration
# =============================================================================
#
# Operator-facing command line for the tutorKB knowledge base.  It drives
# the same services as the HTTP API (built by tutorkb/components.py) but
# runs each ingestion to completion in the foreground, so the exit code
# reflects the item's terminal status.
#
# Supported subcommands:
#
#   document  -- Submit and ingest one local document (TXT, MD, PDF, DOCX)
#   bulk      -- Submit and ingest many files and/or whole directories
#   video     -- Register a video by URL and/or caption file, then ingest it
#   reprocess -- Drop an item's chunks and ingest it again
#   status    -- Show an item's current status snapshot
#   list      -- List items, optionally filtered by kind and status
#   delete    -- Remove an item together with its chunks and stored files
#   retrieve  -- Run a similarity query and print the assembled context
#   stats     -- Display corpus statistics (chunks, sources, item statuses)
#
# Usage examples:
#   python -m tutorkb.cli.ingest document --file notes/fractions.pdf \
#       --title "Fractions, Chapter 3" --tag <tag-id>
#   python -m tutorkb.cli.ingest bulk --path handouts/ --concurrency 2
#   python -m tutorkb.cli.ingest video --title "Lecture 4" \
#       --url https://www.youtube.com/watch?v=abc123xyz00
#   python -m tutorkb.cli.ingest retrieve "how do I add fractions?" --limit 5
#   python -m tutorkb.cli.ingest stats
#
# The CLI never sweeps "processing" items on startup; a server sharing the
# same database may still be working on them.
# =============================================================================

"""Standalone CLI for building and querying the tutorKB knowledge base.

Usage::

    python -m tutorkb.cli.ingest document --file /path/to/handout.pdf

    python -m tutorkb.cli.ingest bulk --path /path/to/handouts/

    python -m tutorkb.cli.ingest video --title "Lecture 4" --caption lecture4.vtt

    python -m tutorkb.cli.ingest stats
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from tutorkb.components import build_components, close_components, initialize_components
from tutorkb.config.loader import load_config
from tutorkb.config.settings import Settings
from tutorkb.models.bulk import BulkProgress, UploadedFile
from tutorkb.models.knowledge import ItemStatus, SourceKind
from tutorkb.models.rag import IngestionResult
from tutorkb.services.ingestion.extractors.text_extractor import SUPPORTED_EXTENSIONS
from tutorkb.services.retrieval_service import RetrievalService
from tutorkb.utils.errors import KnowledgeBaseError
from tutorkb.utils.logging import configure_logging


def _read_file(path: Path) -> UploadedFile:
    """Load a local file; its format is resolved from the extension."""
    return UploadedFile(file_name=path.name, content=path.read_bytes())


def _collect_files(paths: list[str], recursive: bool) -> list[Path]:
    """Expand files and directories into a sorted, de-duplicated file list.

    Directory members are filtered to known extensions; explicitly named
    files are always kept so unsupported ones show up in the report.
    """
    collected: list[Path] = []
    seen: set[Path] = set()
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            pattern = "**/*" if recursive else "*"
            members = sorted(
                p for p in path.glob(pattern)
                if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
            )
        else:
            members = [path]
        for member in members:
            resolved = member.resolve()
            if resolved not in seen:
                seen.add(resolved)
                collected.append(member)
    return collected


def _print_result(result: IngestionResult) -> int:
    if result.status == ItemStatus.COMPLETED.value:
        print("\nIngestion complete:")
        print(f"  Item ID:        {result.item_id}")
        print(f"  Chunks created: {result.chunk_count}")
        print(f"  Characters:     {result.total_characters}")
        print(f"  Time:           {result.ingestion_time:.2f}s")
        return 0

    print(f"\nIngestion {result.status}:", file=sys.stderr)
    print(f"  Item ID: {result.item_id}", file=sys.stderr)
    if result.error_kind:
        print(f"  Error:   [{result.error_kind}] {result.error_message}", file=sys.stderr)
    return 1


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_document(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Submit one document and ingest it in the foreground."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    print(f"Ingesting document: {path.name}")
    item = await components["submission_service"].submit_document(
        _read_file(path),
        title=args.title,
        description=args.description,
        tag_ids=args.tag or None,
        uploaded_by=args.uploaded_by,
    )
    print(f"  Item ID: {item.id}")
    result = await components["ingestion_service"].ingest(item.id)
    return _print_result(result)


async def _handle_bulk(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Submit every file under the given paths and print the aggregate report."""
    paths = _collect_files(args.path, recursive=args.recursive)
    if not paths:
        print("No supported files found.", file=sys.stderr)
        return 1

    files = [_read_file(p) for p in paths]
    print(f"Bulk ingesting {len(files)} file(s)")

    def _on_progress(progress: BulkProgress) -> None:
        print(
            f"  [{progress.current}/{progress.total}] {progress.current_file_name} "
            f"(ok: {len(progress.succeeded)}, failed: {len(progress.failed)})"
        )

    report = await components["bulk_service"].submit_bulk(
        files,
        tag_ids=args.tag or None,
        uploaded_by=args.uploaded_by,
        on_progress=_on_progress,
    )

    print(f"\n{report.title}")
    print(f"  {report.message}")
    for success in report.succeeded:
        print(f"  OK      {success.file_name:<40} {success.chunk_count} chunks")
    for failure in report.failed:
        kind = f"[{failure.error_kind}] " if failure.error_kind else ""
        print(f"  FAILED  {failure.file_name:<40} {kind}{failure.reason}")
    return 0 if not report.failed else 1


async def _handle_video(args: argparse.Namespace, components: dict[str, Any]) -> int:
    """Register a video source and ingest it in the foreground."""
    caption = None
    if args.caption:
        caption_path = Path(args.caption)
        if not caption_path.is_file():
            print(f"Error: caption file not found: {caption_path}", file=sys.stderr)
            return 1
        caption = _read_file(caption_path)

    print(f"Ingesting video: {args.title}")
    item = await components["submission_service"].submit_video(
        title=args.title,
        video_url=args.url,
        caption=caption,
        description=args.description,
        tag_ids=args.tag or None,
        uploaded_by=args.uploaded_by,
    )
    print(f"  Item ID:  {item.id}")
    print(f"  Platform: {item.platform or 'unknown'}")
    result = await components["ingestion_service"].ingest(item.id)
    return _print_result(result)


async def _handle_reprocess(args: argparse.Namespace, components: dict[str, Any]) -> int:
    print(f"Reprocessing item: {args.item_id}")
    result = await components["ingestion_service"].reprocess(args.item_id)
    return _print_result(result)


async def _handle_status(args: argparse.Namespace, components: dict[str, Any]) -> int:
    snapshot = await components["submission_service"].get_status(args.item_id)
    print(f"Item:       {snapshot.item_id}")
    print(f"Status:     {snapshot.status.value}")
    print(f"Chunks:     {snapshot.chunk_count}")
    print(f"Updated at: {snapshot.updated_at.isoformat()}")
    if snapshot.error_kind:
        print(f"Error:      [{snapshot.error_kind}] {snapshot.error_message}")
    return 0


async def _handle_list(args: argparse.Namespace, components: dict[str, Any]) -> int:
    items = await components["submission_service"].list_items(
        kind=SourceKind(args.kind) if args.kind else None,
        status=ItemStatus(args.status) if args.status else None,
        limit=args.limit,
    )
    if not items:
        print("No items found.")
        return 0

    print(f"{'ID':<34} {'KIND':<9} {'STATUS':<11} {'CHUNKS':>6}  TITLE")
    for item in items:
        print(
            f"{item.id:<34} {item.kind.value:<9} {item.status.value:<11} "
            f"{item.chunk_count:>6}  {item.title}"
        )
    return 0


async def _handle_delete(args: argparse.Namespace, components: dict[str, Any]) -> int:
    item = await components["submission_service"].get_item(args.item_id)
    if not args.yes:
        answer = input(f"Delete '{item.title}' and its {item.chunk_count} chunks? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("  Aborted.")
            return 0

    await components["submission_service"].delete_item(args.item_id)
    print(f"Deleted item {args.item_id}.")
    return 0


async def _handle_retrieve(args: argparse.Namespace, components: dict[str, Any]) -> int:
    results = await components["retrieval_service"].retrieve(
        args.query,
        threshold=args.threshold,
        limit=args.limit,
    )
    if not results:
        print("No matching context found.")
        return 0

    print(RetrievalService.format_context(results))
    return 0


async def _handle_stats(args: argparse.Namespace, components: dict[str, Any]) -> int:  # noqa: ARG001
    stats = await components["chunk_store"].get_stats()
    by_status = await components["item_repository"].count_by_status()

    print("Corpus Statistics")
    print("=" * 40)
    print(f"  Total chunks:     {stats.total_chunks}")
    print(f"  Total sources:    {stats.total_sources}")
    print(f"  Embedding dim:    {stats.embedding_dimension}")

    if stats.chunks_by_kind:
        print("\n  Chunks by kind:")
        for kind, count in sorted(stats.chunks_by_kind.items()):
            print(f"    {kind:<15} {count}")

    if by_status:
        print("\n  Items by status:")
        for status, count in sorted(by_status.items()):
            print(f"    {status:<15} {count}")

    return 0


_HANDLERS = {
    "document": _handle_document,
    "bulk": _handle_bulk,
    "video": _handle_video,
    "reprocess": _handle_reprocess,
    "status": _handle_status,
    "list": _handle_list,
    "delete": _handle_delete,
    "retrieve": _handle_retrieve,
    "stats": _handle_stats,
}


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_submission_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tag", action="append", default=[], help="Tag ID to attach (repeatable)"
    )
    parser.add_argument("--uploaded-by", default=None, help="Submitter identity to record")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the knowledge base CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m tutorkb.cli.ingest",
        description="Manage and query the tutorKB knowledge base.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Knowledge base commands")

    # -- document --
    doc_parser = subparsers.add_parser("document", help="Ingest a local document")
    doc_parser.add_argument("--file", required=True, help="Path to the document")
    doc_parser.add_argument("--title", default=None, help="Title (defaults to the file name)")
    doc_parser.add_argument("--description", default=None, help="Optional description")
    _add_submission_options(doc_parser)

    # -- bulk --
    bulk_parser = subparsers.add_parser("bulk", help="Ingest many files or directories")
    bulk_parser.add_argument(
        "--path", required=True, nargs="+", help="Files and/or directories to ingest"
    )
    bulk_parser.add_argument(
        "--recursive", action="store_true", help="Descend into subdirectories"
    )
    bulk_parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Files processed at once (default: bulk.concurrency from config)",
    )
    _add_submission_options(bulk_parser)

    # -- video --
    video_parser = subparsers.add_parser("video", help="Ingest a video by URL or caption file")
    video_parser.add_argument("--title", required=True, help="Video title")
    video_parser.add_argument("--url", default=None, help="Video page URL")
    video_parser.add_argument("--caption", default=None, help="Path to an SRT or VTT file")
    video_parser.add_argument("--description", default=None, help="Optional description")
    _add_submission_options(video_parser)

    # -- reprocess / status / delete --
    reprocess_parser = subparsers.add_parser("reprocess", help="Re-ingest an existing item")
    reprocess_parser.add_argument("item_id", help="Source item ID")

    status_parser = subparsers.add_parser("status", help="Show an item's status")
    status_parser.add_argument("item_id", help="Source item ID")

    delete_parser = subparsers.add_parser("delete", help="Delete an item and its chunks")
    delete_parser.add_argument("item_id", help="Source item ID")
    delete_parser.add_argument(
        "--yes", action="store_true", help="Skip the confirmation prompt"
    )

    # -- list --
    list_parser = subparsers.add_parser("list", help="List source items")
    list_parser.add_argument(
        "--kind", choices=[k.value for k in SourceKind], default=None, help="Filter by kind"
    )
    list_parser.add_argument(
        "--status", choices=[s.value for s in ItemStatus], default=None, help="Filter by status"
    )
    list_parser.add_argument("--limit", type=int, default=50, help="Maximum rows to show")

    # -- retrieve --
    retrieve_parser = subparsers.add_parser("retrieve", help="Query the knowledge base")
    retrieve_parser.add_argument("query", help="Natural-language query")
    retrieve_parser.add_argument(
        "--threshold", type=float, default=None, help="Minimum cosine similarity"
    )
    retrieve_parser.add_argument("--limit", type=int, default=None, help="Maximum chunks")

    # -- stats --
    subparsers.add_parser("stats", help="Show corpus statistics")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace, app_settings: Settings, app_config: dict) -> int:
    components = build_components(app_settings, app_config)
    try:
        await initialize_components(components, sweep_interrupted=False)
        return await _HANDLERS[args.command](args, components)
    except KnowledgeBaseError as exc:
        print(f"Error: [{exc.kind}] {exc.message}", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await close_components(components)


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the knowledge base tool.

    Parses the subcommand, loads Settings and the YAML config, and runs the
    matching handler inside one event loop.  Bulk runs always wait for each
    item's ingestion so the printed report shows terminal statuses.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    configure_logging(log_level=app_settings.log_level, json_output=False)

    app_config = load_config(settings=app_settings)
    app_config["bulk"]["await_ingestion"] = True
    if getattr(args, "concurrency", None) is not None:
        app_config["bulk"]["concurrency"] = max(1, args.concurrency)

    exit_code = asyncio.run(_run(args, app_settings, app_config))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
