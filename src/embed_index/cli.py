"""Command line entry point for indexing and retrieval.

Examples:
  # Index a directory of images (label = parent directory name)
  embed-index index-images --dir ./data/images --source products

  # Index rows of a JSON/JSONL file, several photos plus a text per record
  embed-index index-rows --rows recipes.jsonl --source recipes --text-field description

  # Coarse retrieval, then rerank the saved candidates with the fine model
  embed-index retrieve --image query.jpg --topk 50 --out candidates.json
  embed-index rerank --image query.jpg --candidates candidates.json --topn 10

  # Resumable retrieval for every image in a directory
  embed-index retrieve-batch --queries ./queries --topk 20 --out results.json

  # Progress and index counts; provider configuration check
  embed-index status --dir ./data/images --source products
  embed-index validate

  # Serve POST /api/v1/search
  embed-index serve --port 8000

Exit codes: 0 success (or nothing to do), 1 pending work but nothing succeeded,
2 configuration error, 130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import Any

import uvicorn

from embed_index.adapters.qdrant_mapper import equality_filter
from embed_index.config import Settings, get_settings
from embed_index.core.constants import K_SOURCE
from embed_index.core.exceptions import ConfigurationError
from embed_index.core.logging import get_logger, setup_logging
from embed_index.core.models import EmbeddingInput, ImageRef, TextRef, WorkItem
from embed_index.schemas.search import CandidateItem
from embed_index.services.batch_retriever import BatchRetriever
from embed_index.services.embedding_client import require_embeddings_provider
from embed_index.services.factory import (
    build_batch_indexer,
    build_embedder,
    build_search_service,
    build_vector_repository,
)
from embed_index.services.progress_store import ProgressStore, read_json_or_none, write_json_atomic
from embed_index.services.qdrant_service import QdrantService
from embed_index.services.reranker import Reranker
from embed_index.services.work_items import discover_images, items_from_rows, load_rows

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    """Set ``stop_event`` on SIGINT/SIGTERM so in-flight work can finish and checkpoint."""
    loop = asyncio.get_running_loop()

    def signal_handler(sig: int, frame: Any) -> None:
        logger.info(f"Received signal {sig}, finishing in-flight work and saving progress...")
        loop.call_soon_threadsafe(stop_event.set)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


def _query_input(args: argparse.Namespace) -> EmbeddingInput:
    if args.text is not None:
        return TextRef(text=args.text)
    if args.image.startswith(("http://", "https://", "gs://")):
        return ImageRef(url=args.image)
    return ImageRef(path=args.image)


def _query_label(args: argparse.Namespace) -> str:
    return args.text if args.text is not None else args.image


def _emit(data: dict[str, Any], out: str | None) -> None:
    if out:
        write_json_atomic(Path(out), data)
        logger.info(f"Wrote results to {out}")
    else:
        print(json.dumps(data, indent=2, ensure_ascii=False))


def _load_candidates(path: Path) -> list[CandidateItem]:
    """Read candidates written by ``retrieve`` (``{"candidates": [...]}``) or a bare list."""
    data = read_json_or_none(path)
    if isinstance(data, dict):
        data = data.get("candidates")
    if not isinstance(data, list):
        raise ValueError(f"{path} does not contain a candidate list")
    return [CandidateItem.model_validate(entry) for entry in data]


async def _index(settings: Settings, args: argparse.Namespace, items: Sequence[WorkItem]) -> int:
    if args.concurrency is not None:
        settings = settings.model_copy(update={"indexer_concurrency": args.concurrency})

    embedder = build_embedder(settings)
    progress = ProgressStore(args.progress or settings.progress_path)
    if args.restart:
        logger.info(f"Clearing progress at {progress.path}")
        await progress.clear()

    qdrant_service = QdrantService(settings)
    try:
        repository = build_vector_repository(settings, qdrant_service)
        indexer = build_batch_indexer(settings, embedder, repository, progress)

        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)
        result = await indexer.run(items, stop_event=stop_event)
    finally:
        await qdrant_service.aclose()

    logger.info(f"Run finished: {result.summary()}")
    return result.exit_code


async def _index_images(settings: Settings, args: argparse.Namespace) -> int:
    root = Path(args.dir)
    items = discover_images(root, args.source or root.name)
    return await _index(settings, args, items)


async def _index_rows(settings: Settings, args: argparse.Namespace) -> int:
    rows = load_rows(args.rows)
    items = items_from_rows(
        rows,
        args.source,
        id_field=args.id_field,
        label_field=args.label_field,
        image_paths_field=args.image_paths_field,
        text_field=args.text_field,
    )
    return await _index(settings, args, items)


async def _retrieve(settings: Settings, args: argparse.Namespace) -> int:
    embedder = build_embedder(settings)
    qdrant_service = QdrantService(settings)
    try:
        repository = build_vector_repository(settings, qdrant_service)
        service = build_search_service(settings, embedder, repository)
        candidates = await service.retriever.retrieve_for(
            _query_input(args),
            args.topk or settings.default_top_k,
            {"source": args.source} if args.source else None,
        )
    finally:
        await qdrant_service.aclose()

    _emit(
        {
            "query": _query_label(args),
            "candidates": [CandidateItem.from_candidate(c).model_dump() for c in candidates],
        },
        args.out,
    )
    return EXIT_OK


async def _rerank(settings: Settings, args: argparse.Namespace) -> int:
    candidates = [item.to_candidate() for item in _load_candidates(Path(args.candidates))]
    if not candidates:
        logger.info("No candidates to rerank")

    embedder = build_embedder(settings)
    reranker = Reranker(embedder, concurrency=settings.rerank_concurrency)
    ranked = await reranker.rerank(_query_input(args), candidates, args.topn or settings.default_top_n)

    _emit(
        {
            "query": _query_label(args),
            "ranked": [CandidateItem.from_ranked(r).model_dump() for r in ranked],
        },
        args.out,
    )
    return EXIT_OK


async def _retrieve_batch(settings: Settings, args: argparse.Namespace) -> int:
    embedder = build_embedder(settings)
    qdrant_service = QdrantService(settings)
    try:
        repository = build_vector_repository(settings, qdrant_service)
        service = build_search_service(settings, embedder, repository)
        batch = BatchRetriever(
            service.retriever,
            embedder,
            args.out,
            checkpoint_every=settings.progress_checkpoint_every,
            search_attempts=settings.retry_attempts,
            search_delay=settings.retry_delay,
        )

        stop_event = asyncio.Event()
        _install_signal_handlers(stop_event)
        processed, failed = await batch.run(
            args.queries, args.topk or settings.default_top_k, stop_event=stop_event
        )
    finally:
        await qdrant_service.aclose()

    if stop_event.is_set():
        return EXIT_INTERRUPTED
    if processed == 0 and failed > 0:
        return EXIT_FAILED
    return EXIT_OK


async def _index_report(qdrant_service: QdrantService, source: str | None) -> dict[str, Any]:
    report: dict[str, Any] = {"collection": qdrant_service.col}
    try:
        if not await qdrant_service.collection_exists():
            report.update(exists=False, records=0, by_source={})
            return report
        report.update(
            exists=True,
            records=await qdrant_service.count(),
            by_source=await qdrant_service.count_by(K_SOURCE),
        )
        if source:
            report["source_records"] = await qdrant_service.count(equality_filter({K_SOURCE: source}))
    except Exception as e:
        logger.warning(f"Could not read index status: {e}")
        report["error"] = str(e)
    return report


async def _status(settings: Settings, args: argparse.Namespace) -> int:
    progress = ProgressStore(args.progress or settings.progress_path)
    progress.load()
    progress_report: dict[str, Any] = {
        "path": str(progress.path),
        "exists": progress.path.exists(),
        "done": len(progress),
    }
    if args.dir:
        root = Path(args.dir)
        items = discover_images(root, args.source or root.name)
        done = sum(1 for item in items if progress.is_done(item.id))
        progress_report.update(
            discovered=len(items),
            remaining=len(items) - done,
            percent=round(100 * done / len(items), 1) if items else 100.0,
        )

    qdrant_service = QdrantService(settings)
    try:
        index_report = await _index_report(qdrant_service, args.source)
    finally:
        await qdrant_service.aclose()

    _emit({"progress": progress_report, "index": index_report}, args.out)
    return EXIT_OK


async def _validate(settings: Settings, args: argparse.Namespace) -> int:
    if settings.fallback_api_key:
        fallback = "OK" if settings.fallback_base_url else "INCOMPLETE (set FALLBACK_BASE_URL)"
    else:
        fallback = "MISSING (optional, set FALLBACK_API_KEY and FALLBACK_BASE_URL)"
    _emit(
        {
            "providers": {
                "primary": "OK" if settings.openai_api_key else "MISSING (set OPENAI_API_KEY)",
                "fallback": fallback,
            },
            "qdrant": settings.qdrant_location or settings.qdrant_url,
            "progress_file": {
                "path": str(settings.progress_path),
                "exists": Path(settings.progress_path).exists(),
            },
        },
        args.out,
    )
    require_embeddings_provider(settings)
    return EXIT_OK


def _add_query_args(parser: argparse.ArgumentParser) -> None:
    query = parser.add_mutually_exclusive_group(required=True)
    query.add_argument("--image", help="Query image path or URL")
    query.add_argument("--text", help="Query text")
    parser.add_argument("--out", help="Write JSON results here instead of stdout")


def _add_index_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--progress", help="Progress file (default: PROGRESS_PATH setting)")
    parser.add_argument(
        "--restart",
        action="store_true",
        help="Discard saved progress and reprocess every item",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        choices=range(1, 5),
        metavar="{1..4}",
        help="Items processed concurrently (default: INDEXER_CONCURRENCY setting)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="embed-index",
        description="Embed images and texts into a vector index and search it",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("\n\n", 1)[1] if __doc__ else None,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("index-images", help="Index every image under a directory")
    p.add_argument("--dir", required=True, help="Root directory to scan for .jpg/.jpeg/.png")
    p.add_argument("--source", help="Source collection name (default: directory name)")
    _add_index_args(p)
    p.set_defaults(handler=_index_images)

    p = sub.add_parser("index-rows", help="Index records from a JSON array or JSONL file")
    p.add_argument("--rows", required=True, help="JSON array or .jsonl/.ndjson file")
    p.add_argument("--source", required=True, help="Source collection name")
    p.add_argument("--id-field", default="id", help="Row field holding the record ID")
    p.add_argument("--label-field", default="title", help="Row field holding the label")
    p.add_argument("--image-paths-field", default="image_paths", help="Row field listing image paths")
    p.add_argument("--text-field", help="Row field embedded as text, after the images")
    _add_index_args(p)
    p.set_defaults(handler=_index_rows)

    p = sub.add_parser("retrieve", help="Coarse ANN retrieval for one query")
    _add_query_args(p)
    p.add_argument("--topk", type=int, help="Number of candidates (default: DEFAULT_TOP_K setting)")
    p.add_argument("--source", help="Only return records from this source collection")
    p.set_defaults(handler=_retrieve)

    p = sub.add_parser("rerank", help="Rerank saved candidates with the fine embedding model")
    _add_query_args(p)
    p.add_argument("--candidates", required=True, help="JSON file written by 'retrieve'")
    p.add_argument("--topn", type=int, help="Number of results kept (default: DEFAULT_TOP_N setting)")
    p.set_defaults(handler=_rerank)

    p = sub.add_parser("retrieve-batch", help="Resumable retrieval for a directory of query images")
    p.add_argument("--queries", required=True, help="Directory of query images")
    p.add_argument("--topk", type=int, help="Candidates per query (default: DEFAULT_TOP_K setting)")
    p.add_argument("--out", required=True, help="Results file, also used to resume")
    p.set_defaults(handler=_retrieve_batch)

    p = sub.add_parser("status", help="Report indexing progress and indexed record counts")
    p.add_argument("--progress", help="Progress file (default: PROGRESS_PATH setting)")
    p.add_argument("--dir", help="Image directory to compare the progress against")
    p.add_argument("--source", help="Source collection name (default: directory name)")
    p.add_argument("--out", help="Write the JSON report here instead of stdout")
    p.set_defaults(handler=_status)

    p = sub.add_parser("validate", help="Check which embedding providers are configured")
    p.add_argument("--out", help="Write the JSON report here instead of stdout")
    p.set_defaults(handler=_validate)

    p = sub.add_parser("serve", help="Run the search API")
    p.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    p.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    p.set_defaults(handler=None)

    return parser


def serve(host: str, port: int, *, verbose: bool = False) -> int:
    """Serve the FastAPI app with uvicorn until interrupted."""
    uvicorn.run(
        "embed_index.main:app",
        host=host,
        port=port,
        log_level="debug" if verbose else "info",
    )
    return EXIT_OK


def run_command(
    handler: Callable[[Settings, argparse.Namespace], Awaitable[int]],
    settings: Settings,
    args: argparse.Namespace,
) -> int:
    """Run one subcommand and map failures to exit codes."""
    try:
        return asyncio.run(handler(settings, args))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}")
        return EXIT_CONFIG
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        return EXIT_FAILED


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point."""
    args = build_parser().parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)
    if args.command == "serve":
        return serve(args.host, args.port, verbose=args.verbose)
    return run_command(args.handler, get_settings(), args)


if __name__ == "__main__":
    sys.exit(main())
