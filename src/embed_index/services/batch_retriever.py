"""Resumable retrieval for a directory of query images."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from embed_index.core.logging import get_logger
from embed_index.core.models import ImageRef
from embed_index.core.retry import with_retry
from embed_index.schemas.search import CandidateItem
from embed_index.services.progress_store import read_json_or_none, write_json_atomic
from embed_index.services.rate_limited_embedder import RateLimitedEmbedder
from embed_index.services.retriever import Retriever
from embed_index.services.work_items import iter_image_files

logger = get_logger(__name__)


class BatchRetriever:
    """Retrieves candidates for every query image not yet present in the results file.

    Results are a JSON object ``{query_path: [candidate, ...]}`` written as an atomic
    snapshot every ``checkpoint_every`` queries and at the end of the run.
    """

    def __init__(
        self,
        retriever: Retriever,
        embedder: RateLimitedEmbedder,
        results_path: Path | str,
        *,
        checkpoint_every: int = 10,
        search_attempts: int = 3,
        search_delay: float = 0.5,
    ):
        self.retriever = retriever
        self.embedder = embedder
        self.results_path = Path(results_path)
        self.checkpoint_every = checkpoint_every
        self.search_attempts = search_attempts
        self.search_delay = search_delay

    def load_results(self) -> dict[str, Any]:
        data = read_json_or_none(self.results_path)
        if isinstance(data, dict):
            return data
        if data is not None:
            logger.warning(f"Results file {self.results_path} has an unexpected shape; starting fresh")
        return {}

    async def _save(self, results: dict[str, Any]) -> None:
        await asyncio.to_thread(write_json_atomic, self.results_path, dict(results))

    async def run(
        self,
        query_dir: Path | str,
        k: int,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> tuple[int, int]:
        """Process pending queries; returns ``(processed, failed)``."""
        stop_event = stop_event or asyncio.Event()
        results = self.load_results()
        processed = 0
        failed = 0

        try:
            for path in iter_image_files(Path(query_dir)):
                if stop_event.is_set():
                    logger.warning("Stop requested; no further queries scheduled")
                    break
                key = str(path)
                if key in results:
                    continue
                try:
                    query_vector = await self.embedder.embed(ImageRef(path=key))
                    hits = await with_retry(
                        lambda: self.retriever.retrieve(query_vector, k),
                        self.search_attempts,
                        self.search_delay,
                    )
                except Exception as exc:
                    failed += 1
                    logger.warning(f"Failed to retrieve for {key}: {exc}")
                    continue

                results[key] = [CandidateItem.from_candidate(hit).model_dump() for hit in hits]
                processed += 1
                if processed % self.checkpoint_every == 0:
                    await self._save(results)
        finally:
            await self._save(results)

        logger.info(f"Batch retrieval complete: processed={processed} failed={failed}")
        return processed, failed
