"""Resumable batch embedding pipeline."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator, Sequence

import numpy as np

from embed_index.core.constants import MAX_INPUTS_PER_ITEM
from embed_index.core.exceptions import DataIntegrityError
from embed_index.core.logging import get_logger
from embed_index.core.models import BatchResult, EmbeddingInput, EmbeddingRecord, WorkItem
from embed_index.core.retry import with_retry
from embed_index.repositories.vector_repository import VectorIndex
from embed_index.services.progress_store import ProgressStore
from embed_index.services.rate_limited_embedder import RateLimitedEmbedder

logger = get_logger(__name__)


def mean_vector(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Element-wise mean of equally sized vectors, as float32."""
    dims = {v.shape for v in vectors}
    if len(dims) != 1:
        raise DataIntegrityError(f"Cannot average embeddings of different shapes: {sorted(dims)}")
    return np.mean(np.stack(vectors).astype(np.float32), axis=0, dtype=np.float32)


class BatchIndexer:
    """Embeds work items not yet marked done and upserts them one by one.

    A failing item is logged and counted, never fatal. Progress is flushed every
    ``checkpoint_every`` completions and always once at the end of a run, including
    when the run is stopped or cancelled.
    """

    def __init__(
        self,
        *,
        embedder: RateLimitedEmbedder,
        vector_index: VectorIndex,
        progress: ProgressStore,
        column: str,
        checkpoint_every: int = 10,
        concurrency: int = 1,
        upsert_attempts: int = 3,
        upsert_delay: float = 0.5,
    ):
        if checkpoint_every < 1:
            raise ValueError("checkpoint_every must be >= 1")
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.embedder = embedder
        self.vector_index = vector_index
        self.progress = progress
        self.column = column
        self.checkpoint_every = checkpoint_every
        self.concurrency = concurrency
        self.upsert_attempts = upsert_attempts
        self.upsert_delay = upsert_delay

    async def run(
        self,
        items: Sequence[WorkItem],
        *,
        stop_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Index ``items`` in discovery order and return the run's counters."""
        if not self.progress.loaded:
            self.progress.load()

        stop_event = stop_event or asyncio.Event()
        result = BatchResult(total=len(items))
        pending = iter(items)

        logger.info(
            f"Indexing {len(items)} items "
            f"({len(self.progress)} already done, concurrency={self.concurrency})"
        )
        try:
            await asyncio.gather(
                *(self._worker(pending, result, stop_event) for _ in range(self.concurrency))
            )
        except asyncio.CancelledError:
            result.cancelled = True
            raise
        finally:
            # A stop after every item reached an outcome cancels nothing.
            if stop_event.is_set() and result.accounted < result.total:
                result.cancelled = True
            await self.progress.flush()
            logger.info(f"Progress saved to {self.progress.path} ({len(self.progress)} done)")

        if result.cancelled:
            logger.warning(f"Indexing stopped early: {result.summary()}")
            return result

        if result.processed:
            try:
                await self.vector_index.create_index(self.column)
            except Exception as exc:
                logger.warning(f"Index build failed, search will run unindexed: {exc}")

        logger.info(f"Indexing complete. {result.summary()}")
        return result

    async def _worker(
        self,
        pending: Iterator[WorkItem],
        result: BatchResult,
        stop_event: asyncio.Event,
    ) -> None:
        while not stop_event.is_set():
            item = next(pending, None)
            if item is None:
                return
            await self._process(item, result)

    async def _process(self, item: WorkItem, result: BatchResult) -> None:
        if self.progress.is_done(item.id):
            result.already_done += 1
            return

        inputs = item.inputs[:MAX_INPUTS_PER_ITEM]
        if len(item.inputs) > MAX_INPUTS_PER_ITEM:
            logger.debug(
                f"Item {item.id} has {len(item.inputs)} inputs; using the first {MAX_INPUTS_PER_ITEM}"
            )

        try:
            vector = await self._embed_item(item, inputs)
            if vector is None:
                result.skipped += 1
                logger.warning(f"Skipping {item.id}: no input could be embedded")
                return

            record = EmbeddingRecord(
                id=item.id,
                label=item.label,
                source_collection=item.source,
                representative_path=item.representative_path,
                vector=vector,
                text=item.text,
                image_paths=item.image_paths,
                metadata=dict(item.metadata),
            )
            await with_retry(
                lambda: self.vector_index.upsert([record]),
                self.upsert_attempts,
                self.upsert_delay,
            )
        except Exception as exc:
            result.failed += 1
            logger.warning(f"Failed to index {item.id}: {exc}")
            return

        self.progress.mark_done(item.id)
        result.processed += 1
        if result.processed % self.checkpoint_every == 0:
            await self.progress.flush()
            logger.info(f"Processed {result.processed}/{result.total} items...")

    async def _embed_item(
        self,
        item: WorkItem,
        inputs: Sequence[EmbeddingInput],
    ) -> np.ndarray | None:
        """Embedding for the item, or None when nothing could be embedded.

        A single-input item propagates its failure; for multi-input items each input
        may fail on its own and the successful embeddings are averaged.
        """
        if not inputs:
            return None
        if len(inputs) == 1:
            return await self.embedder.embed(inputs[0])

        vectors: list[np.ndarray] = []
        for ref in inputs:
            try:
                vectors.append(await self.embedder.embed(ref))
            except Exception as exc:
                logger.warning(f"Input of {item.id} failed to embed: {exc}")
        if not vectors:
            return None
        return mean_vector(vectors)
