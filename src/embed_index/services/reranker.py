"""Second-stage reranking with a higher-fidelity embedding."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import numpy as np

from embed_index.core.exceptions import DataIntegrityError
from embed_index.core.logging import get_logger
from embed_index.core.models import Candidate, EmbeddingInput, RankedCandidate
from embed_index.services.rate_limited_embedder import RateLimitedEmbedder

logger = get_logger(__name__)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """``dot(a, b) / (|a| * |b|)`` in float32; 0.0 when either vector has zero norm."""
    if a.shape != b.shape:
        raise DataIntegrityError(f"Vector shapes differ: {a.shape} vs {b.shape}")
    a32 = a.astype(np.float32, copy=False)
    b32 = b.astype(np.float32, copy=False)
    denom = float(np.linalg.norm(a32)) * float(np.linalg.norm(b32))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a32, b32) / denom)


def rank_candidates(
    candidates: Sequence[Candidate],
    scores: Sequence[float | None],
) -> list[RankedCandidate]:
    """Stable descending sort by score; ``None`` scores drop the candidate.

    Equal scores keep their coarse ANN order.
    """
    ranked = [
        RankedCandidate(candidate=candidate, rerank_score=score)
        for candidate, score in zip(candidates, scores, strict=True)
        if score is not None
    ]
    return sorted(ranked, key=lambda rc: rc.rerank_score, reverse=True)


class Reranker:
    """Rescores coarse candidates by cosine similarity of fine embeddings."""

    def __init__(self, embedder: RateLimitedEmbedder, *, concurrency: int = 4):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.embedder = embedder
        self.concurrency = concurrency

    async def rerank(
        self,
        query: EmbeddingInput,
        candidates: Sequence[Candidate],
        top_n: int | None = None,
    ) -> list[RankedCandidate]:
        """Return candidates sorted by ``rerank_score``, optionally truncated to ``top_n``.

        A candidate whose fine embedding fails (or mismatches the query's dimension)
        is excluded; failure to embed the query itself propagates.
        """
        if not candidates:
            return []

        query_vector = await self.embedder.embed_fine(query)
        sem = asyncio.Semaphore(self.concurrency)

        async def score(candidate: Candidate) -> float | None:
            rep = candidate.representative
            if rep is None:
                logger.warning(f"Candidate {candidate.id} has no representative input; excluded")
                return None
            try:
                async with sem:
                    vector = await self.embedder.embed_fine(rep)
                return cosine_similarity(query_vector, vector)
            except Exception as exc:
                logger.warning(f"Rerank failed for candidate {candidate.id}: {exc}")
                return None

        scores = await asyncio.gather(*(score(c) for c in candidates))
        ranked = rank_candidates(candidates, scores)
        excluded = len(candidates) - len(ranked)
        logger.info(f"Reranked {len(ranked)} candidates ({excluded} excluded)")

        if top_n is not None:
            ranked = ranked[:top_n]
        return ranked
