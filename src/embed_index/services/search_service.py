"""Two-stage search: coarse ANN retrieval followed by fine reranking."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from embed_index.core.logging import get_logger
from embed_index.core.models import EmbeddingInput, RankedCandidate
from embed_index.services.reranker import Reranker
from embed_index.services.retriever import Retriever

logger = get_logger(__name__)


class SearchService:
    """Service for two-stage search operations."""

    def __init__(self, retriever: Retriever, reranker: Reranker):
        """Initialize search service.

        Args:
            retriever: Coarse ANN retriever (must carry an embedder).
            reranker: Fine-embedding reranker.
        """
        self.retriever = retriever
        self.reranker = reranker

    async def search(
        self,
        query: EmbeddingInput,
        *,
        top_k: int = 50,
        top_n: int = 10,
        filter_: Mapping[str, Any] | None = None,
        rerank: bool = True,
    ) -> list[RankedCandidate]:
        """Retrieve ``top_k`` candidates and return the best ``top_n`` after reranking.

        Without reranking the coarse order is kept and the score is the cosine
        similarity implied by the ANN distance (``1 - distance``).
        """
        try:
            logger.info(
                f"Two-stage search: query={query}, top_k={top_k}, top_n={top_n}, "
                f"filter={filter_}, rerank={rerank}"
            )
            candidates = await self.retriever.retrieve_for(query, top_k, filter_)
            if not candidates:
                logger.info("No candidates found, returning empty results")
                return []

            if not rerank:
                return [
                    RankedCandidate(candidate=c, rerank_score=1.0 - c.distance)
                    for c in candidates[:top_n]
                ]

            return await self.reranker.rerank(query, candidates, top_n=top_n)

        except Exception as exc:
            logger.error(f"Error performing search: {exc}", exc_info=True)
            raise
