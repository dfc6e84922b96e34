"""Coarse ANN retrieval against the vector index."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import numpy as np

from embed_index.core.logging import get_logger
from embed_index.core.models import Candidate, EmbeddingInput
from embed_index.repositories.vector_repository import VectorIndex
from embed_index.services.rate_limited_embedder import RateLimitedEmbedder

logger = get_logger(__name__)


class Retriever:
    """Typed boundary over ``VectorIndex.search`` for the coarse embedding column."""

    def __init__(
        self,
        vector_index: VectorIndex,
        *,
        column: str,
        embedder: RateLimitedEmbedder | None = None,
    ):
        self.vector_index = vector_index
        self.column = column
        self.embedder = embedder

    async def retrieve(
        self,
        query_vector: np.ndarray,
        k: int,
        filter_: Mapping[str, Any] | None = None,
    ) -> list[Candidate]:
        """Return up to ``k`` candidates with their native (cosine) distance, closest first."""
        candidates = await self.vector_index.search(self.column, query_vector, k, filter_)
        logger.info(f"ANN search returned {len(candidates)} candidates (k={k})")
        return candidates

    async def retrieve_for(
        self,
        query: EmbeddingInput,
        k: int,
        filter_: Mapping[str, Any] | None = None,
    ) -> list[Candidate]:
        """Embed ``query`` with the coarse model, then retrieve."""
        if self.embedder is None:
            raise ValueError("Retriever.retrieve_for requires an embedder")
        query_vector = await self.embedder.embed(query)
        return await self.retrieve(query_vector, k, filter_)
