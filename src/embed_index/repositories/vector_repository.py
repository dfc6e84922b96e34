"""Vector index boundary and its Qdrant-backed repository."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

import numpy as np

from embed_index.adapters import qdrant_mapper
from embed_index.core.exceptions import DataIntegrityError
from embed_index.core.logging import get_logger
from embed_index.core.models import Candidate, EmbeddingRecord
from embed_index.services.qdrant_service import QdrantService

logger = get_logger(__name__)


class VectorIndex(Protocol):
    """Columnar vector store: upsert, ANN index build and similarity search."""

    async def upsert(self, records: Sequence[EmbeddingRecord]) -> None: ...

    async def create_index(self, column: str) -> None: ...

    async def search(
        self,
        column: str,
        vector: np.ndarray,
        k: int,
        filter_: Mapping[str, Any] | None = None,
    ) -> list[Candidate]: ...


class VectorRepository:
    """Persists embedding records in Qdrant and maps hits back to candidates.

    The collection is created on the first upsert, sized to ``dim``; every record
    must match that dimensionality.
    """

    def __init__(self, qdrant_service: QdrantService, *, column: str, dim: int):
        self._qdrant = qdrant_service
        self.column = column
        self.dim = dim
        self._collection_ready = False

    async def _ensure_collection(self) -> None:
        if not self._collection_ready:
            await self._qdrant.ensure_collection(self.column, self.dim)
            self._collection_ready = True

    def _validate(self, record: EmbeddingRecord) -> None:
        if record.vector.ndim != 1 or record.dim != self.dim:
            raise DataIntegrityError(
                f"Record {record.id} has a {record.vector.shape} vector; index expects ({self.dim},)"
            )
        if not np.all(np.isfinite(record.vector)):
            raise DataIntegrityError(f"Record {record.id} has non-finite vector values")

    async def upsert(self, records: Sequence[EmbeddingRecord]) -> None:
        """Insert or overwrite records; point ids derive from record ids."""
        if not records:
            return
        for record in records:
            self._validate(record)
        await self._ensure_collection()
        points = [qdrant_mapper.record_to_point(record, self.column) for record in records]
        await self._qdrant.upsert_points(points)

    async def create_index(self, column: str) -> None:
        """(Re)build the ANN structure for ``column``."""
        await self._qdrant.enable_hnsw(column)

    async def search(
        self,
        column: str,
        vector: np.ndarray,
        k: int,
        filter_: Mapping[str, Any] | None = None,
    ) -> list[Candidate]:
        """Return the ``k`` nearest records, closest first. A missing collection has no hits."""
        if vector.shape != (self.dim,):
            raise DataIntegrityError(
                f"Query vector has shape {vector.shape}; index expects ({self.dim},)"
            )
        if not await self._qdrant.collection_exists():
            logger.warning(f"Collection '{self._qdrant.col}' does not exist yet; no candidates")
            return []

        points = await self._qdrant.query(
            column,
            vector,
            limit=k,
            filter_=qdrant_mapper.equality_filter(filter_),
        )
        return [qdrant_mapper.scored_point_to_candidate(point) for point in points]
