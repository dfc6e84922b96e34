"""Minimal Qdrant service for managing the embedding collection."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

import numpy as np
from qdrant_client import AsyncQdrantClient
from qdrant_client import models as q

from embed_index.config import Settings
from embed_index.core.constants import HNSW_EF_CONSTRUCT, HNSW_M, K_LABEL, K_RECORD_ID, K_SOURCE
from embed_index.core.exceptions import DataIntegrityError
from embed_index.core.logging import get_logger

logger = get_logger(__name__)


def build_async_client(settings: Settings) -> AsyncQdrantClient:
    """Create a remote client, or an embedded one when ``qdrant_location`` is set."""
    if settings.qdrant_location == ":memory:":
        return AsyncQdrantClient(location=":memory:")
    if settings.qdrant_location:
        return AsyncQdrantClient(path=settings.qdrant_location)
    return AsyncQdrantClient(
        url=settings.qdrant_url,
        api_key=settings.qdrant_api_key,
        prefer_grpc=settings.qdrant_prefer_grpc,
        timeout=settings.qdrant_timeout,
    )


class QdrantService:
    """Thin wrapper around the async Qdrant client for collection and point management."""

    def __init__(
        self,
        settings: Settings,
        aclient: AsyncQdrantClient | None = None,
    ):
        self.settings = settings
        self.col = settings.qdrant_collection_name
        self.aclient = aclient or build_async_client(settings)

        logger.info(f"QdrantService initialized for collection '{self.col}'")

    async def aclose(self) -> None:
        """Close the client."""
        await self.aclient.close()

    async def collection_exists(self) -> bool:
        """Return True if the collection already exists."""
        return await self.aclient.collection_exists(self.col)

    async def get_collection_info(self) -> q.CollectionInfo:
        """Fetch collection information."""
        return await self.aclient.get_collection(self.col)

    async def vector_size(self, column: str) -> int | None:
        """Dimensionality of the named vector, or None if the collection or vector is missing."""
        if not await self.collection_exists():
            return None
        info = await self.get_collection_info()
        vectors = info.config.params.vectors
        if isinstance(vectors, dict):
            params = vectors.get(column)
            return params.size if params is not None else None
        return None

    async def ensure_collection(self, column: str, dim: int) -> None:
        """Create the collection with a named cosine vector, or verify the existing one.

        HNSW stays disabled (``m=0``) while bulk ingesting; :meth:`enable_hnsw` builds it.
        """
        if await self.collection_exists():
            size = await self.vector_size(column)
            if size is None:
                raise DataIntegrityError(
                    f"Collection '{self.col}' exists without a '{column}' vector"
                )
            if size != dim:
                raise DataIntegrityError(
                    f"Collection '{self.col}' stores {size}-d '{column}' vectors, got {dim}-d"
                )
            logger.debug(f"Collection '{self.col}' already exists")
            return

        logger.info(f"Creating collection '{self.col}' ({column}: {dim}-d cosine)")
        await self.aclient.create_collection(
            collection_name=self.col,
            vectors_config={
                column: q.VectorParams(
                    size=dim,
                    distance=q.Distance.COSINE,
                    # Disable HNSW for dense vectors (m=0) for high-volume vector ingestion
                    hnsw_config=q.HnswConfigDiff(m=0),
                ),
            },
        )
        await self._ensure_payload_indexes()

    async def _ensure_payload_indexes(self) -> None:
        """Create keyword payload indexes used by search filters."""

        async def _create(field_name: str) -> None:
            try:
                await self.aclient.create_payload_index(
                    collection_name=self.col,
                    field_name=field_name,
                    field_schema=q.PayloadSchemaType.KEYWORD,
                )
            except Exception as exc:  # pragma: no cover
                # Only ignore already-exists errors; otherwise warn
                msg = str(exc).lower()
                if "exists" in msg:
                    logger.debug(f"Index '{field_name}' already exists")
                else:
                    logger.warning(f"Failed to create index '{field_name}': {exc}")

        for field_name in (K_RECORD_ID, K_SOURCE, K_LABEL):
            await _create(field_name)

    async def enable_hnsw(self, column: str) -> None:
        """Build the HNSW graph for the named vector."""
        logger.info(
            f"Building HNSW index on '{self.col}.{column}' "
            f"(m={HNSW_M}, ef_construct={HNSW_EF_CONSTRUCT})"
        )
        await self.aclient.update_collection(
            collection_name=self.col,
            vectors_config={
                column: q.VectorParamsDiff(
                    hnsw_config=q.HnswConfigDiff(m=HNSW_M, ef_construct=HNSW_EF_CONSTRUCT),
                ),
            },
        )

    async def upsert_points(
        self,
        points: Sequence[q.PointStruct],
        *,
        wait: bool = True,
    ) -> None:
        """Upsert raw points into the collection."""
        if not points:
            return

        await self.aclient.upsert(
            collection_name=self.col,
            points=list(points),
            wait=wait,
        )
        logger.debug(f"Upserted {len(points)} points into '{self.col}'")

    async def query(
        self,
        column: str,
        vector: np.ndarray,
        *,
        limit: int,
        filter_: q.Filter | None = None,
    ) -> list[q.ScoredPoint]:
        """Nearest neighbours of ``vector`` on the named vector, best first."""
        response = await self.aclient.query_points(
            collection_name=self.col,
            query=vector.astype(np.float32).tolist(),
            using=column,
            limit=limit,
            query_filter=filter_,
            with_payload=True,
            with_vectors=False,
        )
        return list(response.points)

    async def count(self, filter_: q.Filter | None = None) -> int:
        """Exact number of points in the collection, optionally matching ``filter_``."""
        result = await self.aclient.count(collection_name=self.col, count_filter=filter_, exact=True)
        return result.count

    async def count_by(self, key: str, *, page_size: int = 1000) -> dict[str, int]:
        """Number of points per value of the payload field ``key``."""
        counts: Counter[str] = Counter()
        offset: q.ExtendedPointId | None = None
        while True:
            points, offset = await self.aclient.scroll(
                collection_name=self.col,
                limit=page_size,
                offset=offset,
                with_payload=[key],
                with_vectors=False,
            )
            for point in points:
                counts[str((point.payload or {}).get(key))] += 1
            if offset is None:
                return dict(counts)


__all__ = ["QdrantService", "build_async_client"]
