"""FastAPI dependency injection utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends

from embed_index.config import Settings, get_settings
from embed_index.core.logging import get_logger

if TYPE_CHECKING:
    from embed_index.services.qdrant_service import QdrantService
    from embed_index.services.rate_limited_embedder import RateLimitedEmbedder
    from embed_index.services.search_service import SearchService

logger = get_logger(__name__)

SettingsDep = Annotated[Settings, Depends(get_settings)]


@dataclass
class _Components:
    qdrant_service: QdrantService
    embedder: RateLimitedEmbedder | None = None
    search_service: SearchService | None = None


# One set of components per process: every request shares the Qdrant client,
# the embedding client and, above all, the embedding rate limiter.
_components: _Components | None = None


def _get_components(settings: Settings) -> _Components:
    global _components

    if _components is None:
        from embed_index.services.qdrant_service import QdrantService

        _components = _Components(qdrant_service=QdrantService(settings))
    return _components


async def close_components() -> None:
    """Close the shared Qdrant client and forget cached components (app shutdown)."""
    global _components

    if _components is not None:
        logger.info("Closing shared Qdrant client")
        await _components.qdrant_service.aclose()
        _components = None


def get_qdrant_service(settings: SettingsDep) -> QdrantService:
    return _get_components(settings).qdrant_service


def get_search_service(settings: SettingsDep) -> SearchService:
    """Build the two-stage search service on first use.

    Raises:
        ConfigurationError: If no embedding provider is configured.
    """
    components = _get_components(settings)
    if components.search_service is None:
        from embed_index.services.factory import (
            build_embedder,
            build_search_service,
            build_vector_repository,
        )

        components.embedder = build_embedder(settings)
        repository = build_vector_repository(settings, components.qdrant_service)
        components.search_service = build_search_service(settings, components.embedder, repository)
    return components.search_service


QdrantServiceDep = Annotated["QdrantService", Depends(get_qdrant_service)]
SearchServiceDep = Annotated["SearchService", Depends(get_search_service)]
