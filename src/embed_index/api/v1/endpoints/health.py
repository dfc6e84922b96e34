"""Health check endpoint."""

from fastapi import APIRouter

from embed_index.core.logging import get_logger
from embed_index.dependencies import QdrantServiceDep, SettingsDep
from embed_index.schemas.health import HealthResponse

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health Check",
    description="Returns the health status of the API and the size of the vector index",
)
async def health_check(settings: SettingsDep, qdrant_service: QdrantServiceDep) -> HealthResponse:
    """Check API health and report how many records are indexed.

    A missing collection counts as an empty index. An unreachable index reports
    ``degraded`` rather than failing the request.
    """
    indexed: int | None
    try:
        indexed = await qdrant_service.count() if await qdrant_service.collection_exists() else 0
    except Exception as e:
        logger.warning(f"Vector index unreachable during health check: {e}")
        indexed = None

    return HealthResponse(
        status="healthy" if indexed is not None else "degraded",
        version=settings.app_version,
        environment=settings.environment,
        collection=settings.qdrant_collection_name,
        indexed_records=indexed,
    )
