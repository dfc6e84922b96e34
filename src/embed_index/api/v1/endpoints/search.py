"""Search endpoint for two-stage retrieval and reranking."""

from pathlib import Path

from fastapi import APIRouter, HTTPException, status

from embed_index.core.exceptions import AppException
from embed_index.core.logging import get_logger
from embed_index.core.models import EmbeddingInput, ImageRef
from embed_index.dependencies import SearchServiceDep, SettingsDep
from embed_index.schemas.search import CandidateItem, SearchRequest, SearchResponse

logger = get_logger(__name__)

router = APIRouter(tags=["search"])


def confine_image_path(image_path: str, root: Path | None) -> str:
    """Resolve ``image_path`` under ``root``, refusing anything that escapes it.

    Raises:
        HTTPException: 400 if path queries are disabled or the path leaves the root.
    """
    if root is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="image_path queries are disabled; set SEARCH_IMAGE_ROOT to enable them",
        )
    base = root.resolve()
    resolved = (base / image_path).resolve()
    if not resolved.is_relative_to(base):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="image_path must point inside SEARCH_IMAGE_ROOT",
        )
    return str(resolved)


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Two-Stage Search",
    description="Coarse ANN retrieval followed by reranking with a finer embedding",
    status_code=status.HTTP_200_OK,
)
async def search(
    request: SearchRequest,
    settings: SettingsDep,
    search_service: SearchServiceDep,
) -> SearchResponse:
    """Search indexed images and texts.

    Args:
        request: Query (text, image path or image URL) and retrieval options.
        settings: Application settings.
        search_service: Injected search service.

    Returns:
        SearchResponse: Results, best first.

    Raises:
        HTTPException: If the image path is not allowed or search fails.
    """
    query: EmbeddingInput = request.to_input()
    if request.image_path is not None:
        query = ImageRef(path=confine_image_path(request.image_path, settings.search_image_root))

    try:
        logger.info(
            f"Search request: top_k={request.top_k}, top_n={request.top_n}, "
            f"source={request.source}, rerank={request.rerank}"
        )

        ranked = await search_service.search(
            query,
            top_k=request.top_k,
            top_n=request.top_n,
            filter_={"source": request.source} if request.source else None,
            rerank=request.rerank,
        )

        logger.info(f"Search completed: {len(ranked)} results")

        return SearchResponse(
            results=[CandidateItem.from_ranked(item) for item in ranked],
            total_results=len(ranked),
            reranked=request.rerank,
        )

    except AppException:
        raise
    except Exception as e:
        logger.error(f"Search failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Search failed: {str(e)}",
        ) from e
