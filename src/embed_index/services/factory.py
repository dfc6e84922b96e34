"""Construction of the shared pipeline components from settings."""

from __future__ import annotations

from embed_index.config import Settings
from embed_index.core.rate_limiter import RateLimiter
from embed_index.repositories.vector_repository import VectorRepository
from embed_index.services.batch_indexer import BatchIndexer
from embed_index.services.embedding_client import EmbeddingClient, build_embedding_client
from embed_index.services.progress_store import ProgressStore
from embed_index.services.qdrant_service import QdrantService
from embed_index.services.rate_limited_embedder import RateLimitedEmbedder
from embed_index.services.reranker import Reranker
from embed_index.services.retriever import Retriever
from embed_index.services.search_service import SearchService


def build_embedder(
    settings: Settings,
    client: EmbeddingClient | None = None,
    rate_limiter: RateLimiter | None = None,
) -> RateLimitedEmbedder:
    """Embedding client behind one rate limiter shared by every embedding call."""
    client = client or build_embedding_client(settings)
    rate_limiter = rate_limiter or RateLimiter(settings.embedding_calls_per_second)
    return RateLimitedEmbedder.from_settings(client, rate_limiter, settings)


def build_vector_repository(settings: Settings, qdrant_service: QdrantService) -> VectorRepository:
    return VectorRepository(
        qdrant_service,
        column=settings.embedding_column,
        dim=settings.embedding_dim,
    )


def build_batch_indexer(
    settings: Settings,
    embedder: RateLimitedEmbedder,
    vector_repository: VectorRepository,
    progress: ProgressStore | None = None,
) -> BatchIndexer:
    return BatchIndexer(
        embedder=embedder,
        vector_index=vector_repository,
        progress=progress or ProgressStore(settings.progress_path),
        column=settings.embedding_column,
        checkpoint_every=settings.progress_checkpoint_every,
        concurrency=settings.indexer_concurrency,
        upsert_attempts=settings.retry_attempts,
        upsert_delay=settings.retry_delay,
    )


def build_search_service(
    settings: Settings,
    embedder: RateLimitedEmbedder,
    vector_repository: VectorRepository,
) -> SearchService:
    retriever = Retriever(vector_repository, column=settings.embedding_column, embedder=embedder)
    reranker = Reranker(embedder, concurrency=settings.rerank_concurrency)
    return SearchService(retriever, reranker)
