"""Application configuration and settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Application
    app_name: str = "Embed Index API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # API
    api_v1_prefix: str = "/api/v1"

    # CORS
    cors_origins: list[str] = ["*"]
    cors_credentials: bool = True
    cors_methods: list[str] = ["*"]
    cors_headers: list[str] = ["*"]

    # Logging
    log_level: str = "INFO"

    # Embedding provider (any OpenAI-compatible embeddings endpoint)
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_embedding_model: str = "jina-clip-v2"
    openai_fine_embedding_model: str = "jina-embeddings-v4"
    openai_timeout: float = 60.0
    # Optional second provider tried when the primary one fails
    fallback_api_key: str | None = None
    fallback_base_url: str | None = None
    embedding_dim: int = 1024  # Dimensionality of the coarse (indexed) embedding

    # Qdrant Configuration
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    qdrant_location: str | None = None  # ":memory:" or a local path for embedded mode
    qdrant_collection_name: str = "images"
    qdrant_prefer_grpc: bool = False
    qdrant_timeout: int = 30  # Timeout in seconds
    embedding_column: str = "emb_coarse"

    # Rate limiting and retries
    embedding_calls_per_second: float = 5.0
    retry_attempts: int = 3
    retry_delay: float = 0.5  # Seconds between fixed-interval retries
    backoff_max_attempts: int = 5
    backoff_base_delay: float = 2.0
    backoff_max_delay: float = 60.0
    embed_retry_strategy: Literal["fixed", "backoff"] = "backoff"

    # Batch indexing
    progress_path: Path = Path("./tmp/index.progress.json")
    progress_checkpoint_every: int = 10
    indexer_concurrency: int = Field(default=1, ge=1, le=4)

    # Retrieval
    default_top_k: int = 50
    default_top_n: int = 10
    rerank_concurrency: int = Field(default=4, ge=1, le=16)
    # Directory that HTTP image_path queries must stay inside; unset disables them
    search_image_root: Path | None = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
