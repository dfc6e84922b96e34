# conftest.py
from __future__ import annotations

import pytest
import pytest_asyncio
from qdrant_client import AsyncQdrantClient

from embed_index.config import Settings
from embed_index.services.qdrant_service import QdrantService
from tests.fakes import DIM


@pytest_asyncio.fixture
async def aclient_local():
    """In-memory embedded Qdrant for tests."""
    client = AsyncQdrantClient(location=":memory:")
    try:
        yield client
    finally:
        await client.close()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        qdrant_collection_name="test-images",
        qdrant_url="http://unused-in-local-mode",
        qdrant_api_key=None,
        qdrant_prefer_grpc=False,
        openai_api_key="test-key",
        embedding_dim=DIM,
        embedding_calls_per_second=0,
        retry_delay=0,
        backoff_base_delay=0,
        progress_path=tmp_path / "progress.json",
    )


@pytest_asyncio.fixture
async def qdrant_service(aclient_local: AsyncQdrantClient, test_settings: Settings):
    svc = QdrantService(settings=test_settings, aclient=aclient_local)
    yield svc
