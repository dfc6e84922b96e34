"""Tests for search API endpoint."""

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from embed_index.core.exceptions import ProviderChainError, TransientRemoteError
from embed_index.core.models import ImageRef, RankedCandidate, TextRef
from embed_index.config import Settings, get_settings
from embed_index.dependencies import get_search_service
from embed_index.main import app
from tests.fakes import make_candidate

client = TestClient(app)


@pytest.fixture
def mock_search_service() -> Iterator[AsyncMock]:
    """Create mock search service."""
    mock_service = AsyncMock()
    mock_service.search = AsyncMock(return_value=[])
    app.dependency_overrides[get_search_service] = lambda: mock_service
    yield mock_service
    app.dependency_overrides.clear()


def test_search_endpoint_success(mock_search_service: AsyncMock):
    """Test successful search request."""
    mock_search_service.search.return_value = [
        RankedCandidate(candidate=make_candidate("b", 0.3, text="tomato soup"), rerank_score=0.92),
        RankedCandidate(candidate=make_candidate("a", 0.1), rerank_score=0.81),
    ]

    response = client.post("/api/v1/search", json={"text": "soup", "top_k": 20, "top_n": 2})

    assert response.status_code == 200
    data = response.json()
    assert data["total_results"] == 2
    assert data["reranked"] is True
    assert [r["id"] for r in data["results"]] == ["b", "a"]
    assert data["results"][0]["rerank_score"] == pytest.approx(0.92)
    assert data["results"][0]["distance"] == pytest.approx(0.3)
    assert data["results"][0]["text"] == "tomato soup"

    args, kwargs = mock_search_service.search.await_args
    assert args == (TextRef(text="soup"),)
    assert kwargs == {"top_k": 20, "top_n": 2, "filter_": None, "rerank": True}


def test_search_with_image_url_and_source_filter(mock_search_service: AsyncMock):
    response = client.post(
        "/api/v1/search",
        json={"image_url": "https://cdn.example.com/q.jpg", "source": "recipes", "rerank": False},
    )

    assert response.status_code == 200
    assert response.json()["reranked"] is False
    args, kwargs = mock_search_service.search.await_args
    assert args == (ImageRef(url="https://cdn.example.com/q.jpg"),)
    assert kwargs["filter_"] == {"source": "recipes"}
    assert kwargs["top_k"] == 50


def test_search_endpoint_validation(mock_search_service: AsyncMock):
    """Exactly one query field is required and limits are bounded."""
    assert client.post("/api/v1/search", json={}).status_code == 422
    assert (
        client.post("/api/v1/search", json={"text": "a", "image_url": "https://x/y.jpg"}).status_code
        == 422
    )
    assert client.post("/api/v1/search", json={"text": "a", "top_k": 0}).status_code == 422
    assert client.post("/api/v1/search", json={"text": "a", "top_n": 101}).status_code == 422
    mock_search_service.search.assert_not_awaited()


def test_search_endpoint_provider_failure(mock_search_service: AsyncMock):
    mock_search_service.search.side_effect = ProviderChainError([("primary", TransientRemoteError("down"))])

    response = client.post("/api/v1/search", json={"text": "a"})

    assert response.status_code == 503
    assert response.json()["type"] == "ProviderChainError"


def test_search_endpoint_unexpected_failure(mock_search_service: AsyncMock):
    mock_search_service.search.side_effect = RuntimeError("boom")

    response = client.post("/api/v1/search", json={"text": "a"})

    assert response.status_code == 500
    assert "boom" in response.json()["detail"]


def _use_image_root(root: Path | None) -> None:
    settings = Settings(_env_file=None, search_image_root=root)
    app.dependency_overrides[get_settings] = lambda: settings


def test_image_path_is_resolved_under_root(mock_search_service: AsyncMock, tmp_path: Path):
    _use_image_root(tmp_path)

    response = client.post("/api/v1/search", json={"image_path": "queries/q.jpg"})

    assert response.status_code == 200
    args, _ = mock_search_service.search.await_args
    assert args == (ImageRef(path=str((tmp_path / "queries" / "q.jpg").resolve())),)


def test_image_path_outside_root_is_rejected(mock_search_service: AsyncMock, tmp_path: Path):
    _use_image_root(tmp_path / "images")

    for image_path in ("../secrets.txt", "/etc/passwd"):
        response = client.post("/api/v1/search", json={"image_path": image_path})
        assert response.status_code == 400
        assert "SEARCH_IMAGE_ROOT" in response.json()["detail"]

    mock_search_service.search.assert_not_awaited()


def test_image_path_disabled_without_root(mock_search_service: AsyncMock):
    _use_image_root(None)

    response = client.post("/api/v1/search", json={"image_path": "q.jpg"})

    assert response.status_code == 400
    mock_search_service.search.assert_not_awaited()
