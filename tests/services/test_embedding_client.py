"""Tests for embedding providers and the fallback chain."""

from __future__ import annotations

import base64
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import numpy as np
import openai
import pytest

from embed_index.config import Settings
from embed_index.core.exceptions import (
    AuthError,
    ConfigurationError,
    DataIntegrityError,
    ProviderChainError,
    TransientRemoteError,
)
from embed_index.core.models import ImageRef, TextRef
from embed_index.services.embedding_client import (
    FallbackEmbeddingClient,
    OpenAIEmbeddingProvider,
    build_embedding_client,
    build_embedding_payload,
    require_embeddings_provider,
)
from tests.fakes import FakeEmbeddingClient


def _response(*embeddings: list[float]) -> SimpleNamespace:
    return SimpleNamespace(data=[SimpleNamespace(embedding=e) for e in embeddings])


def _provider(create: AsyncMock, name: str = "primary") -> OpenAIEmbeddingProvider:
    client = MagicMock()
    client.embeddings.create = create
    return OpenAIEmbeddingProvider(
        model="coarse-model",
        fine_model="fine-model",
        api_key="k",
        name=name,
        client=client,
    )


def _http_error(cls: type[openai.APIStatusError], status: int) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://embeddings.example.com/v1/embeddings")
    return cls("rejected", response=httpx.Response(status, request=request), body=None)


@pytest.mark.asyncio
async def test_text_payload_is_plain_string() -> None:
    assert await build_embedding_payload(TextRef(text="hello")) == "hello"


@pytest.mark.asyncio
async def test_image_payload_is_base64_or_url(tmp_path: Path) -> None:
    image = tmp_path / "x.png"
    image.write_bytes(b"\x89PNG-bytes")

    local = await build_embedding_payload(ImageRef(path=str(image)))
    remote = await build_embedding_payload(ImageRef(url="https://cdn.example.com/x.png"))

    assert local == {"image": base64.b64encode(b"\x89PNG-bytes").decode("ascii")}
    assert remote == {"image": "https://cdn.example.com/x.png"}


@pytest.mark.asyncio
async def test_provider_uses_coarse_and_fine_models() -> None:
    create = AsyncMock(return_value=_response([0.5, 0.25]))
    provider = _provider(create)

    coarse = await provider.embed(TextRef(text="a"))
    await provider.embed_fine(TextRef(text="a"))

    assert coarse.dtype == np.float32
    np.testing.assert_allclose(coarse, [0.5, 0.25])
    models = [call.kwargs["model"] for call in create.await_args_list]
    assert models == ["coarse-model", "fine-model"]
    assert create.await_args_list[0].kwargs["input"] == ["a"]


@pytest.mark.asyncio
async def test_provider_maps_errors() -> None:
    auth = _provider(AsyncMock(side_effect=_http_error(openai.AuthenticationError, 401)))
    limited = _provider(AsyncMock(side_effect=_http_error(openai.RateLimitError, 429)))
    offline = _provider(
        AsyncMock(side_effect=openai.APIConnectionError(request=httpx.Request("POST", "https://x")))
    )

    with pytest.raises(AuthError):
        await auth.embed(TextRef(text="a"))
    with pytest.raises(TransientRemoteError):
        await limited.embed(TextRef(text="a"))
    with pytest.raises(TransientRemoteError):
        await offline.embed(TextRef(text="a"))


@pytest.mark.asyncio
async def test_provider_rejects_empty_embedding() -> None:
    provider = _provider(AsyncMock(return_value=_response()))
    with pytest.raises(DataIntegrityError):
        await provider.embed(TextRef(text="a"))


@pytest.mark.asyncio
async def test_fallback_uses_next_provider() -> None:
    first = FakeEmbeddingClient(fail={"text:a": -1})
    first.name = "first"
    second = FakeEmbeddingClient(coarse={"text:a": [1, 2, 3, 4]})
    second.name = "second"

    vector = await FallbackEmbeddingClient([first, second]).embed(TextRef(text="a"))

    np.testing.assert_allclose(vector, [1, 2, 3, 4])
    assert len(first.calls) == 1


@pytest.mark.asyncio
async def test_fallback_reports_every_failure() -> None:
    first = _provider(AsyncMock(side_effect=_http_error(openai.AuthenticationError, 401)), "p1")
    second = _provider(AsyncMock(side_effect=_http_error(openai.PermissionDeniedError, 403)), "p2")

    with pytest.raises(ProviderChainError) as excinfo:
        await FallbackEmbeddingClient([first, second]).embed_fine(TextRef(text="a"))

    assert [name for name, _ in excinfo.value.failures] == ["p1", "p2"]
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_fallback_does_not_mask_integrity_errors() -> None:
    broken = _provider(AsyncMock(return_value=_response()), "p1")
    spare = FakeEmbeddingClient()

    with pytest.raises(DataIntegrityError):
        await FallbackEmbeddingClient([broken, spare]).embed(TextRef(text="a"))
    assert spare.calls == []


def test_require_embeddings_provider() -> None:
    with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
        require_embeddings_provider(Settings(_env_file=None, openai_api_key=None, fallback_api_key=None))
    with pytest.raises(ConfigurationError, match="FALLBACK_BASE_URL"):
        require_embeddings_provider(Settings(_env_file=None, fallback_api_key="k"))
    require_embeddings_provider(Settings(_env_file=None, openai_api_key="k"))


def test_build_embedding_client_wraps_two_providers() -> None:
    single = build_embedding_client(Settings(_env_file=None, openai_api_key="k"))
    chain = build_embedding_client(
        Settings(
            _env_file=None,
            openai_api_key="k",
            fallback_api_key="k2",
            fallback_base_url="https://fallback.example.com/v1",
        )
    )

    assert isinstance(single, OpenAIEmbeddingProvider)
    assert isinstance(chain, FallbackEmbeddingClient)
    assert chain.name == "primary+fallback"
