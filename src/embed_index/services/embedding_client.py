"""Embedding providers: the client protocol, an OpenAI-compatible provider and a fallback chain."""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

import numpy as np
import openai
from openai import AsyncOpenAI

from embed_index.config import Settings
from embed_index.core.exceptions import (
    AuthError,
    ConfigurationError,
    DataIntegrityError,
    ProviderChainError,
    TransientRemoteError,
)
from embed_index.core.logging import get_logger
from embed_index.core.models import EmbeddingInput, ImageRef, TextRef

logger = get_logger(__name__)


class EmbeddingClient(Protocol):
    """Produces fixed-length float32 vectors for image or text inputs."""

    name: str

    async def embed(self, item: EmbeddingInput) -> np.ndarray:
        """Coarse embedding used for the ANN index."""
        ...

    async def embed_fine(self, item: EmbeddingInput) -> np.ndarray:
        """Higher-fidelity embedding used for reranking."""
        ...


async def _encode_image(ref: ImageRef) -> str:
    if ref.url is not None:
        return ref.url
    assert ref.path is not None
    data = await asyncio.to_thread(Path(ref.path).read_bytes)
    return base64.b64encode(data).decode("ascii")


async def build_embedding_payload(item: EmbeddingInput) -> Any:
    """Translate an input into the ``input`` element of an embeddings request.

    Text goes as a plain string; images go as ``{"image": <base64 or url>}``, the
    multimodal form understood by OpenAI-compatible CLIP/Jina style servers.
    """
    if isinstance(item, TextRef):
        return item.text
    return {"image": await _encode_image(item)}


class OpenAIEmbeddingProvider:
    """Calls an OpenAI-compatible ``/embeddings`` endpoint."""

    def __init__(
        self,
        *,
        model: str,
        fine_model: str,
        api_key: str | None,
        base_url: str | None = None,
        timeout: float = 60.0,
        name: str = "openai",
        client: AsyncOpenAI | None = None,
    ):
        self.name = name
        self.model = model
        self.fine_model = fine_model
        # The SDK retries on its own; retries are owned by the retry wrappers instead.
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )
        logger.info(f"Embedding provider '{name}' initialized (model={model}, fine={fine_model})")

    async def embed(self, item: EmbeddingInput) -> np.ndarray:
        return await self._embed(item, self.model)

    async def embed_fine(self, item: EmbeddingInput) -> np.ndarray:
        return await self._embed(item, self.fine_model)

    async def _embed(self, item: EmbeddingInput, model: str) -> np.ndarray:
        payload = await build_embedding_payload(item)
        try:
            response = await self.client.embeddings.create(
                model=model,
                input=[payload],  # pyright: ignore[reportArgumentType]
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise AuthError(f"{self.name}: {exc}") from exc
        except openai.APIError as exc:
            raise TransientRemoteError(f"{self.name}: {exc}") from exc

        if not response.data or not response.data[0].embedding:
            raise DataIntegrityError(f"{self.name}: empty embedding returned by model {model}")
        return np.asarray(response.data[0].embedding, dtype=np.float32)


class FallbackEmbeddingClient:
    """Ordered chain of providers behind one interface; the first success wins."""

    def __init__(self, providers: Sequence[EmbeddingClient]):
        if not providers:
            raise ConfigurationError("At least one embedding provider is required")
        self.providers = list(providers)
        self.name = "+".join(p.name for p in self.providers)

    async def embed(self, item: EmbeddingInput) -> np.ndarray:
        return await self._first_success(item, fine=False)

    async def embed_fine(self, item: EmbeddingInput) -> np.ndarray:
        return await self._first_success(item, fine=True)

    async def _first_success(self, item: EmbeddingInput, *, fine: bool) -> np.ndarray:
        failures: list[tuple[str, Exception]] = []
        for provider in self.providers:
            try:
                if fine:
                    return await provider.embed_fine(item)
                return await provider.embed(item)
            except DataIntegrityError:
                raise
            except Exception as exc:
                logger.warning(f"Embedding provider '{provider.name}' failed: {exc}")
                failures.append((provider.name, exc))
        raise ProviderChainError(failures)


def require_embeddings_provider(settings: Settings) -> None:
    """Fail fast, before any work starts, when no provider credentials are configured."""
    if not settings.openai_api_key and not settings.fallback_api_key:
        raise ConfigurationError(
            "No embeddings provider configured. Set OPENAI_API_KEY (and optionally "
            "OPENAI_BASE_URL) or FALLBACK_API_KEY with FALLBACK_BASE_URL in your .env."
        )
    if settings.fallback_api_key and not settings.fallback_base_url:
        raise ConfigurationError("FALLBACK_API_KEY is set but FALLBACK_BASE_URL is missing.")


def build_embedding_client(settings: Settings) -> EmbeddingClient:
    """Create the configured provider, wrapped in a fallback chain when a second one is set."""
    require_embeddings_provider(settings)

    providers: list[EmbeddingClient] = []
    if settings.openai_api_key:
        providers.append(
            OpenAIEmbeddingProvider(
                model=settings.openai_embedding_model,
                fine_model=settings.openai_fine_embedding_model,
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.openai_timeout,
                name="primary",
            )
        )
    if settings.fallback_api_key:
        providers.append(
            OpenAIEmbeddingProvider(
                model=settings.openai_embedding_model,
                fine_model=settings.openai_fine_embedding_model,
                api_key=settings.fallback_api_key,
                base_url=settings.fallback_base_url,
                timeout=settings.openai_timeout,
                name="fallback",
            )
        )

    if len(providers) == 1:
        return providers[0]
    return FallbackEmbeddingClient(providers)
