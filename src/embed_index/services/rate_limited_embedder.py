"""Embedding calls routed through the shared rate limiter and a retry policy."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Literal

import numpy as np

from embed_index.config import Settings
from embed_index.core.models import EmbeddingInput
from embed_index.core.rate_limiter import RateLimiter
from embed_index.core.retry import with_exponential_backoff, with_retry
from embed_index.services.embedding_client import EmbeddingClient


class RateLimitedEmbedder:
    """Wraps an :class:`EmbeddingClient` so every attempt waits on the shared limiter."""

    def __init__(
        self,
        client: EmbeddingClient,
        rate_limiter: RateLimiter,
        *,
        strategy: Literal["fixed", "backoff"] = "backoff",
        retry_attempts: int = 3,
        retry_delay: float = 0.5,
        backoff_max_attempts: int = 5,
        backoff_base_delay: float = 2.0,
        backoff_max_delay: float = 60.0,
    ):
        self.client = client
        self.rate_limiter = rate_limiter
        self.strategy = strategy
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.backoff_max_attempts = backoff_max_attempts
        self.backoff_base_delay = backoff_base_delay
        self.backoff_max_delay = backoff_max_delay

    @classmethod
    def from_settings(
        cls,
        client: EmbeddingClient,
        rate_limiter: RateLimiter,
        settings: Settings,
    ) -> RateLimitedEmbedder:
        return cls(
            client,
            rate_limiter,
            strategy=settings.embed_retry_strategy,
            retry_attempts=settings.retry_attempts,
            retry_delay=settings.retry_delay,
            backoff_max_attempts=settings.backoff_max_attempts,
            backoff_base_delay=settings.backoff_base_delay,
            backoff_max_delay=settings.backoff_max_delay,
        )

    async def embed(self, item: EmbeddingInput) -> np.ndarray:
        return await self._call(lambda: self.client.embed(item))

    async def embed_fine(self, item: EmbeddingInput) -> np.ndarray:
        return await self._call(lambda: self.client.embed_fine(item))

    async def _call(self, fn: Callable[[], Awaitable[np.ndarray]]) -> np.ndarray:
        async def attempt() -> np.ndarray:
            await self.rate_limiter.wait_if_needed()
            return await fn()

        if self.strategy == "fixed":
            return await with_retry(attempt, self.retry_attempts, self.retry_delay)
        return await with_exponential_backoff(
            attempt,
            self.backoff_max_attempts,
            self.backoff_base_delay,
            self.backoff_max_delay,
        )
