"""Minimum-interval rate limiter for a shared remote resource."""

from __future__ import annotations

import asyncio
import time

from embed_index.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """Leaky bucket of one: callers are spaced at least ``1 / calls_per_second`` apart.

    Share a single instance per remote resource (e.g. every embedding call). The
    lock serializes concurrent callers, so no bursting happens under a worker pool.
    """

    def __init__(self, calls_per_second: float):
        self.calls_per_second = calls_per_second
        self.min_interval = 1.0 / calls_per_second if calls_per_second > 0 else 0.0
        self._last_call_time: float | None = None
        self._lock = asyncio.Lock()

    async def wait_if_needed(self) -> None:
        """Sleep until the minimum interval since the previous call has elapsed."""
        async with self._lock:
            if self._last_call_time is not None:
                elapsed = time.monotonic() - self._last_call_time
                if elapsed < self.min_interval:
                    remaining = self.min_interval - elapsed
                    logger.debug(f"Rate limit: sleeping {remaining:.3f}s")
                    await asyncio.sleep(remaining)
            self._last_call_time = time.monotonic()
