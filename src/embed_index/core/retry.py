"""Retry wrappers for fallible async operations against remote services."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from embed_index.core.exceptions import AuthError, ConfigurationError, DataIntegrityError
from embed_index.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Local errors that no amount of retrying can fix.
NON_RETRYABLE: tuple[type[Exception], ...] = (DataIntegrityError, ConfigurationError)

AUTH_ERROR_MARKERS: tuple[str, ...] = (
    "auth",
    "credential",
    "permission",
    "unauthorized",
    "forbidden",
    "401",
    "403",
)


def is_auth_error(exc: BaseException) -> bool:
    """Return True if the error looks like an authentication/credential failure."""
    if isinstance(exc, AuthError):
        return True
    msg = str(exc).lower()
    return any(marker in msg for marker in AUTH_ERROR_MARKERS)


async def with_retry(
    op: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay: float = 0.5,
) -> T:
    """Call ``op`` up to ``attempts`` times, sleeping ``delay`` seconds between failures.

    Args:
        op: Zero-argument coroutine factory. Must be idempotent.
        attempts: Maximum number of calls.
        delay: Fixed sleep between attempts, in seconds.

    Returns:
        The first successful result.

    Raises:
        Exception: The last error once attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    last_exc: Exception | None = None
    for attempt in range(attempts):
        try:
            return await op()
        except NON_RETRYABLE:
            raise
        except Exception as exc:
            last_exc = exc
            if attempt < attempts - 1:
                logger.warning(f"Attempt {attempt + 1}/{attempts} failed: {exc}")
                await asyncio.sleep(delay)

    logger.error(f"Giving up after {attempts} attempts: {last_exc}")
    assert last_exc is not None
    raise last_exc


def backoff_delay(attempt: int, base_delay: float, max_delay: float, *, auth: bool = False) -> float:
    """Delay to sleep after the 0-indexed ``attempt``: capped exponential plus up to 10% jitter."""
    delay = min(base_delay * (2**attempt), max_delay)
    delay += random.uniform(0, delay * 0.1)
    if auth:
        delay *= 2
    return delay


async def with_exponential_backoff(
    op: Callable[[], Awaitable[T]],
    max_attempts: int = 5,
    base_delay: float = 2.0,
    max_delay: float = 60.0,
) -> T:
    """Call ``op`` with capped exponential backoff between failures.

    Authentication-flavored failures wait twice as long before the next attempt so
    a provider outage is not hammered.

    Raises:
        Exception: The last error once attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    last_exc: Exception | None = None
    for attempt in range(max_attempts):
        try:
            return await op()
        except NON_RETRYABLE:
            raise
        except Exception as exc:
            last_exc = exc
            if attempt < max_attempts - 1:
                delay = backoff_delay(attempt, base_delay, max_delay, auth=is_auth_error(exc))
                logger.warning(
                    f"Attempt {attempt + 1}/{max_attempts} failed ({exc}), retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

    logger.error(f"Giving up after {max_attempts} attempts: {last_exc}")
    assert last_exc is not None
    raise last_exc
