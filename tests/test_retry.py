"""Tests for the retry wrappers."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from embed_index.core.exceptions import AuthError, DataIntegrityError, TransientRemoteError
from embed_index.core.retry import backoff_delay, is_auth_error, with_exponential_backoff, with_retry


def _flaky(failures: int, result: str = "ok") -> AsyncMock:
    """Coroutine mock that raises ``failures`` times before returning ``result``."""
    effects: list[object] = [TransientRemoteError(f"boom {i}") for i in range(failures)]
    effects.append(result)
    return AsyncMock(side_effect=effects)


@pytest.mark.asyncio
async def test_with_retry_returns_first_success() -> None:
    op = _flaky(2)
    assert await with_retry(op, attempts=3, delay=0) == "ok"
    assert op.await_count == 3


@pytest.mark.asyncio
async def test_with_retry_five_attempts_four_failures() -> None:
    op = _flaky(4, result="done")
    assert await with_retry(op, attempts=5, delay=0) == "done"
    assert op.await_count == 5


@pytest.mark.asyncio
async def test_with_retry_reraises_last_error_after_attempts() -> None:
    op = AsyncMock(side_effect=[TransientRemoteError("first"), TransientRemoteError("last")])
    with pytest.raises(TransientRemoteError, match="last"):
        await with_retry(op, attempts=2, delay=0)
    assert op.await_count == 2


@pytest.mark.asyncio
async def test_with_retry_does_not_sleep_after_last_attempt() -> None:
    op = AsyncMock(side_effect=TransientRemoteError("down"))
    with patch("embed_index.core.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(TransientRemoteError):
            await with_retry(op, attempts=3, delay=0.5)
    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.5)


@pytest.mark.asyncio
async def test_data_integrity_errors_are_not_retried() -> None:
    op = AsyncMock(side_effect=DataIntegrityError("bad vector"))
    with pytest.raises(DataIntegrityError):
        await with_retry(op, attempts=5, delay=0)
    assert op.await_count == 1


@pytest.mark.asyncio
async def test_backoff_stops_at_max_attempts() -> None:
    op = AsyncMock(side_effect=TransientRemoteError("down"))
    with patch("embed_index.core.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        with pytest.raises(TransientRemoteError):
            await with_exponential_backoff(op, max_attempts=5, base_delay=2.0, max_delay=60.0)
    assert op.await_count == 5
    assert sleep.await_count == 4


@pytest.mark.asyncio
async def test_backoff_succeeds_after_transient_failures() -> None:
    op = _flaky(1, result="vector")
    with patch("embed_index.core.retry.asyncio.sleep", new=AsyncMock()):
        assert await with_exponential_backoff(op, max_attempts=3) == "vector"


@pytest.mark.asyncio
async def test_backoff_with_zero_delay_really_runs() -> None:
    op = _flaky(2)
    result = await asyncio.wait_for(with_exponential_backoff(op, base_delay=0, max_delay=0), 1)
    assert result == "ok"


def test_backoff_delay_is_capped_exponential_with_jitter() -> None:
    with patch("embed_index.core.retry.random.uniform", return_value=0.0):
        assert backoff_delay(0, 2.0, 60.0) == 2.0
        assert backoff_delay(3, 2.0, 60.0) == 16.0
        assert backoff_delay(10, 2.0, 60.0) == 60.0

    for attempt in range(6):
        delay = backoff_delay(attempt, 2.0, 60.0)
        base = min(2.0 * 2**attempt, 60.0)
        assert base <= delay <= base * 1.1


def test_backoff_delay_doubles_for_auth_errors() -> None:
    with patch("embed_index.core.retry.random.uniform", return_value=0.0):
        assert backoff_delay(1, 2.0, 60.0, auth=True) == 8.0


def test_is_auth_error() -> None:
    assert is_auth_error(AuthError("nope"))
    assert is_auth_error(RuntimeError("401 Unauthorized"))
    assert is_auth_error(RuntimeError("invalid credentials"))
    assert not is_auth_error(RuntimeError("connection reset"))


@pytest.mark.asyncio
async def test_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        await with_retry(AsyncMock(), attempts=0)
