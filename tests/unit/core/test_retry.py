"""Unit tests for exponential backoff."""

from __future__ import annotations

import random

import pytest

from backforge_core.retry import compute_delay, is_transient_error, run_with_backoff
from backforge_schemas.config import RetryConfig


class _HttpError(Exception):
    def __init__(self, status_code: int, body: object = None) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (_HttpError(500), True),
        (_HttpError(503), True),
        (_HttpError(429), True),
        (_HttpError(429, {"error": {"code": "insufficient_quota"}}), False),
        (_HttpError(400), False),
        (_HttpError(401), False),
        (ConnectionResetError(), True),
        (TimeoutError(), True),
        (ValueError("bad"), False),
    ],
)
def test_is_transient_error(exc: Exception, expected: bool) -> None:
    """Server errors, rate limits, and network failures are retried."""
    assert is_transient_error(exc) is expected


def test_compute_delay_doubles_and_caps() -> None:
    """Without jitter the delay doubles up to the cap."""
    retry = RetryConfig(backoff_s=1.0, max_backoff_s=5.0, jitter=0.0)

    delays = [compute_delay(retry, attempt) for attempt in range(1, 6)]

    assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_compute_delay_jitter_only_shortens() -> None:
    """Jitter stays within [base * (1 - jitter), base]."""
    retry = RetryConfig(backoff_s=2.0, max_backoff_s=60.0, jitter=0.5)
    rng = random.Random(7)

    for _ in range(50):
        delay = compute_delay(retry, 2, rng)
        assert 2.0 <= delay <= 4.0


@pytest.mark.asyncio
async def test_run_with_backoff_retries_until_success() -> None:
    """Transient failures are retried with increasing delays."""
    calls = 0
    sleeps: list[float] = []
    retried: list[int] = []

    async def _operation() -> str:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise _HttpError(503)
        return "ok"

    async def _sleep(delay: float) -> None:
        sleeps.append(delay)

    result = await run_with_backoff(
        _operation,
        RetryConfig(max_retries=5, backoff_s=1.0, jitter=0.0),
        on_retry=lambda attempt, exc, delay: retried.append(attempt),
        sleep=_sleep,
    )

    assert result == "ok"
    assert calls == 3
    assert sleeps == [1.0, 2.0]
    assert retried == [1, 2]


@pytest.mark.asyncio
async def test_run_with_backoff_raises_after_max_retries() -> None:
    """The last error surfaces once retries are spent."""
    calls = 0

    async def _operation() -> None:
        nonlocal calls
        calls += 1
        raise _HttpError(500)

    async def _sleep(delay: float) -> None:
        return None

    with pytest.raises(_HttpError):
        await run_with_backoff(
            _operation, RetryConfig(max_retries=2, backoff_s=0.1), sleep=_sleep
        )

    assert calls == 3


@pytest.mark.asyncio
async def test_run_with_backoff_does_not_retry_client_errors() -> None:
    """Non-transient errors are raised immediately."""
    calls = 0

    async def _operation() -> None:
        nonlocal calls
        calls += 1
        raise _HttpError(400)

    with pytest.raises(_HttpError):
        await run_with_backoff(_operation, RetryConfig(max_retries=5))

    assert calls == 1


@pytest.mark.asyncio
async def test_run_with_backoff_awaits_async_callback() -> None:
    """Async retry callbacks are awaited."""
    seen: list[float] = []
    attempts = iter([ConnectionError("reset"), None])

    async def _operation() -> str:
        error = next(attempts)
        if error is not None:
            raise error
        return "done"

    async def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:
        seen.append(delay)

    async def _sleep(delay: float) -> None:
        return None

    result = await run_with_backoff(
        _operation,
        RetryConfig(backoff_s=0.5, jitter=0.0),
        on_retry=_on_retry,
        sleep=_sleep,
    )

    assert result == "done"
    assert seen == [0.5]
