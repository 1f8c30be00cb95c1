"""Exponential backoff with jitter for transient model errors."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable

from backforge_schemas.config import RetryConfig

_QUOTA_MARKER = "insufficient_quota"
_TOO_MANY_REQUESTS = 429
_SERVER_ERROR_MIN = 500

type RetryCallback = Callable[[int, BaseException, float], Awaitable[None] | None]


def is_transient_error(exc: BaseException) -> bool:
    """Decide whether an error is worth retrying.

    HTTP errors are recognized by their ``status_code`` attribute: 5xx and 429
    are transient unless the body reports an exhausted quota. Connection and
    timeout errors are always transient.

    Args:
        exc: Error raised by the operation.

    Returns:
        bool: True when the operation should be retried.
    """
    if isinstance(exc, ConnectionError | TimeoutError):
        return True
    status_code = getattr(exc, "status_code", None)
    if not isinstance(status_code, int):
        return False
    if status_code != _TOO_MANY_REQUESTS and status_code < _SERVER_ERROR_MIN:
        return False
    body = getattr(exc, "body", None)
    return _QUOTA_MARKER not in str(body or "")


def compute_delay(
    retry: RetryConfig, attempt: int, rng: random.Random | None = None
) -> float:
    """Compute the delay before retry ``attempt`` (1-based).

    The base delay doubles per attempt up to ``max_backoff_s``; jitter then
    shortens it by up to ``jitter`` of its value.

    Args:
        retry: Retry policy.
        attempt: Retry ordinal, starting at 1.
        rng: Random source.

    Returns:
        float: Delay in seconds.
    """
    base = min(retry.backoff_s * (2 ** (attempt - 1)), retry.max_backoff_s)
    source = rng or random
    return base - base * retry.jitter * source.random()


async def run_with_backoff[T](
    operation: Callable[[], Awaitable[T]],
    retry: RetryConfig,
    *,
    is_transient: Callable[[BaseException], bool] = is_transient_error,
    on_retry: RetryCallback | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: random.Random | None = None,
) -> T:
    """Run an operation, retrying transient failures with backoff.

    Args:
        operation: Zero-argument coroutine factory.
        retry: Retry policy.
        is_transient: Predicate selecting retryable errors.
        on_retry: Callback invoked with (attempt, error, delay) before sleeping.
        sleep: Sleep function.
        rng: Random source for jitter.

    Returns:
        T: The operation's result.

    Raises:
        Exception: The last error, once retries are exhausted or when the
            error is not transient.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= retry.max_retries or not is_transient(exc):
                raise
            attempt += 1
            delay = compute_delay(retry, attempt, rng)
            if on_retry is not None:
                outcome = on_retry(attempt, exc, delay)
                if outcome is not None:
                    await outcome
            await sleep(delay)
