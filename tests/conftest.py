"""Common pytest configuration."""

from collections.abc import Callable
from uuid import UUID

import coverage
import pytest

from backforge_schemas.primitives import RunId

RUN_ID: RunId = UUID("01890a5c-91c8-7b2a-9f51-9b40d0cfb700")


def pytest_sessionfinish(session: object, exitstatus: int) -> None:
    """Ensure coverage data connections are closed to avoid ResourceWarnings."""
    cov = coverage.Coverage.current()
    if cov is None:
        return

    data = cov.get_data()
    close = getattr(data, "close", None)
    if callable(close):
        close()


@pytest.fixture
def anyio_backend() -> str:
    """Force asyncio backend for anyio-powered tests.

    Returns:
        str: The backend name.
    """
    return "asyncio"


@pytest.fixture
def run_id() -> RunId:
    """Provide a fixed uuid7 run identifier.

    Returns:
        RunId: Run identifier.
    """
    return RUN_ID


@pytest.fixture
def clock() -> Callable[[], str]:
    """Provide a deterministic, strictly increasing timestamp source.

    Returns:
        Callable[[], str]: Clock returning ISO-8601 timestamps.
    """
    ticks = iter(range(10_000))

    def _tick() -> str:
        second = next(ticks)
        return f"2026-01-26T12:{second // 60 % 60:02d}:{second % 60:02d}Z"

    return _tick
