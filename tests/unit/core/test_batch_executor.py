"""Unit tests for the cached batch executor."""

from __future__ import annotations

import asyncio
import itertools

import pytest

from backforge_core.batch import BatchTask, CachedBatchExecutor, wave_count
from backforge_core.ports.batch import BatchError, BatchErrorCode
from backforge_core.ports.orchestrator import LogSinkProtocol
from backforge_schemas.events import BatchEvent
from backforge_schemas.logs import LogEntry
from backforge_schemas.primitives import LogLevel, RunId


class _StubLogSink(LogSinkProtocol):
    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    async def emit_log(self, entry: LogEntry) -> None:
        self.entries.append(entry)


def _executor(**kwargs: object) -> CachedBatchExecutor:
    counter = itertools.count()
    return CachedBatchExecutor(
        key_factory=lambda: f"key-{next(counter)}",
        **kwargs,  # type: ignore[arg-type]
    )


class _Tracker:
    """Tracks how many tasks run at once and how each one ended."""

    def __init__(self) -> None:
        self.active = 0
        self.peak = 0
        self.order: list[int] = []
        self.completed: set[int] = set()
        self.cancelled: set[int] = set()

    def task(
        self, index: int, *, fail: bool = False, gate: asyncio.Event | None = None
    ) -> BatchTask[tuple[int, str]]:
        async def _run(cache_key: str) -> tuple[int, str]:
            self.active += 1
            self.peak = max(self.peak, self.active)
            self.order.append(index)
            try:
                if gate is not None:
                    await gate.wait()
                await asyncio.sleep(0.001 * (index % 3))
                if fail:
                    raise ValueError(f"task {index} failed")
                self.completed.add(index)
                return index, cache_key
            except asyncio.CancelledError:
                self.cancelled.add(index)
                raise
            finally:
                self.active -= 1

        return _run


@pytest.mark.asyncio
async def test_failing_task_rejects_whole_batch(run_id: RunId) -> None:
    """One failing task surfaces its own error and no results."""
    tracker = _Tracker()
    sink = _StubLogSink()
    never = asyncio.Event()
    tasks = [
        tracker.task(index, fail=index == 5, gate=never if index > 5 else None)
        for index in range(10)
    ]

    with pytest.raises(ValueError, match="task 5 failed"):
        await _executor(log_sink=sink, run_id=run_id).run(3, tasks)

    assert sink.entries[0].event == BatchEvent.STARTED
    assert sink.entries[-1].event == BatchEvent.FAILED
    assert sink.entries[-1].level == LogLevel.ERROR
    in_flight = set(tracker.order) - tracker.completed - {5}
    assert tracker.cancelled == in_flight
    assert tracker.cancelled
    assert all(index > 5 for index in tracker.cancelled)
    assert tracker.active == 0


@pytest.mark.asyncio
async def test_results_keep_input_order_and_respect_limit() -> None:
    """Results align to input order and concurrency never exceeds the limit."""
    tracker = _Tracker()
    tasks = [tracker.task(index) for index in range(10)]

    results = await _executor().run(3, tasks)

    assert [index for index, _ in results] == list(range(10))
    assert tracker.peak <= 3


@pytest.mark.asyncio
async def test_each_wave_shares_one_key() -> None:
    """Task i receives the key of wave i // limit."""
    tracker = _Tracker()

    results = await _executor().run(3, [tracker.task(index) for index in range(7)])

    assert [key for _, key in results] == [
        "key-0",
        "key-0",
        "key-0",
        "key-1",
        "key-1",
        "key-1",
        "key-2",
    ]


@pytest.mark.asyncio
async def test_warmup_runs_first_task_alone() -> None:
    """With warmup, the first task finishes before any other starts."""
    started: list[int] = []
    first_done = asyncio.Event()

    async def _first(cache_key: str) -> int:
        started.append(0)
        await asyncio.sleep(0.005)
        first_done.set()
        return 0

    def _later(index: int) -> BatchTask[int]:
        async def _run(cache_key: str) -> int:
            assert first_done.is_set()
            started.append(index)
            return index

        return _run

    tasks: list[BatchTask[int]] = [_first, *(_later(index) for index in (1, 2, 3))]
    results = await _executor(warmup=True).run(4, tasks)

    assert results == [0, 1, 2, 3]
    assert started[0] == 0


@pytest.mark.asyncio
async def test_without_warmup_tasks_start_together() -> None:
    """Without warmup, the first wave runs concurrently."""
    tracker = _Tracker()

    await _executor(warmup=False).run(4, [tracker.task(index) for index in range(4)])

    assert tracker.peak == 4


@pytest.mark.asyncio
async def test_empty_batch_returns_empty_list() -> None:
    """No tasks means no keys and no results."""
    generated: list[str] = []

    def _factory() -> str:
        generated.append("key")
        return "key"

    results = await CachedBatchExecutor(key_factory=_factory).run(3, [])

    assert results == []
    assert generated == []


@pytest.mark.parametrize("limit", [0, -1])
@pytest.mark.asyncio
async def test_invalid_limit_is_rejected(limit: int) -> None:
    """The concurrency limit must be positive."""
    with pytest.raises(BatchError) as exc_info:
        await _executor().run(limit, [_Tracker().task(0)])

    assert exc_info.value.info.code == BatchErrorCode.INVALID_LIMIT


@pytest.mark.parametrize(
    ("tasks", "limit", "expected"),
    [(10, 3, 4), (9, 3, 3), (1, 8, 1), (0, 3, 0)],
)
def test_wave_count(tasks: int, limit: int, expected: int) -> None:
    """Waves are the ceiling of tasks over limit."""
    assert wave_count(tasks, limit) == expected


@pytest.mark.asyncio
async def test_completed_event_reports_waves(run_id: RunId) -> None:
    """Lifecycle logs carry task and wave counts."""
    sink = _StubLogSink()
    tracker = _Tracker()

    await _executor(log_sink=sink, run_id=run_id).run(
        2, [tracker.task(index) for index in range(5)]
    )

    assert [entry.event for entry in sink.entries] == [
        BatchEvent.STARTED,
        BatchEvent.COMPLETED,
    ]
    assert sink.entries[-1].data is not None
    assert sink.entries[-1].data["wave_count"] == 3


@pytest.mark.asyncio
async def test_cancelling_batch_cancels_running_tasks() -> None:
    """Cancelling the caller cancels in-flight tasks and starts no others."""
    tracker = _Tracker()
    gate = asyncio.Event()
    tasks = [tracker.task(index, gate=gate) for index in range(5)]
    batch = asyncio.create_task(_executor(warmup=False).run(3, tasks))
    while tracker.active < 3:
        await asyncio.sleep(0)

    batch.cancel()
    with pytest.raises(asyncio.CancelledError):
        await batch

    assert tracker.cancelled == {0, 1, 2}
    assert tracker.completed == set()
    assert sorted(tracker.order) == [0, 1, 2]
    assert tracker.active == 0
