"""Bounded-concurrency batch execution with per-wave prompt-cache keys."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from typing import cast
from uuid import uuid7

from backforge_core.ports.batch import (
    BatchError,
    BatchErrorCode,
    BatchErrorInfo,
    build_batch_log,
)
from backforge_core.ports.orchestrator import LogSinkProtocol
from backforge_schemas.events import BatchEvent, BatchEventData
from backforge_schemas.primitives import PhaseName, RunId, Timestamp

type BatchTask[T] = Callable[[str], Awaitable[T]]


def _default_cache_key() -> str:
    return str(uuid7())


def wave_count(task_count: int, limit: int) -> int:
    """Return the number of cache-key waves for a batch.

    Args:
        task_count: Number of tasks.
        limit: Concurrency limit.

    Returns:
        int: ``ceil(task_count / limit)``.
    """
    return -(-task_count // limit)


class CachedBatchExecutor:
    """Run independent tasks under a semaphore, sharing a cache key per wave.

    Task ``i`` belongs to wave ``i // limit`` and receives that wave's key.
    Keys are generated once per wave, in wave order, before any task starts.
    """

    def __init__(
        self,
        *,
        warmup: bool = True,
        key_factory: Callable[[], str] | None = None,
        log_sink: LogSinkProtocol | None = None,
        run_id: RunId | None = None,
        phase: PhaseName | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            warmup: Run the first task alone before starting the rest.
            key_factory: Cache-key generator (defaults to uuid7 strings).
            log_sink: Optional sink for batch lifecycle logs.
            run_id: Run identifier attached to logs.
            phase: Phase attached to logs.
            clock: Timestamp provider.
        """
        self._warmup = warmup
        self._key_factory = key_factory or _default_cache_key
        self._log_sink = log_sink
        self._run_id = run_id
        self._phase = phase
        self._clock = clock or _now_timestamp

    async def run[T](self, limit: int, tasks: Sequence[BatchTask[T]]) -> list[T]:
        """Execute tasks and return their results in input order.

        Args:
            limit: Maximum number of tasks running at once.
            tasks: Tasks receiving their wave's cache key.

        Returns:
            list[T]: Results aligned to input order.

        Raises:
            BatchError: If the limit is not positive.
        """
        if limit < 1:
            raise BatchError(
                BatchErrorInfo(
                    code=BatchErrorCode.INVALID_LIMIT,
                    message="Concurrency limit must be at least 1",
                    limit=limit,
                )
            )
        if not tasks:
            return []
        keys = [self._key_factory() for _ in range(wave_count(len(tasks), limit))]
        event_data = BatchEventData(
            task_count=len(tasks), limit=limit, wave_count=len(keys)
        )
        await self._emit(BatchEvent.STARTED, event_data)
        semaphore = asyncio.Semaphore(limit)
        results: list[T | None] = [None] * len(tasks)

        async def _run(index: int) -> None:
            async with semaphore:
                results[index] = await tasks[index](keys[index // limit])

        start = 0
        try:
            if self._warmup:
                await _run(0)
                start = 1
            async with asyncio.TaskGroup() as group:
                for index in range(start, len(tasks)):
                    group.create_task(_run(index))
        except ExceptionGroup as group_error:
            await self._emit(
                BatchEvent.FAILED, event_data, message=str(group_error.exceptions[0])
            )
            raise group_error.exceptions[0] from None
        except Exception as exc:
            await self._emit(BatchEvent.FAILED, event_data, message=str(exc))
            raise
        await self._emit(BatchEvent.COMPLETED, event_data)
        return [cast(T, result) for result in results]

    async def _emit(
        self, event: BatchEvent, data: BatchEventData, *, message: str | None = None
    ) -> None:
        if self._log_sink is None or self._run_id is None:
            return
        await self._log_sink.emit_log(
            build_batch_log(
                self._clock(),
                self._run_id,
                event,
                data,
                phase=self._phase,
                message=message,
            )
        )


def _now_timestamp() -> Timestamp:
    value = datetime.now(tz=UTC).isoformat()
    return value.replace("+00:00", "Z")
