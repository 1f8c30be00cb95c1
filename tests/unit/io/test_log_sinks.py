"""Unit tests for log sink adapters."""

from __future__ import annotations

import io
from uuid import UUID

import orjson
import pytest

from backforge_core.ports.orchestrator import LogSinkProtocol
from backforge_io.storage.log_sink import (
    CompositeLogSink,
    ConsoleLogSink,
    NoopLogSink,
    StorageLogSink,
    build_log_sink,
    encode_log_entry,
)
from backforge_schemas.config import LoggingConfig, LogSinkConfig
from backforge_schemas.logs import LogEntry
from backforge_schemas.primitives import LogLevel, LogSinkType


class _MemoryLogStore:
    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    async def append_log(self, entry: LogEntry) -> None:
        self.entries.append(entry)


class _RecordingSink(LogSinkProtocol):
    def __init__(self, name: str, order: list[str]) -> None:
        self._name = name
        self._order = order

    async def emit_log(self, entry: LogEntry) -> None:
        self._order.append(self._name)


def _entry(run_id: UUID, level: LogLevel = LogLevel.INFO) -> LogEntry:
    return LogEntry(
        timestamp="2026-01-26T12:00:00Z",
        level=level,
        event="run_started",
        run_id=run_id,
        message="Run started",
        data={"phases": ["analyze"]},
    )


def test_encode_log_entry_is_one_json_line(run_id: UUID) -> None:
    """Entries encode to a newline-terminated JSON object."""
    line = encode_log_entry(_entry(run_id))

    assert line.endswith(b"\n")
    assert line.count(b"\n") == 1
    decoded = orjson.loads(line)
    assert decoded["run_id"] == str(run_id)
    assert decoded["data"] == {"phases": ["analyze"]}


@pytest.mark.asyncio
async def test_console_sink_filters_below_min_level(run_id: UUID) -> None:
    """Entries under the threshold are dropped."""
    stream = io.StringIO()
    sink = ConsoleLogSink(stream, min_level=LogLevel.WARN)

    await sink.emit_log(_entry(run_id, LogLevel.INFO))
    await sink.emit_log(_entry(run_id, LogLevel.ERROR))

    lines = stream.getvalue().splitlines()
    assert len(lines) == 1
    assert orjson.loads(lines[0])["level"] == "error"


@pytest.mark.asyncio
async def test_storage_sink_forwards_to_store(run_id: UUID) -> None:
    """Storage sinks persist through the store."""
    store = _MemoryLogStore()

    await StorageLogSink(store).emit_log(_entry(run_id))

    assert [entry.event for entry in store.entries] == ["run_started"]


@pytest.mark.asyncio
async def test_composite_sink_preserves_order(run_id: UUID) -> None:
    """Composite sinks forward to every sink in order."""
    order: list[str] = []
    sink = CompositeLogSink([
        _RecordingSink("first", order),
        _RecordingSink("second", order),
    ])

    await sink.emit_log(_entry(run_id))

    assert order == ["first", "second"]


def test_build_log_sink_single() -> None:
    """A single configured sink is returned unwrapped."""
    config = LoggingConfig(sinks=[LogSinkConfig(type=LogSinkType.NOOP)])

    sink = build_log_sink(config, _MemoryLogStore())

    assert isinstance(sink, NoopLogSink)


@pytest.mark.asyncio
async def test_build_log_sink_composite(run_id: UUID) -> None:
    """Several sinks are wrapped, and console sinks honor their level."""
    config = LoggingConfig.model_validate({
        "sinks": [{"type": "file"}, {"type": "console", "level": "error"}]
    })
    store = _MemoryLogStore()
    stream = io.StringIO()

    sink = build_log_sink(config, store, stream=stream)
    await sink.emit_log(_entry(run_id))

    assert isinstance(sink, CompositeLogSink)
    assert len(store.entries) == 1
    assert stream.getvalue() == ""
