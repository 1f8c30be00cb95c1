"""Filesystem-backed stores for logs, pipeline state, and history."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Sequence
from pathlib import Path

import orjson
from pydantic import ValidationError

from backforge_core.ports.storage import (
    LogStoreProtocol,
    PipelineStateStoreProtocol,
    StorageError,
    StorageErrorCode,
    StorageErrorDetails,
    StorageErrorInfo,
)
from backforge_io.storage.log_sink import encode_log_entry
from backforge_schemas.history import HistoryEntry
from backforge_schemas.logs import LogEntry
from backforge_schemas.pipeline import PipelineState
from backforge_schemas.primitives import RunId

STATE_FILENAME = "state.json"
HISTORY_FILENAME = "history.jsonl"


class FileSystemLogStore(LogStoreProtocol):
    """JSONL log store writing one file per run."""

    def __init__(self, logs_dir: str | Path) -> None:
        """Initialize the log store."""
        self._logs_dir = Path(logs_dir)

    def log_path(self, run_id: RunId) -> Path:
        """Return the JSONL path for a run."""
        return self._logs_dir / f"{run_id}.jsonl"

    async def append_log(self, entry: LogEntry) -> None:
        """Append a single log entry.

        Raises:
            StorageError: If the log entry cannot be written.
        """
        path = self.log_path(entry.run_id)
        try:
            await asyncio.to_thread(_append_lines, path, [encode_log_entry(entry)])
        except OSError as exc:
            raise _io_error("append_log", path, exc, run_id=entry.run_id) from exc


class FileSystemStateStore(PipelineStateStoreProtocol):
    """Pipeline state (JSON) and history (JSONL) under one directory."""

    def __init__(self, state_dir: str | Path) -> None:
        """Initialize the state store."""
        self._state_dir = Path(state_dir)

    @property
    def state_path(self) -> Path:
        """Path of the pipeline state document."""
        return self._state_dir / STATE_FILENAME

    @property
    def history_path(self) -> Path:
        """Path of the history JSONL file."""
        return self._state_dir / HISTORY_FILENAME

    async def save_state(self, state: PipelineState) -> None:
        """Persist the pipeline state, replacing the previous document.

        Raises:
            StorageError: If the state cannot be written.
        """
        payload = orjson.dumps(state.model_dump(mode="json"))
        try:
            await asyncio.to_thread(_replace_file, self.state_path, payload)
        except OSError as exc:
            raise _io_error("save_state", self.state_path, exc) from exc

    async def load_state(self) -> PipelineState | None:
        """Load the pipeline state.

        Returns:
            PipelineState | None: Stored state, or None when never saved.

        Raises:
            StorageError: If the document cannot be read or parsed.
        """
        path = self.state_path
        if not path.exists():
            return None
        try:
            payload = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise _io_error("load_state", path, exc) from exc
        try:
            return PipelineState.model_validate_json(payload)
        except ValidationError as exc:
            raise _validation_error("load_state", path, exc) from exc

    async def append_history(self, entries: list[HistoryEntry]) -> None:
        """Append history entries.

        Raises:
            StorageError: If the entries cannot be written.
        """
        if not entries:
            return
        lines = [
            orjson.dumps(
                entry.model_dump(mode="json"), option=orjson.OPT_APPEND_NEWLINE
            )
            for entry in entries
        ]
        try:
            await asyncio.to_thread(_append_lines, self.history_path, lines)
        except OSError as exc:
            raise _io_error("append_history", self.history_path, exc) from exc

    async def load_history(self) -> list[HistoryEntry]:
        """Load every history entry, oldest first.

        Returns:
            list[HistoryEntry]: Stored entries (empty when none).

        Raises:
            StorageError: If the file cannot be read or a line is invalid.
        """
        path = self.history_path
        if not path.exists():
            return []
        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise _io_error("load_history", path, exc) from exc
        entries: list[HistoryEntry] = []
        for line in raw.splitlines():
            if not line.strip():
                continue
            try:
                entries.append(HistoryEntry.model_validate_json(line))
            except ValidationError as exc:
                raise _validation_error("load_history", path, exc) from exc
        return entries


def _append_lines(path: Path, lines: Sequence[bytes]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "ab") as handle:
        handle.writelines(lines)


def _replace_file(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    temp_path.write_bytes(payload)
    os.replace(temp_path, path)


def _io_error(
    operation: str, path: Path, exc: OSError, *, run_id: RunId | None = None
) -> StorageError:
    return StorageError(
        StorageErrorInfo(
            code=StorageErrorCode.IO_ERROR,
            message=str(exc) or f"{operation} failed",
            details=StorageErrorDetails(
                operation=operation, run_id=run_id, path=str(path)
            ),
        )
    )


def _validation_error(
    operation: str, path: Path, exc: ValidationError
) -> StorageError:
    return StorageError(
        StorageErrorInfo(
            code=StorageErrorCode.VALIDATION_ERROR,
            message=f"Invalid data in {path.name}",
            details=StorageErrorDetails(
                operation=operation,
                path=str(path),
                reason=f"{exc.error_count()} validation errors",
            ),
        )
    )
