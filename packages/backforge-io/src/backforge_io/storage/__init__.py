"""Storage adapters for logs, pipeline state, and history."""

from backforge_io.storage.filesystem import FileSystemLogStore, FileSystemStateStore
from backforge_io.storage.log_sink import (
    CompositeLogSink,
    ConsoleLogSink,
    NoopLogSink,
    StorageLogSink,
    build_log_sink,
)

__all__ = [
    "CompositeLogSink",
    "ConsoleLogSink",
    "FileSystemLogStore",
    "FileSystemStateStore",
    "NoopLogSink",
    "StorageLogSink",
    "build_log_sink",
]
