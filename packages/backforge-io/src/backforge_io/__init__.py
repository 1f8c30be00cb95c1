"""backforge-io: Storage adapters."""

from backforge_io.storage import (
    CompositeLogSink,
    ConsoleLogSink,
    FileSystemLogStore,
    FileSystemStateStore,
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
