"""Protocol definitions and errors for pipeline persistence."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from backforge_schemas.base import BaseSchema
from backforge_schemas.history import HistoryEntry
from backforge_schemas.logs import LogEntry
from backforge_schemas.pipeline import PipelineState
from backforge_schemas.primitives import RunId
from backforge_schemas.responses import ErrorDetails, ErrorResponse


class StorageErrorCode(StrEnum):
    """Categorized error codes for storage operations."""

    NOT_FOUND = "not_found"
    IO_ERROR = "io_error"
    VALIDATION_ERROR = "validation_error"


class StorageErrorDetails(BaseSchema):
    """Detailed storage error context."""

    operation: str | None = Field(None, description="Storage operation name")
    run_id: RunId | None = Field(None, description="Run identifier")
    path: str | None = Field(None, description="Filesystem path")
    reason: str | None = Field(None, description="Additional error context")


class StorageErrorInfo(BaseSchema):
    """Structured storage error data."""

    code: StorageErrorCode = Field(..., description="Storage error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: StorageErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert storage error info to the standard error response schema.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None:
            details = ErrorDetails(
                field=self.details.operation,
                provided=self.details.path,
                valid_options=None,
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class StorageError(Exception):
    """Storage error with structured details."""

    def __init__(self, info: StorageErrorInfo) -> None:
        """Initialize the storage error.

        Args:
            info: Structured storage error information.
        """
        super().__init__(info.message)
        self.info = info


@runtime_checkable
class LogStoreProtocol(Protocol):
    """Protocol for persisting JSONL log entries."""

    async def append_log(self, entry: LogEntry) -> None:
        """Append a single log entry."""
        raise NotImplementedError


@runtime_checkable
class PipelineStateStoreProtocol(Protocol):
    """Protocol for persisting pipeline state and history."""

    async def save_state(self, state: PipelineState) -> None:
        """Persist the latest pipeline state."""
        raise NotImplementedError

    async def load_state(self) -> PipelineState | None:
        """Load the latest pipeline state if present."""
        raise NotImplementedError

    async def append_history(self, entries: list[HistoryEntry]) -> None:
        """Append history entries."""
        raise NotImplementedError

    async def load_history(self) -> list[HistoryEntry]:
        """Load every history entry, oldest first."""
        raise NotImplementedError
