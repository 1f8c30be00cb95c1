"""Errors and log helpers for cached batch execution."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from backforge_schemas.base import BaseSchema
from backforge_schemas.events import BatchEvent, BatchEventData
from backforge_schemas.logs import LogEntry
from backforge_schemas.primitives import LogLevel, PhaseName, RunId, Timestamp
from backforge_schemas.responses import ErrorDetails, ErrorResponse


class BatchErrorCode(StrEnum):
    """Error codes for batch executor failures."""

    INVALID_LIMIT = "invalid_limit"


class BatchErrorInfo(BaseSchema):
    """Structured batch error data."""

    code: BatchErrorCode = Field(..., description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    limit: int | None = Field(None, description="Concurrency limit provided")

    def to_error_response(self) -> ErrorResponse:
        """Convert batch error info to standard error response.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.limit is not None:
            details = ErrorDetails(
                field="limit", provided=str(self.limit), valid_options=None
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class BatchError(Exception):
    """Batch executor error with structured details."""

    def __init__(self, info: BatchErrorInfo) -> None:
        """Initialize the batch error.

        Args:
            info: Structured batch error information.
        """
        super().__init__(info.message)
        self.info = info


def build_batch_log(
    timestamp: Timestamp,
    run_id: RunId,
    event: BatchEvent,
    data: BatchEventData,
    *,
    phase: PhaseName | None = None,
    message: str | None = None,
) -> LogEntry:
    """Build a log entry for a batch lifecycle event.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Pipeline run identifier.
        event: Batch event name.
        data: Event payload.
        phase: Phase the batch runs for, if known.
        message: Optional message override.

    Returns:
        LogEntry: Structured batch log entry.
    """
    level = LogLevel.ERROR if event == BatchEvent.FAILED else LogLevel.DEBUG
    default_message = {
        BatchEvent.STARTED: f"Batch started ({data.task_count} tasks)",
        BatchEvent.COMPLETED: f"Batch completed ({data.task_count} tasks)",
        BatchEvent.FAILED: "Batch failed",
    }[BatchEvent(event)]
    return LogEntry(
        timestamp=timestamp,
        level=level,
        event=event,
        run_id=run_id,
        phase=None if phase is None else PhaseName(phase),
        message=message or default_message,
        data=data.model_dump(mode="json", exclude_none=True),
    )
