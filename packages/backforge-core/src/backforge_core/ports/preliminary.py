"""Errors and log helpers for preliminary context requests."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from backforge_schemas.base import BaseSchema
from backforge_schemas.events import PreliminaryEvent
from backforge_schemas.logs import LogEntry
from backforge_schemas.preliminary import PreliminaryValidation
from backforge_schemas.primitives import LogLevel, PreliminaryKind, RunId, Timestamp
from backforge_schemas.responses import ErrorDetails, ErrorResponse


class PreliminaryErrorCode(StrEnum):
    """Error codes for preliminary controller failures."""

    RAG_LIMIT_EXCEEDED = "rag_limit_exceeded"
    INVALID_TOOL_CALL = "invalid_tool_call"
    INVALID_SCHEMA = "invalid_schema"


class PreliminaryErrorInfo(BaseSchema):
    """Structured preliminary error data."""

    code: PreliminaryErrorCode = Field(..., description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    kinds: list[PreliminaryKind] | None = Field(
        None, description="Kinds still requestable when the error occurred"
    )
    turns: int | None = Field(None, ge=0, description="Model turns consumed")

    def to_error_response(self) -> ErrorResponse:
        """Convert preliminary error info to standard error response.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.kinds is not None:
            details = ErrorDetails(
                field="kinds",
                provided=None,
                valid_options=[str(kind) for kind in self.kinds],
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class PreliminaryError(Exception):
    """Preliminary controller error with structured details."""

    def __init__(self, info: PreliminaryErrorInfo) -> None:
        """Initialize the preliminary error.

        Args:
            info: Structured preliminary error information.
        """
        super().__init__(info.message)
        self.info = info


def build_preliminary_log(
    timestamp: Timestamp, run_id: RunId, validation: PreliminaryValidation
) -> LogEntry:
    """Build a log entry for a validated preliminary request.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Pipeline run identifier.
        validation: Validation outcome.

    Returns:
        LogEntry: Structured preliminary log entry.
    """
    if not validation.success:
        event = PreliminaryEvent.REJECTED
        level = LogLevel.DEBUG
        message = f"Preliminary request rejected ({len(validation.issues)} issues)"
    elif validation.exhausted:
        event = PreliminaryEvent.EXHAUSTED
        level = LogLevel.DEBUG
        message = f"Preliminary kind exhausted: {validation.kind}"
    else:
        event = PreliminaryEvent.LOADED
        level = LogLevel.DEBUG
        message = f"Preliminary items loaded: {len(validation.loaded)}"
    return LogEntry(
        timestamp=timestamp,
        level=level,
        event=event,
        run_id=run_id,
        phase=None,
        message=message,
        data=validation.model_dump(mode="json", exclude={"issues"}),
    )
