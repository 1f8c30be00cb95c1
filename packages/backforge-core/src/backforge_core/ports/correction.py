"""Protocol definitions and helpers for the write/validate/correct loop."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from backforge_schemas.artifacts import Artifact, ProjectContext, ValidationResult
from backforge_schemas.base import BaseSchema
from backforge_schemas.correction import WriteRequest, WriterOutput
from backforge_schemas.events import CorrectionEvent, CorrectionEventData
from backforge_schemas.logs import LogEntry
from backforge_schemas.primitives import (
    CorrectionState,
    FailureKind,
    LogLevel,
    PhaseName,
    RunId,
    Timestamp,
)
from backforge_schemas.responses import ErrorDetails, ErrorResponse


@runtime_checkable
class ValidatorProtocol(Protocol):
    """Protocol for the deterministic checker judging candidates.

    Implementations return a tri-state result. Raising is treated the same
    as returning an ``exception`` result.
    """

    async def validate(
        self, candidate: Artifact, context: ProjectContext
    ) -> ValidationResult:
        """Validate a candidate artifact."""
        raise NotImplementedError


@runtime_checkable
class WriterProtocol(Protocol):
    """Protocol for producing drafts and corrections."""

    async def write(self, request: WriteRequest) -> WriterOutput:
        """Produce a draft, or a correction when ``request.previous`` is set."""
        raise NotImplementedError


class CorrectionErrorCode(StrEnum):
    """Error codes for correction loop failures."""

    VALIDATOR_EXCEPTION = "validator_exception"
    INVALID_STATE = "invalid_state"


class CorrectionErrorDetails(BaseSchema):
    """Detailed correction error context."""

    artifact: str = Field(..., min_length=1, description="Artifact identifier")
    attempt: int = Field(..., ge=0, description="Attempt ordinal")
    state: CorrectionState | None = Field(None, description="Loop state")
    reason: str | None = Field(None, description="Underlying error")


class CorrectionErrorInfo(BaseSchema):
    """Structured correction error data."""

    code: CorrectionErrorCode = Field(..., description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: CorrectionErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert correction error info to standard error response.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None:
            details = ErrorDetails(
                field="artifact", provided=self.details.artifact, valid_options=None
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class CorrectionError(Exception):
    """Correction loop error with structured details."""

    def __init__(self, info: CorrectionErrorInfo) -> None:
        """Initialize the correction error.

        Args:
            info: Structured correction error information.
        """
        super().__init__(info.message)
        self.info = info


def build_correction_log(
    timestamp: Timestamp,
    run_id: RunId,
    event: CorrectionEvent,
    data: CorrectionEventData,
    message: str,
    *,
    phase: PhaseName | None = None,
) -> LogEntry:
    """Build a log entry for a correction loop event.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Pipeline run identifier.
        event: Correction event name.
        data: Event payload.
        message: Log message.
        phase: Phase the artifact belongs to, if known.

    Returns:
        LogEntry: Structured correction log entry.
    """
    level = LogLevel.INFO
    if event == CorrectionEvent.ATTEMPT_FAILED:
        level = LogLevel.WARN
    elif event in {CorrectionEvent.EXHAUSTED, CorrectionEvent.ABORTED}:
        level = LogLevel.ERROR
    return LogEntry(
        timestamp=timestamp,
        level=level,
        event=event,
        run_id=run_id,
        phase=None if phase is None else PhaseName(phase),
        message=message,
        data=data.model_dump(mode="json", exclude_none=True),
    )


def build_correction_event_data(
    artifact: str,
    state: CorrectionState,
    attempt: int,
    life: int,
    failure: FailureKind | None = None,
    diagnostic_count: int = 0,
) -> CorrectionEventData:
    """Build the payload for a correction event.

    Returns:
        CorrectionEventData: Event payload.
    """
    return CorrectionEventData(
        artifact=artifact,
        state=CorrectionState(state),
        attempt=attempt,
        life=life,
        failure=None if failure is None else FailureKind(failure),
        diagnostic_count=diagnostic_count,
    )
