"""Protocol definitions and helpers for phase pipeline orchestration."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from backforge_schemas.base import BaseSchema
from backforge_schemas.events import (
    PhaseEventData,
    PhaseEventSuffix,
    RunCompletedData,
    RunEvent,
    RunFailedData,
    RunStartedData,
)
from backforge_schemas.logs import LogEntry
from backforge_schemas.pipeline import PhaseOutcome, PhaseRequest
from backforge_schemas.primitives import (
    JsonValue,
    LogLevel,
    PhaseName,
    PhaseOutcomeStatus,
    PhaseStatus,
    PipelineSignal,
    RunId,
    Timestamp,
)
from backforge_schemas.responses import ErrorDetails, ErrorResponse


@runtime_checkable
class PhaseExecutorProtocol(Protocol):
    """Protocol for the domain logic of a single phase.

    Executors typically fan out one correction loop per artifact through the
    cached batch executor.
    """

    async def execute(self, request: PhaseRequest) -> PhaseOutcome:
        """Produce the artifacts of a phase."""
        raise NotImplementedError


@runtime_checkable
class LogSinkProtocol(Protocol):
    """Protocol for emitting JSONL log entries."""

    async def emit_log(self, entry: LogEntry) -> None:
        """Emit a log entry."""
        raise NotImplementedError


class PipelineErrorCode(StrEnum):
    """Categorized error codes for pipeline sequencing failures."""

    PREREQUISITE_VIOLATION = "prerequisite_violation"
    PHASE_EXECUTION_FAILED = "phase_execution_failed"
    EXECUTOR_MISSING = "executor_missing"


class PipelineErrorDetails(BaseSchema):
    """Detailed pipeline error context."""

    phase: PhaseName | None = Field(None, description="Phase associated with error")
    missing_phases: list[PhaseName] | None = Field(
        None, description="Prerequisite phases that never ran"
    )
    outdated_phases: list[PhaseName] | None = Field(
        None, description="Prerequisite phases that are out of date"
    )
    reason: str | None = Field(None, description="Additional error context")


class PipelineErrorInfo(BaseSchema):
    """Structured pipeline error data."""

    code: PipelineErrorCode = Field(..., description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: PipelineErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert pipeline error info to standard error response.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None and self.details.phase is not None:
            blocking = [
                *(self.details.missing_phases or []),
                *(self.details.outdated_phases or []),
            ]
            details = ErrorDetails(
                field="phase",
                provided=str(self.details.phase),
                valid_options=[str(phase) for phase in blocking] or None,
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class PipelineError(Exception):
    """Pipeline error with structured details."""

    def __init__(self, info: PipelineErrorInfo) -> None:
        """Initialize the pipeline error.

        Args:
            info: Structured pipeline error information.
        """
        super().__init__(info.message)
        self.info = info


def build_run_started_log(
    timestamp: Timestamp, run_id: RunId, phases: list[PhaseName]
) -> LogEntry:
    """Build a log entry for run start.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Pipeline run identifier.
        phases: Planned phases for the run.

    Returns:
        LogEntry: Structured run start log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=RunEvent.STARTED,
        run_id=run_id,
        phase=None,
        message="Run started",
        data=RunStartedData(
            phases=[PhaseName(phase) for phase in phases]
        ).model_dump(mode="json", exclude_none=True),
    )


def build_run_completed_log(
    timestamp: Timestamp, run_id: RunId, signal: PipelineSignal
) -> LogEntry:
    """Build a log entry for run completion.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Pipeline run identifier.
        signal: Final pipeline signal.

    Returns:
        LogEntry: Structured run completion log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=RunEvent.COMPLETED,
        run_id=run_id,
        phase=None,
        message="Run completed",
        data=RunCompletedData(signal=PipelineSignal(signal)).model_dump(
            mode="json", exclude_none=True
        ),
    )


def build_run_failed_log(
    timestamp: Timestamp,
    run_id: RunId,
    message: str,
    error_code: str,
    why: str,
    next_action: str,
) -> LogEntry:
    """Build a log entry for run failure.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Pipeline run identifier.
        message: Failure message.
        error_code: Error code describing the failure.
        why: Reason for the failure.
        next_action: Suggested next action.

    Returns:
        LogEntry: Structured run failure log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.ERROR,
        event=RunEvent.FAILED,
        run_id=run_id,
        phase=None,
        message=message,
        data=RunFailedData(
            error_code=error_code, why=why, next_action=next_action
        ).model_dump(mode="json", exclude_none=True),
    )


def build_run_cancelled_log(
    timestamp: Timestamp, run_id: RunId, phase: PhaseName | None
) -> LogEntry:
    """Build a log entry for a cancelled run.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Pipeline run identifier.
        phase: Phase in flight when the run was cancelled.

    Returns:
        LogEntry: Structured cancellation log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN,
        event=RunEvent.CANCELLED,
        run_id=run_id,
        phase=phase,
        message="Run cancelled; pipeline state left untouched",
        data=None,
    )


def build_phase_event_name(phase: PhaseName, suffix: PhaseEventSuffix) -> str:
    """Build a phase-specific event name.

    Args:
        phase: Phase name.
        suffix: Event suffix (e.g., started, completed).

    Returns:
        str: Event name in snake_case.
    """
    return f"{PhaseName(phase).value}_{PhaseEventSuffix(suffix).value}"


def build_phase_log(
    timestamp: Timestamp,
    run_id: RunId,
    phase: PhaseName,
    event_suffix: PhaseEventSuffix,
    message: str,
    *,
    revision: int | None = None,
    outcome: PhaseOutcomeStatus | None = None,
    data: dict[str, JsonValue] | None = None,
    level: LogLevel = LogLevel.INFO,
) -> LogEntry:
    """Build a log entry for a phase lifecycle event.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Pipeline run identifier.
        phase: Phase name.
        event_suffix: Event suffix (started/completed/failed/blocked/...).
        message: Log message.
        revision: Phase revision, when known.
        outcome: Phase outcome, for completion events.
        data: Extra structured event data.
        level: Log level.

    Returns:
        LogEntry: Structured phase log entry.
    """
    payload = PhaseEventData(
        phase=PhaseName(phase), revision=revision, outcome=outcome
    ).model_dump(mode="json", exclude_none=True)
    return LogEntry(
        timestamp=timestamp,
        level=level,
        event=build_phase_event_name(phase, event_suffix),
        run_id=run_id,
        phase=PhaseName(phase),
        message=message,
        data={**payload, **(data or {})},
    )


def format_status_label(status: PhaseStatus) -> str:
    """Render a phase status the way it appears in status lines.

    Returns:
        str: ``none``, ``up-to-date``, or ``out-of-date``.
    """
    return str(status).replace("_", "-")
