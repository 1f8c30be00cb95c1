"""Event taxonomy and structured payloads for run observability."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from backforge_schemas.base import BaseSchema
from backforge_schemas.primitives import (
    CorrectionState,
    FailureKind,
    PhaseName,
    PhaseOutcomeStatus,
    PipelineSignal,
)


class RunEvent(StrEnum):
    """Event names for run lifecycle."""

    STARTED = "run_started"
    COMPLETED = "run_completed"
    FAILED = "run_failed"
    CANCELLED = "run_cancelled"


class PhaseEventSuffix(StrEnum):
    """Suffixes for phase lifecycle events."""

    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    BLOCKED = "blocked"
    INVALIDATED = "invalidated"
    CANCELLED = "cancelled"


class CorrectionEvent(StrEnum):
    """Event names for the correction loop."""

    ATTEMPT_FAILED = "correction_attempt_failed"
    COMPLETED = "correction_completed"
    EXHAUSTED = "correction_exhausted"
    ABORTED = "correction_aborted"


class PreliminaryEvent(StrEnum):
    """Event names for preliminary context requests."""

    LOADED = "preliminary_loaded"
    REJECTED = "preliminary_rejected"
    EXHAUSTED = "preliminary_exhausted"


class BatchEvent(StrEnum):
    """Event names for cached batch execution."""

    STARTED = "batch_started"
    COMPLETED = "batch_completed"
    FAILED = "batch_failed"


class RunStartedData(BaseSchema):
    """Payload for run start events."""

    phases: list[PhaseName] = Field(..., description="Planned phases for the run")


class RunCompletedData(BaseSchema):
    """Payload for run completion events."""

    signal: PipelineSignal = Field(..., description="Final pipeline signal")


class RunFailedData(BaseSchema):
    """Payload for run failure events."""

    error_code: str = Field(..., min_length=1, description="Error code")
    why: str = Field(..., min_length=1, description="Reason for failure")
    next_action: str = Field(..., min_length=1, description="Suggested next action")


class PhaseEventData(BaseSchema):
    """Payload for phase lifecycle events."""

    phase: PhaseName = Field(..., description="Phase name")
    revision: int | None = Field(None, ge=1, description="Phase revision number")
    outcome: PhaseOutcomeStatus | None = Field(None, description="Phase outcome")


class CorrectionEventData(BaseSchema):
    """Payload for correction loop events."""

    artifact: str = Field(..., min_length=1, description="Artifact identifier")
    state: CorrectionState = Field(..., description="Loop state after the event")
    attempt: int = Field(..., ge=0, description="Attempt ordinal")
    life: int = Field(..., ge=0, description="Remaining retry budget")
    failure: FailureKind | None = Field(None, description="Failure kind, if any")
    diagnostic_count: int = Field(0, ge=0, description="Number of diagnostics")


class BatchEventData(BaseSchema):
    """Payload for batch execution events."""

    task_count: int = Field(..., ge=0, description="Number of tasks")
    limit: int = Field(..., ge=1, description="Concurrency limit")
    wave_count: int = Field(..., ge=0, description="Number of cache-key waves")
