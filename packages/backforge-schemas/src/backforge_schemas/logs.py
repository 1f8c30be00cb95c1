"""Structured log records written by the pipeline, batches and correction loops.

Event names follow a few families: ``run_*`` for the pipeline run as a whole,
``<phase>_<suffix>`` for phase transitions (``schema_started``,
``interface_invalidated``), and ``correction_*``, ``preliminary_*`` and
``batch_*`` for the sub-steps a phase drives.
"""

from __future__ import annotations

from pydantic import Field, model_validator

from backforge_schemas.base import BaseSchema
from backforge_schemas.primitives import (
    EventName,
    JsonValue,
    LogLevel,
    PhaseName,
    RunId,
    Timestamp,
)


def event_phase(event: str) -> PhaseName | None:
    """Return the phase a phase-transition event name belongs to.

    Args:
        event: Event name such as ``schema_completed``.

    Returns:
        PhaseName | None: Phase prefix of the event, or None for run,
        correction, preliminary and batch events.
    """
    for phase in PhaseName:
        if event.startswith(f"{phase}_"):
            return phase
    return None


class LogEntry(BaseSchema):
    """One pipeline event, serialized as a JSONL line by the log sinks.

    Attributes:
        timestamp: When the event happened.
        level: Event severity.
        event: Event name from one of the families above.
        run_id: Run that produced the event.
        phase: Phase the event belongs to. Phase-transition events must
            name their own phase here.
        message: Human-readable summary shown in the CLI.
        data: Event payload, such as batch wave counts or diagnostics.
    """

    timestamp: Timestamp = Field(..., description="ISO-8601 time of the event")
    level: LogLevel = Field(..., description="Event severity")
    event: EventName = Field(..., description="Snake-case event name")
    run_id: RunId = Field(..., description="Run that produced the event")
    phase: PhaseName | None = Field(None, description="Phase the event belongs to")
    message: str = Field(..., min_length=1, description="Human-readable summary")
    data: dict[str, JsonValue] | None = Field(None, description="Event payload")

    @model_validator(mode="after")
    def validate_event_phase(self) -> LogEntry:
        """Ensure phase-transition events carry the matching phase.

        Returns:
            LogEntry: Validated log entry.

        Raises:
            ValueError: If the event names a phase other than ``phase``.
        """
        expected = event_phase(self.event)
        if expected is not None and self.phase != expected:
            raise ValueError(
                f"Event {self.event} belongs to phase {expected}, got {self.phase}"
            )
        return self
