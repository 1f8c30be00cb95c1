"""Unit tests for the log entry schema."""

from __future__ import annotations

from uuid import uuid7

import pytest
from pydantic import ValidationError

from backforge_schemas.logs import LogEntry, event_phase
from backforge_schemas.primitives import LogLevel, PhaseName

TIMESTAMP = "2026-01-26T12:00:00Z"


@pytest.mark.parametrize(
    ("event", "expected"),
    [
        ("schema_started", PhaseName.SCHEMA),
        ("test_invalidated", PhaseName.TEST),
        ("run_started", None),
        ("batch_failed", None),
        ("correction_attempt_failed", None),
    ],
)
def test_event_phase(event: str, expected: PhaseName | None) -> None:
    """Only phase-transition events map to a phase."""
    assert event_phase(event) == expected


def test_phase_event_requires_matching_phase() -> None:
    """A phase event tagged with another phase is rejected."""
    with pytest.raises(ValidationError, match="belongs to phase schema"):
        LogEntry(
            timestamp=TIMESTAMP,
            level=LogLevel.INFO,
            event="schema_completed",
            run_id=uuid7(),
            phase=PhaseName.INTERFACE,
            message="Schema completed",
        )


def test_sub_step_event_may_carry_any_phase() -> None:
    """Batch and run events accept an optional phase."""
    entry = LogEntry(
        timestamp=TIMESTAMP,
        level=LogLevel.ERROR,
        event="batch_failed",
        run_id=uuid7(),
        phase=PhaseName.IMPLEMENT,
        message="task 5 failed",
        data={"task_count": 10},
    )

    assert entry.phase == "implement"
    assert entry.model_dump_json().startswith('{"timestamp":"2026-01-26T12:00:00Z"')
