"""Primitive types and enums shared across backforge schemas."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, Field

ISO_8601_PATTERN = (
    r"^\d{4}-\d{2}-\d{2}T"
    r"\d{2}:\d{2}:\d{2}"
    r"(?:\.\d+)?"
    r"(?:Z|[+-]\d{2}:\d{2})$"
)
EVENT_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"
HTTP_METHOD_PATTERN = r"^(get|post|put|patch|delete|head|options)$"


def _validate_uuid7(value: UUID) -> UUID:
    """Ensure UUID values are version 7.

    Args:
        value: Parsed UUID value.

    Returns:
        UUID: The validated UUIDv7 value.

    Raises:
        ValueError: If the UUID is not version 7.
    """
    if value.version != 7:
        raise ValueError("UUID must be version 7")
    return value


type Uuid7 = Annotated[UUID, AfterValidator(_validate_uuid7)]

type RunId = Uuid7
type HistoryId = Uuid7
type Timestamp = Annotated[str, Field(pattern=ISO_8601_PATTERN)]
type EventName = Annotated[str, Field(pattern=EVENT_NAME_PATTERN)]
type HttpMethod = Annotated[str, Field(pattern=HTTP_METHOD_PATTERN)]

type JsonPrimitive = str | int | float | bool | None
type JsonValue = JsonPrimitive | list["JsonValue"] | dict[str, "JsonValue"]


class PhaseName(StrEnum):
    """Pipeline phase names."""

    ANALYZE = "analyze"
    SCHEMA = "schema"
    INTERFACE = "interface"
    TEST = "test"
    IMPLEMENT = "implement"


PIPELINE_PHASE_ORDER = [
    PhaseName.ANALYZE,
    PhaseName.SCHEMA,
    PhaseName.INTERFACE,
    PhaseName.TEST,
    PhaseName.IMPLEMENT,
]


class PhaseStatus(StrEnum):
    """Freshness of a phase snapshot within the pipeline state."""

    NONE = "none"
    UP_TO_DATE = "up_to_date"
    OUT_OF_DATE = "out_of_date"


class PhaseOutcomeStatus(StrEnum):
    """User-visible outcome of a single phase execution."""

    SUCCEEDED = "succeeded"
    SUCCEEDED_WITH_WARNINGS = "succeeded_with_warnings"
    FAILED = "failed"


class PipelineSignal(StrEnum):
    """Termination signal for a pipeline invocation."""

    DONE = "done"
    PARTIAL = "partial"
    ABORTED = "aborted"


class PreliminaryKind(StrEnum):
    """Categories of context the model can request piecemeal."""

    ANALYSIS_FILES = "analysis_files"
    DATABASE_SCHEMAS = "database_schemas"
    INTERFACE_OPERATIONS = "interface_operations"
    INTERFACE_SCHEMAS = "interface_schemas"
    PREVIOUS_ANALYSIS_FILES = "previous_analysis_files"
    PREVIOUS_DATABASE_SCHEMAS = "previous_database_schemas"
    PREVIOUS_INTERFACE_OPERATIONS = "previous_interface_operations"
    PREVIOUS_INTERFACE_SCHEMAS = "previous_interface_schemas"


class CorrectionState(StrEnum):
    """States of the write/validate/correct machine."""

    DRAFT = "draft"
    VALIDATE = "validate"
    CORRECT = "correct"
    DONE = "done"
    EXHAUSTED = "exhausted"
    ABORTED = "aborted"


class FailureKind(StrEnum):
    """Reason a correction attempt failed."""

    VALIDATION = "validation"
    EMPTY_OUTPUT = "empty_output"
    TIMEOUT = "timeout"


class HistoryEntryType(StrEnum):
    """Kinds of append-only history records."""

    USER_MESSAGE = "user_message"
    ASSISTANT_MESSAGE = "assistant_message"
    PHASE = "phase"
    CORRECTION = "correction"


class LogLevel(StrEnum):
    """Log level values for JSONL logs."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogSinkType(StrEnum):
    """Supported log sink types."""

    CONSOLE = "console"
    FILE = "file"
    NOOP = "noop"
