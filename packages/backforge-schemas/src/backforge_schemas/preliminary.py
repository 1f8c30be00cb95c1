"""Wire shapes for incremental preliminary context requests."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from backforge_schemas.artifacts import Artifact
from backforge_schemas.base import BaseSchema, FrozenSchema
from backforge_schemas.primitives import JsonValue, PreliminaryKind

PROCESS_TOOL_NAME = "process"
COMPLETE_REQUEST_TYPE = "complete"


class PreliminaryItem(FrozenSchema):
    """One requestable context item of a given kind."""

    id: str = Field(..., min_length=1, description="Identifier the model requests")
    artifact: Artifact = Field(..., description="Underlying artifact")


class PreliminaryIssue(FrozenSchema):
    """Validation issue returned to the model for an invalid request."""

    path: str = Field(..., min_length=1, description="Argument path of the value")
    expected: str = Field(..., description="Expected values joined by ' | '")
    value: JsonValue = Field(..., description="Offending value")
    description: str = Field(..., min_length=1, description="Corrective guidance")


class PreliminaryFetchRequest(BaseSchema):
    """Request arm asking for items of one kind."""

    type: str = Field(..., min_length=1, description="Request type, get<Kind>")
    ids: list[str] = Field(default_factory=list, description="Requested identifiers")


class PreliminaryValidation(BaseSchema):
    """Outcome of validating a preliminary request."""

    kind: PreliminaryKind | None = Field(None, description="Kind requested")
    accepted: list[str] = Field(
        default_factory=list, description="Identifiers merged into local"
    )
    loaded: list[str] = Field(
        default_factory=list,
        description="Identifiers newly loaded, including complemented ones",
    )
    exhausted: bool = Field(False, description="Whether the kind is now exhausted")
    issues: list[PreliminaryIssue] = Field(
        default_factory=list, description="Issues for invalid requests"
    )

    @property
    def success(self) -> bool:
        """Whether the request was accepted."""
        return not self.issues


class CompletePayload(BaseSchema):
    """Base for the "complete" arm of the process tool."""

    type: Literal["complete"] = "complete"
