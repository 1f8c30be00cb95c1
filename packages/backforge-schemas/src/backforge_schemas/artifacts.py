"""Artifact and validation-oracle schemas."""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import Field

from backforge_schemas.base import BaseSchema, FrozenSchema
from backforge_schemas.primitives import HttpMethod, JsonValue, PhaseName


class Endpoint(FrozenSchema):
    """HTTP endpoint an artifact implements."""

    method: HttpMethod = Field(..., description="Lowercase HTTP method")
    path: str = Field(..., min_length=1, description="Route path")

    @property
    def key(self) -> str:
        """Stable identifier in ``"<method> <path>"`` form."""
        return f"{self.method} {self.path}"


class Artifact(FrozenSchema):
    """A named, located piece of generated content."""

    location: str = Field(..., min_length=1, description="File location")
    name: str = Field(..., min_length=1, description="Artifact identifier")
    content: str = Field(..., description="Generated content")
    endpoint: Endpoint | None = Field(
        None, description="Endpoint implemented by the artifact"
    )
    references: list[str] = Field(
        default_factory=list,
        description="Names of other artifacts this artifact depends on",
    )


class ArtifactTarget(BaseSchema):
    """What a correction loop is asked to produce."""

    location: str = Field(..., min_length=1, description="File location")
    name: str = Field(..., min_length=1, description="Expected artifact identifier")
    endpoint: Endpoint | None = Field(None, description="Endpoint to implement")
    instructions: str = Field("", description="Task instructions for the writer")


class Diagnostic(FrozenSchema):
    """Single diagnostic reported by a validator."""

    location: str = Field(..., min_length=1, description="File or location reference")
    message: str = Field(..., min_length=1, description="Diagnostic message")
    line: int | None = Field(None, ge=1, description="1-based line number")
    column: int | None = Field(None, ge=1, description="1-based column number")
    code: str | None = Field(None, description="Checker-specific diagnostic code")


class ArtifactFailure(FrozenSchema):
    """Artifact that exhausted its retry budget while still failing."""

    name: str = Field(..., min_length=1, description="Artifact identifier")
    location: str = Field(..., min_length=1, description="File location")
    diagnostics: list[Diagnostic] = Field(
        ..., description="Last diagnostics reported for the artifact"
    )


class ValidationSuccess(BaseSchema):
    """The candidate passed validation."""

    type: Literal["success"] = "success"


class ValidationFailure(BaseSchema):
    """The candidate failed validation with diagnostics."""

    type: Literal["failure"] = "failure"
    diagnostics: list[Diagnostic] = Field(
        ..., min_length=1, description="Diagnostics explaining the failure"
    )


class ValidationException(BaseSchema):
    """The validator itself failed."""

    type: Literal["exception"] = "exception"
    error: str = Field(..., min_length=1, description="Validator error message")


type ValidationResult = Annotated[
    ValidationSuccess | ValidationFailure | ValidationException,
    Field(discriminator="type"),
]


class ProjectContext(BaseSchema):
    """Project-wide context handed to the validation oracle."""

    phase: PhaseName | None = Field(None, description="Phase being validated")
    artifacts: list[Artifact] = Field(
        default_factory=list, description="Up-to-date upstream artifacts"
    )
    metadata: dict[str, JsonValue] = Field(
        default_factory=dict, description="Validator-specific settings"
    )
