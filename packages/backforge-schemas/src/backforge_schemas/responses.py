"""API response envelope schemas for CLI output."""

from __future__ import annotations

from pydantic import Field

from backforge_schemas.base import BaseSchema
from backforge_schemas.primitives import PhaseName, PhaseStatus, Timestamp


class MetaInfo(BaseSchema):
    """Metadata for API responses."""

    timestamp: Timestamp = Field(..., description="ISO-8601 response timestamp")


class ErrorDetails(BaseSchema):
    """Detailed error context for responses."""

    field: str | None = Field(None, description="Field name if applicable")
    provided: str | None = Field(None, description="Provided value")
    valid_options: list[str] | None = Field(
        None, description="Valid options if applicable"
    )


class ErrorResponse(BaseSchema):
    """Error information in response."""

    code: str = Field(..., min_length=1, description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: ErrorDetails | None = Field(None, description="Optional error details")


class ApiResponse[ResponseData](BaseSchema):
    """Generic API response envelope."""

    data: ResponseData | None = Field(
        None, description="Success payload, null on error"
    )
    error: ErrorResponse | None = Field(
        None, description="Error information, null on success"
    )
    meta: MetaInfo = Field(..., description="Response metadata")


class PhaseStatusEntry(BaseSchema):
    """Status of one phase in a status report."""

    phase: PhaseName = Field(..., description="Phase name")
    status: PhaseStatus = Field(..., description="Phase freshness")
    revision: int | None = Field(None, ge=1, description="Latest revision")
    artifact_count: int = Field(0, ge=0, description="Artifacts recorded")
    failure_count: int = Field(0, ge=0, description="Outstanding failures")


class PipelineStatusResult(BaseSchema):
    """Result payload for the CLI status command."""

    version: int = Field(..., ge=0, description="Pipeline state version")
    phases: list[PhaseStatusEntry] = Field(..., description="Per-phase status")
    history_entries: int = Field(0, ge=0, description="History entry count")


class NamingIssueEntry(BaseSchema):
    """Duplicate-naming issue in CLI output."""

    name: str = Field(..., min_length=1, description="Non-canonical variant")
    canonical: str = Field(..., min_length=1, description="Canonical form")
    message: str = Field(..., min_length=1, description="Issue description")


class NamingCheckResult(BaseSchema):
    """Result payload for the CLI check-names command."""

    checked: int = Field(..., ge=0, description="Names checked")
    issues: list[NamingIssueEntry] = Field(..., description="Duplicate-naming issues")
