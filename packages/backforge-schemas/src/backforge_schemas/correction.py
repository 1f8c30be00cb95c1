"""Schemas for the write/validate/correct loop."""

from __future__ import annotations

from pydantic import Field

from backforge_schemas.artifacts import (
    Artifact,
    ArtifactFailure,
    ArtifactTarget,
    Diagnostic,
)
from backforge_schemas.base import BaseSchema, FrozenSchema
from backforge_schemas.conversation import TokenUsage
from backforge_schemas.preliminary import CompletePayload
from backforge_schemas.primitives import CorrectionState, FailureKind


class RevisePayload(BaseSchema):
    """Self-review of a draft with an optional replacement."""

    review: str = Field("", description="Model review of its own draft")
    final: str | None = Field(
        None, description="Revised content, null when the draft stands"
    )


class WritePayload(CompletePayload):
    """Completed write produced by the model."""

    draft: str = Field(..., description="First draft content")
    revise: RevisePayload = Field(
        default_factory=RevisePayload, description="Review and optional final"
    )

    @property
    def candidate(self) -> str:
        """Effective content: the final revision when present, else the draft."""
        if self.revise.final is not None:
            return self.revise.final
        return self.draft


class CorrectionAttempt(FrozenSchema):
    """Record of one failed attempt."""

    attempt: int = Field(..., ge=1, description="1-based attempt ordinal")
    life: int = Field(..., ge=0, description="Retry budget left after the attempt")
    failure: FailureKind = Field(..., description="Why the attempt failed")
    content: str = Field("", description="Candidate content of the attempt")
    diagnostics: list[Diagnostic] = Field(
        ..., description="Diagnostics for the attempt"
    )


class WriteRequest(BaseSchema):
    """Input handed to a writer for a draft or a correction."""

    target: ArtifactTarget = Field(..., description="Artifact to produce")
    attempt: int = Field(..., ge=1, description="1-based attempt ordinal")
    previous: CorrectionAttempt | None = Field(
        None, description="Latest failed attempt, when correcting"
    )
    failures: list[CorrectionAttempt] = Field(
        default_factory=list, description="Every failed attempt so far"
    )

    @property
    def is_correction(self) -> bool:
        """Whether this request follows a failed attempt."""
        return self.previous is not None


class WriterOutput(BaseSchema):
    """Writer response with the usage it consumed."""

    payload: WritePayload = Field(..., description="Completed write")
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage, description="Usage for the write"
    )


class CorrectionResult(BaseSchema):
    """Terminal outcome of a correction loop."""

    state: CorrectionState = Field(..., description="Terminal state")
    target_name: str = Field(..., min_length=1, description="Artifact identifier")
    target_location: str = Field(..., min_length=1, description="File location")
    artifact: Artifact | None = Field(None, description="Validated artifact")
    diagnostics: list[Diagnostic] = Field(
        default_factory=list, description="Last diagnostics when not done"
    )
    attempts: list[CorrectionAttempt] = Field(
        default_factory=list, description="Failed attempts in order"
    )
    model_calls: int = Field(..., ge=0, description="Writer invocations made")
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage, description="Accumulated usage"
    )

    def to_failure(self) -> ArtifactFailure:
        """Summarize an exhausted loop as an artifact failure.

        Returns:
            ArtifactFailure: Failure with the last diagnostics.
        """
        return ArtifactFailure(
            name=self.target_name,
            location=self.target_location,
            diagnostics=self.diagnostics,
        )
