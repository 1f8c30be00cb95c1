"""Pipeline state, phase snapshots, and phase execution schemas."""

from __future__ import annotations

from pydantic import Field, model_validator

from backforge_schemas.artifacts import Artifact, ArtifactFailure, Diagnostic
from backforge_schemas.base import BaseSchema, FrozenSchema
from backforge_schemas.conversation import TokenUsage
from backforge_schemas.primitives import (
    PIPELINE_PHASE_ORDER,
    HistoryId,
    JsonValue,
    PhaseName,
    PhaseOutcomeStatus,
    PhaseStatus,
    PipelineSignal,
    RunId,
    Timestamp,
)


class RunError(BaseSchema):
    """Error details for an aborted run or phase."""

    code: str = Field(..., min_length=1, description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: dict[str, JsonValue] | None = Field(
        None, description="Structured error details"
    )


class PhaseDependency(FrozenSchema):
    """Upstream revision a phase snapshot was produced from."""

    phase: PhaseName = Field(..., description="Upstream phase name")
    revision: int = Field(..., ge=1, description="Upstream phase revision")


class PhaseSnapshot(FrozenSchema):
    """Recorded output of one phase execution."""

    phase: PhaseName = Field(..., description="Phase name")
    revision: int = Field(..., ge=1, description="Phase revision (step counter)")
    history_id: HistoryId = Field(..., description="History entry for the run")
    artifacts: list[Artifact] = Field(..., description="Emitted artifacts")
    failures: list[ArtifactFailure] = Field(
        default_factory=list, description="Artifacts still failing after retries"
    )
    dependencies: list[PhaseDependency] = Field(
        default_factory=list, description="Upstream revisions consumed"
    )
    out_of_date: bool = Field(
        False, description="Whether an upstream phase re-ran after this one"
    )
    created_at: Timestamp = Field(..., description="Phase start timestamp")
    completed_at: Timestamp = Field(..., description="Phase completion timestamp")


class PipelineState(FrozenSchema):
    """Versioned pipeline state passed explicitly between transitions."""

    version: int = Field(0, ge=0, description="Monotonic state version")
    snapshots: list[PhaseSnapshot] = Field(
        default_factory=list, description="Latest snapshot per phase"
    )
    previous: list[PhaseSnapshot] = Field(
        default_factory=list, description="Snapshot superseded by the latest run"
    )

    @model_validator(mode="after")
    def _validate_unique_phases(self) -> PipelineState:
        for field_name in ("snapshots", "previous"):
            phases = [snapshot.phase for snapshot in getattr(self, field_name)]
            if len(set(phases)) != len(phases):
                raise ValueError(f"{field_name} must be unique by phase")
        return self

    def snapshot(self, phase: PhaseName) -> PhaseSnapshot | None:
        """Return the latest snapshot for a phase.

        Args:
            phase: Phase to look up.

        Returns:
            PhaseSnapshot | None: Latest snapshot, or None when never run.
        """
        for snapshot in self.snapshots:
            if snapshot.phase == phase:
                return snapshot
        return None

    def previous_snapshot(self, phase: PhaseName) -> PhaseSnapshot | None:
        """Return the snapshot superseded by the latest run of a phase."""
        for snapshot in self.previous:
            if snapshot.phase == phase:
                return snapshot
        return None

    def status(self, phase: PhaseName) -> PhaseStatus:
        """Return the freshness of a phase.

        Args:
            phase: Phase to inspect.

        Returns:
            PhaseStatus: none, up_to_date, or out_of_date.
        """
        snapshot = self.snapshot(phase)
        if snapshot is None:
            return PhaseStatus.NONE
        if snapshot.out_of_date:
            return PhaseStatus.OUT_OF_DATE
        return PhaseStatus.UP_TO_DATE

    def latest_revision(self, phase: PhaseName) -> int:
        """Return the latest recorded revision of a phase (0 when never run)."""
        snapshot = self.snapshot(phase)
        return 0 if snapshot is None else snapshot.revision

    def upstream_artifacts(self, phase: PhaseName) -> list[Artifact]:
        """Collect artifacts from every phase before the given one.

        Args:
            phase: Phase whose upstream is collected.

        Returns:
            list[Artifact]: Artifacts in phase order.
        """
        artifacts: list[Artifact] = []
        for upstream in PIPELINE_PHASE_ORDER[: PIPELINE_PHASE_ORDER.index(phase)]:
            snapshot = self.snapshot(upstream)
            if snapshot is not None:
                artifacts.extend(snapshot.artifacts)
        return artifacts


class PhaseRequest(BaseSchema):
    """Input handed to a phase executor."""

    run_id: RunId = Field(..., description="Pipeline run identifier")
    phase: PhaseName = Field(..., description="Phase to execute")
    revision: int = Field(..., ge=1, description="Revision being produced")
    system_context: str = Field(
        ..., min_length=1, description="Per-phase status lines for the model"
    )
    state: PipelineState = Field(..., description="State the phase runs against")


class PhaseOutcome(BaseSchema):
    """Executor result for one phase."""

    artifacts: list[Artifact] = Field(
        default_factory=list, description="Validated artifacts"
    )
    failures: list[ArtifactFailure] = Field(
        default_factory=list, description="Artifacts that exhausted retries"
    )
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage, description="Usage for the phase"
    )
    summary: str = Field("", description="Human-readable phase summary")

    @property
    def status(self) -> PhaseOutcomeStatus:
        """User-visible outcome derived from artifacts and failures."""
        if not self.failures:
            return PhaseOutcomeStatus.SUCCEEDED
        if self.artifacts:
            return PhaseOutcomeStatus.SUCCEEDED_WITH_WARNINGS
        return PhaseOutcomeStatus.FAILED

    @property
    def diagnostics(self) -> list[Diagnostic]:
        """Flatten the last diagnostics of every failure."""
        return [
            diagnostic
            for failure in self.failures
            for diagnostic in failure.diagnostics
        ]


class PhaseRunResult(BaseSchema):
    """Outcome of a single pipeline phase invocation."""

    phase: PhaseName = Field(..., description="Phase name")
    signal: PipelineSignal = Field(..., description="Termination signal")
    status: PhaseOutcomeStatus | None = Field(
        None, description="Phase outcome, null when aborted"
    )
    snapshot: PhaseSnapshot | None = Field(
        None, description="Recorded snapshot, null when not recorded"
    )
    failures: list[ArtifactFailure] = Field(
        default_factory=list, description="Outstanding failures"
    )
    error: RunError | None = Field(None, description="Abort reason")


class PipelineRunResult(BaseSchema):
    """Outcome of running a sequence of phases."""

    run_id: RunId = Field(..., description="Pipeline run identifier")
    signal: PipelineSignal = Field(..., description="Overall termination signal")
    phases: list[PhaseRunResult] = Field(
        default_factory=list, description="Per-phase results in execution order"
    )
    state: PipelineState = Field(..., description="Final pipeline state")
