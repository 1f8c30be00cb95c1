"""Pure transitions over the versioned pipeline state."""

from __future__ import annotations

from backforge_schemas.pipeline import (
    PhaseDependency,
    PhaseOutcome,
    PhaseSnapshot,
    PipelineState,
)
from backforge_schemas.primitives import (
    PIPELINE_PHASE_ORDER,
    HistoryId,
    PhaseName,
    Timestamp,
)


def capture_dependencies(
    state: PipelineState, phase: PhaseName
) -> list[PhaseDependency]:
    """Record the upstream revisions a phase is about to consume.

    Args:
        state: State the phase starts from.
        phase: Phase about to run.

    Returns:
        list[PhaseDependency]: One entry per recorded upstream phase.
    """
    dependencies: list[PhaseDependency] = []
    for upstream in PIPELINE_PHASE_ORDER[: PIPELINE_PHASE_ORDER.index(phase)]:
        revision = state.latest_revision(upstream)
        if revision > 0:
            dependencies.append(PhaseDependency(phase=upstream, revision=revision))
    return dependencies


def is_snapshot_stale(state: PipelineState, snapshot: PhaseSnapshot) -> bool:
    """Check whether any dependency has been superseded.

    Returns:
        bool: True when an upstream phase has a newer revision than the one
        the snapshot consumed.
    """
    return any(
        state.latest_revision(dependency.phase) > dependency.revision
        for dependency in snapshot.dependencies
    )


def downstream_phases(phase: PhaseName) -> list[PhaseName]:
    """Return the phases after a phase, in order."""
    return list(PIPELINE_PHASE_ORDER[PIPELINE_PHASE_ORDER.index(phase) + 1 :])


def record_phase(
    state: PipelineState,
    phase: PhaseName,
    outcome: PhaseOutcome,
    *,
    history_id: HistoryId,
    dependencies: list[PhaseDependency],
    created_at: Timestamp,
    completed_at: Timestamp,
) -> tuple[PipelineState, PhaseSnapshot, list[PhaseName]]:
    """Record a phase run and invalidate what depended on it.

    The new snapshot gets the next revision and clears only its own
    ``out_of_date`` flag, unless an upstream phase recorded a newer revision
    while it ran. The superseded snapshot moves to ``previous``. Every later
    phase holding artifacts is marked out of date.

    Args:
        state: Current state at recording time.
        phase: Phase that ran.
        outcome: Executor outcome to record.
        history_id: History entry describing the run.
        dependencies: Upstream revisions captured at phase start.
        created_at: Phase start timestamp.
        completed_at: Phase completion timestamp.

    Returns:
        tuple[PipelineState, PhaseSnapshot, list[PhaseName]]: New state (with
        ``version + 1``), the recorded snapshot, and the phases invalidated by
        this transition.
    """
    phase = PhaseName(phase)
    current = state.snapshot(phase)
    snapshot = PhaseSnapshot(
        phase=phase,
        revision=state.latest_revision(phase) + 1,
        history_id=history_id,
        artifacts=list(outcome.artifacts),
        failures=list(outcome.failures),
        dependencies=list(dependencies),
        created_at=created_at,
        completed_at=completed_at,
    )
    if is_snapshot_stale(state, snapshot):
        snapshot = snapshot.model_copy(update={"out_of_date": True})
    later = set(downstream_phases(phase))
    invalidated: list[PhaseName] = []
    snapshots: list[PhaseSnapshot] = []
    for existing in state.snapshots:
        if existing.phase == phase:
            continue
        if existing.phase in later and existing.artifacts and not existing.out_of_date:
            invalidated.append(PhaseName(existing.phase))
            existing = existing.model_copy(update={"out_of_date": True})
        snapshots.append(existing)
    snapshots.append(snapshot)
    snapshots.sort(key=lambda item: PIPELINE_PHASE_ORDER.index(PhaseName(item.phase)))

    previous = [item for item in state.previous if item.phase != phase]
    if current is not None:
        previous.append(current)
        previous.sort(
            key=lambda item: PIPELINE_PHASE_ORDER.index(PhaseName(item.phase))
        )
    new_state = PipelineState(
        version=state.version + 1, snapshots=snapshots, previous=previous
    )
    return new_state, snapshot, sorted(invalidated, key=PIPELINE_PHASE_ORDER.index)
