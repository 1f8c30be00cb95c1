"""Human-readable phase status lines and prerequisite predicates."""

from __future__ import annotations

from backforge_core.ports.orchestrator import format_status_label
from backforge_schemas.pipeline import PipelineState
from backforge_schemas.primitives import PIPELINE_PHASE_ORDER, PhaseName, PhaseStatus

PHASE_DESCRIPTIONS: dict[PhaseName, str] = {
    PhaseName.ANALYZE: "requirements analysis documents",
    PhaseName.SCHEMA: "database schema models",
    PhaseName.INTERFACE: "API operations and interface schemas",
    PhaseName.TEST: "end-to-end test functions",
    PhaseName.IMPLEMENT: "API implementation functions",
}


def find_blocking_phases(
    state: PipelineState, phase: PhaseName
) -> tuple[list[PhaseName], list[PhaseName]]:
    """List the earlier phases preventing a phase from running.

    Args:
        state: Current pipeline state.
        phase: Phase about to run.

    Returns:
        tuple[list[PhaseName], list[PhaseName]]: Missing phases and
        out-of-date phases, each in pipeline order.
    """
    missing: list[PhaseName] = []
    outdated: list[PhaseName] = []
    for upstream in PIPELINE_PHASE_ORDER[: PIPELINE_PHASE_ORDER.index(phase)]:
        status = state.status(upstream)
        if status == PhaseStatus.NONE:
            missing.append(upstream)
        elif status == PhaseStatus.OUT_OF_DATE:
            outdated.append(upstream)
    return missing, outdated


def predicate_state_message(state: PipelineState, phase: PhaseName) -> str | None:
    """Explain why a phase cannot run yet.

    Args:
        state: Current pipeline state.
        phase: Phase about to run.

    Returns:
        str | None: Message naming the phase to run first, or None when every
        prerequisite is present and up to date.
    """
    missing, outdated = find_blocking_phases(state, phase)
    if missing:
        first = missing[0]
        return (
            f"Cannot run {phase}: the {first} phase has not produced "
            f"{PHASE_DESCRIPTIONS[first]} yet. Run {first} first."
        )
    if outdated:
        first = outdated[0]
        return (
            f"Cannot run {phase}: the {first} phase is out-of-date because an "
            f"earlier phase changed. Re-run {first} first."
        )
    return None


def build_status_lines(state: PipelineState) -> list[str]:
    """Render one status line per phase.

    Args:
        state: Current pipeline state.

    Returns:
        list[str]: Lines such as ``- analyze (requirements analysis documents):
        up-to-date``.
    """
    return [
        f"- {phase} ({PHASE_DESCRIPTIONS[phase]}): "
        f"{format_status_label(state.status(phase))}"
        for phase in PIPELINE_PHASE_ORDER
    ]


def build_system_context(state: PipelineState, phase: PhaseName) -> str:
    """Build the status block handed to a phase executor.

    Args:
        state: Current pipeline state.
        phase: Phase about to run.

    Returns:
        str: Status block for the system context.
    """
    lines = ["# Pipeline status", "", *build_status_lines(state), ""]
    blocked = predicate_state_message(state, phase)
    if blocked is None:
        lines.append(f"The {phase} phase is running now.")
    else:
        lines.append(blocked)
    lines.append(
        "Never start a phase whose earlier phases are none or out-of-date."
    )
    return "\n".join(lines)
