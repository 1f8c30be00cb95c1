"""Phase pipeline enforcing ordering and downstream invalidation."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime
from uuid import uuid7

from backforge_core.history import History, build_history_entry
from backforge_core.ports.orchestrator import (
    LogSinkProtocol,
    PhaseExecutorProtocol,
    PipelineError,
    PipelineErrorCode,
    PipelineErrorDetails,
    PipelineErrorInfo,
    build_phase_log,
    build_run_cancelled_log,
    build_run_completed_log,
    build_run_failed_log,
    build_run_started_log,
)
from backforge_core.ports.storage import PipelineStateStoreProtocol
from backforge_core.state import capture_dependencies, record_phase
from backforge_core.state_message import (
    build_system_context,
    find_blocking_phases,
    predicate_state_message,
)
from backforge_schemas.events import PhaseEventSuffix
from backforge_schemas.history import HistoryEntry
from backforge_schemas.logs import LogEntry
from backforge_schemas.pipeline import (
    PhaseDependency,
    PhaseOutcome,
    PhaseRequest,
    PhaseRunResult,
    PipelineRunResult,
    PipelineState,
    RunError,
)
from backforge_schemas.primitives import (
    HistoryEntryType,
    JsonValue,
    LogLevel,
    PhaseName,
    PhaseOutcomeStatus,
    PipelineSignal,
    RunId,
    Timestamp,
)

_NEXT_ACTIONS: dict[str, str] = {
    PipelineErrorCode.PREREQUISITE_VIOLATION.value: (
        "Run the missing or out-of-date earlier phases, then retry."
    ),
    PipelineErrorCode.EXECUTOR_MISSING.value: (
        "Register an executor for the phase, then retry."
    ),
    PipelineErrorCode.PHASE_EXECUTION_FAILED.value: (
        "Review phase outputs and logs, then retry."
    ),
}


class PhasePipeline:
    """Single owner of a pipeline state and its history.

    Phases run strictly after their prerequisites. Each phase has its own
    lock, so at most one execution of a phase is in flight; distinct phases
    never share a lock.
    """

    def __init__(
        self,
        state: PipelineState | None = None,
        *,
        history: History | None = None,
        run_id: RunId | None = None,
        log_sink: LogSinkProtocol | None = None,
        state_store: PipelineStateStoreProtocol | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            state: Starting state (empty when omitted).
            history: History to append to (empty when omitted).
            run_id: Run identifier (a fresh uuid7 when omitted).
            log_sink: Optional sink for run and phase logs.
            state_store: Optional store persisting state and history after
                every recorded run.
            clock: Timestamp provider.
        """
        self._state = state or PipelineState()
        self._history = history or History()
        self._run_id = run_id or uuid7()
        self._log_sink = log_sink
        self._state_store = state_store
        self._clock = clock or _now_timestamp
        self._locks: dict[PhaseName, asyncio.Lock] = {
            phase: asyncio.Lock() for phase in PhaseName
        }

    @property
    def state(self) -> PipelineState:
        """Current state."""
        return self._state

    @property
    def history(self) -> History:
        """Append-only history of the pipeline."""
        return self._history

    @property
    def run_id(self) -> RunId:
        """Run identifier attached to logs and requests."""
        return self._run_id

    def check_prerequisites(self, phase: PhaseName) -> None:
        """Ensure every earlier phase is present and up to date.

        Args:
            phase: Phase about to run.

        Raises:
            PipelineError: If a prerequisite is missing or out of date.
        """
        message = predicate_state_message(self._state, phase)
        if message is None:
            return
        missing, outdated = find_blocking_phases(self._state, phase)
        raise PipelineError(
            PipelineErrorInfo(
                code=PipelineErrorCode.PREREQUISITE_VIOLATION,
                message=message,
                details=PipelineErrorDetails(
                    phase=PhaseName(phase),
                    missing_phases=missing or None,
                    outdated_phases=outdated or None,
                ),
            )
        )

    async def run_phase(
        self, phase: PhaseName, executor: PhaseExecutorProtocol
    ) -> PhaseRunResult:
        """Run one phase and record its outcome.

        Args:
            phase: Phase to run.
            executor: Domain logic producing the phase artifacts.

        Returns:
            PhaseRunResult: ``DONE`` when every artifact validated, ``PARTIAL``
            when failures remain.

        Raises:
            PipelineError: If prerequisites are not satisfied.
            asyncio.CancelledError: If the run is cancelled; state is untouched.
        """
        phase = PhaseName(phase)
        async with self._locks[phase]:
            try:
                self.check_prerequisites(phase)
            except PipelineError as exc:
                await self._emit_phase_failure(phase, exc.info)
                raise

            started_at = self._clock()
            state = self._state
            revision = state.latest_revision(phase) + 1
            dependencies = capture_dependencies(state, phase)
            await self._emit_log(
                build_phase_log(
                    started_at,
                    self._run_id,
                    phase,
                    PhaseEventSuffix.STARTED,
                    "Phase started",
                    revision=revision,
                )
            )
            request = PhaseRequest(
                run_id=self._run_id,
                phase=phase,
                revision=revision,
                system_context=build_system_context(state, phase),
                state=state,
            )
            try:
                outcome = await executor.execute(request)
            except asyncio.CancelledError:
                await self._emit_log(
                    build_run_cancelled_log(self._clock(), self._run_id, phase)
                )
                raise
            except Exception as exc:
                await self._emit_phase_failure(
                    phase,
                    PipelineErrorInfo(
                        code=PipelineErrorCode.PHASE_EXECUTION_FAILED,
                        message=f"Phase {phase} failed: {exc}",
                        details=PipelineErrorDetails(
                            phase=phase, reason=type(exc).__name__
                        ),
                    ),
                )
                raise
            return await self._record(phase, outcome, dependencies, started_at)

    async def run_plan(
        self,
        phases: Sequence[PhaseName],
        executors: Mapping[PhaseName, PhaseExecutorProtocol],
    ) -> PipelineRunResult:
        """Run phases in order, stopping at the first non-DONE signal.

        Args:
            phases: Phases to run, in order.
            executors: Executor for each phase.

        Returns:
            PipelineRunResult: Per-phase results and the final state.
        """
        planned = [PhaseName(phase) for phase in phases]
        await self._emit_log(
            build_run_started_log(self._clock(), self._run_id, planned)
        )
        results: list[PhaseRunResult] = []
        signal = PipelineSignal.DONE
        for phase in planned:
            executor = executors.get(phase)
            try:
                if executor is None:
                    raise PipelineError(
                        PipelineErrorInfo(
                            code=PipelineErrorCode.EXECUTOR_MISSING,
                            message=f"No executor registered for phase {phase}",
                            details=PipelineErrorDetails(phase=phase),
                        )
                    )
                result = await self.run_phase(phase, executor)
            except PipelineError as exc:
                results.append(
                    PhaseRunResult(
                        phase=phase,
                        signal=PipelineSignal.ABORTED,
                        error=_build_run_error(exc.info),
                    )
                )
                signal = PipelineSignal.ABORTED
                break
            results.append(result)
            if result.signal != PipelineSignal.DONE:
                signal = PipelineSignal(result.signal)
                break
        await self._emit_log(
            build_run_completed_log(self._clock(), self._run_id, signal)
        )
        return PipelineRunResult(
            run_id=self._run_id, signal=signal, phases=results, state=self._state
        )

    async def _record(
        self,
        phase: PhaseName,
        outcome: PhaseOutcome,
        dependencies: list[PhaseDependency],
        started_at: Timestamp,
    ) -> PhaseRunResult:
        completed_at = self._clock()
        status = outcome.status
        if status == PhaseOutcomeStatus.FAILED:
            failed_entry = build_history_entry(
                HistoryEntryType.PHASE,
                created_at=started_at,
                completed_at=completed_at,
                token_usage=outcome.token_usage,
                phase=phase,
                summary=outcome.summary or f"{phase} failed",
                data=_outcome_data(outcome),
            )
            self._history.append(failed_entry)
            await self._persist(failed_entry, state_changed=False)
            await self._emit_log(
                build_phase_log(
                    completed_at,
                    self._run_id,
                    phase,
                    PhaseEventSuffix.FAILED,
                    f"Phase failed with {len(outcome.failures)} failing artifacts",
                    outcome=status,
                    data=_outcome_data(outcome),
                    level=LogLevel.ERROR,
                )
            )
            return PhaseRunResult(
                phase=phase,
                signal=PipelineSignal.PARTIAL,
                status=status,
                failures=list(outcome.failures),
            )

        revision = self._state.latest_revision(phase) + 1
        entry = build_history_entry(
            HistoryEntryType.PHASE,
            created_at=started_at,
            completed_at=completed_at,
            token_usage=outcome.token_usage,
            phase=phase,
            revision=revision,
            summary=outcome.summary or f"{phase} revision {revision}",
            data=_outcome_data(outcome),
        )
        state, snapshot, invalidated = record_phase(
            self._state,
            phase,
            outcome,
            history_id=entry.id,
            dependencies=dependencies,
            created_at=started_at,
            completed_at=completed_at,
        )
        self._state = state
        self._history.append(entry)
        await self._persist(entry, state_changed=True)
        await self._emit_log(
            build_phase_log(
                completed_at,
                self._run_id,
                phase,
                PhaseEventSuffix.COMPLETED,
                "Phase completed",
                revision=snapshot.revision,
                outcome=status,
                data=_outcome_data(outcome),
                level=(
                    LogLevel.INFO
                    if status == PhaseOutcomeStatus.SUCCEEDED
                    else LogLevel.WARN
                ),
            )
        )
        for downstream in invalidated:
            await self._emit_log(
                build_phase_log(
                    completed_at,
                    self._run_id,
                    downstream,
                    PhaseEventSuffix.INVALIDATED,
                    f"Phase is out-of-date after {phase} revision {snapshot.revision}",
                )
            )
        signal = (
            PipelineSignal.DONE
            if status == PhaseOutcomeStatus.SUCCEEDED
            else PipelineSignal.PARTIAL
        )
        return PhaseRunResult(
            phase=phase,
            signal=signal,
            status=status,
            snapshot=snapshot,
            failures=list(outcome.failures),
        )

    async def _emit_phase_failure(
        self, phase: PhaseName, error_info: PipelineErrorInfo
    ) -> None:
        timestamp = self._clock()
        error = _build_run_error(error_info)
        suffix = (
            PhaseEventSuffix.BLOCKED
            if error_info.code == PipelineErrorCode.PREREQUISITE_VIOLATION
            else PhaseEventSuffix.FAILED
        )
        await self._emit_log(
            build_phase_log(
                timestamp,
                self._run_id,
                phase,
                suffix,
                error_info.message,
                data=error.details,
                level=LogLevel.ERROR,
            )
        )
        await self._emit_log(
            build_run_failed_log(
                timestamp,
                self._run_id,
                error_info.message,
                error.code,
                error_info.message,
                _NEXT_ACTIONS.get(error.code, "Review the run logs and retry."),
            )
        )

    async def _persist(self, entry: HistoryEntry, *, state_changed: bool) -> None:
        if self._state_store is None:
            return
        if state_changed:
            await self._state_store.save_state(self._state)
        await self._state_store.append_history([entry])

    async def _emit_log(self, entry: LogEntry) -> None:
        if self._log_sink is None:
            return
        await self._log_sink.emit_log(entry)


def _build_run_error(error_info: PipelineErrorInfo) -> RunError:
    details: dict[str, JsonValue] = {}
    if error_info.details is not None:
        details = error_info.details.model_dump(mode="json", exclude_none=True)
    details["next_action"] = _NEXT_ACTIONS.get(
        str(error_info.code), "Review the run logs and retry."
    )
    return RunError(
        code=str(error_info.code), message=error_info.message, details=details
    )


def _outcome_data(outcome: PhaseOutcome) -> dict[str, JsonValue]:
    data: dict[str, JsonValue] = {
        "artifact_count": len(outcome.artifacts),
        "failure_count": len(outcome.failures),
        "total_tokens": outcome.token_usage.total_tokens,
    }
    if outcome.failures:
        data["failed_artifacts"] = [failure.name for failure in outcome.failures]
    return data


def _now_timestamp() -> Timestamp:
    value = datetime.now(tz=UTC).isoformat()
    return value.replace("+00:00", "Z")
