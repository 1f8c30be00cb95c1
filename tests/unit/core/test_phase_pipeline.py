"""Unit tests for the phase pipeline."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from backforge_core.pipeline import PhasePipeline
from backforge_core.ports.orchestrator import (
    LogSinkProtocol,
    PipelineError,
    PipelineErrorCode,
)
from backforge_schemas.artifacts import Artifact, ArtifactFailure, Diagnostic
from backforge_schemas.events import RunEvent
from backforge_schemas.logs import LogEntry
from backforge_schemas.pipeline import PhaseOutcome, PhaseRequest
from backforge_schemas.primitives import (
    HistoryEntryType,
    PhaseName,
    PhaseOutcomeStatus,
    PhaseStatus,
    PipelineSignal,
    RunId,
)


class _StubLogSink(LogSinkProtocol):
    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    async def emit_log(self, entry: LogEntry) -> None:
        self.entries.append(entry)


class _StaticExecutor:
    """Executor emitting one artifact per call, tagged with the revision."""

    def __init__(
        self, name: str, *, failures: list[ArtifactFailure] | None = None
    ) -> None:
        self._name = name
        self._failures = failures or []
        self.requests: list[PhaseRequest] = []

    async def execute(self, request: PhaseRequest) -> PhaseOutcome:
        self.requests.append(request)
        return PhaseOutcome(
            artifacts=[
                Artifact(
                    location=f"docs/{self._name}.md",
                    name=self._name,
                    content=f"{self._name} r{request.revision}",
                )
            ],
            failures=list(self._failures),
            summary=f"{self._name} done",
        )


class _FailingExecutor:
    async def execute(self, request: PhaseRequest) -> PhaseOutcome:
        return PhaseOutcome(
            failures=[
                ArtifactFailure(
                    name="createUser",
                    location="src/createUser.ts",
                    diagnostics=[Diagnostic(location="x.ts", message="type error")],
                )
            ]
        )


class _RaisingExecutor:
    async def execute(self, request: PhaseRequest) -> PhaseOutcome:
        raise RuntimeError("executor crashed")


class _BlockingExecutor:
    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def execute(self, request: PhaseRequest) -> PhaseOutcome:
        self.started.set()
        await asyncio.sleep(10)
        return PhaseOutcome()


class _GatedExecutor(_StaticExecutor):
    """Static executor that waits for a release signal before returning."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, request: PhaseRequest) -> PhaseOutcome:
        self.started.set()
        await self.release.wait()
        return await super().execute(request)


def _pipeline(
    clock: Callable[[], str], run_id: RunId, sink: LogSinkProtocol | None = None
) -> PhasePipeline:
    return PhasePipeline(run_id=run_id, log_sink=sink, clock=clock)


@pytest.mark.asyncio
async def test_rerunning_upstream_blocks_downstream(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """Re-running analyze marks schema stale and blocks interface."""
    pipeline = _pipeline(clock, run_id)
    await pipeline.run_phase(PhaseName.ANALYZE, _StaticExecutor("requirements"))
    await pipeline.run_phase(PhaseName.SCHEMA, _StaticExecutor("schema"))
    assert pipeline.state.status(PhaseName.SCHEMA) == PhaseStatus.UP_TO_DATE

    result = await pipeline.run_phase(
        PhaseName.ANALYZE, _StaticExecutor("requirements")
    )

    assert result.signal == PipelineSignal.DONE
    assert pipeline.state.latest_revision(PhaseName.ANALYZE) == 2
    assert pipeline.state.status(PhaseName.ANALYZE) == PhaseStatus.UP_TO_DATE
    assert pipeline.state.status(PhaseName.SCHEMA) == PhaseStatus.OUT_OF_DATE
    with pytest.raises(PipelineError) as exc_info:
        await pipeline.run_phase(PhaseName.INTERFACE, _StaticExecutor("api"))
    info = exc_info.value.info
    assert info.code == PipelineErrorCode.PREREQUISITE_VIOLATION
    assert info.details is not None
    assert info.details.outdated_phases == [PhaseName.SCHEMA]
    assert "Re-run schema first" in info.message


@pytest.mark.asyncio
async def test_missing_prerequisite_names_phase(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """Running a phase before its prerequisites explains what to run."""
    sink = _StubLogSink()
    pipeline = _pipeline(clock, run_id, sink)

    with pytest.raises(PipelineError, match="Run analyze first"):
        await pipeline.run_phase(PhaseName.SCHEMA, _StaticExecutor("schema"))

    assert pipeline.state.version == 0
    assert [entry.event for entry in sink.entries] == [
        "schema_blocked",
        RunEvent.FAILED,
    ]


@pytest.mark.asyncio
async def test_record_versions_state_and_keeps_previous(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """Each recorded phase bumps the version and keeps the superseded snapshot."""
    pipeline = _pipeline(clock, run_id)
    executor = _StaticExecutor("requirements")

    await pipeline.run_phase(PhaseName.ANALYZE, executor)
    await pipeline.run_phase(PhaseName.ANALYZE, executor)

    state = pipeline.state
    assert state.version == 2
    previous = state.previous_snapshot(PhaseName.ANALYZE)
    assert previous is not None
    assert previous.revision == 1
    assert previous.artifacts[0].content == "requirements r1"
    assert [request.revision for request in executor.requests] == [1, 2]
    assert "analyze (requirements analysis documents)" in (
        executor.requests[0].system_context
    )
    assert len(pipeline.history) == 2
    latest = pipeline.history.latest(PhaseName.ANALYZE)
    assert latest is not None
    snapshot = state.snapshot(PhaseName.ANALYZE)
    assert snapshot is not None
    assert latest.id == snapshot.history_id


@pytest.mark.asyncio
async def test_dependencies_capture_upstream_revisions(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """Snapshots record the upstream revisions they consumed."""
    pipeline = _pipeline(clock, run_id)
    await pipeline.run_phase(PhaseName.ANALYZE, _StaticExecutor("requirements"))
    await pipeline.run_phase(PhaseName.ANALYZE, _StaticExecutor("requirements"))

    result = await pipeline.run_phase(PhaseName.SCHEMA, _StaticExecutor("schema"))

    assert result.snapshot is not None
    assert [(dep.phase, dep.revision) for dep in result.snapshot.dependencies] == [
        (PhaseName.ANALYZE, 2)
    ]


@pytest.mark.asyncio
async def test_failures_with_artifacts_are_partial(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """Remaining failures record the snapshot and signal partial."""
    pipeline = _pipeline(clock, run_id)
    failure = ArtifactFailure(
        name="orders",
        location="docs/orders.md",
        diagnostics=[Diagnostic(location="docs/orders.md", message="missing")],
    )

    result = await pipeline.run_phase(
        PhaseName.ANALYZE, _StaticExecutor("requirements", failures=[failure])
    )

    assert result.signal == PipelineSignal.PARTIAL
    assert result.status == PhaseOutcomeStatus.SUCCEEDED_WITH_WARNINGS
    snapshot = pipeline.state.snapshot(PhaseName.ANALYZE)
    assert snapshot is not None
    assert snapshot.failures == [failure]


@pytest.mark.asyncio
async def test_failed_outcome_leaves_state_untouched(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """An outcome with no artifacts is logged in history but not recorded."""
    pipeline = _pipeline(clock, run_id)

    result = await pipeline.run_phase(PhaseName.ANALYZE, _FailingExecutor())

    assert result.signal == PipelineSignal.PARTIAL
    assert result.status == PhaseOutcomeStatus.FAILED
    assert result.snapshot is None
    assert pipeline.state.version == 0
    entries = pipeline.history.entries
    assert len(entries) == 1
    assert entries[0].type == HistoryEntryType.PHASE
    assert entries[0].revision is None


@pytest.mark.asyncio
async def test_executor_exception_propagates(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """Executor errors are logged and re-raised unchanged."""
    sink = _StubLogSink()
    pipeline = _pipeline(clock, run_id, sink)

    with pytest.raises(RuntimeError, match="executor crashed"):
        await pipeline.run_phase(PhaseName.ANALYZE, _RaisingExecutor())

    assert pipeline.state.version == 0
    assert "analyze_failed" in [entry.event for entry in sink.entries]


@pytest.mark.asyncio
async def test_cancellation_leaves_state_untouched(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """A cancelled phase records nothing and logs the cancellation."""
    sink = _StubLogSink()
    pipeline = _pipeline(clock, run_id, sink)
    executor = _BlockingExecutor()

    task = asyncio.create_task(pipeline.run_phase(PhaseName.ANALYZE, executor))
    await executor.started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert pipeline.state.version == 0
    assert len(pipeline.history) == 0
    assert sink.entries[-1].event == RunEvent.CANCELLED


@pytest.mark.asyncio
async def test_same_phase_runs_are_serialized(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """Concurrent runs of one phase produce consecutive revisions."""
    pipeline = _pipeline(clock, run_id)
    executor = _StaticExecutor("requirements")

    first, second = await asyncio.gather(
        pipeline.run_phase(PhaseName.ANALYZE, executor),
        pipeline.run_phase(PhaseName.ANALYZE, executor),
    )

    assert first.snapshot is not None
    assert second.snapshot is not None
    assert {first.snapshot.revision, second.snapshot.revision} == {1, 2}
    assert pipeline.state.version == 2


@pytest.mark.asyncio
async def test_run_plan_runs_in_order(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """A full plan ends done with every phase recorded."""
    sink = _StubLogSink()
    pipeline = _pipeline(clock, run_id, sink)
    executors = {
        PhaseName.ANALYZE: _StaticExecutor("requirements"),
        PhaseName.SCHEMA: _StaticExecutor("schema"),
    }

    result = await pipeline.run_plan(
        [PhaseName.ANALYZE, PhaseName.SCHEMA], executors
    )

    assert result.signal == PipelineSignal.DONE
    assert [phase.phase for phase in result.phases] == ["analyze", "schema"]
    assert result.state.version == 2
    assert sink.entries[0].event == RunEvent.STARTED
    assert sink.entries[-1].event == RunEvent.COMPLETED


@pytest.mark.asyncio
async def test_run_plan_aborts_on_missing_executor(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """A phase without an executor aborts the plan."""
    pipeline = _pipeline(clock, run_id)

    result = await pipeline.run_plan(
        [PhaseName.ANALYZE, PhaseName.SCHEMA],
        {PhaseName.ANALYZE: _StaticExecutor("requirements")},
    )

    assert result.signal == PipelineSignal.ABORTED
    aborted = result.phases[-1]
    assert aborted.phase == PhaseName.SCHEMA
    assert aborted.error is not None
    assert aborted.error.code == PipelineErrorCode.EXECUTOR_MISSING


@pytest.mark.asyncio
async def test_run_plan_stops_at_partial(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """A partial phase stops the plan before later phases."""
    pipeline = _pipeline(clock, run_id)
    schema = _StaticExecutor("schema")

    result = await pipeline.run_plan(
        [PhaseName.ANALYZE, PhaseName.SCHEMA],
        {PhaseName.ANALYZE: _FailingExecutor(), PhaseName.SCHEMA: schema},
    )

    assert result.signal == PipelineSignal.PARTIAL
    assert len(result.phases) == 1
    assert schema.requests == []


@pytest.mark.asyncio
async def test_upstream_rerun_during_downstream_run_records_stale_snapshot(
    clock: Callable[[], str], run_id: RunId
) -> None:
    """A schema run that consumed a superseded analyze revision is out-of-date."""
    pipeline = _pipeline(clock, run_id)
    await pipeline.run_phase(PhaseName.ANALYZE, _StaticExecutor("requirements"))
    schema = _GatedExecutor("schema")
    schema_run = asyncio.create_task(pipeline.run_phase(PhaseName.SCHEMA, schema))
    await schema.started.wait()

    await pipeline.run_phase(PhaseName.ANALYZE, _StaticExecutor("requirements"))
    schema.release.set()
    result = await schema_run

    assert result.snapshot is not None
    assert result.snapshot.out_of_date
    assert [(dep.phase, dep.revision) for dep in result.snapshot.dependencies] == [
        (PhaseName.ANALYZE, 1)
    ]
    assert pipeline.state.latest_revision(PhaseName.ANALYZE) == 2
    assert pipeline.state.status(PhaseName.SCHEMA) == PhaseStatus.OUT_OF_DATE
    with pytest.raises(PipelineError) as exc_info:
        await pipeline.run_phase(PhaseName.INTERFACE, _StaticExecutor("api"))
    assert exc_info.value.info.code == PipelineErrorCode.PREREQUISITE_VIOLATION
