"""Write/validate/correct state machine for a single artifact."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from datetime import UTC, datetime

from backforge_core.ports.correction import (
    CorrectionError,
    CorrectionErrorCode,
    CorrectionErrorDetails,
    CorrectionErrorInfo,
    ValidatorProtocol,
    WriterProtocol,
    build_correction_event_data,
    build_correction_log,
)
from backforge_core.ports.orchestrator import LogSinkProtocol
from backforge_schemas.artifacts import (
    Artifact,
    ArtifactTarget,
    Diagnostic,
    ProjectContext,
    ValidationException,
    ValidationFailure,
    ValidationResult,
    ValidationSuccess,
)
from backforge_schemas.config import CorrectionConfig
from backforge_schemas.conversation import TokenUsage
from backforge_schemas.correction import (
    CorrectionAttempt,
    CorrectionResult,
    WritePayload,
    WriteRequest,
)
from backforge_schemas.events import CorrectionEvent
from backforge_schemas.primitives import (
    CorrectionState,
    FailureKind,
    PhaseName,
    RunId,
    Timestamp,
)

TERMINAL_STATES = frozenset({
    CorrectionState.DONE,
    CorrectionState.EXHAUSTED,
    CorrectionState.ABORTED,
})


def contains_identifier(text: str, identifier: str) -> bool:
    """Check that an identifier appears as a whole word in text.

    Args:
        text: Candidate text.
        identifier: Expected artifact identifier.

    Returns:
        bool: True when the identifier is present and not part of a longer word.
    """
    pattern = rf"(?<!\w){re.escape(identifier)}(?!\w)"
    return re.search(pattern, text) is not None


def check_payload_identifier(payload: WritePayload, identifier: str) -> bool:
    """Check the identifier in the draft and, when present, the final revision.

    Returns:
        bool: True when every produced text names the artifact.
    """
    if not contains_identifier(payload.draft, identifier):
        return False
    final = payload.revise.final
    return final is None or contains_identifier(final, identifier)


def build_missing_identifier_diagnostic(target: ArtifactTarget) -> Diagnostic:
    """Describe an output that never names the expected artifact.

    Returns:
        Diagnostic: Diagnostic naming the two likely causes.
    """
    return Diagnostic(
        location=target.location,
        message=(
            f'The output does not contain "{target.name}". Either the output was '
            f"empty or incomplete, or the artifact was given a different name. "
            f'Write the complete artifact and name it exactly "{target.name}".'
        ),
    )


class CorrectionLoop:
    """Finite state machine driving one artifact to a validated result.

    States move ``DRAFT -> VALIDATE -> (DONE | CORRECT)`` and from ``CORRECT``
    back to ``VALIDATE``. Every ``CORRECT`` spends one unit of ``life``; once
    life is zero a failing attempt ends in ``EXHAUSTED``. A validator that
    raises or reports an exception ends the loop in ``ABORTED``.
    """

    def __init__(
        self,
        target: ArtifactTarget,
        writer: WriterProtocol,
        validator: ValidatorProtocol,
        context: ProjectContext,
        *,
        config: CorrectionConfig | None = None,
        log_sink: LogSinkProtocol | None = None,
        run_id: RunId | None = None,
        phase: PhaseName | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the loop in the ``DRAFT`` state.

        Args:
            target: Artifact to produce.
            writer: Writer producing drafts and corrections.
            validator: Deterministic checker.
            context: Project context handed to the validator.
            config: Retry budget and per-call timeout.
            log_sink: Optional sink for correction logs.
            run_id: Run identifier attached to logs.
            phase: Phase attached to logs.
            clock: Timestamp provider.
        """
        settings = config or CorrectionConfig()
        self._target = target
        self._writer = writer
        self._validator = validator
        self._context = context
        self._timeout_s = settings.timeout_s
        self._log_sink = log_sink
        self._run_id = run_id
        self._phase = phase
        self._clock = clock or _now_timestamp
        self._state = CorrectionState.DRAFT
        self._life = settings.retry_budget
        self._attempt = 0
        self._model_calls = 0
        self._candidate: WritePayload | None = None
        self._artifact: Artifact | None = None
        self._diagnostics: list[Diagnostic] = []
        self._failures: list[CorrectionAttempt] = []
        self._token_usage = TokenUsage()
        self._abort_reason: str | None = None

    @property
    def state(self) -> CorrectionState:
        """Current state."""
        return self._state

    @property
    def life(self) -> int:
        """Correction rounds still allowed."""
        return self._life

    @property
    def model_calls(self) -> int:
        """Writer invocations so far."""
        return self._model_calls

    @property
    def attempts(self) -> list[CorrectionAttempt]:
        """Failed attempts in order."""
        return list(self._failures)

    @property
    def diagnostics(self) -> list[Diagnostic]:
        """Diagnostics of the latest failed attempt."""
        return list(self._diagnostics)

    @property
    def is_terminal(self) -> bool:
        """Whether the loop has stopped."""
        return self._state in TERMINAL_STATES

    async def step(self) -> CorrectionState:
        """Advance exactly one state.

        Returns:
            CorrectionState: State after the transition.

        Raises:
            CorrectionError: If the loop is already terminal.
        """
        match self._state:
            case CorrectionState.DRAFT:
                await self._write(None)
            case CorrectionState.VALIDATE:
                await self._validate()
            case CorrectionState.CORRECT:
                self._life -= 1
                await self._write(self._failures[-1])
            case _:
                raise CorrectionError(
                    CorrectionErrorInfo(
                        code=CorrectionErrorCode.INVALID_STATE,
                        message=f"Correction loop already finished ({self._state})",
                        details=self._error_details(),
                    )
                )
        return self._state

    async def run(self) -> CorrectionResult:
        """Step until a terminal state.

        Returns:
            CorrectionResult: ``DONE`` with the artifact, or ``EXHAUSTED`` with
            the last diagnostics.

        Raises:
            CorrectionError: If the validator failed (``ABORTED``).
        """
        while not self.is_terminal:
            await self.step()
        if self._state == CorrectionState.ABORTED:
            raise CorrectionError(
                CorrectionErrorInfo(
                    code=CorrectionErrorCode.VALIDATOR_EXCEPTION,
                    message=(
                        f"Validator failed for {self._target.name}: "
                        f"{self._abort_reason}"
                    ),
                    details=self._error_details(),
                )
            )
        return self.result()

    def result(self) -> CorrectionResult:
        """Summarize the loop in its current state.

        Returns:
            CorrectionResult: Snapshot of the loop outcome.
        """
        return CorrectionResult(
            state=self._state,
            target_name=self._target.name,
            target_location=self._target.location,
            artifact=self._artifact,
            diagnostics=[] if self._artifact is not None else self.diagnostics,
            attempts=self.attempts,
            model_calls=self._model_calls,
            token_usage=self._token_usage,
        )

    async def _write(self, previous: CorrectionAttempt | None) -> None:
        self._attempt += 1
        self._model_calls += 1
        request = WriteRequest(
            target=self._target,
            attempt=self._attempt,
            previous=previous,
            failures=list(self._failures),
        )
        try:
            async with asyncio.timeout(self._timeout_s):
                output = await self._writer.write(request)
        except TimeoutError:
            self._candidate = None
            await self._fail(
                FailureKind.TIMEOUT,
                [
                    Diagnostic(
                        location=self._target.location,
                        message=(
                            f"Model call timed out after {self._timeout_s} seconds"
                        ),
                    )
                ],
                content="",
            )
            return
        self._token_usage = self._token_usage.add(output.token_usage)
        self._candidate = output.payload
        self._state = CorrectionState.VALIDATE

    async def _validate(self) -> None:
        payload = self._candidate
        if payload is None:
            raise CorrectionError(
                CorrectionErrorInfo(
                    code=CorrectionErrorCode.INVALID_STATE,
                    message="No candidate to validate",
                    details=self._error_details(),
                )
            )
        if not check_payload_identifier(payload, self._target.name):
            await self._fail(
                FailureKind.EMPTY_OUTPUT,
                [build_missing_identifier_diagnostic(self._target)],
                content=payload.candidate,
            )
            return
        candidate = Artifact(
            location=self._target.location,
            name=self._target.name,
            content=payload.candidate,
            endpoint=self._target.endpoint,
        )
        try:
            result: ValidationResult = await self._validator.validate(
                candidate, self._context
            )
        except Exception as exc:
            await self._abort(f"{type(exc).__name__}: {exc}")
            return
        if isinstance(result, ValidationSuccess):
            self._artifact = candidate
            self._diagnostics = []
            self._state = CorrectionState.DONE
            await self._log(
                CorrectionEvent.COMPLETED, f"Artifact {self._target.name} validated"
            )
        elif isinstance(result, ValidationFailure):
            await self._fail(
                FailureKind.VALIDATION,
                list(result.diagnostics),
                content=candidate.content,
            )
        elif isinstance(result, ValidationException):
            await self._abort(result.error)
        else:
            await self._abort(f"unexpected validation result {result!r}")

    async def _fail(
        self, failure: FailureKind, diagnostics: list[Diagnostic], *, content: str
    ) -> None:
        self._diagnostics = diagnostics
        self._failures.append(
            CorrectionAttempt(
                attempt=self._attempt,
                life=self._life,
                failure=failure,
                content=content,
                diagnostics=diagnostics,
            )
        )
        await self._log(
            CorrectionEvent.ATTEMPT_FAILED,
            f"Attempt {self._attempt} for {self._target.name} failed ({failure})",
            failure=failure,
        )
        if self._life > 0:
            self._state = CorrectionState.CORRECT
            return
        self._state = CorrectionState.EXHAUSTED
        await self._log(
            CorrectionEvent.EXHAUSTED,
            f"Retry budget exhausted for {self._target.name}",
            failure=failure,
        )

    async def _abort(self, reason: str) -> None:
        self._abort_reason = reason or "validator raised without a message"
        self._state = CorrectionState.ABORTED
        await self._log(
            CorrectionEvent.ABORTED,
            f"Validator failed for {self._target.name}: {self._abort_reason}",
        )

    async def _log(
        self,
        event: CorrectionEvent,
        message: str,
        *,
        failure: FailureKind | None = None,
    ) -> None:
        if self._log_sink is None or self._run_id is None:
            return
        data = build_correction_event_data(
            artifact=self._target.name,
            state=self._state,
            attempt=self._attempt,
            life=self._life,
            failure=failure,
            diagnostic_count=len(self._diagnostics),
        )
        await self._log_sink.emit_log(
            build_correction_log(
                self._clock(), self._run_id, event, data, message, phase=self._phase
            )
        )

    def _error_details(self) -> CorrectionErrorDetails:
        return CorrectionErrorDetails(
            artifact=self._target.name,
            attempt=self._attempt,
            state=self._state,
            reason=self._abort_reason,
        )


def _now_timestamp() -> Timestamp:
    value = datetime.now(tz=UTC).isoformat()
    return value.replace("+00:00", "Z")
