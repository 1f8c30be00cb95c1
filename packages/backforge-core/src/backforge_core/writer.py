"""Model-driven writer with an incremental preliminary context loop."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import orjson
from pydantic import ValidationError

from backforge_core.ports.llm import ModelProtocol
from backforge_core.ports.orchestrator import LogSinkProtocol
from backforge_core.ports.preliminary import (
    PreliminaryError,
    PreliminaryErrorCode,
    PreliminaryErrorInfo,
    build_preliminary_log,
)
from backforge_core.preliminary.application import build_process_tool
from backforge_core.preliminary.controller import PreliminaryController
from backforge_schemas.config import PreliminaryConfig
from backforge_schemas.conversation import (
    ConversationMessage,
    ConversationRole,
    TokenUsage,
    ToolCall,
    ToolSpec,
)
from backforge_schemas.correction import WritePayload, WriteRequest, WriterOutput
from backforge_schemas.preliminary import (
    COMPLETE_REQUEST_TYPE,
    PROCESS_TOOL_NAME,
    PreliminaryFetchRequest,
    PreliminaryValidation,
)
from backforge_schemas.primitives import RunId, Timestamp

TOOL_NUDGE = (
    f"Do not answer in plain text. Call the `{PROCESS_TOOL_NAME}` tool, either "
    "to request more context or to complete the task."
)
PROCESS_TOOL_DESCRIPTION = (
    "Request additional context with a get<Kind> request, or finish the task "
    "with a complete request containing the draft and its review."
)


def format_diagnostic(
    location: str, message: str, line: int | None, column: int | None
) -> str:
    """Render a diagnostic as ``location:line:column: message``.

    Returns:
        str: Single-line diagnostic.
    """
    position = "".join(f":{value}" for value in (line, column) if value is not None)
    return f"{location}{position}: {message}"


def build_write_prompt(request: WriteRequest) -> str:
    """Build the user prompt for a draft or a correction.

    Corrections carry the previous candidate and its diagnostics, followed by
    the content and diagnostics of every earlier failed attempt.

    Args:
        request: Write request.

    Returns:
        str: Prompt text.
    """
    target = request.target
    lines = [f'Write the artifact "{target.name}" for `{target.location}`.']
    if target.endpoint is not None:
        lines.append(f"It implements the endpoint `{target.endpoint.key}`.")
    if target.instructions:
        lines.extend(["", target.instructions])
    previous = request.previous
    if previous is None:
        return "\n".join(lines)

    lines.extend([
        "",
        f"Attempt {previous.attempt} failed ({previous.failure}). "
        "Correct the candidate below.",
        "",
        "## Previous candidate",
        "```",
        previous.content,
        "```",
        "",
        "## Diagnostics",
    ])
    lines.extend(
        f"- {format_diagnostic(d.location, d.message, d.line, d.column)}"
        for d in previous.diagnostics
    )
    earlier = request.failures[:-1]
    if earlier:
        lines.extend(["", "## Earlier attempts"])
    for failure in earlier:
        lines.extend([
            "",
            f"### Attempt {failure.attempt} ({failure.failure})",
            "```",
            failure.content,
            "```",
        ])
        lines.extend(
            f"- {format_diagnostic(d.location, d.message, d.line, d.column)}"
            for d in failure.diagnostics
        )
    return "\n".join(lines)


class PreliminaryWriter:
    """Writer that lets the model pull context before completing a write.

    Each ``write`` runs up to ``rag_limit`` model turns. Before every turn the
    ``process`` tool is narrowed to the kinds still requestable. The
    controller is shared by every attempt of the same artifact.
    """

    def __init__(
        self,
        model: ModelProtocol,
        controller: PreliminaryController,
        *,
        system_prompt: str,
        config: PreliminaryConfig | None = None,
        log_sink: LogSinkProtocol | None = None,
        run_id: RunId | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the writer.

        Args:
            model: Function-calling model.
            controller: Preliminary controller for this generation task.
            system_prompt: Phase-specific system prompt.
            config: RAG turn limit.
            log_sink: Optional sink for preliminary logs.
            run_id: Run identifier attached to logs.
            clock: Timestamp provider.
        """
        self._model = model
        self._controller = controller
        self._system_prompt = system_prompt
        self._rag_limit = (config or PreliminaryConfig()).rag_limit
        self._log_sink = log_sink
        self._run_id = run_id
        self._clock = clock or _now_timestamp
        self._tool = build_process_tool(
            WritePayload, controller.kinds, description=PROCESS_TOOL_DESCRIPTION
        )

    @property
    def tool(self) -> ToolSpec:
        """Unnarrowed process tool."""
        return self._tool

    async def write(self, request: WriteRequest) -> WriterOutput:
        """Run the context loop until the model completes the write.

        Args:
            request: Draft or correction request.

        Returns:
            WriterOutput: Completed payload with accumulated usage.

        Raises:
            PreliminaryError: If the model does not complete within the limit.
        """
        history = [
            ConversationMessage(
                role=ConversationRole.USER, content=build_write_prompt(request)
            )
        ]
        usage = TokenUsage()
        for _ in range(self._rag_limit):
            tool = self._controller.fix_application(self._tool)
            result = await self._model.conversate(
                self._system_context(), [tool], list(history)
            )
            usage = usage.add(result.token_usage)
            if result.tool_call is None:
                history.append(
                    ConversationMessage(
                        role=ConversationRole.ASSISTANT, content=result.message or ""
                    )
                )
                history.append(
                    ConversationMessage(role=ConversationRole.USER, content=TOOL_NUDGE)
                )
                continue
            call = result.tool_call
            history.append(
                ConversationMessage(role=ConversationRole.ASSISTANT, tool_call=call)
            )
            payload = self._complete_payload(call)
            if payload is not None:
                return WriterOutput(payload=payload, token_usage=usage)
            history.append(
                ConversationMessage(
                    role=ConversationRole.TOOL,
                    tool_call_id=call.id,
                    content=await self._answer(call),
                )
            )
        raise PreliminaryError(
            PreliminaryErrorInfo(
                code=PreliminaryErrorCode.RAG_LIMIT_EXCEEDED,
                message=(
                    f"Model did not complete {request.target.name} within "
                    f"{self._rag_limit} turns"
                ),
                kinds=self._controller.get_kinds(),
                turns=self._rag_limit,
            )
        )

    def _system_context(self) -> str:
        return "\n\n".join([
            self._system_prompt,
            "# Preliminary context",
            self._controller.describe(),
        ])

    def _complete_payload(self, call: ToolCall) -> WritePayload | None:
        if call.name != PROCESS_TOOL_NAME:
            return None
        request = call.arguments.get("request")
        if not isinstance(request, dict):
            return None
        if request.get("type") != COMPLETE_REQUEST_TYPE:
            return None
        try:
            return WritePayload.model_validate_json(orjson.dumps(request))
        except ValidationError:
            return None

    async def _answer(self, call: ToolCall) -> str:
        if call.name != PROCESS_TOOL_NAME:
            return _encode({
                "success": False,
                "error": f"Unknown tool {call.name}; call {PROCESS_TOOL_NAME}.",
            })
        request = call.arguments.get("request")
        if not isinstance(request, dict):
            return _encode({
                "success": False,
                "error": "Missing `request` object.",
            })
        if request.get("type") == COMPLETE_REQUEST_TYPE:
            return _encode({
                "success": False,
                "errors": _complete_errors(request),
            })
        try:
            fetch = PreliminaryFetchRequest.model_validate_json(orjson.dumps(request))
        except ValidationError as exc:
            return _encode({
                "success": False,
                "errors": _format_validation_errors(exc),
            })
        validation = self._controller.validate(fetch.type, fetch.ids)
        await self._log(validation)
        return _encode(self._render_validation(validation))

    def _render_validation(
        self, validation: PreliminaryValidation
    ) -> dict[str, object]:
        if not validation.success:
            return {
                "success": False,
                "errors": [
                    issue.model_dump(mode="json") for issue in validation.issues
                ],
            }
        return {
            "success": True,
            "loaded": [
                {"kind": str(kind), "id": item.id, "content": item.artifact.content}
                for kind, item in self._controller.get_loaded(validation.loaded)
            ],
            "exhausted": validation.exhausted,
        }

    async def _log(self, validation: PreliminaryValidation) -> None:
        if self._log_sink is None or self._run_id is None:
            return
        await self._log_sink.emit_log(
            build_preliminary_log(self._clock(), self._run_id, validation)
        )


def _complete_errors(request: dict[str, object]) -> list[dict[str, object]]:
    try:
        WritePayload.model_validate_json(orjson.dumps(request))
    except ValidationError as exc:
        return _format_validation_errors(exc)
    return []


def _format_validation_errors(exc: ValidationError) -> list[dict[str, object]]:
    return [
        {
            "path": ".".join(["$input.request", *(str(part) for part in error["loc"])]),
            "expected": error["type"],
            "value": error.get("input"),
            "description": error["msg"],
        }
        for error in exc.errors(include_url=False)
    ]


def _encode(payload: dict[str, object]) -> str:
    return orjson.dumps(payload, default=str).decode()


def _now_timestamp() -> Timestamp:
    value = datetime.now(tz=UTC).isoformat()
    return value.replace("+00:00", "Z")
