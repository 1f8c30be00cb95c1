"""Unit tests for conversation and artifact schemas."""

from __future__ import annotations

import pytest
from pydantic import TypeAdapter, ValidationError

from backforge_schemas.artifacts import (
    Artifact,
    Endpoint,
    ValidationException,
    ValidationFailure,
    ValidationResult,
    ValidationSuccess,
)
from backforge_schemas.conversation import (
    ConversateResult,
    ConversationMessage,
    ConversationRole,
    TokenUsage,
    ToolCall,
)
from backforge_schemas.correction import RevisePayload, WritePayload


def test_token_usage_add_sums_counters() -> None:
    """Adding usage sums every counter."""
    first = TokenUsage(input_tokens=10, output_tokens=5, cached_input_tokens=2)
    second = TokenUsage(input_tokens=1, output_tokens=1)

    total = first.add(second)

    assert total == TokenUsage(input_tokens=11, output_tokens=6, cached_input_tokens=2)
    assert total.total_tokens == 17


def test_conversate_result_requires_exactly_one_output() -> None:
    """A result holds a tool call or a message, never both or neither."""
    call = ToolCall(id="call_1", name="process", arguments={})

    with pytest.raises(ValidationError, match="exactly one"):
        ConversateResult()
    with pytest.raises(ValidationError, match="exactly one"):
        ConversateResult(tool_call=call, message="hi")
    assert ConversateResult(message="hi").tool_call is None


def test_tool_turn_requires_call_id() -> None:
    """Tool turns must reference the call they answer."""
    with pytest.raises(ValidationError, match="tool_call_id"):
        ConversationMessage(role=ConversationRole.TOOL, content="{}")


def test_tool_call_only_on_assistant_turns() -> None:
    """User turns cannot carry a tool call."""
    call = ToolCall(id="call_1", name="process")

    with pytest.raises(ValidationError, match="assistant"):
        ConversationMessage(role=ConversationRole.USER, tool_call=call)


def test_endpoint_key() -> None:
    """Endpoint keys combine method and path."""
    assert Endpoint(method="get", path="/users/{id}").key == "get /users/{id}"


def test_endpoint_rejects_uppercase_method() -> None:
    """Methods are stored lowercase."""
    with pytest.raises(ValidationError):
        Endpoint(method="GET", path="/users")


def test_artifact_is_frozen() -> None:
    """Artifacts are immutable."""
    artifact = Artifact(location="src/user.ts", name="User", content="x")

    with pytest.raises(ValidationError):
        artifact.name = "Other"  # type: ignore[misc]


def test_validation_result_discriminates_on_type() -> None:
    """The tri-state validation result parses by its type field."""
    adapter: TypeAdapter[ValidationResult] = TypeAdapter(ValidationResult)

    assert isinstance(
        adapter.validate_json('{"type": "success"}'), ValidationSuccess
    )
    failure = adapter.validate_json(
        '{"type": "failure", "diagnostics": '
        '[{"location": "a.ts", "message": "bad", "line": 3}]}'
    )
    assert isinstance(failure, ValidationFailure)
    assert failure.diagnostics[0].line == 3
    assert isinstance(
        adapter.validate_json('{"type": "exception", "error": "boom"}'),
        ValidationException,
    )


def test_validation_failure_needs_diagnostics() -> None:
    """A failure without diagnostics is invalid."""
    with pytest.raises(ValidationError):
        ValidationFailure(diagnostics=[])


def test_write_payload_candidate_prefers_final() -> None:
    """The final revision replaces the draft when present."""
    draft_only = WritePayload(draft="v1")
    revised = WritePayload(draft="v1", revise=RevisePayload(review="ok", final="v2"))

    assert draft_only.candidate == "v1"
    assert revised.candidate == "v2"
