"""Schemas for the model invocation boundary."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field, model_validator

from backforge_schemas.base import BaseSchema, FrozenSchema
from backforge_schemas.primitives import JsonValue


class TokenUsage(FrozenSchema):
    """Token counters reported by a model call."""

    input_tokens: int = Field(0, ge=0, description="Prompt tokens")
    output_tokens: int = Field(0, ge=0, description="Completion tokens")
    cached_input_tokens: int = Field(
        0, ge=0, description="Prompt tokens served from the provider cache"
    )

    @property
    def total_tokens(self) -> int:
        """Sum of input and output tokens."""
        return self.input_tokens + self.output_tokens

    def add(self, other: TokenUsage) -> TokenUsage:
        """Return a new usage record with both counters summed.

        Args:
            other: Usage to add.

        Returns:
            TokenUsage: Combined usage.
        """
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            cached_input_tokens=self.cached_input_tokens + other.cached_input_tokens,
        )


class ConversationRole(StrEnum):
    """Roles of conversation history turns."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolSpec(BaseSchema):
    """Function-calling tool offered to the model."""

    name: str = Field(..., min_length=1, description="Tool name")
    description: str = Field("", description="Tool description")
    parameters: dict[str, JsonValue] = Field(
        ..., description="JSON schema of the tool arguments"
    )


class ToolCall(FrozenSchema):
    """Tool invocation requested by the model."""

    id: str = Field(..., min_length=1, description="Provider tool call identifier")
    name: str = Field(..., min_length=1, description="Tool name")
    arguments: dict[str, JsonValue] = Field(
        default_factory=dict, description="Decoded tool arguments"
    )


class ConversationMessage(FrozenSchema):
    """Single turn of conversation history."""

    role: ConversationRole = Field(..., description="Turn role")
    content: str = Field("", description="Turn text")
    tool_call: ToolCall | None = Field(
        None, description="Tool call made by an assistant turn"
    )
    tool_call_id: str | None = Field(
        None, description="Tool call answered by a tool turn"
    )

    @model_validator(mode="after")
    def validate_tool_fields(self) -> ConversationMessage:
        """Ensure tool fields match the turn role.

        Returns:
            ConversationMessage: Validated message.

        Raises:
            ValueError: If a tool field is set on the wrong role.
        """
        if self.tool_call is not None and self.role != ConversationRole.ASSISTANT:
            raise ValueError("tool_call is only valid on assistant turns")
        if self.role == ConversationRole.TOOL and self.tool_call_id is None:
            raise ValueError("tool turns must reference a tool_call_id")
        return self


class ConversateResult(BaseSchema):
    """Result of one model invocation."""

    tool_call: ToolCall | None = Field(None, description="Requested tool call")
    message: str | None = Field(None, description="Plain assistant message")
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage, description="Usage for this call"
    )

    @model_validator(mode="after")
    def validate_single_output(self) -> ConversateResult:
        """Ensure exactly one of tool_call or message is present.

        Returns:
            ConversateResult: Validated result.

        Raises:
            ValueError: If both or neither output is present.
        """
        if (self.tool_call is None) == (self.message is None):
            raise ValueError("exactly one of tool_call or message is required")
        return self
