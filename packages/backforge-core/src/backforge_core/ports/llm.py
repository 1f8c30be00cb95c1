"""Protocol definitions for model invocation adapters."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from backforge_schemas.base import BaseSchema
from backforge_schemas.conversation import (
    ConversateResult,
    ConversationMessage,
    ToolSpec,
)
from backforge_schemas.responses import ErrorResponse


@runtime_checkable
class ModelProtocol(Protocol):
    """Protocol for a function-calling model.

    Implementations answer with either a tool call or a plain assistant
    message, along with the token usage of the call.
    """

    async def conversate(
        self,
        system_context: str,
        tools: list[ToolSpec],
        history: list[ConversationMessage],
    ) -> ConversateResult:
        """Run one model turn."""
        raise NotImplementedError


class ModelErrorCode(StrEnum):
    """Error codes for model invocation failures."""

    REQUEST_FAILED = "request_failed"
    RETRIES_EXHAUSTED = "retries_exhausted"


class ModelErrorInfo(BaseSchema):
    """Structured model error data."""

    code: ModelErrorCode = Field(..., description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    status_code: int | None = Field(None, description="HTTP status, if any")
    attempts: int | None = Field(None, ge=1, description="Attempts made")

    def to_error_response(self) -> ErrorResponse:
        """Convert model error info to standard error response.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        return ErrorResponse(code=str(self.code), message=self.message, details=None)


class ModelError(Exception):
    """Model invocation error with structured details."""

    def __init__(self, info: ModelErrorInfo) -> None:
        """Initialize the model error.

        Args:
            info: Structured model error information.
        """
        super().__init__(info.message)
        self.info = info
