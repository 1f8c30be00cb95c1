"""pydantic-ai backed adapter for the ``conversate`` model port."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable

import httpx
from pydantic_ai.direct import model_request
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.settings import ModelSettings as PydanticAiModelSettings
from pydantic_ai.tools import ToolDefinition

from backforge_core.ports.llm import (
    ModelError,
    ModelErrorCode,
    ModelErrorInfo,
    ModelProtocol,
)
from backforge_core.retry import is_transient_error, run_with_backoff
from backforge_llm.provider_factory import apply_cache_key, create_model
from backforge_llm.providers import ProviderCapabilities, detect_provider
from backforge_schemas.config import ModelEndpointConfig, ModelSettings, RetryConfig
from backforge_schemas.conversation import (
    ConversateResult,
    ConversationMessage,
    ConversationRole,
    TokenUsage,
    ToolCall,
    ToolSpec,
)

_log = logging.getLogger(__name__)

type RequestFn = Callable[
    [Model, list[ModelMessage], PydanticAiModelSettings, ModelRequestParameters],
    Awaitable[ModelResponse],
]


def is_transient_model_error(exc: BaseException) -> bool:
    """Classify pydantic-ai and httpx errors for retry.

    Args:
        exc: Error raised by the model request.

    Returns:
        bool: True for 5xx/429 responses (except exhausted quota), transport
        errors, connection errors and timeouts.
    """
    if isinstance(exc, httpx.TransportError):
        return True
    return is_transient_error(exc)


def build_tool_definitions(tools: list[ToolSpec]) -> list[ToolDefinition]:
    """Convert tool specs into pydantic-ai tool definitions.

    Returns:
        list[ToolDefinition]: Function tools for the request.
    """
    return [
        ToolDefinition(
            name=tool.name,
            description=tool.description or None,
            parameters_json_schema=dict(tool.parameters),
        )
        for tool in tools
    ]


def build_messages(
    system_context: str, history: list[ConversationMessage]
) -> list[ModelMessage]:
    """Convert conversation history into pydantic-ai messages.

    User and tool turns are grouped into requests; assistant turns become
    responses. The system context leads the first request.

    Args:
        system_context: System prompt for the call.
        history: Conversation turns, oldest first.

    Returns:
        list[ModelMessage]: Messages ready for ``model_request``.
    """
    tool_names: dict[str, str] = {}
    messages: list[ModelMessage] = []
    pending: list[ModelRequestPart] = [SystemPromptPart(content=system_context)]
    for turn in history:
        if turn.role == ConversationRole.ASSISTANT:
            if pending:
                messages.append(ModelRequest(parts=pending))
                pending = []
            if turn.tool_call is not None:
                tool_names[turn.tool_call.id] = turn.tool_call.name
                messages.append(
                    ModelResponse(
                        parts=[
                            ToolCallPart(
                                tool_name=turn.tool_call.name,
                                args=dict(turn.tool_call.arguments),
                                tool_call_id=turn.tool_call.id,
                            )
                        ]
                    )
                )
            else:
                messages.append(ModelResponse(parts=[TextPart(content=turn.content)]))
        elif turn.role == ConversationRole.TOOL:
            call_id = turn.tool_call_id or ""
            pending.append(
                ToolReturnPart(
                    tool_name=tool_names.get(call_id, ""),
                    content=turn.content,
                    tool_call_id=call_id,
                )
            )
        else:
            pending.append(UserPromptPart(content=turn.content))
    if pending:
        messages.append(ModelRequest(parts=pending))
    return messages


def parse_response(response: ModelResponse) -> ConversateResult:
    """Extract the first tool call, or the text, from a model response.

    Args:
        response: Raw pydantic-ai response.

    Returns:
        ConversateResult: Tool call or message with token usage.
    """
    usage = TokenUsage(
        input_tokens=response.usage.input_tokens,
        output_tokens=response.usage.output_tokens,
        cached_input_tokens=response.usage.cache_read_tokens,
    )
    for part in response.parts:
        if isinstance(part, ToolCallPart):
            return ConversateResult(
                tool_call=ToolCall(
                    id=part.tool_call_id,
                    name=part.tool_name,
                    arguments=part.args_as_dict(),
                ),
                token_usage=usage,
            )
    text = "".join(
        part.content for part in response.parts if isinstance(part, TextPart)
    )
    return ConversateResult(message=text, token_usage=usage)


async def _default_request(
    model: Model,
    messages: list[ModelMessage],
    model_settings: PydanticAiModelSettings,
    parameters: ModelRequestParameters,
) -> ModelResponse:
    return await model_request(
        model,
        messages,
        model_settings=model_settings,
        model_request_parameters=parameters,
    )


class PydanticAiModel(ModelProtocol):
    """Function-calling model over any pydantic-ai model.

    Transient failures are retried with exponential backoff; anything left
    over is raised as ``ModelError``.
    """

    def __init__(
        self,
        model: Model,
        model_settings: PydanticAiModelSettings | None = None,
        *,
        retry: RetryConfig | None = None,
        capabilities: ProviderCapabilities | None = None,
        request_fn: RequestFn | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            model: pydantic-ai model.
            model_settings: Request settings.
            retry: Backoff policy for transient errors.
            capabilities: Provider capabilities, used for cache keys.
            request_fn: Request function (defaults to ``model_request``).
            sleep: Sleep function used between retries.
        """
        self._model = model
        self._model_settings = model_settings or PydanticAiModelSettings()
        self._retry = retry or RetryConfig()
        self._capabilities = capabilities
        self._request_fn = request_fn or _default_request
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        endpoint: ModelEndpointConfig,
        settings: ModelSettings,
        *,
        retry: RetryConfig | None = None,
        api_key: str | None = None,
    ) -> PydanticAiModel:
        """Build an adapter from endpoint and model settings.

        Args:
            endpoint: Endpoint configuration.
            settings: Model settings.
            retry: Backoff policy.
            api_key: API key; read from ``endpoint.api_key_env`` when omitted.

        Returns:
            PydanticAiModel: Configured adapter.

        Raises:
            ModelError: If no API key is available.
        """
        key = api_key or os.getenv(endpoint.api_key_env)
        if not key:
            raise ModelError(
                ModelErrorInfo(
                    code=ModelErrorCode.REQUEST_FAILED,
                    message=(
                        f"Missing API key environment variable: {endpoint.api_key_env}"
                    ),
                )
            )
        model, model_settings = create_model(endpoint, settings, api_key=key)
        return cls(
            model,
            model_settings,
            retry=retry,
            capabilities=detect_provider(endpoint.base_url),
        )

    def with_cache_key(self, cache_key: str) -> PydanticAiModel:
        """Return a copy whose requests carry a prompt-cache key.

        Args:
            cache_key: Key shared by every task of one batch wave.

        Returns:
            PydanticAiModel: Adapter sharing the same model and retry policy.
        """
        model_settings = self._model_settings
        if self._capabilities is not None:
            model_settings = apply_cache_key(
                model_settings, self._capabilities, cache_key
            )
        return PydanticAiModel(
            self._model,
            model_settings,
            retry=self._retry,
            capabilities=self._capabilities,
            request_fn=self._request_fn,
            sleep=self._sleep,
        )

    async def conversate(
        self,
        system_context: str,
        tools: list[ToolSpec],
        history: list[ConversationMessage],
    ) -> ConversateResult:
        """Run one model turn.

        Args:
            system_context: System prompt.
            tools: Tools offered to the model.
            history: Conversation turns so far.

        Returns:
            ConversateResult: Tool call or assistant message with usage.

        Raises:
            ModelError: If the request fails after retries.
        """
        messages = build_messages(system_context, history)
        parameters = ModelRequestParameters(
            function_tools=build_tool_definitions(tools),
            allow_text_output=True,
        )
        attempts = 0

        async def _request() -> ModelResponse:
            nonlocal attempts
            attempts += 1
            return await self._request_fn(
                self._model, messages, self._model_settings, parameters
            )

        async def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            _log.debug(
                "Retrying model request (attempt %s) in %.1fs after %s",
                attempt,
                delay,
                exc,
            )

        try:
            response = await run_with_backoff(
                _request,
                self._retry,
                is_transient=is_transient_model_error,
                on_retry=_on_retry,
                sleep=self._sleep or asyncio.sleep,
            )
        except (ModelHTTPError, httpx.HTTPError, ConnectionError, TimeoutError) as exc:
            transient = is_transient_model_error(exc)
            raise ModelError(
                ModelErrorInfo(
                    code=(
                        ModelErrorCode.RETRIES_EXHAUSTED
                        if transient
                        else ModelErrorCode.REQUEST_FAILED
                    ),
                    message=f"Model request failed: {exc}",
                    status_code=getattr(exc, "status_code", None),
                    attempts=attempts,
                )
            ) from exc
        return parse_response(response)
