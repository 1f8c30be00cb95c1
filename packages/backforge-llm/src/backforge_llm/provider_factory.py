"""Model factory for OpenAI-compatible and OpenRouter endpoints.

Every pydantic-ai model used by backforge is created through
``create_model``; call sites never construct providers directly.
"""

from __future__ import annotations

import logging
import re
from typing import cast

from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel, OpenAIChatModelSettings
from pydantic_ai.models.openrouter import (
    OpenRouterModel,
    OpenRouterModelSettings,
    OpenRouterProviderConfig,
)
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.providers.openrouter import OpenRouterProvider
from pydantic_ai.settings import ModelSettings as PydanticAiModelSettings

from backforge_llm.providers import ProviderCapabilities, detect_provider
from backforge_schemas.config import (
    ModelEndpointConfig,
    ModelSettings,
    OpenRouterProviderRoutingConfig,
)

_log = logging.getLogger(__name__)

_OPENROUTER_MODEL_ID_RE = re.compile(r"^[^/]+/.+")


class ProviderFactoryError(Exception):
    """Raised when provider/model creation fails validation."""


def create_model(
    endpoint: ModelEndpointConfig,
    settings: ModelSettings,
    *,
    api_key: str,
    cache_key: str | None = None,
) -> tuple[Model, PydanticAiModelSettings]:
    """Create the provider/model pair for an endpoint.

    Args:
        endpoint: Endpoint configuration.
        settings: Model selection and sampling settings.
        api_key: API key for the provider.
        cache_key: Prompt-cache key shared by one batch wave.

    Returns:
        tuple[Model, ModelSettings]: Model and request settings for pydantic-ai.

    Raises:
        ProviderFactoryError: If the model id is invalid for the provider.
    """
    capabilities = detect_provider(endpoint.base_url)
    _log.debug(
        "Creating %s model %s for %s",
        capabilities.name,
        settings.model_id,
        endpoint.base_url,
    )
    if capabilities.is_openrouter:
        model, model_settings = _create_openrouter_model(
            endpoint, settings, api_key=api_key
        )
    else:
        model, model_settings = _create_openai_model(
            endpoint, settings, api_key=api_key
        )
    return model, apply_cache_key(model_settings, capabilities, cache_key)


def apply_cache_key(
    model_settings: PydanticAiModelSettings,
    capabilities: ProviderCapabilities,
    cache_key: str | None,
) -> PydanticAiModelSettings:
    """Attach a prompt-cache key when the provider accepts one.

    Args:
        model_settings: Settings to extend.
        capabilities: Provider capabilities.
        cache_key: Cache key, or None to leave settings unchanged.

    Returns:
        ModelSettings: New settings carrying ``prompt_cache_key`` in the body.
    """
    updated = cast(PydanticAiModelSettings, dict(model_settings))
    if cache_key is None or not capabilities.supports_prompt_cache_key:
        updated.pop("extra_body", None)
        return updated
    updated["extra_body"] = {"prompt_cache_key": cache_key}
    return updated


def validate_openrouter_model_id(model_id: str) -> None:
    """Validate that an OpenRouter model id has the ``provider/model`` form.

    Args:
        model_id: The model id to validate.

    Raises:
        ProviderFactoryError: If the model id is invalid.
    """
    if not _OPENROUTER_MODEL_ID_RE.match(model_id):
        raise ProviderFactoryError(
            f"Invalid OpenRouter model ID '{model_id}': "
            "must match format 'provider/model-name' (e.g. 'openai/gpt-4o')"
        )


def enforce_provider_allowlist(
    model_id: str,
    openrouter_provider: OpenRouterProviderRoutingConfig | None,
) -> None:
    """Reject models whose provider prefix is outside the ``only`` allowlist.

    Args:
        model_id: OpenRouter model id.
        openrouter_provider: Routing config, possibly None.

    Raises:
        ProviderFactoryError: If the provider is not allowed.
    """
    if openrouter_provider is None or openrouter_provider.only is None:
        return
    provider_prefix = model_id.split("/", 1)[0]
    if provider_prefix not in openrouter_provider.only:
        allowed = ", ".join(openrouter_provider.only)
        raise ProviderFactoryError(
            f"Model provider '{provider_prefix}' is not in the allowlist. "
            f"Allowed providers: {allowed}"
        )


def _create_openrouter_model(
    endpoint: ModelEndpointConfig, settings: ModelSettings, *, api_key: str
) -> tuple[Model, PydanticAiModelSettings]:
    validate_openrouter_model_id(settings.model_id)
    enforce_provider_allowlist(settings.model_id, endpoint.openrouter_provider)
    provider = OpenRouterProvider(api_key=api_key)
    model = OpenRouterModel(settings.model_id, provider=provider)
    model_settings: OpenRouterModelSettings = {
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "timeout": endpoint.timeout_s,
        "parallel_tool_calls": False,
        "openrouter_provider": _build_openrouter_provider_settings(
            endpoint.openrouter_provider
        ),
    }
    if settings.max_output_tokens is not None:
        model_settings["max_tokens"] = settings.max_output_tokens
    return model, cast(PydanticAiModelSettings, model_settings)


def _create_openai_model(
    endpoint: ModelEndpointConfig, settings: ModelSettings, *, api_key: str
) -> tuple[Model, PydanticAiModelSettings]:
    provider = OpenAIProvider(base_url=endpoint.base_url, api_key=api_key)
    model = OpenAIChatModel(settings.model_id, provider=provider)
    model_settings: OpenAIChatModelSettings = {
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "timeout": endpoint.timeout_s,
        "parallel_tool_calls": False,
    }
    if settings.max_output_tokens is not None:
        model_settings["max_tokens"] = settings.max_output_tokens
    return model, cast(PydanticAiModelSettings, model_settings)


def _build_openrouter_provider_settings(
    config: OpenRouterProviderRoutingConfig | None,
) -> OpenRouterProviderConfig:
    resolved = config or OpenRouterProviderRoutingConfig(require_parameters=True)
    payload = resolved.model_dump(mode="python", exclude_none=True)
    return cast(OpenRouterProviderConfig, payload)
