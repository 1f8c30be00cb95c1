"""Unit tests for provider detection and the model factory."""

from __future__ import annotations

from typing import cast
from unittest.mock import MagicMock, patch

import pytest
from pydantic_ai.models.openai import OpenAIChatModelSettings

from backforge_llm.provider_factory import (
    ProviderFactoryError,
    apply_cache_key,
    create_model,
    enforce_provider_allowlist,
    validate_openrouter_model_id,
)
from backforge_llm.providers import (
    GENERIC_CAPABILITIES,
    LOCAL_CAPABILITIES,
    OPENAI_CAPABILITIES,
    OPENROUTER_CAPABILITIES,
    detect_provider,
    normalize_base_url,
)
from backforge_schemas.config import (
    ModelEndpointConfig,
    ModelSettings,
    OpenRouterProviderRoutingConfig,
)


@pytest.mark.parametrize(
    ("base_url", "expected"),
    [
        ("https://openrouter.ai/api/v1", OPENROUTER_CAPABILITIES),
        ("https://API.OpenAI.com/v1/", OPENAI_CAPABILITIES),
        ("http://localhost:1234/v1", LOCAL_CAPABILITIES),
        ("http://192.168.1.20:8000/v1", LOCAL_CAPABILITIES),
        ("http://gpu-box.local/v1", LOCAL_CAPABILITIES),
        ("https://api.together.xyz/v1", GENERIC_CAPABILITIES),
    ],
)
def test_detect_provider(base_url: str, expected: object) -> None:
    """Base URLs map to provider capabilities."""
    assert detect_provider(base_url) == expected


def test_normalize_base_url_adds_scheme_and_strips_slash() -> None:
    """Scheme-less URLs default to https."""
    assert normalize_base_url("Example.com/v1/") == "https://example.com/v1"


def test_only_openai_accepts_cache_keys() -> None:
    """Prompt-cache keys are an OpenAI-only request feature."""
    assert OPENAI_CAPABILITIES.supports_prompt_cache_key
    assert not OPENROUTER_CAPABILITIES.supports_prompt_cache_key
    assert not LOCAL_CAPABILITIES.supports_prompt_cache_key


class TestApplyCacheKey:
    """Tests for prompt-cache key injection."""

    def test_adds_extra_body_for_supporting_provider(self) -> None:
        """The key travels in the request body."""
        settings = apply_cache_key(
            {"temperature": 0.2}, OPENAI_CAPABILITIES, "wave-1"
        )
        assert settings["extra_body"] == {"prompt_cache_key": "wave-1"}
        assert settings["temperature"] == 0.2

    def test_skips_unsupported_provider(self) -> None:
        """Providers without cache keys get unchanged settings."""
        settings = apply_cache_key(
            {"temperature": 0.2}, GENERIC_CAPABILITIES, "wave-1"
        )
        assert "extra_body" not in settings

    def test_none_clears_previous_key(self) -> None:
        """Passing None removes a key carried over from an earlier wave."""
        original = apply_cache_key({}, OPENAI_CAPABILITIES, "wave-1")
        cleared = apply_cache_key(original, OPENAI_CAPABILITIES, None)
        assert "extra_body" not in cleared
        assert original["extra_body"] == {"prompt_cache_key": "wave-1"}


class TestOpenRouterValidation:
    """Tests for OpenRouter model id rules."""

    @pytest.mark.parametrize("model_id", ["openai/gpt-4o", "qwen/qwen3-coder:free"])
    def test_accepts_provider_prefixed_ids(self, model_id: str) -> None:
        """Ids of the form provider/model pass."""
        validate_openrouter_model_id(model_id)

    def test_rejects_bare_id(self) -> None:
        """Ids without a provider prefix are rejected."""
        with pytest.raises(ProviderFactoryError, match="provider/model-name"):
            validate_openrouter_model_id("gpt-4o")

    def test_allowlist_rejects_other_provider(self) -> None:
        """Providers outside ``only`` are rejected."""
        routing = OpenRouterProviderRoutingConfig(only=["anthropic", "google"])
        with pytest.raises(ProviderFactoryError, match="anthropic, google"):
            enforce_provider_allowlist("openai/gpt-4o", routing)

    def test_allowlist_passes_without_only(self) -> None:
        """No allowlist means every provider is allowed."""
        enforce_provider_allowlist("openai/gpt-4o", None)
        enforce_provider_allowlist(
            "openai/gpt-4o", OpenRouterProviderRoutingConfig(order=["openai"])
        )


class TestCreateModel:
    """Tests for provider routing in ``create_model``."""

    @patch("backforge_llm.provider_factory.OpenAIProvider")
    @patch("backforge_llm.provider_factory.OpenAIChatModel")
    def test_openai_compatible_endpoint(
        self,
        mock_model_cls: MagicMock,
        mock_provider_cls: MagicMock,
    ) -> None:
        """Non-OpenRouter URLs build an OpenAI chat model."""
        endpoint = ModelEndpointConfig(
            base_url="http://localhost:1234/v1", api_key_env="LOCAL_KEY"
        )
        settings = ModelSettings(
            model_id="qwen3-coder", temperature=0.4, max_output_tokens=2048
        )

        model, model_settings = create_model(endpoint, settings, api_key="k")

        mock_provider_cls.assert_called_once_with(
            base_url="http://localhost:1234/v1", api_key="k"
        )
        mock_model_cls.assert_called_once_with(
            "qwen3-coder", provider=mock_provider_cls.return_value
        )
        assert model is mock_model_cls.return_value
        openai_settings = cast(OpenAIChatModelSettings, model_settings)
        assert openai_settings["temperature"] == 0.4
        assert openai_settings["max_tokens"] == 2048
        assert openai_settings["parallel_tool_calls"] is False
        assert "extra_body" not in openai_settings

    @patch("backforge_llm.provider_factory.OpenAIProvider")
    @patch("backforge_llm.provider_factory.OpenAIChatModel")
    def test_openai_endpoint_carries_cache_key(
        self,
        mock_model_cls: MagicMock,
        mock_provider_cls: MagicMock,
    ) -> None:
        """OpenAI requests carry the wave cache key."""
        endpoint = ModelEndpointConfig(
            base_url="https://api.openai.com/v1", api_key_env="OPENAI_API_KEY"
        )

        _, model_settings = create_model(
            endpoint, ModelSettings(model_id="gpt-4o"), api_key="k", cache_key="w0"
        )

        assert model_settings["extra_body"] == {"prompt_cache_key": "w0"}
        mock_model_cls.assert_called_once()
        mock_provider_cls.assert_called_once()

    @patch("backforge_llm.provider_factory.OpenRouterProvider")
    @patch("backforge_llm.provider_factory.OpenRouterModel")
    def test_openrouter_endpoint(
        self,
        mock_model_cls: MagicMock,
        mock_provider_cls: MagicMock,
    ) -> None:
        """OpenRouter URLs build an OpenRouter model with routing settings."""
        endpoint = ModelEndpointConfig(
            base_url="https://openrouter.ai/api/v1",
            api_key_env="OPENROUTER_API_KEY",
            openrouter_provider=OpenRouterProviderRoutingConfig(order=["openai"]),
        )

        model, model_settings = create_model(
            endpoint, ModelSettings(model_id="openai/gpt-4o"), api_key="k"
        )

        mock_provider_cls.assert_called_once_with(api_key="k")
        assert model is mock_model_cls.return_value
        routing = model_settings["openrouter_provider"]  # type: ignore[typeddict-item]
        assert routing["order"] == ["openai"]
        assert "only" not in routing

    @patch("backforge_llm.provider_factory.OpenRouterProvider")
    @patch("backforge_llm.provider_factory.OpenRouterModel")
    def test_openrouter_rejects_bare_model_id(
        self,
        mock_model_cls: MagicMock,
        mock_provider_cls: MagicMock,
    ) -> None:
        """Invalid ids fail before any provider is created."""
        endpoint = ModelEndpointConfig(
            base_url="https://openrouter.ai/api/v1", api_key_env="OPENROUTER_API_KEY"
        )

        with pytest.raises(ProviderFactoryError):
            create_model(endpoint, ModelSettings(model_id="gpt-4o"), api_key="k")

        mock_provider_cls.assert_not_called()
        mock_model_cls.assert_not_called()
