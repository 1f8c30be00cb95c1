"""Configuration schemas for backforge pipelines."""

from __future__ import annotations

from urllib.parse import urlparse

from pydantic import Field, field_validator, model_validator

from backforge_schemas.base import BaseSchema
from backforge_schemas.primitives import (
    PIPELINE_PHASE_ORDER,
    LogLevel,
    LogSinkType,
    PhaseName,
)


class LogSinkConfig(BaseSchema):
    """Configuration for a single log sink."""

    type: LogSinkType = Field(..., description="Log sink type (console|file|noop)")
    level: LogLevel = Field(
        LogLevel.DEBUG, description="Minimum level written by console sinks"
    )

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> LogSinkType:
        if isinstance(value, LogSinkType):
            return value
        if isinstance(value, str):
            return LogSinkType(value)
        return value  # type: ignore[return-value]

    @field_validator("level", mode="before")
    @classmethod
    def _coerce_level(cls, value: object) -> LogLevel:
        if isinstance(value, str) and not isinstance(value, LogLevel):
            return LogLevel(value)
        return value  # type: ignore[return-value]


class LoggingConfig(BaseSchema):
    """Logging configuration for pipeline runs and CLI commands."""

    sinks: list[LogSinkConfig] = Field(
        ..., min_length=1, description="Log sinks to enable"
    )

    @model_validator(mode="after")
    def validate_sink_types(self) -> LoggingConfig:
        """Ensure log sink types are unique.

        Returns:
            LoggingConfig: Validated logging configuration.

        Raises:
            ValueError: If sink types are duplicated.
        """
        sink_types = [sink.type for sink in self.sinks]
        if len(set(sink_types)) != len(sink_types):
            raise ValueError("log sinks must not contain duplicates")
        return self


class OpenRouterProviderRoutingConfig(BaseSchema):
    """OpenRouter provider routing controls."""

    order: list[str] | None = Field(None, description="Preferred provider order")
    allow_fallbacks: bool | None = Field(
        None, description="Allow routing to providers outside the order"
    )
    require_parameters: bool = Field(
        True, description="Only route to providers supporting every parameter"
    )
    only: list[str] | None = Field(None, description="Provider allowlist")


class ModelEndpointConfig(BaseSchema):
    """BYOK endpoint configuration for OpenAI-compatible APIs."""

    base_url: str = Field(..., min_length=1, description="OpenAI-compatible base URL")
    api_key_env: str = Field(
        ..., min_length=1, description="Environment variable for API key"
    )
    timeout_s: float = Field(600.0, gt=0, description="Request timeout in seconds")
    openrouter_provider: OpenRouterProviderRoutingConfig | None = Field(
        None, description="OpenRouter provider routing controls"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, value: str) -> str:
        """Ensure base URL uses http/https with a host.

        Args:
            value: Raw base URL string.

        Returns:
            str: Validated base URL.

        Raises:
            ValueError: If the URL is missing scheme/host.
        """
        parsed = urlparse(value)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValueError(
                "base_url must be an http/https URL with host "
                "(for localhost include http://)"
            )
        if parsed.path in {"", "/"}:
            return f"{value.rstrip('/')}/v1"
        return value

    @model_validator(mode="after")
    def validate_openrouter_provider(self) -> ModelEndpointConfig:
        """Validate OpenRouter-only routing configuration usage.

        Returns:
            ModelEndpointConfig: Validated endpoint configuration.

        Raises:
            ValueError: If routing config is set on a non-OpenRouter endpoint.
        """
        is_openrouter = "openrouter.ai" in self.base_url.lower()
        if self.openrouter_provider is not None and not is_openrouter:
            raise ValueError(
                "openrouter_provider is only valid for OpenRouter endpoints"
            )
        if is_openrouter and self.openrouter_provider is None:
            self.openrouter_provider = OpenRouterProviderRoutingConfig()
        return self


class ModelSettings(BaseSchema):
    """Model selection and sampling settings."""

    model_id: str = Field(..., min_length=1, description="Model identifier")
    temperature: float = Field(0.2, ge=0, le=2, description="Sampling temperature")
    top_p: float = Field(1.0, ge=0, le=1, description="Top-p sampling")
    max_output_tokens: int | None = Field(
        None, ge=1, description="Maximum output tokens (None uses model default)"
    )


class RetryConfig(BaseSchema):
    """Backoff policy for transient model errors."""

    max_retries: int = Field(5, ge=0, description="Maximum retry attempts")
    backoff_s: float = Field(4.0, gt=0, description="Initial backoff in seconds")
    max_backoff_s: float = Field(
        60.0, gt=0, description="Maximum backoff in seconds"
    )
    jitter: float = Field(
        0.8, ge=0, le=1, description="Random jitter ratio applied to each delay"
    )

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> RetryConfig:
        """Ensure the initial backoff does not exceed the cap.

        Returns:
            RetryConfig: Validated retry configuration.

        Raises:
            ValueError: If backoff_s exceeds max_backoff_s.
        """
        if self.backoff_s > self.max_backoff_s:
            raise ValueError("backoff_s must not exceed max_backoff_s")
        return self


class ConcurrencyConfig(BaseSchema):
    """Concurrency limits for batched generation."""

    max_parallel_requests: int = Field(
        8, ge=1, description="Maximum concurrent generation tasks"
    )
    warmup: bool = Field(
        True, description="Run the first task alone to prime the prompt cache"
    )


class CorrectionConfig(BaseSchema):
    """Write/validate/correct loop limits."""

    retry_budget: int = Field(4, ge=0, description="Correction rounds allowed")
    timeout_s: float | None = Field(
        1800.0, gt=0, description="Wall-clock limit per model call"
    )


class PreliminaryConfig(BaseSchema):
    """Preliminary context request limits."""

    rag_limit: int = Field(
        10, ge=1, description="Maximum model turns while gathering context"
    )


class PipelineConfig(BaseSchema):
    """Phases to run, in canonical order."""

    phases: list[PhaseName] = Field(
        default_factory=lambda: list(PIPELINE_PHASE_ORDER),
        min_length=1,
        description="Phases to run",
    )

    @field_validator("phases", mode="before")
    @classmethod
    def _coerce_phases(cls, value: object) -> object:
        if isinstance(value, list):
            return [
                PhaseName(item) if isinstance(item, str) else item for item in value
            ]
        return value

    @model_validator(mode="after")
    def validate_phases(self) -> PipelineConfig:
        """Validate phase uniqueness and ordering.

        Returns:
            PipelineConfig: Validated pipeline configuration.

        Raises:
            ValueError: If phases are duplicated or out of order.
        """
        if len(set(self.phases)) != len(self.phases):
            raise ValueError("phases must not contain duplicates")
        indexes = [PIPELINE_PHASE_ORDER.index(phase) for phase in self.phases]
        if indexes != sorted(indexes):
            raise ValueError("phases must follow canonical order")
        return self


class RunConfig(BaseSchema):
    """Top-level configuration for a pipeline run."""

    workspace_dir: str = Field(".", min_length=1, description="Workspace directory")
    logs_dir: str = Field(
        ".backforge/logs", min_length=1, description="Directory for JSONL logs"
    )
    state_dir: str = Field(
        ".backforge/state",
        min_length=1,
        description="Directory for pipeline state and history",
    )
    endpoint: ModelEndpointConfig | None = Field(
        None, description="Model endpoint (required for model-backed runs)"
    )
    model: ModelSettings | None = Field(None, description="Model settings")
    retry: RetryConfig = Field(default_factory=RetryConfig, description="Retries")
    concurrency: ConcurrencyConfig = Field(
        default_factory=ConcurrencyConfig, description="Concurrency limits"
    )
    correction: CorrectionConfig = Field(
        default_factory=CorrectionConfig, description="Correction loop limits"
    )
    preliminary: PreliminaryConfig = Field(
        default_factory=PreliminaryConfig, description="Preliminary limits"
    )
    pipeline: PipelineConfig = Field(
        default_factory=PipelineConfig, description="Phases to run"
    )
    logging: LoggingConfig = Field(
        default_factory=lambda: LoggingConfig(
            sinks=[LogSinkConfig(type=LogSinkType.CONSOLE)]
        ),
        description="Log sinks",
    )

    @model_validator(mode="after")
    def validate_model_endpoint(self) -> RunConfig:
        """Ensure endpoint and model settings are configured together.

        Returns:
            RunConfig: Validated run configuration.

        Raises:
            ValueError: If only one of endpoint or model is set.
        """
        if (self.endpoint is None) != (self.model is None):
            raise ValueError("endpoint and model must be configured together")
        return self
