"""Model adapters for backforge."""

from backforge_llm.provider_factory import ProviderFactoryError, create_model
from backforge_llm.providers import ProviderCapabilities, detect_provider
from backforge_llm.runtime import PydanticAiModel, is_transient_model_error

__all__ = [
    "ProviderCapabilities",
    "ProviderFactoryError",
    "PydanticAiModel",
    "create_model",
    "detect_provider",
    "is_transient_model_error",
]
