"""Provider detection from endpoint base URLs."""

from __future__ import annotations

import ipaddress
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field


class ProviderCapabilities(BaseModel):
    """Request features a provider accepts.

    Attributes:
        name: Human-readable provider name.
        is_openrouter: Whether the provider is OpenRouter.
        supports_tool_calling: Whether function calling is supported.
        supports_prompt_cache_key: Whether requests may carry a
            ``prompt_cache_key`` to pin prefix-cache routing.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(description="Human-readable provider name")
    is_openrouter: bool = Field(description="Whether the provider is OpenRouter")
    supports_tool_calling: bool = Field(description="Whether tool calling is supported")
    supports_prompt_cache_key: bool = Field(
        description="Whether prompt_cache_key is accepted"
    )


OPENROUTER_CAPABILITIES = ProviderCapabilities(
    name="OpenRouter",
    is_openrouter=True,
    supports_tool_calling=True,
    supports_prompt_cache_key=False,
)

OPENAI_CAPABILITIES = ProviderCapabilities(
    name="OpenAI",
    is_openrouter=False,
    supports_tool_calling=True,
    supports_prompt_cache_key=True,
)

# LM Studio, vLLM, llama.cpp and similar self-hosted servers
LOCAL_CAPABILITIES = ProviderCapabilities(
    name="Local",
    is_openrouter=False,
    supports_tool_calling=True,
    supports_prompt_cache_key=False,
)

GENERIC_CAPABILITIES = ProviderCapabilities(
    name="Generic OpenAI-compatible",
    is_openrouter=False,
    supports_tool_calling=True,
    supports_prompt_cache_key=False,
)

_LOCAL_HOSTNAMES = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1"})


def normalize_base_url(base_url: str) -> str:
    """Normalize a base URL for comparison.

    Args:
        base_url: Base URL as configured.

    Returns:
        str: Lowercase ``scheme://host/path`` without a trailing slash.
    """
    lowered = base_url.strip().lower()
    if not lowered.startswith(("http://", "https://")):
        lowered = f"https://{lowered}"
    parsed = urlparse(lowered)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}".rstrip("/")


def _is_local_host(hostname: str) -> bool:
    if hostname in _LOCAL_HOSTNAMES:
        return True
    if hostname.endswith((".local", ".localhost")):
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return address.is_private or address.is_loopback


def detect_provider(base_url: str) -> ProviderCapabilities:
    """Detect provider capabilities from a base URL.

    Args:
        base_url: The API base URL.

    Returns:
        ProviderCapabilities: Capabilities of the detected provider.
    """
    normalized = normalize_base_url(base_url)
    if "openrouter.ai" in normalized:
        return OPENROUTER_CAPABILITIES
    if "api.openai.com" in normalized:
        return OPENAI_CAPABILITIES
    if _is_local_host(urlparse(normalized).hostname or ""):
        return LOCAL_CAPABILITIES
    return GENERIC_CAPABILITIES
