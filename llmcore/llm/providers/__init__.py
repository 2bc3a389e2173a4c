"""
Provider adapters and the closed set of supported vendors.

Usage:
    from llmcore.llm.providers import ProviderType, create_provider

    provider = create_provider(ProviderType.ANTHROPIC)
    provider = create_provider("ollama", base_url="http://gpu-box:11434")
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

import httpx

from llmcore.exceptions import ConfigurationError
from llmcore.llm.providers.anthropic import AnthropicProvider
from llmcore.llm.providers.base import BaseProvider, ProviderConfig
from llmcore.llm.providers.google import GoogleProvider
from llmcore.llm.providers.ollama import OllamaProvider
from llmcore.llm.providers.openai import AzureOpenAIProvider, OpenAIProvider
from llmcore.llm.providers.openrouter import OpenRouterProvider


class ProviderType(str, Enum):
    OPENROUTER = "openrouter"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OLLAMA = "ollama"
    AZURE = "azure"


PROVIDER_CLASSES: dict[ProviderType, type[BaseProvider]] = {
    ProviderType.OPENROUTER: OpenRouterProvider,
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.ANTHROPIC: AnthropicProvider,
    ProviderType.GOOGLE: GoogleProvider,
    ProviderType.OLLAMA: OllamaProvider,
    ProviderType.AZURE: AzureOpenAIProvider,
}

DEFAULT_PROVIDER = ProviderType.OPENROUTER


def create_provider(
    provider_type: Union[ProviderType, str] = DEFAULT_PROVIDER,
    config: Optional[ProviderConfig] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    **options,
) -> BaseProvider:
    """
    Build an adapter for `provider_type`.

    Keyword `options` (api_key, base_url, timeout, headers) are used when
    no ProviderConfig is given.
    """
    try:
        kind = ProviderType(provider_type)
    except ValueError:
        raise ConfigurationError(
            f"unknown provider: {provider_type!r}",
            details={"known": [p.value for p in ProviderType]},
        ) from None

    if config is None:
        config = ProviderConfig(**options)
    elif options:
        raise ConfigurationError("pass either a ProviderConfig or keyword options, not both")

    return PROVIDER_CLASSES[kind](config, client=client, transport=transport)


__all__ = [
    "AnthropicProvider",
    "AzureOpenAIProvider",
    "BaseProvider",
    "DEFAULT_PROVIDER",
    "GoogleProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "PROVIDER_CLASSES",
    "ProviderConfig",
    "ProviderType",
    "create_provider",
]
