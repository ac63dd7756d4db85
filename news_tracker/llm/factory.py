"""
Provider registry.

Maps provider names used in configuration to provider classes. The
registry order is the default answer fallback order.
"""

import os
from typing import Dict, List, Optional, Type

from .anthropic_provider import AnthropicProvider
from .base import LLMConfig, LLMError, LLMProvider
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider


PROVIDERS: Dict[str, Type[LLMProvider]] = {
    "gemini": GeminiProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}


def register_provider(name: str, provider_class: Type[LLMProvider]):
    """Make a custom provider class available under `name`."""
    if not issubclass(provider_class, LLMProvider):
        raise ValueError("Provider class must inherit from LLMProvider")
    PROVIDERS[name.lower()] = provider_class


def create_provider(config: LLMConfig) -> LLMProvider:
    """
    Instantiate the provider named by `config.provider`.

    Raises:
        LLMError: If no provider is registered under that name
    """
    name = config.provider.lower()
    if name not in PROVIDERS:
        raise LLMError(
            f"Unknown LLM provider: {config.provider}. "
            f"Available providers: {', '.join(PROVIDERS)}"
        )
    return PROVIDERS[name](config)


def get_provider(
    provider: str = "gemini",
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    **options,
) -> LLMProvider:
    """Shorthand for `create_provider` with keyword configuration."""
    return create_provider(LLMConfig(provider=provider.lower(), model=model or "", api_key=api_key, **options))


def available_from_env() -> List[str]:
    """Registered providers whose API key is set in the environment, in fallback order."""
    return [
        name for name, provider_class in PROVIDERS.items()
        if provider_class.env_key and os.environ.get(provider_class.env_key)
    ]


def list_providers() -> List[str]:
    return list(PROVIDERS)
