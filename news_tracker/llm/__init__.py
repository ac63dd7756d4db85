"""
LLM Integration Module - Provides abstraction for completion providers.

This module provides a unified interface for the completion services used
to summarize community content and answer location questions: OpenAI,
Anthropic and Google Gemini.
"""

from .base import (
    LLMProvider,
    LLMConfig,
    LLMResponse,
    LLMMessage,
    LLMUsage,
    MessageRole,
    LLMError,
    LLMRateLimitError,
    LLMAuthenticationError,
    LLMContextLengthError,
    LLMTimeoutError,
    LLMMalformedResponseError,
)
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider
from .gemini_provider import GeminiProvider
from .factory import available_from_env, create_provider, get_provider, list_providers, register_provider
from .prompts import (
    format_summarize_prompt,
    format_structured_prompt,
    format_simplified_prompt,
    format_simplified_system,
)

__all__ = [
    # Core classes
    "LLMProvider",
    "LLMConfig",
    "LLMResponse",
    "LLMMessage",
    "LLMUsage",
    "MessageRole",
    # Errors
    "LLMError",
    "LLMRateLimitError",
    "LLMAuthenticationError",
    "LLMContextLengthError",
    "LLMTimeoutError",
    "LLMMalformedResponseError",
    # Providers
    "OpenAIProvider",
    "AnthropicProvider",
    "GeminiProvider",
    # Registry
    "create_provider",
    "get_provider",
    "available_from_env",
    "list_providers",
    "register_provider",
    # Prompt helpers
    "format_summarize_prompt",
    "format_structured_prompt",
    "format_simplified_prompt",
    "format_simplified_system",
]
