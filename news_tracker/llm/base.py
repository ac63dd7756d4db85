"""
Completion provider interface.

Every answer tier and the content summarizer talk to a model through
`LLMProvider.complete`. Provider failures of any kind surface as `LLMError`
subclasses so the composer can decide whether to fall through to the next
tier or start the rate-limit cooldown.
"""

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, TypeVar

from ..errors import TransientProviderError


logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MODELS = {
    "gemini": "gemini-1.5-flash",
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-haiku-20240307",
}

# USD per 1K (input, output) tokens; longer prefixes first
PRICING_PER_1K = (
    ("gemini-1.5-flash", 0.000075, 0.0003),
    ("gemini-1.5-pro", 0.00125, 0.005),
    ("gpt-4o-mini", 0.00015, 0.0006),
    ("gpt-4o", 0.005, 0.015),
    ("gpt-3.5-turbo", 0.0005, 0.0015),
    ("claude-3-haiku", 0.00025, 0.00125),
    ("claude-3-sonnet", 0.003, 0.015),
)


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    """Approximate request cost in USD; 0.0 for unpriced models."""
    lowered = model.lower()
    for prefix, input_price, output_price in PRICING_PER_1K:
        if prefix in lowered:
            return (prompt_tokens * input_price + completion_tokens * output_price) / 1000
    return 0.0


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class LLMMessage:
    role: MessageRole
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass
class LLMUsage:
    """Token counts and estimated cost, per request or accumulated."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0

    @classmethod
    def of(cls, model: str, prompt_tokens: int, completion_tokens: int) -> "LLMUsage":
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated_cost=estimate_cost(model, prompt_tokens, completion_tokens),
        )

    def accumulate(self, other: "LLMUsage"):
        self.prompt_tokens += other.prompt_tokens
        self.completion_tokens += other.completion_tokens
        self.total_tokens += other.total_tokens
        self.estimated_cost += other.estimated_cost


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: LLMUsage = field(default_factory=LLMUsage)
    finish_reason: Optional[str] = None
    raw_response: Optional[dict] = None


@dataclass
class LLMConfig:
    """
    Settings for one completion provider.

    `max_retries` counts attempts, so the default of 1 means a failing
    tier is abandoned at once and the next tier answers instead.
    """
    provider: str
    model: str = ""
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    temperature: float = 0.3
    max_tokens: int = 800
    timeout: float = 10.0
    max_retries: int = 1
    retry_delay: float = 1.0
    extra_options: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.model:
            self.model = DEFAULT_MODELS.get(self.provider, DEFAULT_MODELS["openai"])


class LLMError(TransientProviderError):
    """Base exception for LLM-related errors."""
    pass


class LLMRateLimitError(LLMError):
    """Raised when rate limit is exceeded."""
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class LLMAuthenticationError(LLMError):
    """Raised when authentication fails."""
    pass


class LLMContextLengthError(LLMError):
    """Raised when context length is exceeded."""
    pass


class LLMTimeoutError(LLMError):
    """Raised when the provider does not answer within the configured timeout."""
    pass


class LLMMalformedResponseError(LLMError):
    """Raised when the provider answers with an unusable payload."""
    pass


def classify_error(
    message: str,
    status_code: Optional[int] = None,
    retry_after: Optional[float] = None,
) -> LLMError:
    """
    Map a provider failure to the LLM error hierarchy.

    Args:
        message: Error message reported by the provider.
        status_code: HTTP status, when known.
        retry_after: Seconds from a Retry-After header, when present.

    Returns:
        The most specific LLMError for the failure.
    """
    lowered = message.lower()

    if status_code == 429 or "rate_limit" in lowered or "rate limit" in lowered:
        return LLMRateLimitError(message, retry_after)

    if status_code in (401, 403) or "authentication" in lowered or "api_key" in lowered:
        return LLMAuthenticationError(message)

    if "context_length" in lowered or "maximum context" in lowered:
        return LLMContextLengthError(message)

    if "timed out" in lowered or "timeout" in lowered:
        return LLMTimeoutError(message)

    return LLMError(message)


def parse_retry_after(headers) -> Optional[float]:
    """Read a Retry-After header value in seconds."""
    if not headers:
        return None
    value = headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class LLMProvider(ABC):
    """A completion backend used as an answer tier or as the summarizer."""

    # Environment variable holding the API key
    env_key: str = ""

    def __init__(self, config: LLMConfig):
        self.config = config
        self._total_usage = LLMUsage()

    @property
    def name(self) -> str:
        return self.config.provider

    @property
    def total_usage(self) -> LLMUsage:
        """Usage summed over every successful request of this provider."""
        return self._total_usage

    @abstractmethod
    def complete(self, messages: list[LLMMessage], **kwargs) -> LLMResponse:
        """
        Send a conversation and return the model's reply.

        `model`, `temperature` and `max_tokens` keyword arguments override
        the configured values for this call only.

        Raises:
            LLMError: On any provider failure, including timeouts and
                replies without usable text.
        """

    def complete_text(self, prompt: str, system: Optional[str] = None, **kwargs) -> str:
        """Single-prompt convenience wrapper around `complete`."""
        messages = []
        if system:
            messages.append(LLMMessage(role=MessageRole.SYSTEM, content=system))
        messages.append(LLMMessage(role=MessageRole.USER, content=prompt))
        return self.complete(messages, **kwargs).content

    def _resolve_api_key(self, env_var: str) -> Optional[str]:
        api_key = self.config.api_key or os.environ.get(env_var)
        if not api_key:
            logger.warning(f"No {self.name} API key provided. Set {env_var} environment variable.")
        return api_key

    def _request_params(self, **kwargs) -> dict:
        """Per-call overrides, then config values, then provider extra options."""
        params = {
            key: kwargs.get(key, getattr(self.config, key))
            for key in ("model", "temperature", "max_tokens")
        }
        for key, value in self.config.extra_options.items():
            params.setdefault(key, value)
        return params

    def _track_usage(self, prompt_tokens: int, completion_tokens: int, model: str) -> LLMUsage:
        usage = LLMUsage.of(model, prompt_tokens, completion_tokens)
        self._total_usage.accumulate(usage)
        return usage

    def _run_with_retries(self, call: Callable[[], T]) -> T:
        """
        Run a provider call with exponential backoff.

        Rate limits are raised at once so the caller can start its
        cooldown; authentication and context errors are not retried.
        """
        attempts = max(1, self.config.max_retries)
        last_error: Optional[LLMError] = None

        for attempt in range(attempts):
            try:
                return call()
            except LLMError as e:
                last_error = e
            except Exception as e:
                last_error = self._handle_error(e)

            if isinstance(last_error, (LLMRateLimitError, LLMAuthenticationError, LLMContextLengthError)):
                raise last_error
            if attempt < attempts - 1:
                wait_time = self.config.retry_delay * (2 ** attempt)
                logger.warning(f"{self.name} call failed ({last_error}). Retrying in {wait_time}s...")
                time.sleep(wait_time)

        raise last_error or LLMError(f"{self.name}: no attempts made")

    def _handle_error(self, error: Exception) -> LLMError:
        """Map an SDK or transport exception onto the LLMError hierarchy."""
        response = getattr(error, "response", None)
        status_code = getattr(error, "status_code", None)
        if status_code is None and response is not None:
            status_code = getattr(response, "status_code", None)
        retry_after = parse_retry_after(getattr(response, "headers", None))

        message = str(error)
        if response is not None:
            try:
                message = response.json().get("error", {}).get("message", message)
            except (ValueError, AttributeError):
                pass

        return classify_error(message, status_code, retry_after)
