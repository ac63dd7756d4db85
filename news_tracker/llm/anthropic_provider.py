"""
Anthropic Messages API provider.
"""

from typing import List, Tuple

from .base import (
    LLMConfig,
    LLMMalformedResponseError,
    LLMMessage,
    LLMProvider,
    LLMResponse,
    MessageRole,
)


ANTHROPIC_API_BASE = "https://api.anthropic.com"


def split_system(messages: List[LLMMessage]) -> Tuple[str, List[dict]]:
    """
    Separate system text from the conversation.

    The Messages API takes system instructions as a top-level parameter,
    so system messages are joined and removed from the message list.
    """
    system = [m.content for m in messages if m.role == MessageRole.SYSTEM]
    conversation = [
        {"role": "user" if m.role == MessageRole.USER else "assistant", "content": m.content}
        for m in messages
        if m.role != MessageRole.SYSTEM
    ]
    return "\n".join(system).strip(), conversation


class AnthropicProvider(LLMProvider):
    """Completion provider backed by the anthropic SDK."""

    env_key = "ANTHROPIC_API_KEY"

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.api_key = self._resolve_api_key(self.env_key)
        self.api_base = config.api_base or ANTHROPIC_API_BASE
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                base_url=self.api_base,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, messages: list[LLMMessage], **kwargs) -> LLMResponse:
        client = self._get_client()
        system, conversation = split_system(messages)
        params = self._request_params(**kwargs)
        params["messages"] = conversation
        if system:
            params["system"] = system

        def call() -> LLMResponse:
            response = client.messages.create(**params)
            text = "".join(getattr(block, "text", "") for block in response.content or [])
            if not text:
                raise LLMMalformedResponseError("Anthropic returned no text content")

            usage = response.usage
            return LLMResponse(
                content=text,
                model=response.model,
                usage=self._track_usage(
                    usage.input_tokens if usage else 0,
                    usage.output_tokens if usage else 0,
                    params["model"],
                ),
                finish_reason=response.stop_reason,
            )

        return self._run_with_retries(call)
