"""
OpenAI chat completions provider.

The default secondary answer tier. Only the first choice of a completion
is used; an empty message counts as a malformed response so the
composer moves on to the next tier.
"""

from .base import LLMConfig, LLMMalformedResponseError, LLMMessage, LLMProvider, LLMResponse


OPENAI_API_BASE = "https://api.openai.com/v1"


class OpenAIProvider(LLMProvider):
    """Completion provider backed by the openai SDK."""

    env_key = "OPENAI_API_KEY"

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self.api_key = self._resolve_api_key(self.env_key)
        self.api_base = config.api_base or OPENAI_API_BASE
        self._client = None

    def _get_client(self):
        if self._client is None:
            import openai
            # Retries are handled by _run_with_retries
            self._client = openai.OpenAI(
                api_key=self.api_key,
                base_url=self.api_base,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    def complete(self, messages: list[LLMMessage], **kwargs) -> LLMResponse:
        client = self._get_client()
        params = self._request_params(**kwargs)
        params["messages"] = [msg.to_dict() for msg in messages]

        def call() -> LLMResponse:
            response = client.chat.completions.create(**params)
            if not response.choices or not response.choices[0].message.content:
                raise LLMMalformedResponseError("OpenAI returned no message content")

            choice = response.choices[0]
            usage = response.usage
            return LLMResponse(
                content=choice.message.content,
                model=response.model,
                usage=self._track_usage(
                    usage.prompt_tokens if usage else 0,
                    usage.completion_tokens if usage else 0,
                    params["model"],
                ),
                finish_reason=choice.finish_reason,
            )

        return self._run_with_retries(call)
