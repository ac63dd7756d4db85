"""
Gemini Provider - Implementation for the Google Gemini generateContent REST API.
"""

from typing import Optional

import httpx

from .base import (
    LLMProvider,
    LLMConfig,
    LLMResponse,
    LLMMessage,
    MessageRole,
    LLMMalformedResponseError,
    LLMTimeoutError,
    LLMError,
    classify_error,
    parse_retry_after,
)


class GeminiProvider(LLMProvider):
    """
    Google Gemini provider over plain HTTP.

    Talks to `models/{model}:generateContent` with the API key passed as
    a query parameter. A custom `httpx.Client` can be injected, which is
    how tests supply a mock transport.
    """

    env_key = "GEMINI_API_KEY"
    DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(self, config: LLMConfig, client: Optional[httpx.Client] = None):
        """
        Initialize the Gemini provider.

        Args:
            config: Configuration for the provider.
            client: Optional preconfigured HTTP client.
        """
        super().__init__(config)

        self.api_key = self._resolve_api_key(self.env_key)

        self.api_base = (config.api_base or self.DEFAULT_API_BASE).rstrip("/")
        self._client = client

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.timeout)
        return self._client

    def _build_payload(self, messages: list[LLMMessage], **kwargs) -> dict:
        """Convert messages to the generateContent request body."""
        system_parts = []
        contents = []
        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_parts.append({"text": msg.content})
            else:
                role = "user" if msg.role == MessageRole.USER else "model"
                contents.append({"role": role, "parts": [{"text": msg.content}]})

        payload = {
            "contents": contents,
            "generationConfig": {
                "temperature": kwargs.get("temperature", self.config.temperature),
                "maxOutputTokens": kwargs.get("max_tokens", self.config.max_tokens),
            },
        }
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        payload["generationConfig"].update(self.config.extra_options)
        return payload

    def _parse_response(self, data: dict, model: str) -> LLMResponse:
        """Extract text and usage from a generateContent response body."""
        try:
            candidate = data["candidates"][0]
            parts = candidate["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMMalformedResponseError(f"Unexpected Gemini response shape: {e}") from e

        content = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        if not content:
            raise LLMMalformedResponseError("Gemini returned no text content")

        usage_data = data.get("usageMetadata") or {}
        prompt_tokens = usage_data.get("promptTokenCount", 0)
        completion_tokens = usage_data.get("candidatesTokenCount", 0)
        return LLMResponse(
            content=content,
            model=model,
            usage=self._track_usage(prompt_tokens, completion_tokens, model),
            finish_reason=candidate.get("finishReason"),
            raw_response=data,
        )

    def complete(
        self,
        messages: list[LLMMessage],
        **kwargs,
    ) -> LLMResponse:
        """
        Generate a completion using Gemini.

        Args:
            messages: List of messages in the conversation.
            **kwargs: Additional generation options.

        Returns:
            LLMResponse with the generated content.
        """
        client = self._get_client()
        model = kwargs.get("model", self.config.model)
        url = f"{self.api_base}/models/{model}:generateContent"
        payload = self._build_payload(messages, **kwargs)

        def call() -> LLMResponse:
            try:
                response = client.post(
                    url,
                    params={"key": self.api_key or ""},
                    json=payload,
                    timeout=self.config.timeout,
                )
            except httpx.TimeoutException as e:
                raise LLMTimeoutError(f"Gemini request timed out: {e}") from e
            except httpx.HTTPError as e:
                raise LLMError(f"Gemini request failed: {e}") from e

            if response.status_code >= 400:
                raise self._error_from_response(response)

            try:
                data = response.json()
            except ValueError as e:
                raise LLMMalformedResponseError(f"Gemini returned invalid JSON: {e}") from e
            return self._parse_response(data, model)

        return self._run_with_retries(call)

    def _error_from_response(self, response: httpx.Response) -> LLMError:
        """Map an HTTP error response to the LLM error hierarchy."""
        message = f"HTTP {response.status_code}"
        try:
            error = response.json().get("error", {})
            message = error.get("message", message)
            if error.get("status") == "RESOURCE_EXHAUSTED":
                message = f"rate limit: {message}"
        except (ValueError, AttributeError):
            pass
        return classify_error(message, response.status_code, parse_retry_after(response.headers))
