"""
Content summarization for memory records.

Turns a raw post or comment into a short factual summary through a
completion provider. When the provider fails the indexer stores a
truncated fallback summary instead.
"""

import logging
from datetime import datetime
from typing import Optional

from .errors import SummarizationError
from .llm.base import LLMError, LLMProvider
from .llm.prompts import SUMMARIZE_SYSTEM, format_summarize_prompt
from .memory.types import SourceKind
from .text import clean_response_text


logger = logging.getLogger(__name__)


# Characters of raw content kept in a fallback summary, per kind
FALLBACK_LENGTHS = {
    SourceKind.POST: 500,
    SourceKind.COMMENT: 300,
}


def fallback_summary(kind: SourceKind, content: str, created_at: datetime) -> str:
    """
    Minimal summary used when the summarization call fails.

    Args:
        kind: Source kind of the item
        content: Raw item text
        created_at: Creation time of the item

    Returns:
        A dated, truncated copy of the content
    """
    date = created_at.strftime("%Y-%m-%d")
    excerpt = content[:FALLBACK_LENGTHS[SourceKind(kind)]]
    if SourceKind(kind) == SourceKind.POST:
        return f"Content from post dated {date}: {excerpt}"
    return f"Comment on post from {date}: {excerpt}"


class ContentSummarizer:
    """Summarizes community content with a completion provider."""

    def __init__(
        self,
        provider: Optional[LLMProvider] = None,
        max_tokens: int = 250,
        temperature: float = 0.3,
    ):
        """
        Initialize the summarizer.

        Args:
            provider: Completion provider; without one every call fails
                over to the fallback summary.
            max_tokens: Maximum summary length in tokens.
            temperature: Sampling temperature.
        """
        self.provider = provider
        self.max_tokens = max_tokens
        self.temperature = temperature

    def summarize(self, content: str) -> str:
        """
        Produce a factual summary of the content.

        Raises:
            SummarizationError: When no summary can be produced.
        """
        if self.provider is None:
            raise SummarizationError("No summarization provider configured")
        if not content or not content.strip():
            raise SummarizationError("Cannot summarize empty content")

        try:
            text = self.provider.complete_text(
                format_summarize_prompt(content),
                system=SUMMARIZE_SYSTEM,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except LLMError as e:
            raise SummarizationError(f"Summarization failed: {e}") from e

        summary = clean_response_text(text)
        if not summary:
            raise SummarizationError("Summarization returned empty text")
        return summary
