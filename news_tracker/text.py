"""
Text helpers shared by the summarizer and the answer composer.
"""

import re


QUESTION_WORDS = ("what", "who", "when", "where", "why", "how")

_TRAILING_ENUMERATION = re.compile(r"\s+\d+\.\s*$")


def clean_response_text(text: str) -> str:
    """
    Strip markdown emphasis and a hanging enumeration from model output.

    >>> clean_response_text("**Flooding** on Main St. 2.")
    'Flooding on Main St.'
    """
    if not text:
        return ""
    cleaned = text.replace("**", "").replace("*", "")
    cleaned = _TRAILING_ENUMERATION.sub("", cleaned)
    return cleaned.strip()


def is_question(query: str) -> bool:
    """True when the query asks something rather than requesting a summary."""
    text = (query or "").strip()
    if not text:
        return False
    return "?" in text or text.lower().startswith(QUESTION_WORDS)


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Cut text to `limit` characters, marking the cut with `suffix`."""
    if len(text) <= limit:
        return text
    return text[:limit] + suffix
