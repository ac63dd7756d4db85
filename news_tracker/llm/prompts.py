"""
LLM Prompt Templates - Prompts for summarizing community content and
answering location questions.

Prompts for:
- Summarizing a post or comment into factual memory content
- The structured answer prompt used by the primary provider
- The simplified prompt used by the secondary provider
"""

from typing import Optional, Sequence


# =============================================================================
# Content Summarization Prompts
# =============================================================================

SUMMARIZE_SYSTEM = """You extract verifiable facts from community posts about local events and emergencies.
Disregard opinions and subjective statements. Write in plain text only."""

SUMMARIZE_PROMPT = """Analyze this social media content and extract key factual information.
Focus on events, locations, dates, and verifiable facts.
Format the output as a clean, concise summary of factual information only.

Content: "{content}"

Factual summary:"""


# =============================================================================
# Answer Prompts
# =============================================================================

NO_POSTS_CONTEXT = "No community posts found for this location."

STRUCTURED_QUESTION_PROMPT = """LOCATION: {location}
USER QUESTION: {query}

COMMUNITY POSTS:
{contexts}
{news_section}
Please provide the following:

1. DIRECT_ANSWER: Give a specific answer to the question "{query}" about {location}. Use information from community posts and your knowledge.

2. COMMUNITY_INFO: If there are community posts available, summarize what they tell us about this location and question.

Do not use any asterisks (*) or markdown formatting in your response. Write in plain text only."""

STRUCTURED_SUMMARY_PROMPT = """LOCATION: {location}

COMMUNITY POSTS:
{contexts}
{news_section}
Please provide the following:

1. LOCATION_SUMMARY: Provide a concise summary of the current situation in {location}.

2. COMMUNITY_INFO: If there are community posts available, summarize what they tell us about this location.

Do not use any asterisks (*) or markdown formatting in your response. Write in plain text only."""

SIMPLIFIED_SYSTEM = """You are a helpful AI assistant that provides factual information about locations. You are focusing on {location}. Do not use markdown formatting like asterisks in your response."""

SIMPLIFIED_QUESTION_PROMPT = """Answer this question about {location}: "{query}". Include what is known from community posts and general knowledge. Do not use markdown or asterisks in your response."""

SIMPLIFIED_SUMMARY_PROMPT = """Provide current information about {location}, including any notable recent events. Do not use markdown or asterisks in your response."""


# =============================================================================
# Formatting helpers
# =============================================================================

def format_summarize_prompt(content: str, max_length: int = 4000) -> str:
    """Format the summarization prompt, truncating very long content."""
    return SUMMARIZE_PROMPT.format(content=content[:max_length])


def format_structured_prompt(
    query: str,
    location: str,
    contexts: Sequence[str],
    headlines: Optional[str] = None,
    is_question: bool = True,
) -> str:
    """Format the primary provider prompt with memory contexts and headlines."""
    context_text = "\n\n".join(contexts) if contexts else NO_POSTS_CONTEXT
    news_section = f"\nEXTERNAL NEWS:\n{headlines}\n" if headlines else ""

    template = STRUCTURED_QUESTION_PROMPT if is_question else STRUCTURED_SUMMARY_PROMPT
    return template.format(
        query=query,
        location=location,
        contexts=context_text,
        news_section=news_section,
    )


def format_simplified_prompt(query: str, location: str, is_question: bool = True) -> str:
    """Format the short prompt used when the primary provider failed."""
    if is_question:
        return SIMPLIFIED_QUESTION_PROMPT.format(query=query, location=location)
    return SIMPLIFIED_SUMMARY_PROMPT.format(location=location)


def format_simplified_system(location: str) -> str:
    return SIMPLIFIED_SYSTEM.format(location=location)
