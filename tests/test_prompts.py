"""
Tests for prompt templates.
"""

from news_tracker.llm.prompts import (
    NO_POSTS_CONTEXT,
    format_simplified_prompt,
    format_simplified_system,
    format_structured_prompt,
    format_summarize_prompt,
)


class TestSummarizePrompt:
    """Test the summarization prompt."""

    def test_embeds_content(self):
        prompt = format_summarize_prompt("Water main burst on Elm St.")
        assert 'Content: "Water main burst on Elm St."' in prompt

    def test_truncates_long_content(self):
        prompt = format_summarize_prompt("x" * 5000, max_length=100)
        assert "x" * 100 in prompt
        assert "x" * 101 not in prompt


class TestStructuredPrompt:
    """Test the primary answer prompt."""

    def test_question_asks_for_direct_answer(self):
        prompt = format_structured_prompt(
            "Is the bridge open?", "Springfield", ["Post 1: bridge closed"], is_question=True
        )
        assert "DIRECT_ANSWER" in prompt
        assert "LOCATION_SUMMARY" not in prompt
        assert "Post 1: bridge closed" in prompt

    def test_request_asks_for_summary(self):
        prompt = format_structured_prompt("status update", "Springfield", [], is_question=False)
        assert "LOCATION_SUMMARY" in prompt
        assert "DIRECT_ANSWER" not in prompt

    def test_no_contexts(self):
        prompt = format_structured_prompt("Any floods?", "Boston", [])
        assert NO_POSTS_CONTEXT in prompt

    def test_headlines_section(self):
        with_news = format_structured_prompt("Any floods?", "Boston", [], headlines="1. River rising")
        without_news = format_structured_prompt("Any floods?", "Boston", [])
        assert "EXTERNAL NEWS:\n1. River rising" in with_news
        assert "EXTERNAL NEWS" not in without_news


class TestSimplifiedPrompt:
    """Test the secondary answer prompt."""

    def test_question(self):
        prompt = format_simplified_prompt("Is school closed?", "Springfield")
        assert '"Is school closed?"' in prompt
        assert "Springfield" in prompt

    def test_summary(self):
        prompt = format_simplified_prompt("news", "Springfield", is_question=False)
        assert prompt.startswith("Provide current information about Springfield")

    def test_system(self):
        assert "You are focusing on Springfield." in format_simplified_system("Springfield")
