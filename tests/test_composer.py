"""
Tests for the answer composer and its provider fallback chain.
"""

import sqlite3
from unittest.mock import MagicMock

import httpx
import pytest

from news_tracker.composer import (
    NO_CONTEXT_RESPONSE,
    SERVICE_DEGRADED,
    STATIC_FALLBACK,
    AnswerComposer,
    CooldownState,
    PromptStyle,
    ProviderTier,
    extract_section,
)
from news_tracker.errors import ValidationError
from news_tracker.llm.base import (
    LLMError,
    LLMMalformedResponseError,
    LLMRateLimitError,
    MessageRole,
)
from news_tracker.memory.types import QueryStatus
from news_tracker.news import NewsArticle, NewsClient
from news_tracker.retriever import MemoryRetriever


STRUCTURED_REPLY = (
    "DIRECT_ANSWER: The Main Street bridge is closed because of flooding.\n\n"
    "COMMUNITY_INFO: Two residents reported water over the road this morning."
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cooldown(clock):
    return CooldownState(60, clock=clock)


@pytest.fixture
def retriever(storage, embedding):
    return MemoryRetriever(storage, embedding())


@pytest.fixture
def seeded(storage, make_record, at):
    """Two Springfield records and one in Boston."""
    storage.upsert(make_record("p1", location="Springfield", created_at=at(1),
                               content="Flooding on Main Street"))
    storage.upsert(make_record("p2", location="Springfield", created_at=at(2),
                               content="Bridge closed by police"))
    storage.upsert(make_record("p3", location="Boston", created_at=at(3)))


def make_composer(retriever, storage, cooldown, *tiers, news_client=None):
    return AnswerComposer(
        retriever,
        tiers=list(tiers),
        storage=storage,
        news_client=news_client,
        cooldown=cooldown,
        top_k=5,
    )


class TestValidation:
    """Test input validation."""

    def test_empty_query(self, retriever, storage, cooldown):
        composer = make_composer(retriever, storage, cooldown)
        with pytest.raises(ValidationError) as exc_info:
            composer.answer("   ", "Springfield")
        assert exc_info.value.field == "query"

    def test_missing_location(self, retriever, storage, cooldown):
        composer = make_composer(retriever, storage, cooldown)
        with pytest.raises(ValidationError) as exc_info:
            composer.answer("Is the bridge open?", "")
        assert exc_info.value.field == "location"

    def test_validation_does_not_persist(self, retriever, storage, cooldown):
        composer = make_composer(retriever, storage, cooldown)
        with pytest.raises(ValidationError):
            composer.answer("", "Springfield", user="u1")
        assert storage.count_queries("u1") == 0


class TestTierFallback:
    """Test the ordered provider chain."""

    def test_primary_structured_answer(self, retriever, storage, cooldown, scripted, seeded):
        primary = scripted(STRUCTURED_REPLY)
        composer = make_composer(retriever, storage, cooldown, ProviderTier("primary", primary))

        answer = composer.answer("Is the bridge open?", "Springfield", user="u1")

        assert answer.source == "primary"
        assert answer.direct_answer == "The Main Street bridge is closed because of flooding."
        assert answer.community_info == "Two residents reported water over the road this morning."
        assert answer.service_status is None
        assert len(answer.related_memory_ids) == 2

    def test_structured_prompt_carries_context(self, retriever, storage, cooldown, scripted, seeded):
        primary = scripted(STRUCTURED_REPLY)
        composer = make_composer(retriever, storage, cooldown, ProviderTier("primary", primary))

        composer.answer("Is the bridge open?", "Springfield")

        prompt = primary.calls[0][0].content
        assert "LOCATION: Springfield" in prompt
        assert "Bridge closed by police" in prompt
        assert "[Location: Springfield]" in prompt

    def test_unstructured_reply_is_prefixed(self, retriever, storage, cooldown, scripted):
        primary = scripted("The bridge reopened at noon.")
        composer = make_composer(retriever, storage, cooldown, ProviderTier("primary", primary))

        answer = composer.answer("Is the bridge open?", "Springfield")

        assert answer.direct_answer.startswith("Regarding your question about Is the bridge open? in Springfield:")
        assert answer.community_info == "No relevant posts found for Springfield in the community data."

    def test_summary_request_uses_location_summary(self, retriever, storage, cooldown, scripted):
        primary = scripted("LOCATION_SUMMARY: Calm after the storm.\nCOMMUNITY_INFO: Nothing new.")
        composer = make_composer(retriever, storage, cooldown, ProviderTier("primary", primary))

        answer = composer.answer("latest updates", "Springfield")

        assert answer.direct_answer == "Calm after the storm."
        assert "LOCATION_SUMMARY" in primary.calls[0][0].content

    def test_secondary_after_primary_failure(self, retriever, storage, cooldown, scripted, seeded):
        primary = scripted(LLMError("503 Service Unavailable"))
        secondary = scripted("**Yes**, the bridge is open again.")
        composer = make_composer(
            retriever, storage, cooldown,
            ProviderTier("primary", primary),
            ProviderTier("secondary", secondary, PromptStyle.SIMPLIFIED),
        )

        answer = composer.answer("Is the bridge open?", "Springfield")

        assert answer.source == "secondary"
        assert answer.direct_answer == "Yes, the bridge is open again."
        assert answer.community_info.startswith("Community posts are available below.")
        roles = [m.role for m in secondary.calls[0]]
        assert roles == [MessageRole.SYSTEM, MessageRole.USER]

    def test_malformed_reply_moves_on(self, retriever, storage, cooldown, scripted):
        primary = scripted("   ")
        secondary = scripted(LLMMalformedResponseError("no candidates"))
        composer = make_composer(
            retriever, storage, cooldown,
            ProviderTier("primary", primary),
            ProviderTier("secondary", secondary, PromptStyle.SIMPLIFIED),
        )

        answer = composer.answer("Is the bridge open?", "Springfield")

        assert answer.source == STATIC_FALLBACK
        assert len(primary.calls) == 1
        assert len(secondary.calls) == 1

    def test_all_tiers_fail_gives_static_answer(self, retriever, storage, cooldown, scripted, seeded):
        """Test non-rate-limit failures end at the static tier."""
        primary = scripted(LLMError("connection reset"))
        secondary = scripted(LLMError("HTTP 500"))
        composer = make_composer(
            retriever, storage, cooldown,
            ProviderTier("primary", primary),
            ProviderTier("secondary", secondary, PromptStyle.SIMPLIFIED),
        )

        answer = composer.answer("Is the bridge open?", "Springfield")

        assert answer.source == STATIC_FALLBACK
        assert answer.direct_answer
        assert answer.service_status == SERVICE_DEGRADED
        assert answer.community_info == (
            "There are 2 community posts about Springfield. You can view them below."
        )
        assert not cooldown.is_active()

    def test_unexpected_error_still_answers(self, retriever, storage, cooldown, scripted):
        primary = scripted(KeyError("choices"))
        composer = make_composer(retriever, storage, cooldown, ProviderTier("primary", primary))

        assert composer.answer("Is the bridge open?", "Springfield").source == STATIC_FALLBACK

    def test_no_tiers(self, retriever, storage, cooldown):
        composer = make_composer(retriever, storage, cooldown)
        answer = composer.answer("latest updates", "Springfield")
        assert answer.source == STATIC_FALLBACK
        assert "Springfield" in answer.direct_answer


class TestCooldown:
    """Test rate-limit cooldown behavior."""

    def test_rate_limit_suppresses_primary(self, retriever, storage, cooldown, scripted):
        """Test a 429 keeps the primary from being called again within the window."""
        primary = scripted(LLMRateLimitError("429 Too Many Requests"))
        secondary = scripted(LLMError("HTTP 500"))
        composer = make_composer(
            retriever, storage, cooldown,
            ProviderTier("primary", primary),
            ProviderTier("secondary", secondary, PromptStyle.SIMPLIFIED),
        )

        first = composer.answer("Is the bridge open?", "Springfield")
        second = composer.answer("Is the bridge open?", "Springfield")

        assert len(primary.calls) == 1
        assert first.source == STATIC_FALLBACK
        assert second.source == STATIC_FALLBACK
        assert cooldown.is_active()

    def test_cooldown_expires(self, retriever, storage, cooldown, clock, scripted):
        primary = scripted(LLMRateLimitError("rate limit"), STRUCTURED_REPLY)
        composer = make_composer(retriever, storage, cooldown, ProviderTier("primary", primary))

        composer.answer("Is the bridge open?", "Springfield")
        clock.now += 61
        answer = composer.answer("Is the bridge open?", "Springfield")

        assert answer.source == "primary"
        assert len(primary.calls) == 2

    def test_state(self, cooldown, clock):
        assert not cooldown.is_active()
        cooldown.record_rate_limit()
        clock.now += 20
        assert cooldown.remaining() == pytest.approx(40)
        cooldown.reset()
        assert cooldown.remaining() == 0.0
        assert cooldown.last_rate_limit_at is None


class TestContext:
    """Test gathered context and persisted history."""

    def test_query_record_persisted(self, retriever, storage, cooldown, scripted, seeded):
        primary = scripted(STRUCTURED_REPLY)
        composer = make_composer(retriever, storage, cooldown, ProviderTier("primary", primary))

        answer = composer.answer("Is the bridge open?", "Springfield", user="u1")

        record = storage.get_query(answer.query_id)
        assert record.status == QueryStatus.PROCESSED
        assert record.user == "u1"
        assert record.source == "primary"
        assert record.location_filter == "Springfield"
        assert record.external_model_response == answer.direct_answer
        assert "Bridge closed by police" in record.local_model_response
        assert record.related_memory_ids == answer.related_memory_ids

    def test_no_memories_recorded(self, retriever, storage, cooldown):
        composer = make_composer(retriever, storage, cooldown)

        answer = composer.answer("Is the bridge open?", "Atlantis", user="u1")

        record = storage.get_query(answer.query_id)
        assert record.local_model_response == NO_CONTEXT_RESPONSE
        assert record.related_memory_ids == []

    def test_community_posts_newest_first(self, retriever, storage, cooldown, seeded):
        composer = make_composer(retriever, storage, cooldown)

        answer = composer.answer("Is the bridge open?", "springfield")

        assert [p.id for p in answer.community_posts] == ["p2", "p1"]
        assert answer.community_posts[0].date == "2024-03-01"

    def test_headlines_included(self, retriever, storage, cooldown, scripted, base_time):
        news = MagicMock()
        news.fetch_headlines.return_value = [
            NewsArticle(title="Storm hits Springfield", published_at=base_time, source="Gazette"),
        ]
        primary = scripted(STRUCTURED_REPLY)
        composer = make_composer(
            retriever, storage, cooldown, ProviderTier("primary", primary), news_client=news,
        )

        answer = composer.answer("Is the bridge open?", "Springfield")

        news.fetch_headlines.assert_called_once_with("Springfield")
        assert "1. Storm hits Springfield (2024-03-01) - Gazette" in answer.news_summary
        assert "Storm hits Springfield" in primary.calls[0][0].content
        assert answer.to_dict()["news_articles"][0]["source"] == "Gazette"

    def test_without_storage(self, retriever, cooldown):
        composer = AnswerComposer(retriever, cooldown=cooldown)
        answer = composer.answer("Is the bridge open?", "Springfield")
        assert answer.query_id is not None

    def test_unreadable_store_still_answers(self, retriever, storage, cooldown, seeded, monkeypatch):
        """Test a locked database degrades to the static answer."""
        def locked(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(storage, "list_records", locked)
        composer = make_composer(retriever, storage, cooldown)

        answer = composer.answer("Is the bridge open?", "Springfield")

        assert answer.source == STATIC_FALLBACK
        assert answer.related_memory_ids == []
        assert storage.get_query(answer.query_id).status == QueryStatus.PROCESSED

    def test_gather_failure_marks_query_failed(self, retriever, storage, cooldown, scripted):
        """Test an error while gathering context is recorded and the static answer served."""
        news = MagicMock()
        news.fetch_headlines.side_effect = RuntimeError("socket closed")
        primary = scripted(STRUCTURED_REPLY)
        composer = make_composer(
            retriever, storage, cooldown, ProviderTier("primary", primary), news_client=news,
        )

        answer = composer.answer("Is the bridge open?", "Springfield")

        assert answer.source == STATIC_FALLBACK
        assert answer.service_status == SERVICE_DEGRADED
        assert primary.calls == []
        record = storage.get_query(answer.query_id)
        assert record.status == QueryStatus.FAILED
        assert record.processing_error == "RuntimeError: socket closed"
        assert record.source == STATIC_FALLBACK
        assert record.external_model_response == answer.direct_answer

    def test_plain_string_news_source(self, retriever, storage, cooldown, scripted):
        """Test a headline whose source is a bare string still reaches the answer."""
        def handler(request):
            return httpx.Response(200, json={"articles": [{"title": "Flood", "source": "CNN"}]})

        news = NewsClient(api_key="news-key", client=httpx.Client(transport=httpx.MockTransport(handler)))
        primary = scripted(STRUCTURED_REPLY)
        composer = make_composer(
            retriever, storage, cooldown, ProviderTier("primary", primary), news_client=news,
        )

        answer = composer.answer("Is the bridge open?", "Springfield")

        assert answer.source == "primary"
        assert [a.title for a in answer.news_articles] == ["Flood"]


class TestExtractSection:
    """Test structured reply parsing."""

    def test_between_markers(self):
        text = "DIRECT_ANSWER: yes\nCOMMUNITY_INFO: two posts"
        assert extract_section(text, "DIRECT_ANSWER", ["COMMUNITY_INFO"]) == "yes"
        assert extract_section(text, "COMMUNITY_INFO") == "two posts"

    def test_numbered_markers(self):
        text = "1. DIRECT_ANSWER: It is open.\n\n2. COMMUNITY_INFO: Confirmed by residents."
        assert extract_section(text, "DIRECT_ANSWER", ["COMMUNITY_INFO"]) == "It is open.\n\n2."

    def test_missing_marker(self):
        assert extract_section("plain text", "DIRECT_ANSWER") == ""
