"""
Answer composer.

Answers a location question by combining retrieved memory records and
external headlines with a completion provider. Providers are tried as an
ordered list of tiers; the static template at the end never fails, so
every valid question gets an answer.
"""

import logging
import re
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .errors import TransientProviderError, ValidationError
from .llm.base import LLMMessage, LLMMalformedResponseError, LLMProvider, LLMRateLimitError, MessageRole
from .llm.prompts import (
    format_simplified_prompt,
    format_simplified_system,
    format_structured_prompt,
)
from .memory.storage import MemoryStorage
from .memory.types import MemorySearchResult, QueryRecord, QueryStatus
from .news import NewsArticle, NewsClient, format_headlines, headlines_context
from .retriever import DEFAULT_TOP_K, MemoryRetriever
from .text import clean_response_text, is_question, truncate


logger = logging.getLogger(__name__)


STATIC_FALLBACK = "static-fallback"
DEFAULT_COOLDOWN_SECONDS = 60.0
SNIPPET_LENGTH = 150

NO_CONTEXT_RESPONSE = (
    "I don't have enough information from the community's posts to answer this question confidently."
)
SERVICE_DEGRADED = (
    "AI services are currently unavailable or rate-limited. You're seeing a simplified response."
)


class CooldownState:
    """
    Remembers the last rate-limit signal from any completion provider.

    While the window is open the composer skips every provider and
    answers from the static template.

    Args:
        window_seconds: How long a rate limit suppresses provider calls
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        window_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._last_rate_limit_at: Optional[float] = None

    @property
    def last_rate_limit_at(self) -> Optional[float]:
        return self._last_rate_limit_at

    def record_rate_limit(self):
        with self._lock:
            self._last_rate_limit_at = self._clock()
        logger.warning(
            f"Rate limit detected. Entering API timeout mode for {self.window_seconds:g} seconds"
        )

    def remaining(self) -> float:
        """Seconds left in the current cooldown window, 0 when inactive."""
        with self._lock:
            if self._last_rate_limit_at is None:
                return 0.0
            elapsed = self._clock() - self._last_rate_limit_at
        return max(0.0, self.window_seconds - elapsed)

    def is_active(self) -> bool:
        return self.remaining() > 0

    def reset(self):
        with self._lock:
            self._last_rate_limit_at = None


class PromptStyle(str, Enum):
    """How a tier asks its provider."""
    STRUCTURED = "structured"
    SIMPLIFIED = "simplified"


@dataclass(frozen=True)
class ProviderTier:
    """One completion provider in the fallback chain."""

    name: str
    provider: LLMProvider
    style: PromptStyle = PromptStyle.STRUCTURED


@dataclass
class CommunityPost:
    """Snippet of a memory record shown alongside an answer."""

    id: str
    source_kind: str
    content: str
    date: str
    location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source_kind": self.source_kind,
            "content": self.content,
            "date": self.date,
            "location": self.location,
        }


@dataclass
class ComposedAnswer:
    """The answer to one question and the material it was built from."""

    direct_answer: str
    community_info: str
    source: str
    news_summary: str = ""
    news_articles: List[NewsArticle] = field(default_factory=list)
    community_posts: List[CommunityPost] = field(default_factory=list)
    related_memory_ids: List[str] = field(default_factory=list)
    service_status: Optional[str] = None
    query_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direct_answer": self.direct_answer,
            "community_info": self.community_info,
            "source": self.source,
            "news_summary": self.news_summary,
            "news_articles": [a.to_dict() for a in self.news_articles],
            "community_posts": [p.to_dict() for p in self.community_posts],
            "related_memory_ids": list(self.related_memory_ids),
            "service_status": self.service_status,
            "query_id": self.query_id,
        }


@dataclass
class _AnswerContext:
    """Everything gathered for one question before any provider call."""

    query: str
    location: str
    asks_question: bool
    memories: List[MemorySearchResult]
    community_posts: List[CommunityPost]
    articles: List[NewsArticle]

    @classmethod
    def empty(cls, query: str, location: str) -> "_AnswerContext":
        """Context with no memories, posts or headlines."""
        return cls(
            query=query,
            location=location,
            asks_question=is_question(query),
            memories=[],
            community_posts=[],
            articles=[],
        )

    @property
    def contexts(self) -> List[str]:
        return [format_memory_context(m) for m in self.memories]

    @property
    def no_posts_notice(self) -> str:
        return f"No relevant posts found for {self.location} in the community data."


def format_memory_context(result: MemorySearchResult) -> str:
    record = result.record
    date = record.original_created_at.strftime("%Y-%m-%d")
    text = f"{record.source_kind.value.capitalize()} ({date}): {record.processed_content}"
    if record.location:
        text += f" [Location: {record.location}]"
    return text


def extract_section(text: str, marker: str, stop_markers: Sequence[str] = ()) -> str:
    """
    Text following `marker:` up to the next stop marker or the end.

    Returns an empty string when the marker is absent.
    """
    stops = "|".join(re.escape(f"{m}:") for m in stop_markers)
    lookahead = f"(?={stops}|$)" if stops else "$"
    match = re.search(rf"{re.escape(marker)}:(.*?){lookahead}", text, re.DOTALL)
    return match.group(1).strip() if match else ""


class AnswerComposer:
    """
    Composes answers through an ordered chain of provider tiers.

    Example:
        >>> composer = AnswerComposer(retriever, tiers=[
        ...     ProviderTier("primary", gemini),
        ...     ProviderTier("secondary", openai, PromptStyle.SIMPLIFIED),
        ... ])
        >>> composer.answer("Is the bridge open?", "Springfield").source
        'primary'
    """

    def __init__(
        self,
        retriever: MemoryRetriever,
        tiers: Sequence[ProviderTier] = (),
        storage: Optional[MemoryStorage] = None,
        news_client: Optional[NewsClient] = None,
        cooldown: Optional[CooldownState] = None,
        top_k: int = DEFAULT_TOP_K,
        community_limit: int = 30,
    ):
        """
        Initialize the composer.

        Args:
            retriever: Memory retriever
            tiers: Provider tiers in the order they are tried
            storage: Where query records are persisted; None disables history
            news_client: Headline source; None disables headlines
            cooldown: Shared rate-limit cooldown
            top_k: Memory records used as context
            community_limit: Community post snippets returned with an answer
        """
        self.retriever = retriever
        self.tiers = list(tiers)
        self.storage = storage
        self.news_client = news_client
        self.cooldown = cooldown or CooldownState()
        self.top_k = top_k
        self.community_limit = community_limit

    def answer(self, query: str, location: str, user: Optional[str] = None) -> ComposedAnswer:
        """
        Answer a question about a location.

        Args:
            query: The user's question or request
            location: Location the question is about
            user: Identity of the asker, recorded in the query history

        Returns:
            The composed answer; `source` names the tier that produced it
            An error while gathering context or composing is recorded on the
            query as FAILED and answered from the static tier

        Raises:
            ValidationError: If the query or location is empty
        """
        query = (query or "").strip()
        location = (location or "").strip()
        if not query:
            raise ValidationError("Query is required", field="query")
        if not location:
            raise ValidationError("Please provide a location", field="location")

        record = QueryRecord(user=user or "anonymous", query_text=query, location_filter=location)
        self._persist(record)

        try:
            ctx = self._gather(query, location)
            record.related_memory_ids = [m.record.id for m in ctx.memories]
            record.local_model_response = (
                "\n\n".join(ctx.contexts) if ctx.memories else NO_CONTEXT_RESPONSE
            )
            result = self._compose(ctx)
        except Exception as e:
            logger.exception(f"Could not compose answer for query {record.id}, serving static response")
            record.status = QueryStatus.FAILED
            record.processing_error = f"{type(e).__name__}: {e}"
            result = self._static_answer(_AnswerContext.empty(query, location))
        else:
            record.status = QueryStatus.PROCESSED

        result.query_id = record.id
        record.external_model_response = result.direct_answer
        record.source = result.source
        self._persist(record)

        logger.info(
            f"Answered query {record.id} for {location!r} via {result.source}",
            extra={"attributes": {"query_id": record.id, "source": result.source}},
        )
        return result

    # ========== Context ==========

    def _gather(self, query: str, location: str) -> _AnswerContext:
        memories = self.retriever.retrieve(query, location_filter=location, k=self.top_k)
        located = self.retriever.find_by_location(location, limit=self.community_limit)

        # Top up semantic matches with the newest location matches
        seen = {m.record.id for m in memories}
        for result in located:
            if len(memories) >= self.top_k:
                break
            if result.record.id not in seen:
                memories.append(result)
                seen.add(result.record.id)

        community_posts = [
            CommunityPost(
                id=r.record.source_id,
                source_kind=r.record.source_kind.value,
                content=truncate(r.record.original_content or r.record.processed_content, SNIPPET_LENGTH),
                date=r.record.original_created_at.strftime("%Y-%m-%d"),
                location=r.record.location,
            )
            for r in located
        ]

        articles: List[NewsArticle] = []
        if self.news_client is not None:
            articles = self.news_client.fetch_headlines(location)

        return _AnswerContext(
            query=query,
            location=location,
            asks_question=is_question(query),
            memories=memories,
            community_posts=community_posts,
            articles=articles,
        )

    # ========== Tiers ==========

    def _compose(self, ctx: _AnswerContext) -> ComposedAnswer:
        if self.cooldown.is_active():
            logger.info(
                f"API services in timeout mode ({self.cooldown.remaining():.0f}s left). "
                f"Serving static response."
            )
            return self._static_answer(ctx)

        for tier in self.tiers:
            try:
                return self._call_tier(tier, ctx)
            except LLMRateLimitError as e:
                logger.warning(f"Tier {tier.name} rate limited: {e}")
                self.cooldown.record_rate_limit()
            except TransientProviderError as e:
                logger.warning(f"Tier {tier.name} failed: {e}")
            except Exception:
                logger.exception(f"Unexpected error in tier {tier.name}")

        return self._static_answer(ctx)

    def _call_tier(self, tier: ProviderTier, ctx: _AnswerContext) -> ComposedAnswer:
        if tier.style == PromptStyle.STRUCTURED:
            messages = [LLMMessage(
                role=MessageRole.USER,
                content=format_structured_prompt(
                    ctx.query,
                    ctx.location,
                    ctx.contexts,
                    headlines_context(ctx.location, ctx.articles),
                    is_question=ctx.asks_question,
                ),
            )]
        else:
            messages = [
                LLMMessage(role=MessageRole.SYSTEM, content=format_simplified_system(ctx.location)),
                LLMMessage(
                    role=MessageRole.USER,
                    content=format_simplified_prompt(ctx.query, ctx.location, ctx.asks_question),
                ),
            ]

        logger.debug(f"Calling tier {tier.name} ({tier.provider.name}, {tier.style.value})")
        raw = tier.provider.complete(messages).content
        if not clean_response_text(raw):
            raise LLMMalformedResponseError(f"Tier {tier.name} returned empty text")

        if tier.style == PromptStyle.STRUCTURED:
            direct, community = self._parse_structured(raw, ctx)
        else:
            direct = clean_response_text(raw)
            community = (
                "Community posts are available below. These may contain additional information."
                if ctx.community_posts else ctx.no_posts_notice
            )

        return self._build(ctx, direct, community, tier.name)

    def _parse_structured(self, raw: str, ctx: _AnswerContext) -> tuple[str, str]:
        """Split a structured response into direct answer and community info."""
        marker = "DIRECT_ANSWER" if ctx.asks_question else "LOCATION_SUMMARY"
        direct = clean_response_text(extract_section(raw, marker, ["COMMUNITY_INFO"]))
        community = clean_response_text(extract_section(raw, "COMMUNITY_INFO"))

        if not direct:
            prefix = (
                f"Regarding your question about {ctx.query} in {ctx.location}:"
                if ctx.asks_question else f"Here's information about {ctx.location}:"
            )
            direct = f"{prefix}\n\n{clean_response_text(raw)}"

        if not community:
            community = self._count_notice(ctx)
        return direct, community

    def _static_answer(self, ctx: _AnswerContext) -> ComposedAnswer:
        if ctx.asks_question:
            direct = (
                f"I don't have specific information about \"{ctx.query}\" for {ctx.location} "
                f"at the moment. Please check the community posts below for relevant "
                f"information, or try again later."
            )
        else:
            direct = (
                f"I don't have the latest information about {ctx.location} at the moment. "
                f"Please check the community posts below, or try again later."
            )
        answer = self._build(ctx, direct, self._count_notice(ctx), STATIC_FALLBACK)
        answer.service_status = SERVICE_DEGRADED
        return answer

    def _count_notice(self, ctx: _AnswerContext) -> str:
        if ctx.community_posts:
            return (
                f"There are {len(ctx.community_posts)} community posts about {ctx.location}. "
                f"You can view them below."
            )
        return ctx.no_posts_notice

    def _build(self, ctx: _AnswerContext, direct: str, community: str, source: str) -> ComposedAnswer:
        return ComposedAnswer(
            direct_answer=direct,
            community_info=community,
            source=source,
            news_summary=format_headlines(ctx.articles),
            news_articles=list(ctx.articles),
            community_posts=list(ctx.community_posts),
            related_memory_ids=[m.record.id for m in ctx.memories],
        )

    # ========== History ==========

    def _persist(self, record: QueryRecord):
        if self.storage is None:
            return
        try:
            self.storage.save_query(record)
        except sqlite3.Error:
            logger.exception(f"Failed to persist query record {record.id}")
