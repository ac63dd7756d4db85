"""
News Tracker - Wires the memory pipeline together.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from .composer import AnswerComposer, ComposedAnswer, CooldownState, PromptStyle, ProviderTier
from .config import NewsTrackerConfig, TierConfig, load_config
from .content.store import ContentStore, SQLiteContentStore
from .indexer import MemoryIndexer
from .llm.base import LLMConfig, LLMProvider
from .llm.factory import create_provider
from .memory.embeddings import EmbeddingProvider, get_embedding_provider
from .memory.storage import MemoryStorage, SQLiteStorage
from .memory.types import IndexRunSummary, MemorySearchResult, QueryStatus, SourceKind
from .news import NewsClient
from .retriever import MemoryRetriever
from .scheduler import IndexScheduler
from .summarizer import ContentSummarizer


logger = logging.getLogger(__name__)


class NewsTracker:
    """
    Entry point to the news memory pipeline.

    Builds every component from a `NewsTrackerConfig`; any component can
    be injected instead, which is how tests run without network access.

    Example usage:
        tracker = NewsTracker.from_config()
        tracker.process_new()
        answer = tracker.answer("Is the bridge open?", "Springfield", user="u1")
        print(answer.direct_answer)
    """

    def __init__(
        self,
        config: Optional[NewsTrackerConfig] = None,
        storage: Optional[MemoryStorage] = None,
        content_store: Optional[ContentStore] = None,
        embedder: Optional[EmbeddingProvider] = None,
        summarizer: Optional[ContentSummarizer] = None,
        tiers: Optional[Sequence[ProviderTier]] = None,
        news_client: Optional[NewsClient] = None,
        cooldown: Optional[CooldownState] = None,
    ):
        """
        Initialize the tracker.

        Args:
            config: Configuration; defaults are used when omitted.
            storage: Memory storage, defaults to SQLite at the configured path.
            content_store: Post and comment source, defaults to SQLite.
            embedder: Embedding provider.
            summarizer: Content summarizer.
            tiers: Answer provider tiers in fallback order.
            news_client: Headline client.
            cooldown: Rate-limit cooldown shared by all answers.
        """
        self.config = config or NewsTrackerConfig()

        self.storage = storage or SQLiteStorage(self.config.db_path)
        self.content_store = content_store or SQLiteContentStore(self.config.db_path)
        self.embedder = embedder or self._create_embedder()
        self.tiers = list(tiers) if tiers is not None else self._create_tiers()
        self.summarizer = summarizer or ContentSummarizer(
            self._create_summarizer_provider(),
            max_tokens=self.config.summarizer.max_tokens,
            temperature=self.config.summarizer.temperature,
        )
        if news_client is None and self.config.news.enabled:
            news_client = NewsClient(
                api_key=self.config.api_key_for("news") or "",
                page_size=self.config.news.page_size,
                timeout=self.config.news.timeout,
            )
        self.news_client = news_client
        self.cooldown = cooldown or CooldownState(self.config.composer.cooldown_seconds)

        indexer_config = self.config.indexer
        self.indexer = MemoryIndexer(
            self.content_store,
            self.storage,
            self.summarizer,
            self.embedder,
            batch_size=indexer_config.batch_size,
            full_limit=indexer_config.full_limit,
            min_lengths={
                SourceKind.POST: indexer_config.min_post_length,
                SourceKind.COMMENT: indexer_config.min_comment_length,
            },
            max_workers=indexer_config.max_workers,
        )
        self.retriever = MemoryRetriever(
            self.storage,
            self.embedder,
            default_k=self.config.composer.top_k,
        )
        self.composer = AnswerComposer(
            self.retriever,
            tiers=self.tiers,
            storage=self.storage,
            news_client=self.news_client,
            cooldown=self.cooldown,
            top_k=self.config.composer.top_k,
            community_limit=self.config.composer.community_limit,
        )

    @classmethod
    def from_config(cls, config_path: Optional[str] = None, **overrides: Any) -> "NewsTracker":
        """Create a tracker from configuration files and the environment."""
        return cls(load_config(config_path, **overrides))

    # ========== Component construction ==========

    def _create_embedder(self) -> EmbeddingProvider:
        embedding = self.config.embedding
        provider = embedding.provider.lower()
        if provider == "auto":
            provider = "openai" if self.config.api_key_for("openai") else "hashing"
        logger.debug(f"Using {provider} embeddings")
        return get_embedding_provider(
            provider,
            model=embedding.model,
            api_key=self.config.api_key_for("openai"),
            dimension=embedding.dimension,
            timeout=embedding.timeout,
        )

    def _create_tier(self, tier: TierConfig) -> Optional[ProviderTier]:
        api_key = tier.api_key or self.config.api_key_for(tier.provider)
        if not api_key:
            logger.warning(f"No API key for {tier.provider}, skipping answer tier '{tier.name}'")
            return None
        provider = create_provider(tier.to_llm_config(api_key))
        return ProviderTier(tier.name, provider, PromptStyle(tier.style))

    def _create_tiers(self) -> List[ProviderTier]:
        tiers = []
        for tier_config in self.config.providers:
            tier = self._create_tier(tier_config)
            if tier is not None:
                tiers.append(tier)
        return tiers

    def _create_summarizer_provider(self) -> Optional[LLMProvider]:
        settings = self.config.summarizer
        name = settings.provider
        if name is None:
            candidates = [t.provider for t in self.config.providers if self.config.api_key_for(t.provider)]
            name = candidates[0] if candidates else None
        if name is None or not self.config.api_key_for(name):
            logger.warning("No summarization provider available; memory records will use fallback summaries")
            return None
        return create_provider(LLMConfig(
            provider=name,
            model=settings.model,
            api_key=self.config.api_key_for(name),
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            timeout=settings.timeout,
        ))

    # ========== Operations ==========

    def answer(self, query: str, location: str, user: Optional[str] = None) -> ComposedAnswer:
        """Answer a location question; see `AnswerComposer.answer`."""
        return self.composer.answer(query, location, user=user)

    def search(
        self,
        query: str,
        location: Optional[str] = None,
        k: Optional[int] = None,
    ) -> List[MemorySearchResult]:
        """Rank memory records against a query."""
        return self.retriever.retrieve(query, location_filter=location, k=k)

    def process_new(self, kind: Optional[SourceKind] = None) -> IndexRunSummary:
        """Incrementally index one kind, or both when `kind` is None."""
        if kind is None:
            return self.indexer.process_new_all()
        run = IndexRunSummary(memory_before=self.storage.count())
        run.kinds[SourceKind(kind)] = self.indexer.process_new(kind)
        run.memory_after = self.storage.count()
        return run

    def process_all_content(self, limit: Optional[int] = None) -> IndexRunSummary:
        """Reprocess the most recent content of every kind."""
        return self.indexer.process_all(limit)

    def cleanup_orphans(self) -> int:
        """Delete memory records whose source post or comment is gone."""
        return self.indexer.cleanup_orphans()

    def history(self, user: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        """
        A user's processed queries, newest first, with pagination metadata.

        Args:
            user: Identity of the asker
            page: 1-based page number
            limit: Queries per page
        """
        page = max(1, page)
        limit = max(1, limit)
        offset = (page - 1) * limit

        queries = self.storage.list_queries(user, QueryStatus.PROCESSED, offset=offset, limit=limit)
        total = self.storage.count_queries(user, QueryStatus.PROCESSED)
        return {
            "queries": [q.to_dict() for q in queries],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit),
                "has_more": offset + len(queries) < total,
            },
        }

    def create_scheduler(self) -> IndexScheduler:
        """Scheduler that runs incremental indexing for this tracker."""
        settings = self.config.indexer
        return IndexScheduler(
            self.indexer,
            post_minute=settings.post_minute,
            comment_minute=settings.comment_minute,
            startup_delay=settings.startup_delay,
        )

    def close(self):
        """Release database connections and HTTP clients."""
        for backend in (self.storage, self.content_store):
            close = getattr(backend, "close", None)
            if close is not None:
                close()
        if self.news_client is not None:
            self.news_client.close()
