"""
News Tracker - Answers location questions from community reports.

Community posts and comments about local incidents are summarized,
embedded and stored as searchable memory. Questions about a location are
answered from that memory plus external headlines, falling back through
several AI providers and finally a static template when none is available.

Key Features:
- Incremental indexing of posts and comments with a resolved watermark
- Dot-product retrieval with a case-insensitive location filter
- Tiered answer composition with a shared rate-limit cooldown
- Per-user question history
- REST API and command line interface
"""

__version__ = "0.1.0"

from .errors import (
    NewsTrackerError,
    TransientProviderError,
    EmbeddingError,
    SummarizationError,
    ValidationError,
    DataIntegrityWarning,
)

from .memory import (
    SourceKind,
    MemoryRecord,
    QueryRecord,
    MemorySearchResult,
    IndexRunSummary,
    MemoryStorage,
    SQLiteStorage,
    EmbeddingProvider,
    get_embedding_provider,
)

from .content import ContentStore, SQLiteContentStore, SourceItem

from .indexer import MemoryIndexer
from .retriever import MemoryRetriever
from .composer import AnswerComposer, ComposedAnswer, CooldownState, ProviderTier, PromptStyle
from .config import NewsTrackerConfig, load_config
from .tracker import NewsTracker

__all__ = [
    "__version__",
    # Errors
    "NewsTrackerError",
    "TransientProviderError",
    "EmbeddingError",
    "SummarizationError",
    "ValidationError",
    "DataIntegrityWarning",
    # Memory
    "SourceKind",
    "MemoryRecord",
    "QueryRecord",
    "MemorySearchResult",
    "IndexRunSummary",
    "MemoryStorage",
    "SQLiteStorage",
    "EmbeddingProvider",
    "get_embedding_provider",
    # Content
    "ContentStore",
    "SQLiteContentStore",
    "SourceItem",
    # Pipeline
    "MemoryIndexer",
    "MemoryRetriever",
    "AnswerComposer",
    "ComposedAnswer",
    "CooldownState",
    "ProviderTier",
    "PromptStyle",
    "NewsTrackerConfig",
    "load_config",
    "NewsTracker",
]
