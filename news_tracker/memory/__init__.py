"""
News memory records.

Summarized, embedded records derived from community posts and comments,
their SQLite persistence and the embedding providers used to search them.
"""

from .types import (
    SourceKind,
    Embedded,
    Unembedded,
    Embedding,
    MemoryRecord,
    QueryStatus,
    QueryRecord,
    MemorySearchResult,
    KindSummary,
    IndexRunSummary,
)

from .storage import (
    MemoryStorage,
    SQLiteStorage,
)

from .embeddings import (
    EmbeddingProvider,
    HashingEmbedding,
    OpenAIEmbedding,
    get_embedding_provider,
)


__all__ = [
    # Types
    "SourceKind",
    "Embedded",
    "Unembedded",
    "Embedding",
    "MemoryRecord",
    "QueryStatus",
    "QueryRecord",
    "MemorySearchResult",
    "KindSummary",
    "IndexRunSummary",
    # Storage
    "MemoryStorage",
    "SQLiteStorage",
    # Embeddings
    "EmbeddingProvider",
    "HashingEmbedding",
    "OpenAIEmbedding",
    "get_embedding_provider",
]
