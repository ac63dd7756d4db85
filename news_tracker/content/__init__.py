"""
Community posts and comments consumed by the memory indexer.
"""

from .store import (
    SourceItem,
    ContentStore,
    SQLiteContentStore,
)


__all__ = [
    "SourceItem",
    "ContentStore",
    "SQLiteContentStore",
]
