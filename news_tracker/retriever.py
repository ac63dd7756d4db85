"""
Memory retriever.

Linear-scan similarity search over stored memory records. Scores are raw
dot products between the query vector and each record vector; vectors
are not re-normalized.
"""

import logging
import sqlite3
from typing import List, Optional

import numpy as np

from .errors import EmbeddingError
from .memory.embeddings import EmbeddingProvider
from .memory.storage import MemoryStorage
from .memory.types import Embedded, MemorySearchResult


logger = logging.getLogger(__name__)


DEFAULT_TOP_K = 5


class MemoryRetriever:
    """Finds the memory records most similar to a query."""

    def __init__(
        self,
        storage: MemoryStorage,
        embedder: EmbeddingProvider,
        default_k: int = DEFAULT_TOP_K,
    ):
        self.storage = storage
        self.embedder = embedder
        self.default_k = default_k

    def retrieve(
        self,
        query: str,
        location_filter: Optional[str] = None,
        k: Optional[int] = None,
    ) -> List[MemorySearchResult]:
        """
        Rank memory records by similarity to the query.

        Args:
            query: Free-text query
            location_filter: Case-insensitive substring the record
                location must contain
            k: Maximum number of results

        Returns:
            Up to k results, highest score first. Empty when the query
            cannot be embedded or the store cannot be read.
        """
        k = self.default_k if k is None else k
        if k <= 0:
            return []

        try:
            query_vector = np.asarray(self.embedder.embed(query), dtype=np.float64)
        except EmbeddingError as e:
            logger.warning(f"Could not embed query, returning no memories: {e}")
            return []

        try:
            records = self.storage.list_records(location_filter=location_filter or None)
        except sqlite3.Error as e:
            logger.error(f"Could not read memory records, returning no memories: {e}")
            return []

        candidates = [
            record
            for record in records
            if isinstance(record.embedding, Embedded)
            and record.embedding.dimension == query_vector.shape[0]
        ]
        if not candidates:
            return []

        matrix = np.array([record.embedding.vector for record in candidates], dtype=np.float64)
        scores = matrix @ query_vector

        # Stable sort keeps storage order among equal scores
        order = np.argsort(-scores, kind="stable")[:k]
        results = [MemorySearchResult(candidates[i], float(scores[i])) for i in order]

        logger.debug(
            f"Retrieved {len(results)} of {len(candidates)} candidate memories "
            f"(location={location_filter!r})"
        )
        return results

    def find_by_location(self, location: str, limit: int = 30) -> List[MemorySearchResult]:
        """
        Records whose location contains `location`, newest first.

        Unembedded records are included; results carry no score.
        """
        try:
            records = self.storage.list_records(
                location_filter=location,
                newest_first=True,
                limit=limit,
            )
        except sqlite3.Error as e:
            logger.error(f"Could not read memory records for {location!r}: {e}")
            return []
        return [MemorySearchResult(record) for record in records]
