"""
Embedding providers for semantic search.

Turns summarized memory content and user queries into fixed-length
vectors. Vectors are only comparable when produced by the same provider.
"""

import hashlib
import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from ..errors import EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """
        Generate an embedding vector for text.

        Args:
            text: The text to embed

        Returns:
            A list of floats representing the embedding vector

        Raises:
            EmbeddingError: If the vector cannot be produced
        """
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Get the embedding dimension."""
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class HashingEmbedding(EmbeddingProvider):
    """
    Deterministic offline embedding provider.

    Hashes words into a fixed number of buckets with a signed
    term-frequency weight, then L2 normalizes. Works without network
    access, which makes it the default for tests and local runs.
    """

    DIMENSION = 384

    def __init__(self, dimension: int = DIMENSION):
        """
        Initialize the embedding provider.

        Args:
            dimension: Embedding vector dimension
        """
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        """Generate a hashed bag-of-words embedding for text."""
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        words = self._tokenize(text)
        if not words:
            raise EmbeddingError("No embeddable tokens")

        vector = np.zeros(self._dimension, dtype=np.float64)
        for word in words:
            digest = hashlib.sha256(word.encode()).digest()
            index = int.from_bytes(digest[:8], "big") % self._dimension
            sign = 1.0 if digest[8] % 2 == 0 else -1.0
            vector[index] += sign / len(words)

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()

    def _tokenize(self, text: str) -> List[str]:
        """Lowercase alphanumeric words longer than two characters."""
        words = []
        current = []
        for char in text.lower():
            if char.isalnum():
                current.append(char)
            elif current:
                words.append("".join(current))
                current = []
        if current:
            words.append("".join(current))
        return [w for w in words if len(w) > 2]


class OpenAIEmbedding(EmbeddingProvider):
    """Embedding provider backed by the OpenAI embeddings endpoint."""

    DEFAULT_MODEL = "text-embedding-3-small"

    # Known output sizes, used before the first call
    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        timeout: float = 10.0,
        dimensions: Optional[int] = None,
    ):
        self.model = model or self.DEFAULT_MODEL
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        if not self.api_key:
            logger.warning("No OpenAI API key provided. Set OPENAI_API_KEY environment variable.")
        self.api_base = api_base
        self.timeout = timeout
        self._requested_dimensions = dimensions
        self._dimension = dimensions or self.MODEL_DIMENSIONS.get(self.model)
        self._client = None

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            import openai
            kwargs = {"api_key": self.api_key, "timeout": self.timeout, "max_retries": 0}
            if self.api_base:
                kwargs["base_url"] = self.api_base
            self._client = openai.OpenAI(**kwargs)
        return self._client

    @property
    def dimension(self) -> int:
        return self._dimension or 0

    def embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise EmbeddingError("Cannot embed empty text")

        params = {"model": self.model, "input": text}
        if self._requested_dimensions:
            params["dimensions"] = self._requested_dimensions

        try:
            response = self._get_client().embeddings.create(**params)
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        try:
            vector = [float(v) for v in response.data[0].embedding]
        except (AttributeError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingError(f"Malformed embedding response: {e}") from e

        if not vector:
            raise EmbeddingError("Embedding response contained an empty vector")

        self._dimension = len(vector)
        return vector


def get_embedding_provider(
    provider: str = "hashing",
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    dimension: Optional[int] = None,
    timeout: float = 10.0,
) -> EmbeddingProvider:
    """
    Get an embedding provider by name.

    Args:
        provider: "openai" or "hashing"
        model: Model name for the OpenAI provider
        api_key: API key for the OpenAI provider
        dimension: Vector size for the hashing provider, or requested
            dimensions for the OpenAI provider
        timeout: Request timeout in seconds

    Returns:
        An embedding provider instance
    """
    name = (provider or "hashing").lower()
    if name == "openai":
        return OpenAIEmbedding(model=model, api_key=api_key, timeout=timeout, dimensions=dimension)
    if name == "hashing":
        return HashingEmbedding(dimension or HashingEmbedding.DIMENSION)
    raise ValueError(f"Unknown embedding provider: {provider}. Available: openai, hashing")
