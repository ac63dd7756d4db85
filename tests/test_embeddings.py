"""
Tests for embedding providers.
"""

from unittest.mock import MagicMock

import numpy as np
import pytest

from news_tracker.errors import EmbeddingError
from news_tracker.memory.embeddings import (
    HashingEmbedding,
    OpenAIEmbedding,
    get_embedding_provider,
)


class TestHashingEmbedding:
    """Test the offline hashing embedding."""

    def test_dimension(self):
        embedder = HashingEmbedding(dimension=64)
        vector = embedder.embed("Flooding reported near the bridge")
        assert embedder.dimension == 64
        assert len(vector) == 64

    def test_deterministic(self):
        embedder = HashingEmbedding()
        text = "Road closed after the storm"
        assert embedder.embed(text) == embedder.embed(text)

    def test_normalized(self):
        """Test vectors have unit length."""
        vector = HashingEmbedding().embed("Power outage on Main Street tonight")
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_similar_text_scores_higher(self):
        """Test overlapping words produce a larger dot product."""
        embedder = HashingEmbedding()
        query = np.array(embedder.embed("bridge flooding"))
        related = np.array(embedder.embed("flooding closed the bridge"))
        unrelated = np.array(embedder.embed("bakery opening celebration"))
        assert query @ related > query @ unrelated

    def test_empty_text_raises(self):
        with pytest.raises(EmbeddingError):
            HashingEmbedding().embed("   ")

    def test_short_words_only(self):
        """Test text whose words are all two letters or fewer cannot be embedded."""
        with pytest.raises(EmbeddingError, match="No embeddable tokens"):
            HashingEmbedding(dimension=8).embed("Is it ok?")

    def test_invalid_dimension(self):
        with pytest.raises(ValueError):
            HashingEmbedding(dimension=0)


class TestOpenAIEmbedding:
    """Test the OpenAI embedding provider with a mocked client."""

    def _provider(self, client):
        provider = OpenAIEmbedding(api_key="test-key")
        provider._client = client
        return provider

    def test_embed(self):
        client = MagicMock()
        client.embeddings.create.return_value = MagicMock(data=[MagicMock(embedding=[0.1, 0.2, 0.3])])

        provider = self._provider(client)
        vector = provider.embed("Flooding downtown")

        assert vector == [0.1, 0.2, 0.3]
        assert provider.dimension == 3
        client.embeddings.create.assert_called_once_with(
            model="text-embedding-3-small",
            input="Flooding downtown",
        )

    def test_known_dimension_before_first_call(self):
        assert OpenAIEmbedding(api_key="k").dimension == 1536

    def test_api_failure_wrapped(self):
        client = MagicMock()
        client.embeddings.create.side_effect = RuntimeError("connection reset")

        with pytest.raises(EmbeddingError, match="connection reset"):
            self._provider(client).embed("text")

    def test_malformed_response(self):
        client = MagicMock()
        client.embeddings.create.return_value = MagicMock(data=[])

        with pytest.raises(EmbeddingError, match="Malformed"):
            self._provider(client).embed("text")

    def test_empty_text(self):
        client = MagicMock()
        with pytest.raises(EmbeddingError):
            self._provider(client).embed("")
        client.embeddings.create.assert_not_called()


class TestEmbeddingFactory:
    """Test get_embedding_provider."""

    def test_hashing(self):
        provider = get_embedding_provider("hashing", dimension=32)
        assert isinstance(provider, HashingEmbedding)
        assert provider.dimension == 32

    def test_openai(self):
        provider = get_embedding_provider("openai", model="text-embedding-3-large", api_key="k")
        assert isinstance(provider, OpenAIEmbedding)
        assert provider.model == "text-embedding-3-large"

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            get_embedding_provider("word2vec")
