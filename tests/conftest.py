"""
Pytest configuration and shared fixtures.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Union

import pytest

from news_tracker.content.store import SQLiteContentStore
from news_tracker.errors import EmbeddingError
from news_tracker.llm.base import (
    LLMConfig,
    LLMMessage,
    LLMProvider,
    LLMResponse,
)
from news_tracker.memory.embeddings import EmbeddingProvider
from news_tracker.memory.storage import SQLiteStorage
from news_tracker.memory.types import Embedded, MemoryRecord, SourceKind, Unembedded
from news_tracker.observability.logging import NOISY_LOGGERS, ROOT_LOGGER


BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class StaticEmbedding(EmbeddingProvider):
    """Embedding provider returning preset vectors per text."""

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        default: Sequence[float] = (1.0, 0.0),
        failing: Sequence[str] = (),
    ):
        self.vectors = dict(vectors or {})
        self.default = list(default)
        self.failing = set(failing)
        self.calls: List[str] = []

    @property
    def dimension(self) -> int:
        return len(self.default)

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.failing:
            raise EmbeddingError(f"cannot embed {text!r}")
        return list(self.vectors.get(text, self.default))


class ScriptedProvider(LLMProvider):
    """
    Completion provider that replays scripted outcomes.

    Each outcome is either response text or an exception to raise. The
    last outcome repeats once the script is exhausted.
    """

    def __init__(self, *outcomes: Union[str, Exception], name: str = "fake"):
        super().__init__(LLMConfig(provider=name, model="fake-model"))
        self.outcomes = list(outcomes) or [""]
        self.calls: List[List[LLMMessage]] = []

    def complete(self, messages: list[LLMMessage], **kwargs) -> LLMResponse:
        self.calls.append(list(messages))
        index = min(len(self.calls) - 1, len(self.outcomes) - 1)
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        return LLMResponse(content=outcome, model=self.config.model)


def make_record(
    source_id: str,
    vector: Optional[Sequence[float]] = (1.0, 0.0),
    location: Optional[str] = None,
    created_at: Optional[datetime] = None,
    kind: SourceKind = SourceKind.POST,
    content: Optional[str] = None,
) -> MemoryRecord:
    """Build a memory record with sensible defaults."""
    return MemoryRecord(
        source_kind=kind,
        source_id=source_id,
        processed_content=content or f"Summary of {kind.value} {source_id}",
        original_created_at=created_at or BASE_TIME,
        location=location,
        embedding=Embedded(vector) if vector is not None else Unembedded("failed"),
    )


@pytest.fixture
def db_path(tmp_path):
    """Path of a fresh SQLite database file."""
    return str(tmp_path / "news.db")


@pytest.fixture
def storage(db_path):
    """Memory storage backed by a temporary database."""
    store = SQLiteStorage(db_path)
    yield store
    store.close()


@pytest.fixture
def content_store(db_path):
    """Content store sharing the temporary database."""
    store = SQLiteContentStore(db_path)
    yield store
    store.close()


@pytest.fixture
def author(content_store):
    """A user whose profile says Springfield."""
    return content_store.add_user("Alex", profile_location="Springfield", user_id="u1")


@pytest.fixture
def at():
    """Timestamp factory: minutes after a fixed base time."""
    def _at(minutes: int) -> datetime:
        return BASE_TIME + timedelta(minutes=minutes)
    return _at


@pytest.fixture
def base_time():
    return BASE_TIME


@pytest.fixture(name="make_record")
def make_record_fixture():
    """Factory for memory records."""
    return make_record


@pytest.fixture(name="embedding")
def embedding_fixture():
    """Factory for preset-vector embedding providers."""
    return StaticEmbedding


@pytest.fixture(name="scripted")
def scripted_fixture():
    """Factory for scripted completion providers."""
    return ScriptedProvider


@pytest.fixture
def restore_logging():
    """Undo configure_logging changes to the package and client loggers."""
    loggers = [logging.getLogger(name) for name in (ROOT_LOGGER,) + NOISY_LOGGERS]
    saved = [(lg, list(lg.handlers), lg.level, lg.propagate) for lg in loggers]
    yield logging.getLogger(ROOT_LOGGER)
    for lg, handlers, level, propagate in saved:
        lg.handlers = handlers
        lg.setLevel(level)
        lg.propagate = propagate
