"""
Tests for the memory retriever.
"""

import sqlite3

import pytest

from news_tracker.memory.embeddings import HashingEmbedding
from news_tracker.retriever import MemoryRetriever


def locked(*args, **kwargs):
    raise sqlite3.OperationalError("database is locked")


@pytest.fixture
def retriever(storage, embedding):
    """Retriever whose query vector is always [1, 0]."""
    return MemoryRetriever(storage, embedding(default=(1.0, 0.0)))


class TestRetrieve:
    """Test similarity ranking."""

    def test_top_k_by_dot_product(self, retriever, storage, make_record):
        """Test [1,0], [0,1], [0.7,0.7] against [1,0] with k=2 gives records one and three."""
        first = make_record("r1", vector=[1.0, 0.0])
        second = make_record("r2", vector=[0.0, 1.0])
        third = make_record("r3", vector=[0.7, 0.7])
        for record in (first, second, third):
            storage.upsert(record)

        results = retriever.retrieve("anything", k=2)

        assert [r.record.id for r in results] == [first.id, third.id]
        assert [r.score for r in results] == pytest.approx([1.0, 0.7])

    def test_scores_descending(self, retriever, storage, make_record):
        for i, vector in enumerate([[0.1, 0.9], [0.9, 0.1], [0.5, 0.5], [-1.0, 0.0]]):
            storage.upsert(make_record(f"r{i}", vector=vector))

        scores = [r.score for r in retriever.retrieve("q", k=10)]

        assert scores == sorted(scores, reverse=True)
        assert len(scores) == 4

    def test_location_filter(self, retriever, storage, make_record):
        """Test only records whose location contains the filter are eligible."""
        storage.upsert(make_record("boston", vector=[1.0, 0.0], location="Boston"))
        storage.upsert(make_record("spring", vector=[0.0, 1.0], location="Springfield"))

        results = retriever.retrieve("q", location_filter="spring", k=5)

        assert [r.record.source_id for r in results] == ["spring"]

    def test_ties_keep_storage_order(self, retriever, storage, make_record):
        for source_id in ("b", "a", "c"):
            storage.upsert(make_record(source_id, vector=[1.0, 0.0]))

        results = retriever.retrieve("q", k=3)

        assert [r.record.source_id for r in results] == ["b", "a", "c"]

    def test_skips_unembedded_and_mismatched(self, retriever, storage, make_record):
        """Test records without a comparable vector are not scored."""
        storage.upsert(make_record("none", vector=None))
        storage.upsert(make_record("wide", vector=[1.0, 0.0, 0.0]))
        storage.upsert(make_record("ok", vector=[0.5, 0.5]))

        results = retriever.retrieve("q", k=5)

        assert [r.record.source_id for r in results] == ["ok"]

    def test_query_embedding_failure_returns_empty(self, storage, embedding, make_record):
        storage.upsert(make_record("r1"))
        retriever = MemoryRetriever(storage, embedding(failing=["broken query"]))

        assert retriever.retrieve("broken query") == []

    def test_query_without_embeddable_words_returns_empty(self, storage, make_record):
        """Test a query of only short words is not embedded and matches nothing."""
        storage.upsert(make_record("r1", vector=[0.5, 0.5, 0.5, 0.5]))

        assert MemoryRetriever(storage, HashingEmbedding(4)).retrieve("Is it ok?", k=2) == []

    def test_unreadable_store_returns_empty(self, retriever, storage, make_record, monkeypatch):
        storage.upsert(make_record("r1"))
        monkeypatch.setattr(storage, "list_records", locked)

        assert retriever.retrieve("q", k=2) == []

    def test_empty_storage(self, retriever):
        assert retriever.retrieve("q") == []

    def test_non_positive_k(self, retriever, storage, make_record):
        storage.upsert(make_record("r1"))
        assert retriever.retrieve("q", k=0) == []

    def test_default_k(self, storage, embedding, make_record):
        for i in range(8):
            storage.upsert(make_record(f"r{i}"))
        retriever = MemoryRetriever(storage, embedding(), default_k=3)

        assert len(retriever.retrieve("q")) == 3


class TestFindByLocation:
    """Test location-only lookup."""

    def test_newest_first_without_scores(self, retriever, storage, make_record, at):
        storage.upsert(make_record("old", location="Springfield", created_at=at(1)))
        storage.upsert(make_record("new", location="Springfield", vector=None, created_at=at(2)))
        storage.upsert(make_record("elsewhere", location="Boston", created_at=at(3)))

        results = retriever.find_by_location("springfield")

        assert [r.record.source_id for r in results] == ["new", "old"]
        assert all(r.score is None for r in results)
        assert all(r.match_type == "location" for r in results)

    def test_unreadable_store_returns_empty(self, retriever, storage, make_record, monkeypatch):
        storage.upsert(make_record("r1", location="Springfield"))
        monkeypatch.setattr(storage, "list_records", locked)

        assert retriever.find_by_location("Springfield") == []
