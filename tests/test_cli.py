"""Tests for the command-line interface."""

import json
from unittest.mock import patch

import pytest

from news_tracker.cli import build_parser, main
from news_tracker.content.store import SQLiteContentStore
from news_tracker.memory.storage import SQLiteStorage
from news_tracker.memory.types import SourceKind


FLOOD_POST = "The river flooded Main Street overnight and the bridge is closed."

KEY_ENV_VARS = [
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "NEWS_API_KEY",
    "NEWS_TRACKER_DB_PATH",
    "NEWS_TRACKER_EMBEDDING_PROVIDER",
]


@pytest.fixture(autouse=True)
def isolated(monkeypatch, restore_logging):
    """Keep provider keys out and restore loggers afterwards."""
    for name in KEY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "news-tracker.yml"
    path.write_text("providers: []\nnews:\n  enabled: false\n")
    return str(path)


@pytest.fixture
def run(config_path, db_path):
    """Run the CLI against the temporary database."""
    def _run(*args):
        main(["--config", config_path, "--db-path", db_path, *args])
    return _run


@pytest.fixture
def seeded(db_path, at):
    store = SQLiteContentStore(db_path)
    author = store.add_user("Alex", profile_location="Springfield", user_id="u1")
    store.add_post(author, FLOOD_POST, created_at=at(1), post_id="p1")
    store.add_comment("p1", author, "Water is still rising here.", created_at=at(2), comment_id="c1")
    store.close()


class TestParser:
    """Test argument parsing."""

    def test_index_defaults(self):
        args = build_parser().parse_args(["index"])
        assert args.kind == "all"
        assert args.full is False

    def test_ask_requires_location(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["ask", "Is the bridge open?"])

    def test_no_command(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1


class TestCommands:
    """Test command handlers end to end."""

    def test_index(self, run, seeded, db_path, capsys):
        run("index")

        output = json.loads(capsys.readouterr().out)
        assert output["posts"]["processed"] == 1
        assert output["comments"]["processed"] == 1
        assert output["memoryItems"]["added"] == 2

    def test_index_single_kind(self, run, seeded, db_path, capsys):
        run("index", "--kind", "comment")

        output = json.loads(capsys.readouterr().out)
        assert list(output) == ["comments", "memoryItems"]

    def test_full_rejects_kind(self, run, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run("index", "--kind", "post", "--full")
        assert exc_info.value.code == 1

    def test_full(self, run, seeded, capsys):
        run("index", "--full", "--limit", "1")

        output = json.loads(capsys.readouterr().out)
        assert output["memoryItems"]["after"] == 2

    def test_search(self, run, seeded, capsys):
        run("index")
        capsys.readouterr()

        run("search", "bridge flooded", "--location", "Springfield", "-k", "1")

        out = capsys.readouterr().out
        assert "Found 1 matching records" in out
        assert "Location: Springfield" in out

    def test_search_empty(self, run, capsys):
        run("search", "bridge")
        assert "No memory records found matching your query." in capsys.readouterr().out

    def test_ask_without_providers(self, run, capsys):
        run("ask", "Is the bridge open?", "--location", "Springfield")

        out = capsys.readouterr().out
        assert "Note: AI services are currently unavailable" in out
        assert "(source: static-fallback)" in out

    def test_ask_json(self, run, db_path, capsys):
        run("ask", "Is the bridge open?", "--location", "Springfield", "--user", "u9", "--json")

        data = json.loads(capsys.readouterr().out)
        assert data["source"] == "static-fallback"
        storage = SQLiteStorage(db_path)
        try:
            assert storage.count_queries("u9") == 1
        finally:
            storage.close()

    def test_ask_empty_location(self, run, capsys):
        with pytest.raises(SystemExit) as exc_info:
            run("ask", "Is the bridge open?", "--location", " ")
        assert exc_info.value.code == 1
        assert "Please provide a location" in capsys.readouterr().out

    def test_cleanup_orphans(self, run, seeded, db_path, capsys):
        run("index")
        store = SQLiteContentStore(db_path)
        store.delete_post("p1")
        store.close()
        capsys.readouterr()

        run("cleanup-orphans")

        assert "Removed 2 orphaned memory records" in capsys.readouterr().out
        storage = SQLiteStorage(db_path)
        try:
            assert storage.count(SourceKind.COMMENT) == 0
        finally:
            storage.close()

    def test_serve(self, run):
        with patch("uvicorn.run") as mock_run:
            run("serve", "--port", "9000")

        mock_run.assert_called_once()
        app = mock_run.call_args.args[0]
        assert mock_run.call_args.kwargs["port"] == 9000
        assert mock_run.call_args.kwargs["host"] == "127.0.0.1"
        assert app.state.start_scheduler is False
