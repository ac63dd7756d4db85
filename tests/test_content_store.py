"""
Tests for the SQLite content store.
"""

from news_tracker.memory.types import SourceKind


class TestPosts:
    """Test reading posts."""

    def test_find_since_is_exclusive_and_ascending(self, content_store, author, at):
        content_store.add_post(author, "third post", created_at=at(3), post_id="p3")
        content_store.add_post(author, "first post", created_at=at(1), post_id="p1")
        content_store.add_post(author, "second post", created_at=at(2), post_id="p2")

        items = content_store.find_since(SourceKind.POST, at(1), limit=10)
        assert [i.id for i in items] == ["p2", "p3"]

    def test_find_since_from_beginning_with_limit(self, content_store, author, at):
        for i in range(5):
            content_store.add_post(author, f"post {i}", created_at=at(i), post_id=f"p{i}")

        items = content_store.find_since(SourceKind.POST, None, limit=2)
        assert [i.id for i in items] == ["p0", "p1"]

    def test_find_recent_newest_first(self, content_store, author, at):
        for i in range(3):
            content_store.add_post(author, f"post {i}", created_at=at(i), post_id=f"p{i}")

        items = content_store.find_recent(SourceKind.POST, limit=2)
        assert [i.id for i in items] == ["p2", "p1"]

    def test_location_falls_back_to_author_profile(self, content_store, author):
        """Test posts without a location use the author's profile location."""
        content_store.add_post(author, "no location given", post_id="p1")
        content_store.add_post(author, "tagged", location="Boston", post_id="p2")

        untagged = content_store.find_by_id(SourceKind.POST, "p1")
        tagged = content_store.find_by_id(SourceKind.POST, "p2")

        assert untagged.location is None
        assert untagged.resolved_location == "Springfield"
        assert tagged.resolved_location == "Boston"

    def test_find_by_id_missing(self, content_store):
        assert content_store.find_by_id(SourceKind.POST, "nope") is None


class TestComments:
    """Test reading comments."""

    def test_comment_uses_parent_post_location(self, content_store, author, at):
        commenter = content_store.add_user("Sam", profile_location="Boston", user_id="u2")
        content_store.add_post(author, "post", location="Shelbyville", created_at=at(0), post_id="p1")
        content_store.add_comment("p1", commenter, "comment text", created_at=at(1), comment_id="c1")

        comment = content_store.find_since(SourceKind.COMMENT, None, limit=10)[0]
        assert comment.kind == SourceKind.COMMENT
        assert comment.post_id == "p1"
        assert comment.resolved_location == "Shelbyville"

    def test_comment_falls_back_to_author(self, content_store, author, at):
        content_store.add_post(author, "post", created_at=at(0), post_id="p1")
        content_store.add_comment("p1", author, "comment", created_at=at(1), comment_id="c1")

        comment = content_store.find_by_id(SourceKind.COMMENT, "c1")
        assert comment.resolved_location == "Springfield"


class TestExistence:
    """Test existence checks and deletion."""

    def test_existing_ids(self, content_store, author):
        content_store.add_post(author, "post", post_id="p1")
        assert content_store.existing_ids(SourceKind.POST, ["p1", "p2"]) == {"p1"}

    def test_delete_post_removes_comments(self, content_store, author):
        content_store.add_post(author, "post", post_id="p1")
        content_store.add_comment("p1", author, "comment", comment_id="c1")

        assert content_store.delete_post("p1")
        assert content_store.find_by_id(SourceKind.POST, "p1") is None
        assert content_store.find_by_id(SourceKind.COMMENT, "c1") is None
