"""
Community content store.

Read access to the posts and comments the memory indexer consumes,
plus the write helpers used to seed a database.
"""

import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Set

from ..db import SQLiteBackend
from ..memory.types import SourceKind, format_datetime, parse_datetime, utc_now


logger = logging.getLogger(__name__)


@dataclass
class SourceItem:
    """
    A post or comment as seen by the indexer.

    Attributes:
        kind: Collection the item belongs to
        id: Item identifier
        content: Raw text
        created_at: Creation time, compared against the watermark
        location: The post's own location; for comments the parent post's
        author_location: Profile location of the item's author
        post_id: Parent post of a comment
    """

    kind: SourceKind
    id: str
    content: str
    created_at: datetime
    location: Optional[str] = None
    author_location: Optional[str] = None
    post_id: Optional[str] = None

    @property
    def resolved_location(self) -> Optional[str]:
        """Own location, else the author's profile location."""
        return self.location or self.author_location or None


class ContentStore(ABC):
    """Abstract read interface over community content."""

    @abstractmethod
    def find_since(
        self,
        kind: SourceKind,
        since: Optional[datetime],
        limit: int,
    ) -> List[SourceItem]:
        """
        Items created strictly after `since`, oldest first.

        Args:
            kind: Collection to read
            since: Exclusive lower bound; None means from the beginning
            limit: Maximum number of items
        """
        pass

    @abstractmethod
    def find_recent(self, kind: SourceKind, limit: int) -> List[SourceItem]:
        """The most recent items of a kind, newest first."""
        pass

    @abstractmethod
    def find_by_id(self, kind: SourceKind, item_id: str) -> Optional[SourceItem]:
        """A single item, or None when it does not exist."""
        pass

    def existing_ids(self, kind: SourceKind, item_ids: Iterable[str]) -> Set[str]:
        """Subset of `item_ids` still present in the store."""
        return {
            item_id for item_id in item_ids
            if self.find_by_id(kind, item_id) is not None
        }


class SQLiteContentStore(SQLiteBackend, ContentStore):
    """
    SQLite-backed posts, comments and author profiles.

    Can share a database file with the memory storage.
    """

    SCHEMA_VERSION = 1
    VERSION_TABLE = "content_schema_version"

    _POST_SELECT = """
        SELECT p.id, p.content, p.created_at, p.location,
               u.profile_location AS author_location, NULL AS post_id
        FROM posts p
        LEFT JOIN users u ON u.id = p.author_id
    """

    _COMMENT_SELECT = """
        SELECT c.id, c.content, c.created_at, p.location,
               u.profile_location AS author_location, c.post_id
        FROM comments c
        LEFT JOIN posts p ON p.id = c.post_id
        LEFT JOIN users u ON u.id = c.author_id
    """

    def _apply_migrations(self, cursor: sqlite3.Cursor, from_version: int):
        """Apply schema migrations."""
        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    profile_location TEXT
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS posts (
                    id TEXT PRIMARY KEY,
                    author_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    location TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_posts_created
                ON posts(created_at)
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS comments (
                    id TEXT PRIMARY KEY,
                    post_id TEXT NOT NULL,
                    author_id TEXT NOT NULL,
                    content TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_comments_created
                ON comments(created_at)
            """)

    def _select(self, kind: SourceKind) -> str:
        if SourceKind(kind) == SourceKind.POST:
            return self._POST_SELECT
        return self._COMMENT_SELECT

    def _alias(self, kind: SourceKind) -> str:
        return "p" if SourceKind(kind) == SourceKind.POST else "c"

    def _row_to_item(self, kind: SourceKind, row: sqlite3.Row) -> SourceItem:
        return SourceItem(
            kind=SourceKind(kind),
            id=row["id"],
            content=row["content"],
            created_at=parse_datetime(row["created_at"]),
            location=row["location"] or None,
            author_location=row["author_location"] or None,
            post_id=row["post_id"],
        )

    def find_since(
        self,
        kind: SourceKind,
        since: Optional[datetime],
        limit: int,
    ) -> List[SourceItem]:
        alias = self._alias(kind)
        sql = self._select(kind)
        params: list = []
        if since is not None:
            sql += f" WHERE {alias}.created_at > ?"
            params.append(format_datetime(since))
        sql += f" ORDER BY {alias}.created_at ASC, {alias}.rowid ASC LIMIT ?"
        params.append(limit)

        with self._transaction() as cursor:
            cursor.execute(sql, params)
            return [self._row_to_item(kind, row) for row in cursor.fetchall()]

    def find_recent(self, kind: SourceKind, limit: int) -> List[SourceItem]:
        alias = self._alias(kind)
        sql = self._select(kind) + f" ORDER BY {alias}.created_at DESC, {alias}.rowid ASC LIMIT ?"
        with self._transaction() as cursor:
            cursor.execute(sql, (limit,))
            return [self._row_to_item(kind, row) for row in cursor.fetchall()]

    def find_by_id(self, kind: SourceKind, item_id: str) -> Optional[SourceItem]:
        sql = self._select(kind) + f" WHERE {self._alias(kind)}.id = ?"
        with self._transaction() as cursor:
            cursor.execute(sql, (str(item_id),))
            row = cursor.fetchone()
        return self._row_to_item(kind, row) if row else None

    def existing_ids(self, kind: SourceKind, item_ids: Iterable[str]) -> Set[str]:
        table = "posts" if SourceKind(kind) == SourceKind.POST else "comments"
        with self._transaction() as cursor:
            cursor.execute(f"SELECT id FROM {table}")
            present = {row["id"] for row in cursor.fetchall()}
        return {str(item_id) for item_id in item_ids} & present

    # ========== Seeding helpers ==========

    def add_user(
        self,
        name: str,
        profile_location: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """Insert or replace a user profile."""
        user_id = user_id or uuid.uuid4().hex
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT OR REPLACE INTO users (id, name, profile_location) VALUES (?, ?, ?)",
                (user_id, name, profile_location),
            )
        return user_id

    def add_post(
        self,
        author_id: str,
        content: str,
        location: Optional[str] = None,
        created_at: Optional[datetime] = None,
        post_id: Optional[str] = None,
    ) -> str:
        """Insert a post and return its id."""
        post_id = post_id or uuid.uuid4().hex
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT INTO posts (id, author_id, content, location, created_at) VALUES (?, ?, ?, ?, ?)",
                (post_id, author_id, content, location, format_datetime(created_at or utc_now())),
            )
        logger.debug(f"Added post {post_id}")
        return post_id

    def add_comment(
        self,
        post_id: str,
        author_id: str,
        content: str,
        created_at: Optional[datetime] = None,
        comment_id: Optional[str] = None,
    ) -> str:
        """Insert a comment on a post and return its id."""
        comment_id = comment_id or uuid.uuid4().hex
        with self._transaction() as cursor:
            cursor.execute(
                "INSERT INTO comments (id, post_id, author_id, content, created_at) VALUES (?, ?, ?, ?, ?)",
                (comment_id, post_id, author_id, content, format_datetime(created_at or utc_now())),
            )
        logger.debug(f"Added comment {comment_id} on post {post_id}")
        return comment_id

    def delete_post(self, post_id: str) -> bool:
        """Delete a post together with its comments."""
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM comments WHERE post_id = ?", (post_id,))
            cursor.execute("DELETE FROM posts WHERE id = ?", (post_id,))
            return cursor.rowcount > 0
