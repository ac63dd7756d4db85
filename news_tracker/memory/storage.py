"""
Memory storage backends.

Persists memory records, the indexer watermark state and the query
audit history.
"""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..db import SQLiteBackend
from .types import (
    Embedded,
    MemoryRecord,
    QueryRecord,
    QueryStatus,
    SourceKind,
    Unembedded,
    format_datetime,
    parse_datetime,
)


logger = logging.getLogger(__name__)


def location_matches(location: Optional[str], location_filter: str) -> bool:
    """Case-insensitive substring match of a record location."""
    return location_filter.casefold() in (location or "").casefold()


class MemoryStorage(ABC):
    """Abstract base class for memory storage backends."""

    @abstractmethod
    def upsert(self, record: MemoryRecord) -> str:
        """
        Insert or replace the record keyed by (source_kind, source_id).

        Args:
            record: The memory record to store

        Returns:
            The ID of the stored record
        """
        pass

    @abstractmethod
    def get(self, record_id: str) -> Optional[MemoryRecord]:
        """Retrieve a memory record by ID."""
        pass

    @abstractmethod
    def find_by_source(self, source_kind: SourceKind, source_id: str) -> Optional[MemoryRecord]:
        """Retrieve the record derived from a given source item."""
        pass

    def exists(self, source_kind: SourceKind, source_id: str) -> bool:
        """Check whether a record exists for a source item."""
        return self.find_by_source(source_kind, source_id) is not None

    @abstractmethod
    def list_records(
        self,
        source_kind: Optional[SourceKind] = None,
        location_filter: Optional[str] = None,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> List[MemoryRecord]:
        """
        List records in storage order (insertion order).

        Args:
            source_kind: Only records of this kind
            location_filter: Case-insensitive substring of the record location
            newest_first: Order by original creation time, newest first
            limit: Maximum number of records

        Returns:
            Matching records
        """
        pass

    @abstractmethod
    def delete(self, record_id: str) -> bool:
        """Delete a record. Returns True if it existed."""
        pass

    @abstractmethod
    def count(self, source_kind: Optional[SourceKind] = None) -> int:
        """Count records, optionally of one kind."""
        pass

    @abstractmethod
    def max_created_at(self, source_kind: SourceKind) -> Optional[datetime]:
        """Latest original_created_at among records of a kind."""
        pass

    @abstractmethod
    def get_resolved_watermark(self, source_kind: SourceKind) -> Optional[datetime]:
        """High-water mark of items the indexer has resolved for a kind."""
        pass

    @abstractmethod
    def advance_resolved_watermark(self, source_kind: SourceKind, value: datetime) -> None:
        """Move the resolved high-water mark forward, never backward."""
        pass

    def get_watermark(self, source_kind: SourceKind) -> Optional[datetime]:
        """
        Timestamp boundary for incremental indexing of a kind.

        The maximum of the newest stored record and the resolved
        high-water mark, so neither stored records nor deliberately
        skipped items are fetched again.
        """
        candidates = [
            value
            for value in (
                self.max_created_at(source_kind),
                self.get_resolved_watermark(source_kind),
            )
            if value is not None
        ]
        return max(candidates) if candidates else None

    @abstractmethod
    def save_query(self, query: QueryRecord) -> str:
        """Insert or update a query record."""
        pass

    @abstractmethod
    def get_query(self, query_id: str) -> Optional[QueryRecord]:
        """Retrieve a query record by ID."""
        pass

    @abstractmethod
    def list_queries(
        self,
        user: str,
        status: Optional[QueryStatus] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> List[QueryRecord]:
        """List a user's queries, newest first."""
        pass

    @abstractmethod
    def count_queries(self, user: str, status: Optional[QueryStatus] = None) -> int:
        """Count a user's queries."""
        pass


class SQLiteStorage(SQLiteBackend, MemoryStorage):
    """
    SQLite-based memory storage.

    Provides persistent storage with a uniqueness constraint on
    (source_kind, source_id). Thread-safe with one connection per thread.
    """

    SCHEMA_VERSION = 1
    VERSION_TABLE = "memory_schema_version"

    def _apply_migrations(self, cursor: sqlite3.Cursor, from_version: int):
        """Apply schema migrations."""
        if from_version < 1:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS memory_records (
                    id TEXT PRIMARY KEY,
                    source_kind TEXT NOT NULL,
                    source_id TEXT NOT NULL,
                    processed_content TEXT NOT NULL,
                    original_content TEXT,
                    location TEXT,
                    original_created_at TEXT NOT NULL,
                    embedding TEXT,
                    last_updated TEXT NOT NULL,
                    UNIQUE (source_kind, source_id)
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_memory_kind_created
                ON memory_records(source_kind, original_created_at DESC)
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_memory_location
                ON memory_records(location)
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS index_state (
                    source_kind TEXT PRIMARY KEY,
                    resolved_watermark TEXT NOT NULL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS query_records (
                    id TEXT PRIMARY KEY,
                    user TEXT NOT NULL,
                    query_text TEXT NOT NULL,
                    location_filter TEXT,
                    local_model_response TEXT,
                    external_model_response TEXT,
                    related_memory_ids TEXT,
                    status TEXT NOT NULL,
                    source TEXT,
                    processing_error TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_queries_user_created
                ON query_records(user, created_at DESC)
            """)

    # ========== Memory records ==========

    def upsert(self, record: MemoryRecord) -> str:
        """Insert or replace a record; the id is stable per source item."""
        embedding = None
        if isinstance(record.embedding, Embedded):
            embedding = json.dumps(list(record.embedding.vector))

        with self._transaction() as cursor:
            cursor.execute("""
                INSERT INTO memory_records (
                    id, source_kind, source_id, processed_content,
                    original_content, location, original_created_at,
                    embedding, last_updated
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (source_kind, source_id) DO UPDATE SET
                    processed_content = excluded.processed_content,
                    original_content = excluded.original_content,
                    location = excluded.location,
                    original_created_at = excluded.original_created_at,
                    embedding = excluded.embedding,
                    last_updated = excluded.last_updated
            """, (
                record.id,
                record.source_kind.value,
                record.source_id,
                record.processed_content,
                record.original_content,
                record.location,
                format_datetime(record.original_created_at),
                embedding,
                format_datetime(record.last_updated),
            ))

        logger.debug(f"Stored memory record {record.id} ({record.source_kind.value} {record.source_id})")
        return record.id

    def _row_to_record(self, row: sqlite3.Row) -> MemoryRecord:
        """Convert a database row to a MemoryRecord."""
        vector = json.loads(row["embedding"]) if row["embedding"] else None

        return MemoryRecord(
            id=row["id"],
            source_kind=SourceKind(row["source_kind"]),
            source_id=row["source_id"],
            processed_content=row["processed_content"],
            original_content=row["original_content"],
            location=row["location"],
            original_created_at=parse_datetime(row["original_created_at"]),
            embedding=Embedded(vector) if vector else Unembedded(),
            last_updated=parse_datetime(row["last_updated"]),
        )

    def get(self, record_id: str) -> Optional[MemoryRecord]:
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM memory_records WHERE id = ?", (record_id,))
            row = cursor.fetchone()
        return self._row_to_record(row) if row else None

    def find_by_source(self, source_kind: SourceKind, source_id: str) -> Optional[MemoryRecord]:
        with self._transaction() as cursor:
            cursor.execute(
                "SELECT * FROM memory_records WHERE source_kind = ? AND source_id = ?",
                (SourceKind(source_kind).value, str(source_id)),
            )
            row = cursor.fetchone()
        return self._row_to_record(row) if row else None

    def exists(self, source_kind: SourceKind, source_id: str) -> bool:
        with self._transaction() as cursor:
            cursor.execute(
                "SELECT 1 FROM memory_records WHERE source_kind = ? AND source_id = ?",
                (SourceKind(source_kind).value, str(source_id)),
            )
            return cursor.fetchone() is not None

    def list_records(
        self,
        source_kind: Optional[SourceKind] = None,
        location_filter: Optional[str] = None,
        newest_first: bool = False,
        limit: Optional[int] = None,
    ) -> List[MemoryRecord]:
        sql = "SELECT * FROM memory_records"
        params: list = []
        if source_kind is not None:
            sql += " WHERE source_kind = ?"
            params.append(SourceKind(source_kind).value)
        if newest_first:
            sql += " ORDER BY original_created_at DESC, rowid ASC"
        else:
            sql += " ORDER BY rowid ASC"

        with self._transaction() as cursor:
            cursor.execute(sql, params)
            rows = cursor.fetchall()

        # Location matching happens here rather than in SQL: LIKE and
        # LOWER only fold ASCII.
        records = []
        for row in rows:
            if location_filter and not location_matches(row["location"], location_filter):
                continue
            records.append(self._row_to_record(row))
            if limit is not None and len(records) >= limit:
                break
        return records

    def delete(self, record_id: str) -> bool:
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM memory_records WHERE id = ?", (record_id,))
            deleted = cursor.rowcount > 0

        if deleted:
            logger.debug(f"Deleted memory record: {record_id}")
        return deleted

    def count(self, source_kind: Optional[SourceKind] = None) -> int:
        with self._transaction() as cursor:
            if source_kind is None:
                cursor.execute("SELECT COUNT(*) AS count FROM memory_records")
            else:
                cursor.execute(
                    "SELECT COUNT(*) AS count FROM memory_records WHERE source_kind = ?",
                    (SourceKind(source_kind).value,),
                )
            return cursor.fetchone()["count"]

    # ========== Watermarks ==========

    def max_created_at(self, source_kind: SourceKind) -> Optional[datetime]:
        with self._transaction() as cursor:
            cursor.execute(
                "SELECT MAX(original_created_at) AS newest FROM memory_records WHERE source_kind = ?",
                (SourceKind(source_kind).value,),
            )
            row = cursor.fetchone()
        return parse_datetime(row["newest"])

    def get_resolved_watermark(self, source_kind: SourceKind) -> Optional[datetime]:
        with self._transaction() as cursor:
            cursor.execute(
                "SELECT resolved_watermark FROM index_state WHERE source_kind = ?",
                (SourceKind(source_kind).value,),
            )
            row = cursor.fetchone()
        return parse_datetime(row["resolved_watermark"]) if row else None

    def advance_resolved_watermark(self, source_kind: SourceKind, value: datetime) -> None:
        with self._transaction() as cursor:
            cursor.execute("""
                INSERT INTO index_state (source_kind, resolved_watermark)
                VALUES (?, ?)
                ON CONFLICT (source_kind) DO UPDATE SET
                    resolved_watermark = MAX(resolved_watermark, excluded.resolved_watermark)
            """, (SourceKind(source_kind).value, format_datetime(value)))

    # ========== Query history ==========

    def save_query(self, query: QueryRecord) -> str:
        with self._transaction() as cursor:
            cursor.execute("""
                INSERT OR REPLACE INTO query_records (
                    id, user, query_text, location_filter,
                    local_model_response, external_model_response,
                    related_memory_ids, status, source, processing_error,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                query.id,
                query.user,
                query.query_text,
                query.location_filter,
                query.local_model_response,
                query.external_model_response,
                json.dumps(query.related_memory_ids),
                query.status.value,
                query.source,
                query.processing_error,
                format_datetime(query.created_at),
            ))
        return query.id

    def _row_to_query(self, row: sqlite3.Row) -> QueryRecord:
        return QueryRecord(
            id=row["id"],
            user=row["user"],
            query_text=row["query_text"],
            location_filter=row["location_filter"],
            local_model_response=row["local_model_response"],
            external_model_response=row["external_model_response"],
            related_memory_ids=json.loads(row["related_memory_ids"] or "[]"),
            status=QueryStatus(row["status"]),
            source=row["source"],
            processing_error=row["processing_error"],
            created_at=parse_datetime(row["created_at"]),
        )

    def get_query(self, query_id: str) -> Optional[QueryRecord]:
        with self._transaction() as cursor:
            cursor.execute("SELECT * FROM query_records WHERE id = ?", (query_id,))
            row = cursor.fetchone()
        return self._row_to_query(row) if row else None

    def list_queries(
        self,
        user: str,
        status: Optional[QueryStatus] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> List[QueryRecord]:
        sql = "SELECT * FROM query_records WHERE user = ?"
        params: list = [user]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)
        sql += " ORDER BY created_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._transaction() as cursor:
            cursor.execute(sql, params)
            return [self._row_to_query(row) for row in cursor.fetchall()]

    def count_queries(self, user: str, status: Optional[QueryStatus] = None) -> int:
        sql = "SELECT COUNT(*) AS count FROM query_records WHERE user = ?"
        params: list = [user]
        if status is not None:
            sql += " AND status = ?"
            params.append(status.value)

        with self._transaction() as cursor:
            cursor.execute(sql, params)
            return cursor.fetchone()["count"]

    def clear_all(self):
        """Clear all memory records and indexer state. Use with caution!"""
        with self._transaction() as cursor:
            cursor.execute("DELETE FROM memory_records")
            cursor.execute("DELETE FROM index_state")
        logger.warning("Cleared all memory records")
