"""
Memory type definitions for the news memory pipeline.
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a datetime from string or return as-is if already datetime.

    Handles ISO format strings including 'Z' suffix for UTC. The result
    is always timezone-aware (UTC).

    Args:
        value: String or datetime to parse

    Returns:
        Parsed datetime or None
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        # Handle 'Z' suffix for UTC
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        return ensure_utc(datetime.fromisoformat(value))
    return None


def format_datetime(value: datetime) -> str:
    """Serialize a datetime so that lexical order matches time order."""
    return ensure_utc(value).isoformat(timespec="microseconds")


class SourceKind(str, Enum):
    """Collections a memory record can be derived from."""
    POST = "post"
    COMMENT = "comment"


@dataclass(frozen=True)
class Embedded:
    """An embedding vector produced by the embedding provider."""

    vector: Tuple[float, ...]

    def __post_init__(self):
        object.__setattr__(self, "vector", tuple(float(v) for v in self.vector))

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class Unembedded:
    """Marker for records whose embedding call failed."""

    reason: Optional[str] = None

    @property
    def dimension(self) -> int:
        return 0


Embedding = Union[Embedded, Unembedded]


def make_memory_id(source_kind: SourceKind, source_id: str) -> str:
    """Derive the stable record id for a source item."""
    digest = hashlib.sha256(f"{source_kind.value}:{source_id}".encode()).hexdigest()[:16]
    return f"mem_{digest}"


@dataclass
class MemoryRecord:
    """
    A processed, searchable unit derived from one post or comment.

    Attributes:
        source_kind: Collection the original content came from
        source_id: Identifier of the original post or comment
        processed_content: Summarized text used as retrieval context
        original_created_at: Creation time of the source, used as watermark
        location: Source location, falling back to the author's location
        embedding: Embedded vector or Unembedded marker
        original_content: Raw source text, kept for debugging only
        last_updated: Time of the last processing attempt
        id: Stable identifier derived from (source_kind, source_id)
    """

    source_kind: SourceKind
    source_id: str
    processed_content: str
    original_created_at: datetime
    location: Optional[str] = None
    embedding: Embedding = field(default_factory=Unembedded)
    original_content: Optional[str] = None
    last_updated: Optional[datetime] = None
    id: Optional[str] = None

    def __post_init__(self):
        """Initialize defaults after creation."""
        self.source_kind = SourceKind(self.source_kind)
        self.source_id = str(self.source_id)
        self.original_created_at = ensure_utc(self.original_created_at)
        if self.last_updated is None:
            self.last_updated = utc_now()
        if self.id is None:
            self.id = make_memory_id(self.source_kind, self.source_id)

    @property
    def is_embedded(self) -> bool:
        return isinstance(self.embedding, Embedded)

    def to_dict(self, include_embedding: bool = True) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "id": self.id,
            "source_kind": self.source_kind.value,
            "source_id": self.source_id,
            "processed_content": self.processed_content,
            "location": self.location,
            "original_created_at": self.original_created_at.isoformat(),
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "embedded": self.is_embedded,
        }
        if include_embedding:
            data["embedding"] = (
                list(self.embedding.vector) if isinstance(self.embedding, Embedded) else None
            )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryRecord":
        """Create from dictionary."""
        vector = data.get("embedding")
        return cls(
            id=data.get("id"),
            source_kind=SourceKind(data["source_kind"]),
            source_id=data["source_id"],
            processed_content=data.get("processed_content", ""),
            location=data.get("location"),
            original_created_at=parse_datetime(data["original_created_at"]),
            last_updated=parse_datetime(data.get("last_updated")),
            embedding=Embedded(vector) if vector else Unembedded(),
            original_content=data.get("original_content"),
        )


class QueryStatus(str, Enum):
    """Lifecycle of a user question."""
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass
class QueryRecord:
    """
    Audit record of one user question and the answer it received.

    `source` names the fallback tier that produced the final answer.
    """

    user: str
    query_text: str
    location_filter: Optional[str] = None
    local_model_response: Optional[str] = None
    external_model_response: Optional[str] = None
    related_memory_ids: List[str] = field(default_factory=list)
    status: QueryStatus = QueryStatus.PENDING
    source: Optional[str] = None
    processing_error: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[str] = None

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = utc_now()
        if self.id is None:
            self.id = f"qry_{uuid.uuid4().hex[:16]}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user": self.user,
            "query_text": self.query_text,
            "location_filter": self.location_filter,
            "local_model_response": self.local_model_response,
            "external_model_response": self.external_model_response,
            "related_memory_ids": list(self.related_memory_ids),
            "status": self.status.value,
            "source": self.source,
            "processing_error": self.processing_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class MemorySearchResult:
    """
    Result of a memory search.

    Attributes:
        record: The memory record
        score: Dot product of the query and record embeddings, or None
            when the record was matched by location only
    """

    record: MemoryRecord
    score: Optional[float] = None

    @property
    def match_type(self) -> str:
        return "semantic" if self.score is not None else "location"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record": self.record.to_dict(include_embedding=False),
            "score": self.score,
            "match_type": self.match_type,
        }


@dataclass
class KindSummary:
    """Per-kind counters for one indexer run."""

    kind: SourceKind
    processed: int = 0
    fallbacks: int = 0
    skipped: int = 0
    errors: int = 0
    watermark: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "fallbacks": self.fallbacks,
            "skipped": self.skipped,
            "error": self.errors,
            "watermark": self.watermark.isoformat() if self.watermark else None,
        }


@dataclass
class IndexRunSummary:
    """Outcome of an indexer run across both source kinds."""

    kinds: Dict[SourceKind, KindSummary] = field(default_factory=dict)
    memory_before: int = 0
    memory_after: int = 0

    @property
    def added(self) -> int:
        return self.memory_after - self.memory_before

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            f"{kind.value}s": summary.to_dict()
            for kind, summary in self.kinds.items()
        }
        result["memoryItems"] = {
            "before": self.memory_before,
            "after": self.memory_after,
            "added": self.added,
        }
        return result
