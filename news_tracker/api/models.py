"""
Pydantic models for API request/response schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    """Request model for asking the news tracker a question."""
    query: str = Field(..., description="Question or request about the location")
    location: str = Field(..., description="Location the question is about")


class SearchRequest(BaseModel):
    """Request model for a memory similarity search."""
    query: str = Field(..., min_length=1, description="Free-text search query")
    location: Optional[str] = Field(
        default=None,
        description="Optional case-insensitive location substring filter"
    )
    k: int = Field(default=5, ge=1, le=50, description="Maximum number of results")


class ProcessContentRequest(BaseModel):
    """Request model for full content reprocessing."""
    limit: Optional[int] = Field(
        default=None,
        ge=1,
        le=5000,
        description="Items per kind to reprocess (defaults to the configured limit)"
    )


class NewsArticleModel(BaseModel):
    """External headline."""
    title: str
    published_at: Optional[datetime] = None
    url: Optional[str] = None
    source: str = "News Source"


class CommunityPostModel(BaseModel):
    """Snippet of a community post or comment."""
    id: str
    source_kind: str
    content: str
    date: str
    location: Optional[str] = None


class AnswerResponse(BaseModel):
    """Response model for a composed answer."""
    query_id: Optional[str] = Field(default=None, description="Identifier of the stored query record")
    direct_answer: str = Field(..., description="Answer to the question")
    community_info: str = Field(..., description="What community posts say about the location")
    source: str = Field(..., description="Tier that produced the answer")
    news_summary: str = Field(default="", description="Formatted list of external headlines")
    news_articles: List[NewsArticleModel] = Field(default_factory=list)
    community_posts: List[CommunityPostModel] = Field(default_factory=list)
    related_memory_ids: List[str] = Field(default_factory=list)
    service_status: Optional[str] = Field(
        default=None,
        description="Set when AI services were unavailable"
    )


class MemoryResultModel(BaseModel):
    """A ranked memory record."""
    id: str
    source_kind: str
    source_id: str
    processed_content: str
    location: Optional[str] = None
    original_created_at: datetime
    score: Optional[float] = Field(default=None, description="Dot-product similarity")
    match_type: str = Field(default="semantic", description="semantic or location")


class SearchResponse(BaseModel):
    """Response model for memory search."""
    query: str
    location: Optional[str] = None
    results: List[MemoryResultModel] = Field(default_factory=list)


class QueryHistoryItem(BaseModel):
    """A processed question from the user's history."""
    id: str
    query_text: str
    location_filter: Optional[str] = None
    local_model_response: Optional[str] = None
    external_model_response: Optional[str] = None
    related_memory_ids: List[str] = Field(default_factory=list)
    status: str
    source: Optional[str] = None
    created_at: datetime


class Pagination(BaseModel):
    """Pagination metadata."""
    total: int
    page: int
    limit: int
    pages: int
    has_more: bool


class HistoryResponse(BaseModel):
    """Response model for query history."""
    queries: List[QueryHistoryItem] = Field(default_factory=list)
    pagination: Pagination


class ProcessContentResponse(BaseModel):
    """Response model for full content reprocessing."""
    message: str = Field(default="Content processing completed")
    result: Dict[str, Any] = Field(..., description="Per-kind counters and memory counts")


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str = Field(default="healthy", description="Service health status")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(..., description="Current server timestamp")
    memory_records: Optional[int] = Field(default=None, description="Stored memory records")
    scheduler_running: bool = Field(default=False, description="Whether background indexing is active")


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    detail: Optional[str] = Field(default=None, description="Detailed error information")
