"""
REST API for the News Tracker.

Provides HTTP endpoints for asking questions, searching community memory
and triggering content reprocessing.
"""

from .app import create_app, app
from .models import (
    QueryRequest,
    SearchRequest,
    AnswerResponse,
    SearchResponse,
    HistoryResponse,
    ProcessContentResponse,
    HealthResponse,
    ErrorResponse,
)

__all__ = [
    "create_app",
    "app",
    "QueryRequest",
    "SearchRequest",
    "AnswerResponse",
    "SearchResponse",
    "HistoryResponse",
    "ProcessContentResponse",
    "HealthResponse",
    "ErrorResponse",
]
