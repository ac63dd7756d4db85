"""
FastAPI application for the News Tracker REST API.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import ValidationError
from ..tracker import NewsTracker
from .auth import require_admin, require_user
from .logging_middleware import RequestLoggingMiddleware
from .models import (
    AnswerResponse,
    ErrorResponse,
    HealthResponse,
    HistoryResponse,
    MemoryResultModel,
    ProcessContentRequest,
    ProcessContentResponse,
    QueryRequest,
    SearchRequest,
    SearchResponse,
)

logger = logging.getLogger(__name__)

SCHEDULER_ENV = "NEWS_TRACKER_SCHEDULER"


def scheduler_enabled() -> bool:
    """Check if background indexing is enabled via environment."""
    return os.environ.get(SCHEDULER_ENV, "").strip().lower() in ("1", "true", "yes", "on")


def get_tracker(request: Request) -> NewsTracker:
    """Tracker bound to the application, created on first use."""
    state = request.app.state
    if state.tracker is None:
        state.tracker = NewsTracker.from_config()
        state.owns_tracker = True
    return state.tracker


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting News Tracker API")
    scheduler = None
    if app.state.start_scheduler:
        if app.state.tracker is None:
            app.state.tracker = NewsTracker.from_config()
            app.state.owns_tracker = True
        scheduler = app.state.tracker.create_scheduler()
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    # Shutdown
    logger.info("Shutting down News Tracker API")
    if scheduler is not None:
        await scheduler.stop()
    if app.state.owns_tracker and app.state.tracker is not None:
        app.state.tracker.close()
        app.state.tracker = None


def create_app(
    tracker: Optional[NewsTracker] = None,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        tracker: Tracker to serve; built from configuration on first use
            when omitted
        start_scheduler: Run background indexing, defaults to the
            NEWS_TRACKER_SCHEDULER environment variable
    """

    app = FastAPI(
        title="News Tracker API",
        description="""
REST API for the community news tracker.

## Features
- Ask questions about a location, answered from community posts and headlines
- Semantic search over the community memory
- Per-user question history
- Full content reprocessing for administrators

## Authentication
The upstream identity layer forwards the signed-in user in the `X-User-Id` header.
If API keys are configured (via `NEWS_TRACKER_API_KEY` or `NEWS_TRACKER_API_KEYS`),
callers must also send `X-API-Key`. Administrative endpoints require an `X-Admin-Key`
listed in `NEWS_TRACKER_ADMIN_KEYS`.
        """,
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )
    app.state.tracker = tracker
    app.state.owns_tracker = False
    app.state.start_scheduler = scheduler_enabled() if start_scheduler is None else start_scheduler
    app.state.scheduler = None

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.environ.get("NEWS_TRACKER_CORS_ORIGINS", "*").split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(
                error="validation_error",
                message=str(exc),
                detail=exc.field or None,
            ).model_dump(),
        )

    # Register routes
    register_routes(app)

    return app


def register_routes(app: FastAPI):
    """Register all API routes."""

    @app.get(
        "/api/v1/health",
        response_model=HealthResponse,
        tags=["Health"],
        summary="Health check endpoint",
    )
    async def health_check(request: Request):
        """
        Check API health status.

        This endpoint does not require authentication.
        """
        tracker = request.app.state.tracker
        scheduler = request.app.state.scheduler
        return HealthResponse(
            status="healthy",
            version=__version__,
            timestamp=datetime.now(timezone.utc),
            memory_records=tracker.storage.count() if tracker is not None else None,
            scheduler_running=bool(scheduler is not None and scheduler.running),
        )

    @app.post(
        "/api/v1/news-tracker/query",
        response_model=AnswerResponse,
        responses={
            400: {"model": ErrorResponse, "description": "Invalid query"},
            401: {"model": ErrorResponse, "description": "Unauthorized"},
        },
        tags=["News Tracker"],
        summary="Ask a question about a location",
    )
    async def ask(
        body: QueryRequest,
        user: str = Depends(require_user),
        tracker: NewsTracker = Depends(get_tracker),
    ):
        """
        Answer a question from community memory and external headlines.

        Always answers; when every AI provider is unavailable the response
        comes from the static template and `service_status` says so.
        """
        loop = asyncio.get_event_loop()
        answer = await loop.run_in_executor(
            None,
            lambda: tracker.answer(body.query, body.location, user=user),
        )
        return AnswerResponse(**answer.to_dict())

    @app.post(
        "/api/v1/news-tracker/search",
        response_model=SearchResponse,
        responses={
            401: {"model": ErrorResponse, "description": "Unauthorized"},
        },
        tags=["News Tracker"],
        summary="Search community memory",
    )
    async def search(
        body: SearchRequest,
        user: str = Depends(require_user),
        tracker: NewsTracker = Depends(get_tracker),
    ):
        """
        Rank memory records by similarity to the query.
        """
        loop = asyncio.get_event_loop()
        results = await loop.run_in_executor(
            None,
            lambda: tracker.search(body.query, location=body.location, k=body.k),
        )
        return SearchResponse(
            query=body.query,
            location=body.location,
            results=[
                MemoryResultModel(
                    id=r.record.id,
                    source_kind=r.record.source_kind.value,
                    source_id=r.record.source_id,
                    processed_content=r.record.processed_content,
                    location=r.record.location,
                    original_created_at=r.record.original_created_at,
                    score=r.score,
                    match_type=r.match_type,
                )
                for r in results
            ],
        )

    @app.get(
        "/api/v1/news-tracker/history",
        response_model=HistoryResponse,
        responses={
            401: {"model": ErrorResponse, "description": "Unauthorized"},
        },
        tags=["News Tracker"],
        summary="Get question history",
    )
    async def history(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        user: str = Depends(require_user),
        tracker: NewsTracker = Depends(get_tracker),
    ):
        """
        The caller's answered questions, newest first.
        """
        return HistoryResponse(**tracker.history(user, page=page, limit=limit))

    @app.post(
        "/api/v1/news-tracker/process-content",
        response_model=ProcessContentResponse,
        responses={
            401: {"model": ErrorResponse, "description": "Unauthorized"},
            403: {"model": ErrorResponse, "description": "Forbidden"},
        },
        tags=["Admin"],
        summary="Reprocess recent content",
    )
    async def process_content(
        body: Optional[ProcessContentRequest] = None,
        admin: str = Depends(require_admin),
        tracker: NewsTracker = Depends(get_tracker),
    ):
        """
        Re-index the most recent posts and comments.

        Existing memory records are refreshed in place.
        """
        limit = body.limit if body is not None else None
        logger.info(f"Full content reprocessing requested by {admin}")

        # Run synchronous indexing in thread pool
        loop = asyncio.get_event_loop()
        summary = await loop.run_in_executor(
            None,
            tracker.process_all_content,
            limit,
        )
        return ProcessContentResponse(result=summary.to_dict())


# Create default app instance
app = create_app()
