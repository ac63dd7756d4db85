"""
Access logging for the HTTP API.

Every request gets a short correlation id, taken from the caller's
X-Request-ID header when present. The id is bound to the logging context
for the duration of the request so that indexer, retriever and composer
log lines carry it too, and it is echoed back on the response.
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..observability.logging import request_id_var

logger = logging.getLogger("news_tracker.api.access")

REQUEST_ID_HEADER = "X-Request-ID"

# Polled by load balancers; logged at debug only
QUIET_PATHS = frozenset({"/health"})


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def client_address(request: Request) -> str:
    """Caller address, honouring the first hop of X-Forwarded-For."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per request with status, user and latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
        user = request.headers.get("X-User-Id", "-")
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.error(
                f"{request.method} {request.url.path} user={user} "
                f"failed with {type(e).__name__}: {e} after {elapsed_ms:.1f}ms"
            )
            raise
        finally:
            request_id_var.reset(token)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.log(
            level,
            f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} "
            f"user={user} client={client_address(request)} {elapsed_ms:.1f}ms",
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
