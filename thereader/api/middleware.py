"""FastAPI middleware for request logging and context management."""

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for structured logging of HTTP requests and responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """
        Log request start and completion with correlation ID.

        Capture session tokens appear in paths, so only the route template
        is logged once routing has happened.
        """
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        logger.debug("request_started", method=request.method, request_id=request_id)

        response = await call_next(request)

        route = request.scope.get("route")
        duration = time.time() - start_time
        logger.info(
            "request_completed",
            method=request.method,
            path=getattr(route, "path", request.url.path),
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
            request_id=request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response
