"""FastAPI middleware for request/response handling."""

from __future__ import annotations

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from mangaquest.core.tracing import TRACE_HEADER, generate_trace_id, trace_context

logger = structlog.get_logger("mangaquest.middleware")


class TracingMiddleware(BaseHTTPMiddleware):
    """Attach a trace ID to every request and echo it in the response headers."""

    async def dispatch(self, request: Request, call_next):
        """Reuse an incoming X-Trace-ID header or generate a new one."""
        trace_id = request.headers.get(TRACE_HEADER) or generate_trace_id()

        with trace_context(trace_id):
            logger.debug("Processing request", method=request.method, path=request.url.path)

            response = await call_next(request)
            response.headers[TRACE_HEADER] = trace_id

            logger.debug(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
            )
            return response
