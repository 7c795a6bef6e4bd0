"""
RequestContext Middleware - tags every request with a request_id.

The id is stored on request.state.request_id, bound into the structlog
context for every entry logged during the request, and echoed in the
X-Request-ID response header for client-side tracing.
"""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from dutywatch.infrastructure.observability.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
)

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Caller-assigned id wins
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        clear_request_context()
        bind_request_context(request_id=request_id)
        logger.debug("Request started", method=request.method, path=request.url.path)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
