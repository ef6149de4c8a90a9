"""
RequestContext Middleware - tags every request with an id.

The id is stored on ``request.state.request_id``, bound into the structlog
context for every log line emitted while the request is handled, and echoed
back in the ``X-Request-ID`` response header. An incoming ``X-Request-ID``
from the edge proxy is reused.
"""

import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from structlog.contextvars import bind_contextvars, unbind_contextvars

from engagement.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        bind_contextvars(request_id=request_id)
        try:
            logger.debug("Request started", method=request.method, path=request.url.path)
            response = await call_next(request)
        finally:
            unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
