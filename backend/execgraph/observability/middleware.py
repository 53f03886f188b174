"""FastAPI middleware for request context."""

from __future__ import annotations

import logging
import time

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from execgraph.observability.request_context import bind_request_context, get_request_id, reset_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
ORG_HEADER = "X-Org-Id"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request id and tenant for the request and echo the request id back."""

    async def dispatch(self, request: Request, call_next) -> Response:
        token = bind_request_context(request.headers.get(REQUEST_ID_HEADER), request.headers.get(ORG_HEADER))
        request_id = get_request_id()
        request.state.request_id = request_id

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("request.id", request_id)

        start_time = time.monotonic()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            logger.info(
                "[Request] %s %s %s",
                request.method,
                request.url.path,
                status_code,
                extra={"duration_ms": round((time.monotonic() - start_time) * 1000, 2)},
            )
            reset_request_context(token)
