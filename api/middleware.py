"""Request context middleware using ContextVar.

Takes the request id from the X-Request-ID header (or generates one),
binds it in a ContextVar so downstream log lines carry it without explicit
parameter passing. The id is echoed in the response, and one access line is
logged per request.
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.observability.logging_setup import (
    bind_request_id,
    unbind_request_id,
)

logger = logging.getLogger("api.access")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the lifetime of each request.

    Priority:
    1. X-Request-ID header (explicit, e.g. from a proxy)
    2. A fresh uuid4 hex
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = bind_request_id(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "%s %s -> %d (%.1f ms)",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
            return response
        finally:
            unbind_request_id(token)
