"""
Request context middleware.

Every request gets a request_id (from X-Request-ID or generated) and an
optional correlation_id (X-Correlation-ID, passed through). Both are bound
to structlog so every log line of the request carries them, and echoed on
the response.
"""

import re
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from challenge_hub.core.context import (
    set_request_id,
    set_correlation_id,
    generate_request_id,
    clear_context,
)

logger = structlog.get_logger(__name__)

# Incoming ids end up in log lines
MAX_ID_LENGTH = 64
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")


def _validate_id(value: Optional[str]) -> Optional[str]:
    """Return the id if it is short and log-safe, else None."""
    if not value:
        return None
    if len(value) > MAX_ID_LENGTH:
        return None
    if not SAFE_ID_PATTERN.match(value):
        return None
    return value


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Sets request_id / correlation_id for the request and cleans them up after.

    Order: add after CORS so that preflight responses stay untouched.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _validate_id(request.headers.get("X-Request-ID")) or generate_request_id()
        set_request_id(request_id)
        request.state.request_id = request_id

        correlation_id = _validate_id(request.headers.get("X-Correlation-ID"))
        if correlation_id:
            set_correlation_id(correlation_id)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            correlation_id=correlation_id,
            path=request.url.path,
            method=request.method,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            if correlation_id:
                response.headers["X-Correlation-ID"] = correlation_id
            return response
        finally:
            clear_context()
            structlog.contextvars.clear_contextvars()
