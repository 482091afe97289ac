# app/correlation.py
"""
Correlation ID middleware for request tracing.

Provides:
- X-Request-Id header handling (accepts client-provided or generates UUID4)
- A context variable so log records carry the request ID
- Response header injection for traceability
"""
from __future__ import annotations

import contextvars
import logging
import re
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

MAX_REQUEST_ID_LENGTH = 64
SAFE_REQUEST_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)


def validate_request_id(request_id: Optional[str]) -> Optional[str]:
    """Return a client-provided request ID if it is short and log-safe, else None."""
    if not request_id:
        return None
    if len(request_id) > MAX_REQUEST_ID_LENGTH:
        return None
    if not SAFE_REQUEST_ID_PATTERN.match(request_id):
        return None
    return request_id


def current_request_id() -> Optional[str]:
    """Request ID of the request being handled, if any."""
    return _request_id_var.get()


class RequestIdLogFilter(logging.Filter):
    """Adds `request_id` to every log record ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_request_id() or "-"
        return True


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware that handles X-Request-Id for request correlation.

    - Reads X-Request-Id from incoming request (validates format)
    - Generates UUID4 if not provided or invalid
    - Stores it in request.state and the logging context
    - Adds X-Request-Id to all responses
    """

    async def dispatch(self, request: Request, call_next):
        request_id = validate_request_id(request.headers.get("x-request-id")) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = _request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            _request_id_var.reset(token)

        response.headers["X-Request-Id"] = request_id
        return response
