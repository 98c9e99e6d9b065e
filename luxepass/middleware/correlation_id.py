"""
Correlation ID middleware for request tracing.

The id comes from the X-Correlation-ID request header (or a fresh UUID), is echoed
back on the response, and is attached to log records and SystemEvents. Background
jobs re-enter the same id through correlation_scope().
"""

import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

HEADER_CORRELATION_ID = "X-Correlation-ID"
MAX_CORRELATION_ID_LENGTH = 128

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id(request: Request | None = None) -> str | None:
    """Prefer request.state, then the contextvar. None outside a request or job."""
    if request is not None:
        cid = getattr(request.state, "correlation_id", None)
        if cid:
            return cid
    return _correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: str | None) -> Iterator[None]:
    """Bind a correlation id for the duration of a background job."""
    token = _correlation_id_var.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id_var.reset(token)


def _pick_correlation_id(incoming: str | None) -> str:
    if incoming:
        incoming = incoming.strip()
        if incoming and len(incoming) <= MAX_CORRELATION_ID_LENGTH:
            return incoming
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable):
        cid = _pick_correlation_id(request.headers.get(HEADER_CORRELATION_ID))
        request.state.correlation_id = cid
        with correlation_scope(cid):
            response = await call_next(request)
        response.headers[HEADER_CORRELATION_ID] = cid
        return response
