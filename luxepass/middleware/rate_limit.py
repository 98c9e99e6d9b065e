"""
Rate limiting middleware for the agent dashboard.

In-memory sliding window keyed by client IP; good enough for a single worker.
"""

import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from luxepass.core.config import settings

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """Allows `limit` hits per `window_seconds` for each key."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._hits: dict[str, deque[float]] = defaultdict(deque)

    def hit(self, key: str, limit: int, window_seconds: int) -> bool:
        """Record a hit; return False if the key is already over its limit."""
        now = self._clock()
        hits = self._hits[key]
        while hits and hits[0] <= now - window_seconds:
            hits.popleft()
        if len(hits) >= limit:
            return False
        hits.append(now)
        return True

    def reset(self) -> None:
        self._hits.clear()


limiter = SlidingWindowLimiter()


def get_client_ip(request: Request) -> str:
    """Dashboard caller IP; behind a proxy the first X-Forwarded-For hop wins."""
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if forwarded:
        return forwarded
    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware for specific path prefixes."""

    def __init__(self, app, rate_limited_paths: list[str]):
        super().__init__(app)
        self.rate_limited_paths = rate_limited_paths

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if settings.rate_limit_enabled and any(
            path.startswith(prefix) for prefix in self.rate_limited_paths
        ):
            client_ip = get_client_ip(request)
            window = settings.rate_limit_window_seconds
            if not limiter.hit(client_ip, settings.rate_limit_requests, window):
                logger.warning(
                    f"Rate limit exceeded for {client_ip} on {path} "
                    f"({settings.rate_limit_requests} requests per {window}s)"
                )
                return JSONResponse(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    content={
                        "error": "Rate limit exceeded",
                        "retry_after": window,
                    },
                    headers={"Retry-After": str(window)},
                )

        return await call_next(request)
