"""
HTTP middleware for the identify API

Provides:
- Access logging, one line per request
- Request body size limit (413)
- Rate limiting by client IP (429)
"""
import logging
import time
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

HEALTH_PATHS = {"/"}


def client_ip(request: Request) -> str:
    """Client IP from the request, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


# =============================================================================
# Access log
# =============================================================================


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and latency for every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s %s %d %.1fms",
            client_ip(request),
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


# =============================================================================
# Body size limit
# =============================================================================


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared Content-Length exceeds max_bytes."""

    def __init__(self, app: ASGIApp, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        length = request.headers.get("Content-Length", "")
        if length.isdigit() and int(length) > self.max_bytes:
            logger.warning(
                "Payload too large: %s bytes on %s %s", length, request.method, request.url.path
            )
            return JSONResponse(status_code=413, content={"error": "Payload too large"})
        return await call_next(request)


# =============================================================================
# Rate limiting by IP
# =============================================================================


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding-window rate limiting by client IP.

    Counts are per process; a multi-worker deployment gets one budget per worker.
    Responses carry RateLimit-Limit / RateLimit-Remaining / RateLimit-Reset.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: dict[str, list[float]] = {}

    def _check(self, ip: str) -> tuple[bool, int, int]:
        """Record a hit for ip; returns (limited, remaining, reset_seconds)."""
        now = self._clock()
        window_start = now - self.window_seconds
        hits = [t for t in self._requests.get(ip, []) if t > window_start]

        if len(hits) >= self.max_requests:
            self._requests[ip] = hits
            reset = int(hits[0] + self.window_seconds - now) + 1
            return True, 0, reset

        hits.append(now)
        self._requests[ip] = hits
        reset = int(hits[0] + self.window_seconds - now) + 1
        return False, self.max_requests - len(hits), reset

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in HEALTH_PATHS:
            return await call_next(request)

        ip = client_ip(request)
        limited, remaining, reset = self._check(ip)
        headers = {
            "RateLimit-Limit": str(self.max_requests),
            "RateLimit-Remaining": str(remaining),
            "RateLimit-Reset": str(reset),
        }

        if limited:
            logger.warning("Rate limit exceeded for %s on %s", ip, request.url.path)
            return JSONResponse(
                status_code=429,
                content={"error": "Too many requests, please try again later"},
                headers={**headers, "Retry-After": str(reset)},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
