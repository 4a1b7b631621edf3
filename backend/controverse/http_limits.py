"""Per-IP request limiting for the HTTP routes.

Every HTTP request (health, stats, static files) counts against the client
IP's budget for the current fixed window. WebSocket traffic is not counted;
chat messages have their own per-participant limiter.
"""
import logging

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Too many requests from this IP"


class IPRateLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests beyond ``limit`` per client IP per ``window_seconds``."""

    def __init__(self, app, limit: int = 100, window_seconds: int = 900) -> None:
        super().__init__(app)
        self.item = RateLimitItemPerSecond(limit, window_seconds)
        self.limiter = FixedWindowRateLimiter(MemoryStorage())

    async def dispatch(self, request: Request, call_next) -> Response:
        client_ip = request.client.host if request.client else "unknown"
        if not self.limiter.hit(self.item, client_ip):
            logger.warning(f"[HTTP] Rate limit exceeded for {client_ip}: {request.url.path}")
            return PlainTextResponse(RATE_LIMIT_MESSAGE, status_code=429)
        return await call_next(request)
