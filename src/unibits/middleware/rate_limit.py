"""Redis fixed-window rate limiting per client IP."""

import time
from typing import Any

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from unibits.redis_client import get_redis

logger = structlog.get_logger()

# Probes must never be throttled
EXEMPT_PATHS = frozenset({"/api/v1/health", "/api/v1/ready"})


def client_key(request: Request) -> str:
    """Peer address of the request.

    Forwarding headers are not read here; behind a proxy, uvicorn's
    ``--proxy-headers``/``--forwarded-allow-ips`` rewrites ``request.client``
    from trusted hops only.
    """
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Count requests per client and window in Redis; reply 429 once over the limit."""

    def __init__(self, app: Any, requests_per_window: int = 100, window_seconds: int = 60) -> None:  # noqa: ANN401
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds

    def _headers(self, remaining: int) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.requests_per_window),
            "X-RateLimit-Remaining": str(remaining),
        }

    async def _count(self, key: str) -> int:
        redis = get_redis()
        pipe = redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, self.window_seconds + 1)
        results: list[Any] = await pipe.execute()
        return int(results[0])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        window = int(time.time()) // self.window_seconds
        key = f"ratelimit:{client_key(request)}:{window}"
        try:
            count = await self._count(key)
        except RuntimeError:
            # Redis not initialised (tests, local runs): no limiting
            return await call_next(request)

        if count > self.requests_per_window:
            logger.info("rate_limited", client=client_key(request), count=count)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later.", "code": "rate_limited"},
                headers={"Retry-After": str(self.window_seconds), **self._headers(0)},
            )

        response = await call_next(request)
        response.headers.update(self._headers(max(0, self.requests_per_window - count)))
        return response
