"""Redis-backed fixed window rate limiting middleware."""

import time
from collections.abc import Iterable
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from promominer.redis_client import get_redis

# Probes are never throttled
_EXEMPT_PATHS = frozenset({"/health", "/ready", "/version"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per client IP request budget, counted in Redis per window."""

    def __init__(
        self,
        app: Any,  # noqa: ANN401
        requests_per_window: int = 300,
        window_seconds: int = 60,
        exempt_prefixes: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.window_seconds = window_seconds
        self.exempt_prefixes = tuple(exempt_prefixes)

    def _is_exempt(self, path: str) -> bool:
        return path in _EXEMPT_PATHS or (bool(self.exempt_prefixes) and path.startswith(self.exempt_prefixes))

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Count the request; 429 once the window's budget is spent."""
        if self._is_exempt(request.url.path):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        window = int(time.time()) // self.window_seconds
        rate_key = f"ratelimit:miner:{client_ip}:{window}"

        try:
            redis = get_redis()
            pipe = redis.pipeline()
            pipe.incr(rate_key)
            pipe.expire(rate_key, self.window_seconds + 1)
            results: list[Any] = await pipe.execute()
        except RuntimeError:
            # Redis not initialized (tests, local runs): no throttling
            return await call_next(request)

        current_count: int = results[0]
        remaining = max(0, self.requests_per_window - current_count)
        limit_headers = {
            "X-RateLimit-Limit": str(self.requests_per_window),
            "X-RateLimit-Remaining": str(remaining),
        }

        if current_count > self.requests_per_window:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": str(self.window_seconds), **limit_headers},
            )

        response = await call_next(request)
        response.headers.update(limit_headers)
        return response
