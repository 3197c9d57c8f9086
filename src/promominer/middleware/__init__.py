"""Middleware registration."""

from fastapi import FastAPI

from promominer.config import Settings
from promominer.middleware.cors import setup_cors
from promominer.middleware.error_handler import setup_error_handlers
from promominer.middleware.logging import setup_logging
from promominer.middleware.rate_limit import RateLimitMiddleware
from promominer.middleware.request_id import RequestIdMiddleware

# Service-to-service calls (prize wheel, lottery) are trusted and unthrottled
INTERNAL_PREFIXES = ("/api/v1/miner/internal/",)


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Install logging, JSON error handlers and the middleware stack.

    Starlette runs middleware last-added-first, so the order below yields
    CORS -> request id -> rate limit -> routes. CORS has to be outermost for
    browsers to see 429 bodies.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        exempt_prefixes=INTERNAL_PREFIXES,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
