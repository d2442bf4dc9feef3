"""Middleware and exception handler registration."""

from fastapi import FastAPI

from unibits.config import Settings
from unibits.middleware.cors import setup_cors
from unibits.middleware.error_handler import setup_error_handlers
from unibits.middleware.logging import setup_logging
from unibits.middleware.rate_limit import RateLimitMiddleware
from unibits.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Wire logging, error handlers and middleware onto the app.

    Starlette runs middleware in reverse-add order, so CORS is added last to be
    outermost and decorate 429 responses too.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
