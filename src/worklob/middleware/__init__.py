"""Middleware registration."""

from fastapi import FastAPI

from worklob.config import Settings
from worklob.middleware.cors import setup_cors
from worklob.middleware.error_handler import setup_error_handlers
from worklob.middleware.logging import setup_logging
from worklob.middleware.rate_limit import RateLimitMiddleware
from worklob.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost).
    CORS is added last so its headers are also set on 429 responses.
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
