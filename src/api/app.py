"""
FastAPI application for the billing service.

Provides billing, Stripe webhook, marketplace and navigation endpoints.
"""

import time

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from pydantic import ValidationError
from slowapi.errors import RateLimitExceeded
from asgi_correlation_id import CorrelationIdMiddleware
from loguru import logger

from config.settings import get_settings
from config.logging_config import setup_structured_logging
from core.exceptions import ConfigurationError, NotFoundError, OrderStateError
from middleware.error_handler import (
    init_sentry,
    sentry_exception_handler,
    not_found_handler,
    order_state_handler,
    configuration_error_handler,
)
from utils.metrics import get_metrics_collector
from api.rate_limit import limiter
from api.auth import router as auth_router
from api.billing import router as billing_router
from api.stripe_webhooks import router as stripe_router
from api.marketplace import router as marketplace_router
from api.navigation import router as navigation_router
from api.health import router as health_router, VERSION


# ============================================================================
# Middleware
# ============================================================================

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # HSTS only for HTTPS (skip in development)
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all requests with correlation ID, method, path, status, latency."""

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Request-ID", "unknown")
        start_time = time.time()

        with logger.contextualize(correlation_id=correlation_id):
            logger.info(f"{request.method} {request.url.path}")

            response = await call_next(request)

            latency_ms = (time.time() - start_time) * 1000
            user_id = getattr(request.state, "user_id", None)

            if hasattr(request.app.state, 'metrics_collector'):
                request.app.state.metrics_collector.record_request(
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    latency_ms=latency_ms
                )

            logger.bind(
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                latency_ms=round(latency_ms, 2),
                user_id=user_id
            ).info(f"{request.method} {request.url.path} -> {response.status_code}")

            return response


# ============================================================================
# Application Factory
# ============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI application instance
    """
    settings = get_settings()

    app = FastAPI(
        title="Gitroom Billing",
        description="Stripe billing, marketplace payouts and navigation for the Gitroom shell",
        version=VERSION
    )

    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": "Too many requests. Try again later."},
        )

    app.add_exception_handler(NotFoundError, not_found_handler)
    app.add_exception_handler(OrderStateError, order_state_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)

    # Global exception handler for Sentry
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        return await sentry_exception_handler(request, exc)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    # Generates/reads the X-Request-ID header
    app.add_middleware(CorrelationIdMiddleware, validator=lambda x: True)

    @app.on_event("startup")
    async def startup_event():
        """Fail fast if critical settings are invalid."""
        try:
            settings = get_settings()
        except ValidationError as e:
            logger.error(f"Configuration error: {e}")
            raise SystemExit(1)

        setup_structured_logging(
            level=settings.log_level,
            log_file=settings.log_file or None,
            json_output=settings.log_json,
        )
        logger.info(f"Billing {'enabled' if settings.is_billing_enabled else 'disabled'}")
        logger.info(f"Marketplace fee: {settings.fee_percent:g}%")
        if settings.is_billing_enabled and not settings.stripe_secret_key:
            logger.warning("GITROOM_STRIPE_SECRET_KEY is not set - billing endpoints will fail")

        init_sentry(
            dsn=settings.sentry_dsn,
            environment=settings.sentry_environment,
            sample_rate=settings.sentry_traces_sample_rate,
            debug=(settings.sentry_environment == "development")
        )

        app.state.metrics_collector = get_metrics_collector()

        from db import init_db
        init_db()
        logger.info("Database initialized")

    @app.on_event("shutdown")
    async def shutdown_event():
        if hasattr(app.state, 'metrics_collector'):
            app.state.metrics_collector.log_metrics()

    app.include_router(auth_router, prefix="/api")
    app.include_router(billing_router, prefix="/api")
    app.include_router(stripe_router, prefix="/api")
    app.include_router(marketplace_router, prefix="/api")
    app.include_router(navigation_router, prefix="/api")
    app.include_router(health_router, tags=["health"])

    @app.get("/")
    async def root():
        return {
            "name": "Gitroom Billing",
            "version": VERSION,
            "docs": "/docs"
        }

    return app


app = create_app()
