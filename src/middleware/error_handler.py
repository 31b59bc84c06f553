"""
Error tracking and global exception handling for the billing service.

Integrates Sentry for production error aggregation and maps domain
errors to HTTP responses.
"""

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger
import logging

from core.exceptions import ConfigurationError, NotFoundError, OrderStateError


def init_sentry(
    dsn: str,
    environment: str,
    sample_rate: float = 0.1,
    debug: bool = False
) -> None:
    """
    Initialize Sentry with FastAPI integration.

    Args:
        dsn: Sentry DSN from dashboard
        environment: 'development' or 'production'
        sample_rate: Traces sample rate (1.0 for dev, 0.1 for prod)
        debug: Enable debug mode (verbose logging)
    """
    if not dsn:
        logger.warning("SENTRY_DSN not configured - error tracking disabled")
        return

    traces_sample_rate = 1.0 if environment == "development" else sample_rate

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=traces_sample_rate,
        debug=debug,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            )
        ],
        # Filter out health check and webhook noise
        before_send_transaction=lambda event, hint: None
        if event.get("transaction", "").startswith(("/health", "/api/stripe")) else event,
        before_send=_filter_sensitive_data
    )

    logger.info(f"Sentry initialized: environment={environment}, traces_sample_rate={traces_sample_rate}")


def _filter_sensitive_data(event, hint):
    """
    Filter sensitive data before sending to Sentry.

    Removes: Authorization headers, cookies, Stripe signatures, secrets.
    """
    if "request" in event:
        event["request"]["headers"] = {
            k: v for k, v in event["request"].get("headers", {}).items()
            if k.lower() not in ["authorization", "cookie", "stripe-signature"]
        }

    if "extra" in event:
        sensitive_keys = ["password", "token", "secret", "jwt_secret", "stripe_secret_key"]
        for key in sensitive_keys:
            event["extra"].pop(key, None)

    return event


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": exc.message})


async def order_state_handler(request: Request, exc: OrderStateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": exc.message})


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error(f"Configuration error on {request.url.path}: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Billing is not configured"})


async def sentry_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler that captures errors in Sentry.

    Handles all uncaught exceptions, logs them, and returns
    generic error message to user.
    """
    sentry_sdk.capture_exception(exc)

    logger.opt(exception=exc).error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc}"
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "An error occurred. Our team has been notified."}
    )


def set_user_context(user_id: str, email: str = None, username: str = None) -> None:
    """
    Set user context in Sentry for error tracking.

    Call this after authentication to associate errors with users.
    """
    sentry_sdk.set_user({
        "id": user_id,
        "email": email,
        "username": username
    })
