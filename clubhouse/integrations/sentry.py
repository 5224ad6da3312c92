# =============================================================================
# Sentry Error Tracking Integration
# =============================================================================
#
# Setup:
#   1. Create account at sentry.io
#   2. Create a Python project
#   3. Copy DSN to .env: SENTRY_DSN=https://...@sentry.io/...
#
# Usage:
#   init_sentry(settings) runs in the app lifespan (clubhouse/api/app.py)
#
# =============================================================================

from __future__ import annotations

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from clubhouse.config import Settings
from clubhouse.errors import ClubhouseError

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = ("authorization", "cookie", "set-cookie")


def init_sentry(settings: Settings) -> bool:
    """
    Initialize Sentry error tracking.

    Returns True if initialized, False if skipped.
    """
    if not settings.sentry_dsn:
        logger.info("SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,

        # Performance monitoring (sample 10% of transactions in prod)
        traces_sample_rate=0.1 if settings.is_production else 1.0,

        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            StarletteIntegration(transaction_style="endpoint"),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],

        # Emails and tokens stay out of reports
        send_default_pii=False,

        before_send=filter_event,
        before_send_transaction=_filter_transactions,
    )

    logger.info(f"Sentry initialized for {settings.environment}")
    return True


def filter_event(event: dict, hint: dict) -> dict | None:
    """Drop expected client errors and scrub credentials from requests."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, ClubhouseError) and exc_value.status_code < 500:
            return None

    request = event.get("request")
    if request and "headers" in request:
        headers = request["headers"]
        for key in list(headers.keys()):
            if key.lower() in SENSITIVE_HEADERS:
                headers[key] = "[Filtered]"
    if request and "cookies" in request:
        request["cookies"] = "[Filtered]"

    return event


def _filter_transactions(event: dict, hint: dict) -> dict | None:
    """Skip health checks."""
    if event.get("transaction", "") in ("/health", "/healthz"):
        return None
    return event


def set_user(user_id: str) -> None:
    """Set the current user context for error reports."""
    if sentry_sdk.get_client().is_active():
        sentry_sdk.set_user({"id": user_id})
