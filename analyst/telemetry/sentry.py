"""
Sentry integration for error tracking.

Security:
- API key headers are scrubbed before sending
- Query strings with keys/tokens are redacted (Gemini passes ?key=)
- Request bodies (fan questions) are NOT captured
- PII is disabled
"""

import os
import re
import logging
from typing import Optional

logger = logging.getLogger(__name__)

_sentry_initialized = False

SENSITIVE_HEADERS = [
    "x-api-key",
    "x-apisports-key",
    "x-rapidapi-key",
    "authorization",
    "cookie",
    "set-cookie",
    "x-forwarded-for",
]


def scrub_sensitive_data(event: dict, hint: dict) -> Optional[dict]:
    """Scrub API keys, tokens and request bodies from Sentry events."""
    try:
        request = event.get("request") or {}

        headers = request.get("headers") or {}
        headers_lower = {k.lower(): k for k in headers.keys()}
        for sensitive in SENSITIVE_HEADERS:
            if sensitive in headers_lower:
                headers[headers_lower[sensitive]] = "[REDACTED]"
        request["headers"] = headers

        query_string = request.get("query_string")
        if isinstance(query_string, str) and query_string:
            request["query_string"] = re.sub(
                r'(?i)(token|api_key|key|secret|password)=([^&]*)',
                r'\1=[REDACTED]',
                query_string,
            )

        if "data" in request:
            request["data"] = "[SCRUBBED]"

        event["request"] = request

    except Exception as e:
        # Never fail scrubbing
        logger.warning(f"Sentry scrubbing error (continuing): {e}")

    return event


def init_sentry() -> bool:
    """
    Initialize Sentry SDK if SENTRY_DSN is configured.

    Returns True if Sentry was initialized, False otherwise.

    Environment variables:
    - SENTRY_DSN: Required.
    - SENTRY_TRACES_SAMPLE_RATE: Optional. Default 0.05.
    - SENTRY_ENABLED: Optional. Set to 'false' to disable even with DSN.
    - SENTRY_ENVIRONMENT: Environment tag. Default 'development'.
    """
    global _sentry_initialized

    if _sentry_initialized:
        return True

    if os.getenv("SENTRY_ENABLED", "true").lower() == "false":
        logger.info("Sentry disabled via SENTRY_ENABLED=false")
        return False

    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        logger.info("Sentry not configured (SENTRY_DSN not set)")
        return False

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    environment = os.getenv("SENTRY_ENVIRONMENT", "development")
    traces_sample_rate = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05"))

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            LoggingIntegration(
                level=logging.ERROR,
                event_level=logging.ERROR,
            ),
        ],
        traces_sample_rate=traces_sample_rate,
        send_default_pii=False,
        before_send=scrub_sensitive_data,
        ignore_errors=[KeyboardInterrupt, SystemExit],
    )

    _sentry_initialized = True
    logger.info(f"Sentry initialized: env={environment}, traces_sample_rate={traces_sample_rate}")
    return True


def is_sentry_enabled() -> bool:
    """Check if Sentry is initialized and active."""
    return _sentry_initialized
