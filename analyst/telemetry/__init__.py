"""
Telemetry for the match analyst.

Provides Prometheus metrics for provider requests, targeted fetch outcomes,
model gateway calls and answer paths, plus optional Sentry error tracking.
"""

from analyst.telemetry.metrics import (
    record_provider_request,
    record_provider_error,
    record_fetch_outcome,
    record_llm_request,
    record_answer,
    record_insights_written,
    get_metrics_text,
)
from analyst.telemetry.sentry import init_sentry, is_sentry_enabled, scrub_sensitive_data

__all__ = [
    "record_provider_request",
    "record_provider_error",
    "record_fetch_outcome",
    "record_llm_request",
    "record_answer",
    "record_insights_written",
    "get_metrics_text",
    "init_sentry",
    "is_sentry_enabled",
    "scrub_sensitive_data",
]
