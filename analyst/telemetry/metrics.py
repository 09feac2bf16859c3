"""
Prometheus metrics for the match analyst pipeline.

Design principles:
- Low cardinality (controlled labels)
- Best-effort (never block main flow)

ALLOWED LABELS (bounded sets):
- provider:     "api_football", "gemini", "openai"
- entity:       "team", "form", "standings", "injuries", "lineup", ...
- endpoint:     "teams", "fixtures", "fixtures/lineups", ...
- status_code:  "200", "404", "429", "500", "0"
- category:     fetch categories (home_form, standings, lineups, ...)
- outcome:      "ok", "empty", "error", "timeout"
- path:         "model", "fallback"
- intent:       "tactics", "lineups", "prediction", "generic"

FORBIDDEN AS LABELS: fixture ids, team names, room ids, questions.
Use logs for those.
"""

import logging

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY,
)

logger = logging.getLogger(__name__)

# =============================================================================
# PROVIDER METRICS
# =============================================================================

analyst_provider_requests_total = Counter(
    "analyst_provider_requests_total",
    "Total requests to the sports data provider",
    ["provider", "entity", "endpoint", "status_code"],
)

analyst_provider_errors_total = Counter(
    "analyst_provider_errors_total",
    "Total errors from the sports data provider",
    ["provider", "entity", "error_code"],
)

analyst_provider_latency_ms = Histogram(
    "analyst_provider_latency_ms",
    "Provider request latency in milliseconds",
    ["provider", "entity"],
    buckets=[10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000],
)

analyst_fetch_outcomes_total = Counter(
    "analyst_fetch_outcomes_total",
    "Targeted fetch results per data category",
    ["category", "outcome"],
)

# =============================================================================
# LLM METRICS
# =============================================================================

analyst_llm_requests_total = Counter(
    "analyst_llm_requests_total",
    "Total model gateway requests",
    ["provider", "status"],
)

analyst_llm_latency_ms = Histogram(
    "analyst_llm_latency_ms",
    "Model gateway latency in milliseconds",
    ["provider"],
    buckets=[250, 500, 1000, 2500, 5000, 10000, 20000, 30000],
)

analyst_llm_tokens_total = Counter(
    "analyst_llm_tokens_total",
    "Tokens exchanged with the model gateway",
    ["provider", "direction"],
)

# =============================================================================
# PIPELINE METRICS
# =============================================================================

analyst_answers_total = Counter(
    "analyst_answers_total",
    "Answers produced, by generation path and intent",
    ["path", "intent"],
)

analyst_insights_written_total = Counter(
    "analyst_insights_written_total",
    "Insights appended to the insight store",
    ["source"],
)


def record_provider_request(
    provider: str,
    entity: str,
    endpoint: str,
    status_code: int,
    latency_ms: float,
) -> None:
    """Record a provider request count and latency."""
    try:
        analyst_provider_requests_total.labels(
            provider=provider,
            entity=entity,
            endpoint=endpoint,
            status_code=str(status_code),
        ).inc()
        analyst_provider_latency_ms.labels(
            provider=provider,
            entity=entity,
        ).observe(latency_ms)
    except Exception as e:
        logger.warning(f"Failed to record provider request metric: {e}")


def record_provider_error(
    provider: str,
    entity: str,
    error_code: str,
) -> None:
    """Record a provider error."""
    try:
        analyst_provider_errors_total.labels(
            provider=provider,
            entity=entity,
            error_code=error_code,
        ).inc()
    except Exception as e:
        logger.warning(f"Failed to record provider error metric: {e}")


def record_fetch_outcome(category: str, outcome: str) -> None:
    """Record the settled result of one targeted fetch category."""
    try:
        analyst_fetch_outcomes_total.labels(category=category, outcome=outcome).inc()
    except Exception as e:
        logger.warning(f"Failed to record fetch outcome metric: {e}")


def record_llm_request(
    provider: str,
    status: str,
    latency_ms: float,
    input_tokens: int = 0,
    output_tokens: int = 0,
) -> None:
    """
    Record a complete LLM request with all metrics.

    Args:
        provider: "gemini" or "openai"
        status: LLMResult status (COMPLETED, ERROR, TIMEOUT) or EXCEPTION
        latency_ms: End-to-end latency in milliseconds
        input_tokens: Number of input tokens (0 if unknown)
        output_tokens: Number of output tokens (0 if unknown)
    """
    try:
        analyst_llm_requests_total.labels(provider=provider, status=status).inc()

        if latency_ms > 0:
            analyst_llm_latency_ms.labels(provider=provider).observe(latency_ms)

        if input_tokens > 0:
            analyst_llm_tokens_total.labels(provider=provider, direction="input").inc(input_tokens)
        if output_tokens > 0:
            analyst_llm_tokens_total.labels(provider=provider, direction="output").inc(output_tokens)
    except Exception as e:
        logger.warning(f"Failed to record LLM request metric: {e}")


def record_answer(path: str, intent: str) -> None:
    """Record which generation path produced an answer."""
    try:
        analyst_answers_total.labels(path=path, intent=intent).inc()
    except Exception as e:
        logger.warning(f"Failed to record answer metric: {e}")


def record_insights_written(source: str, count: int) -> None:
    try:
        if count > 0:
            analyst_insights_written_total.labels(source=source).inc(count)
    except Exception as e:
        logger.warning(f"Failed to record insights metric: {e}")


def get_metrics_text() -> tuple[str, str]:
    """
    Generate Prometheus metrics text output.

    Returns:
        Tuple of (content, content_type)
    """
    return generate_latest(REGISTRY).decode("utf-8"), CONTENT_TYPE_LATEST
