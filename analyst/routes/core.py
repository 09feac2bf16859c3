"""Core routes: health and metrics.

- /health: public, rate limited; reports the API-Football daily budget
- /metrics: Bearer token when METRICS_BEARER_TOKEN is set
"""

from fastapi import APIRouter, Header, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from analyst.config import get_settings
from analyst.etl.api_football import get_api_budget_status
from analyst.security import limiter
from analyst.telemetry import get_metrics_text, is_sentry_enabled

router = APIRouter(tags=["core"])


class HealthResponse(BaseModel):
    status: str
    model_configured: bool
    event_bus_running: bool
    sentry_enabled: bool
    api_budget: dict


@router.get("/health", response_model=HealthResponse)
@limiter.limit("120/minute")
async def health_check(request: Request):
    """Health check endpoint."""
    service = request.app.state.service
    return HealthResponse(
        status="ok",
        model_configured=service is not None and service.generator.gateway is not None,
        event_bus_running=service is not None and service.bus.is_running,
        sentry_enabled=is_sentry_enabled(),
        api_budget=get_api_budget_status(service.settings if service is not None else None),
    )


@router.get("/metrics")
async def prometheus_metrics(
    authorization: str = Header(None, alias="Authorization"),
):
    """Prometheus metrics for provider, fetch, model and answer telemetry."""
    expected_token = get_settings().METRICS_BEARER_TOKEN
    if expected_token:
        if not authorization:
            return PlainTextResponse(
                content="# Unauthorized: Missing Authorization header\n",
                status_code=401,
                media_type="text/plain",
            )
        parts = authorization.split(" ", 1)
        if len(parts) != 2 or parts[0].lower() != "bearer":
            return PlainTextResponse(
                content="# Unauthorized: Invalid Authorization format\n",
                status_code=401,
                media_type="text/plain",
            )
        if parts[1] != expected_token:
            return PlainTextResponse(
                content="# Unauthorized: Invalid token\n",
                status_code=401,
                media_type="text/plain",
            )

    content, content_type = get_metrics_text()
    return PlainTextResponse(content=content, media_type=content_type)
