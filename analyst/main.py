"""FastAPI application for the match analyst."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from analyst.config import get_settings
from analyst.database import close_db, init_db
from analyst.routes.analyst import router as analyst_router
from analyst.routes.core import router as core_router
from analyst.security import limiter
from analyst.service import AnalystService, build_service
from analyst.telemetry.sentry import init_sentry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize Sentry for error tracking (before FastAPI app creation)
# Only activates if SENTRY_DSN is set in environment
init_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    owns_service = app.state.service is None
    uses_database = owns_service and settings.ANALYST_STORE_BACKEND == "database"

    # Startup
    logger.info("Starting match analyst...")
    if uses_database:
        await init_db()
    if owns_service:
        app.state.service = build_service(settings)

    service: AnalystService = app.state.service
    await service.bus.start()
    logger.info(
        f"[STARTUP] store={settings.ANALYST_STORE_BACKEND} "
        f"model={'configured' if service.generator.gateway else 'fallback-only'}"
    )

    yield

    # Shutdown
    logger.info("Shutting down match analyst...")
    await service.bus.stop()
    if owns_service:
        await service.close()
        app.state.service = None
    if uses_database:
        await close_db()


def create_app(service: Optional[AnalystService] = None) -> FastAPI:
    """
    Build the app. A pre-built `service` is used as-is (its clients are left
    open on shutdown); otherwise one is wired from settings at startup.
    """
    app = FastAPI(
        title="Match Analyst",
        description="Data-grounded answers to fan questions about a fixture",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service

    # Add rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Include routers
    app.include_router(core_router)
    app.include_router(analyst_router)
    return app


app = create_app()
