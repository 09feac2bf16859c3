"""Security: rate limiting and API key authentication for the analyst routes."""

import logging
import os
from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.util import get_remote_address

from analyst.config import get_settings

logger = logging.getLogger(__name__)

IS_PRODUCTION = os.getenv("ENVIRONMENT") == "production"

# Rate limiter using client IP
limiter = Limiter(key_func=get_remote_address)

api_key_header = APIKeyHeader(name=get_settings().API_KEY_HEADER, auto_error=False)


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> bool:
    """
    Verify API key for protected endpoints.

    In production an empty API_KEY blocks every request (fail-closed).
    In development an empty API_KEY allows all requests.
    """
    expected = get_settings().API_KEY
    if not expected:
        if IS_PRODUCTION:
            logger.error("API_KEY not configured in production - blocking analyst access")
            raise HTTPException(
                status_code=503,
                detail="Service misconfigured. Analyst access disabled.",
            )
        return True

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Provide it via X-API-Key header.",
        )

    if api_key != expected:
        logger.warning("Invalid API key attempt")
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True
