"""Health check router — liveness + readiness.

Readiness probes the statement transform service with a short timeout.
Any HTTP answer counts as reachable; only connection failures and
timeouts mark the API degraded.
"""

import httpx
import structlog
from fastapi import APIRouter, Depends

from apps.api.core.auth import get_app_settings
from apps.api.core.config import Settings

router = APIRouter(tags=["health"])
logger = structlog.get_logger()

PROBE_TIMEOUT_SECONDS = 2


@router.get("/health")
async def health_liveness():
    """Liveness probe — returns 200 if the API process is running."""
    return {"status": "healthy", "service": "api"}


@router.get("/health/ready")
async def health_readiness(settings: Settings = Depends(get_app_settings)):
    """Readiness probe — checks the statement transform service is reachable."""
    status = {
        "status": "healthy",
        "services": {
            "api": "up",
            "statement_transform": "unknown",
        },
    }

    if not settings.API_BASE_URL:
        status["services"]["statement_transform"] = "unconfigured"
        status["status"] = "degraded"
        return status

    try:
        async with httpx.AsyncClient(timeout=PROBE_TIMEOUT_SECONDS) as client:
            await client.get(settings.transform_base_url)
        status["services"]["statement_transform"] = "up"
    except httpx.TimeoutException:
        status["services"]["statement_transform"] = "timeout"
        status["status"] = "degraded"
        logger.warning("transform_health_timeout", timeout_s=PROBE_TIMEOUT_SECONDS)
    except httpx.HTTPError as e:
        status["services"]["statement_transform"] = "down"
        status["status"] = "degraded"
        logger.warning("transform_health_failed", error=str(e))

    return status
