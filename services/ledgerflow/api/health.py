"""
Health check endpoints for Ledgerflow API server.

Provides /health (liveness) and /ready (readiness) endpoints.
"""

from fastapi import APIRouter, Response, status

from ledgerflow.db.session import get_db_health
from ledgerflow.logging_config import get_logger

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health", status_code=status.HTTP_200_OK)
async def health() -> dict[str, str]:
    """Liveness endpoint.

    Returns 200 if the API server is running.
    """
    return {"status": "healthy"}


@router.get("/ready", status_code=status.HTTP_200_OK)
async def ready(response: Response) -> dict[str, str | dict[str, str]]:
    """Readiness endpoint. Checks the database is reachable."""
    checks = {"database": "healthy" if await get_db_health() else "unhealthy"}

    if checks["database"] != "healthy":
        logger.warning("Readiness check failed", checks=checks)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not ready", "checks": checks}

    return {"status": "ready", "checks": checks}
