"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from storefront_core.config import get_settings
from storefront_core.database.connection import check_database_health
from storefront_core.serving.api.dependencies import ServiceContainer, get_services

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def _cache_check(services: ServiceContainer) -> Dict[str, Any]:
    try:
        await services.cache_store.ping()
        return {"status": "healthy", "stats": services.cache.get_stats()}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


@router.get("/health", response_model=HealthResponse)
async def health_check(services: ServiceContainer = Depends(get_services)) -> HealthResponse:
    """
    Health check endpoint.

    Checks:
    - Cache backend connectivity
    - Database connectivity, when a database is configured

    A failing cache backend only degrades the service; reads fall through
    to the event store.
    """
    settings = get_settings()
    checks: Dict[str, Any] = {}
    overall_status = "healthy"

    if services.session_factory is not None:
        db_health = await check_database_health(services.session_factory)
        checks["database"] = db_health
        if db_health.get("status") != "healthy":
            overall_status = "unhealthy"

    checks["cache"] = await _cache_check(services)
    if checks["cache"]["status"] != "healthy" and overall_status == "healthy":
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(
    response: Response,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, str]:
    """Readiness probe; only the event store is critical."""
    if services.session_factory is None:
        return {"status": "ready"}

    db_health = await check_database_health(services.session_factory)
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    return {"status": "ready"}
