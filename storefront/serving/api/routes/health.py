"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel

from storefront.config.settings import Settings
from storefront.database.connection import check_database_health
from storefront.serving.api.auth import get_app_settings

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Reports which backend serves traffic and whether it is the fallback.
    A fallback backend is healthy but reported as degraded.
    """
    handle = getattr(request.app.state, "backend", None)
    if handle is None:
        checks = {"database": {"status": "unhealthy", "error": "not initialized"}}
        overall_status = "unhealthy"
    else:
        db_health = await check_database_health(handle)
        checks = {"database": db_health}
        if db_health.get("status") != "healthy":
            overall_status = "unhealthy"
        elif handle.is_fallback:
            overall_status = "degraded"
            db_health["fallback_reason"] = handle.fallback_reason
        else:
            overall_status = "healthy"

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
    Kubernetes liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(request: Request, response: Response) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Returns 200 if the selected backend answers queries.
    """
    handle = getattr(request.app.state, "backend", None)
    if handle is None:
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_not_initialized"}

    db_health = await check_database_health(handle)
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}

    return {"status": "ready", "backend": handle.backend}
