"""
Database Connection Management

Exposes the backend handle chosen at startup to request handlers and
reports its health.
"""

import time

import structlog
from fastapi import HTTPException, Request

from storefront.database.errors import DatabaseError
from storefront.database.selector import BackendHandle

logger = structlog.get_logger(__name__)


def get_backend(request: Request) -> BackendHandle:
    """
    FastAPI dependency for the active backend handle.

    Use this in FastAPI route handlers:

    Example:
        @router.get("/items")
        async def get_items(db: BackendHandle = Depends(get_backend)):
            ...
    """
    handle = getattr(request.app.state, "backend", None)
    if handle is None:
        logger.error("Backend requested before initialization")
        raise HTTPException(status_code=503, detail="Database not initialized")
    return handle


async def check_database_health(handle: BackendHandle) -> dict:
    """
    Check database health status.

    Returns:
        dict: Health status with latency information
    """
    start = time.perf_counter()
    try:
        await handle.query("SELECT 1 AS ok")
    except DatabaseError as e:
        return {
            "status": "unhealthy",
            "backend": handle.backend,
            "error": str(e),
        }
    latency_ms = (time.perf_counter() - start) * 1000

    return {
        "status": "healthy",
        "backend": handle.backend,
        "fallback": handle.is_fallback,
        "latency_ms": round(latency_ms, 2),
    }
