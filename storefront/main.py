"""
FastAPI Production Application

Main entry point for the Storefront API.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.config import Settings, get_settings
from storefront.config.logging import configure_logging
from storefront.database.errors import (
    ConnectivityError,
    ConstraintViolationError,
    DatabaseError,
    TemporarilyUnavailableError,
)
from storefront.database.selector import initialize
from storefront.serving.api.middleware import (
    RateLimitMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from storefront.serving.api.routes import (
    analytics_router,
    health_router,
    orders_router,
    products_router,
    users_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: Settings = app.state.settings
    configure_logging(settings=settings)

    logger.info("Starting Storefront API", environment=settings.app_env)

    # A pre-bound handle (tests, embedding) is used as is and left open
    owns_backend = getattr(app.state, "backend", None) is None
    if owns_backend:
        app.state.backend = await initialize(settings)
    logger.info("Database ready", backend=app.state.backend.backend, fallback=app.state.backend.is_fallback)

    yield

    logger.info("Shutting down...")
    if owns_backend:
        await app.state.backend.close()
        app.state.backend = None


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    if isinstance(exc, (TemporarilyUnavailableError, ConnectivityError)):
        status_code, message = 503, "Database temporarily unavailable"
    elif isinstance(exc, ConstraintViolationError):
        status_code, message = 400, "Request conflicts with existing data"
    else:
        status_code, message = 500, "Internal server error"
    logger.error(
        "Unhandled database error",
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        backend=exc.backend,
    )
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings override (defaults to the cached settings)

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Storefront API",
        description="Catalog, search, accounts and checkout for the storefront",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.backend = None

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Custom middleware
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.security.rate_limit_requests,
        window_seconds=settings.security.rate_limit_window_seconds,
    )

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)

    # API routes
    app.include_router(health_router, prefix="/api", tags=["Health"])
    app.include_router(products_router, prefix="/api/products", tags=["Products"])
    app.include_router(users_router, prefix="/api/users", tags=["Users"])
    app.include_router(orders_router, prefix="/api/orders", tags=["Orders"])
    app.include_router(analytics_router, prefix="/api/analytics", tags=["Analytics"])

    @app.get("/api/info")
    async def api_info():
        """API information endpoint."""
        backend = app.state.backend
        return {
            "name": "Storefront API",
            "version": settings.version,
            "environment": settings.app_env,
            "database": backend.backend if backend is not None else None,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=3000)
