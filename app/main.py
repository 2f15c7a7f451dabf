"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.config import Settings, get_settings
from app.core.exceptions import AppException
from app.core.logging_config import configure_logging
from app.core.metrics import RequestMetrics
from app.core.middleware import RequestLoggingMiddleware
from app.database import close_db
from app.services.error_notification_service import ErrorNotificationService
from app.services.health_checks import SystemHealthChecks
from app.services.health_monitor import HealthMonitor

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    error_service: ErrorNotificationService = app.state.error_service
    health_monitor: HealthMonitor = app.state.health_monitor

    # Startup
    error_service.start()
    health_monitor.start_monitoring()

    yield

    # Shutdown
    await health_monitor.stop_monitoring()
    await error_service.close()
    await close_db()


async def report_request_error(request: Request, exc: Exception, status_code: int) -> None:
    """Hand a request failure to the error notification service."""
    error_service: ErrorNotificationService = request.app.state.error_service
    await error_service.report_error(
        exc,
        {
            "url": request.url.path,
            "method": request.method,
            "ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("User-Agent"),
            "status_code": status_code,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


def create_application(
    settings: Settings | None = None,
    error_service: ErrorNotificationService | None = None,
    health_monitor: HealthMonitor | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings (environment if omitted)
        error_service: Error notification service (built from settings if omitted)
        health_monitor: Health monitor; when omitted one is built with the default checks
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    request_metrics = RequestMetrics()
    error_service = error_service or ErrorNotificationService(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Eden Parfum API - error notification and health monitoring",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.request_metrics = request_metrics
    app.state.error_service = error_service
    if health_monitor is None:
        health_monitor = HealthMonitor(interval=settings.health_check_interval / 1000)
        SystemHealthChecks(
            settings,
            error_service=error_service,
            request_metrics=request_metrics,
            route_paths=lambda: [route.path for route in app.routes],
        ).register(health_monitor)
    app.state.health_monitor = health_monitor

    # Exception handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle custom application exceptions."""
        await report_request_error(request, exc, exc.status_code)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Report unexpected failures and hide their details."""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        await report_request_error(request, exc, 500)
        content = {"detail": "Internal Server Error"}
        if settings.debug:
            content["error"] = repr(exc)
        return JSONResponse(status_code=500, content=content)

    # Middleware (order matters - last added = outermost)
    # 1. Request logging (innermost, sees handled errors as responses)
    app.add_middleware(
        RequestLoggingMiddleware,
        metrics=request_metrics,
        slow_request_threshold=settings.slow_request_threshold,
    )

    # 2. CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 3. Gzip compression (outermost)
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Include API routes
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/")
    async def root() -> dict:
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs" if settings.debug else None,
        }

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
