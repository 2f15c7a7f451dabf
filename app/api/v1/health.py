"""Health endpoints: liveness, readiness, detailed status and history."""

import time
from datetime import UTC, datetime
from typing import Annotated

import psutil
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from app.api.deps import HealthMonitorDep, SettingsDep
from app.schemas.health import HealthReport, HealthStatus, HealthTrends
from app.services.health_checks import get_system_stats

router = APIRouter()


def _process_uptime() -> float:
    return round(time.time() - psutil.Process().create_time(), 1)


@router.get("")
async def basic_health(settings: SettingsDep) -> dict:
    """Basic health check endpoint."""
    memory = psutil.Process().memory_info()
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "uptime": _process_uptime(),
        "memory_rss_mb": round(memory.rss / 1024 / 1024, 2),
        "timestamp": datetime.now(UTC).isoformat(),
    }


@router.get("/status")
async def detailed_status(monitor: HealthMonitorDep, settings: SettingsDep) -> JSONResponse:
    """Current health report with system stats and trends."""
    report = await monitor.get_current_health()
    trends = monitor.get_health_trends()

    body = {
        "application": {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "uptime": _process_uptime(),
        },
        "health": report.model_dump(mode="json"),
        "system": get_system_stats(),
        "trends": trends.model_dump(mode="json"),
        "monitoring": {
            "enabled": monitor.is_monitoring,
            "interval_seconds": monitor.interval,
            "last_check": monitor.last_check_time.isoformat() if monitor.last_check_time else None,
            "checks_count": len(monitor.checks),
        },
    }
    status_code = 503 if report.overall == HealthStatus.CRITICAL else 200
    return JSONResponse(status_code=status_code, content=body)


@router.get("/metrics")
async def health_metrics(monitor: HealthMonitorDep, settings: SettingsDep) -> dict:
    """Flat key/value metrics for monitoring tools."""
    report = await monitor.get_current_health()
    system = get_system_stats()

    return {
        "system_memory_used_mb": system["memory"]["used_mb"],
        "system_memory_total_mb": system["memory"]["total_mb"],
        "system_memory_usage_percent": system["memory"]["usage_percent"],
        "process_rss_mb": system["memory"]["process_rss_mb"],
        "system_uptime_seconds": system["uptime"],
        "process_cpu_user_seconds": system["cpu"]["user_seconds"],
        "process_cpu_system_seconds": system["cpu"]["system_seconds"],
        "health_overall_status": 1 if report.overall == HealthStatus.HEALTHY else 0,
        "health_checks_total": report.summary.total,
        "health_checks_passing": report.summary.healthy,
        "health_checks_warning": report.summary.warnings,
        "health_checks_critical": report.summary.critical,
        "health_execution_time_ms": report.execution_time,
        "app_version": settings.app_version,
        "app_environment": 1 if settings.environment == "production" else 0,
        "last_updated": int(time.time() * 1000),
    }


@router.get("/history", response_model=list[HealthReport])
async def health_history(
    monitor: HealthMonitorDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> list[HealthReport]:
    return monitor.get_health_history(limit)


@router.get("/trends", response_model=HealthTrends)
async def health_trends(monitor: HealthMonitorDep) -> HealthTrends:
    return monitor.get_health_trends()


@router.post("/check", response_model=HealthReport)
async def force_health_check(monitor: HealthMonitorDep) -> HealthReport:
    """Run every check now."""
    return await monitor.run_all_checks()


@router.get("/ready")
async def readiness(monitor: HealthMonitorDep) -> JSONResponse:
    """Readiness probe: ready unless overall health is critical."""
    report = await monitor.get_current_health()
    ready = report.overall != HealthStatus.CRITICAL
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "ready": ready,
            "status": report.overall.value,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


@router.get("/live")
async def liveness() -> dict:
    """Liveness probe: answering at all means alive."""
    return {
        "alive": True,
        "uptime": _process_uptime(),
        "timestamp": datetime.now(UTC).isoformat(),
    }
