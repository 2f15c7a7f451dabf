"""Built-in health checks for the API process and its dependencies."""

import asyncio
import os
import platform
import time
from collections.abc import Callable
from datetime import UTC, datetime

import httpx
import psutil
from sqlalchemy.ext.asyncio import AsyncEngine

from app.config import Settings
from app.core.metrics import RequestMetrics
from app.database import get_engine, ping_database
from app.schemas.health import HealthCheckResult, HealthStatus
from app.services.error_notification_service import ErrorNotificationService
from app.services.health_monitor import HealthMonitor

MEMORY_CRITICAL_PERCENT = 90
RESPONSE_TIME_WINDOW_SECONDS = 300
EXTERNAL_SERVICE_TIMEOUT = 3.0


def _mb(value: float) -> float:
    return round(value / 1024 / 1024, 2)


def get_system_stats() -> dict:
    """Snapshot of process and host resource usage."""
    process = psutil.Process(os.getpid())
    memory = psutil.virtual_memory()
    process_memory = process.memory_info()
    cpu_times = process.cpu_times()

    return {
        "memory": {
            "used_mb": _mb(memory.used),
            "total_mb": _mb(memory.total),
            "usage_percent": memory.percent,
            "process_rss_mb": _mb(process_memory.rss),
            "process_vms_mb": _mb(process_memory.vms),
        },
        "cpu": {
            "user_seconds": cpu_times.user,
            "system_seconds": cpu_times.system,
            "count": psutil.cpu_count(),
        },
        "uptime": round(time.time() - process.create_time(), 1),
        "python_version": platform.python_version(),
        "platform": platform.system().lower(),
        "arch": platform.machine(),
        "pid": process.pid,
        "timestamp": datetime.now(UTC).isoformat(),
    }


class SystemHealthChecks:
    """Checks registered with the health monitor at startup."""

    def __init__(
        self,
        settings: Settings,
        error_service: ErrorNotificationService | None = None,
        request_metrics: RequestMetrics | None = None,
        engine_factory: Callable[[], AsyncEngine | None] = get_engine,
        transport: httpx.AsyncBaseTransport | None = None,
        route_paths: Callable[[], list[str]] | None = None,
    ) -> None:
        self.settings = settings
        self.error_service = error_service
        self.request_metrics = request_metrics
        self.engine_factory = engine_factory
        self.transport = transport
        self.route_paths = route_paths

        # The first call only sets the baseline and always reports 0.0
        psutil.cpu_percent(interval=None)

    def register(self, monitor: HealthMonitor) -> None:
        monitor.add_check("system_memory", self.check_memory_usage)
        monitor.add_check("system_uptime", self.check_uptime)
        if self.route_paths is not None:
            monitor.add_check("api_endpoints", self.check_api_endpoints)
        monitor.add_check("error_rate", self.check_error_rate)
        monitor.add_check("response_times", self.check_response_times)
        monitor.add_check("database_connection", self.check_database_connection)

        if self.settings.enable_detailed_health_check:
            monitor.add_check("system_cpu", self.check_cpu_usage)
            monitor.add_check("runtime_version", self.check_runtime_version)
            monitor.add_check("external_services", self.check_external_services)

    # ==================== SYSTEM ====================

    async def check_memory_usage(self) -> HealthCheckResult:
        memory = psutil.virtual_memory()
        usage = memory.percent
        used_mb, total_mb = _mb(memory.used), _mb(memory.total)

        status = HealthStatus.HEALTHY
        message = f"Memory usage: {used_mb}MB/{total_mb}MB ({usage:.1f}%)"
        if usage > self.settings.memory_usage_alert_threshold:
            status = HealthStatus.CRITICAL if usage > MEMORY_CRITICAL_PERCENT else HealthStatus.WARNING
            message = f"High memory usage: {usage:.1f}%"

        return HealthCheckResult(
            status=status,
            message=message,
            metrics={
                "used_mb": used_mb,
                "total_mb": total_mb,
                "usage_percent": round(usage, 1),
                "process_rss_mb": _mb(psutil.Process(os.getpid()).memory_info().rss),
            },
        )

    async def check_cpu_usage(self) -> HealthCheckResult:
        percent = psutil.cpu_percent(interval=None)
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            message=f"CPU usage: {percent:.2f}%",
            metrics={"percent": percent, "count": psutil.cpu_count()},
        )

    async def check_uptime(self) -> HealthCheckResult:
        started_at = psutil.Process(os.getpid()).create_time()
        uptime = time.time() - started_at
        hours, minutes = int(uptime // 3600), int(uptime % 3600 // 60)
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            message=f"Uptime: {hours}h {minutes}m",
            metrics={
                "seconds": round(uptime, 1),
                "hours": hours,
                "minutes": minutes,
                "start_time": datetime.fromtimestamp(started_at, UTC).isoformat(),
            },
        )

    async def check_runtime_version(self) -> HealthCheckResult:
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            message=f"Python {platform.python_version()}",
            metrics={
                "version": platform.python_version(),
                "implementation": platform.python_implementation(),
                "platform": platform.system().lower(),
                "arch": platform.machine(),
            },
        )

    # ==================== APPLICATION ====================

    async def check_api_endpoints(self) -> HealthCheckResult:
        """Key API routes are mounted."""
        paths = set(self.route_paths())
        prefix = self.settings.api_prefix
        expected = [f"{prefix}/health", f"{prefix}/monitoring/dashboard"]
        missing = [path for path in expected if path not in paths]

        metrics = {"endpoints": len(paths), "expected": expected, "missing": missing}
        if missing:
            return HealthCheckResult(
                status=HealthStatus.WARNING,
                message=f"API endpoints missing: {', '.join(missing)}",
                metrics=metrics,
            )
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            message="API endpoints available",
            metrics=metrics,
        )

    async def check_error_rate(self) -> HealthCheckResult:
        """Errors per minute over the last hour."""
        if self.error_service is None:
            return HealthCheckResult(status=HealthStatus.HEALTHY, message="Error tracking not configured")

        stats = self.error_service.get_error_stats()
        error_rate = stats.total / 60
        critical_count = stats.by_severity.get("critical", 0)
        metrics = {
            "errors_per_minute": round(error_rate, 3),
            "last_hour_errors": stats.total,
            "last_hour_critical": critical_count,
        }

        if critical_count >= self.settings.critical_error_threshold:
            return HealthCheckResult(
                status=HealthStatus.CRITICAL,
                message=f"{critical_count} critical errors in the last hour",
                metrics=metrics,
            )
        if error_rate > self.settings.error_rate_threshold:
            return HealthCheckResult(
                status=HealthStatus.WARNING,
                message=f"Elevated error rate: {error_rate:.2f} errors/minute",
                metrics=metrics,
            )
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            message="Error rate within acceptable limits",
            metrics=metrics,
        )

    async def check_response_times(self) -> HealthCheckResult:
        if self.request_metrics is None:
            return HealthCheckResult(status=HealthStatus.HEALTHY, message="Request metrics not configured")

        summary = self.request_metrics.summary(RESPONSE_TIME_WINDOW_SECONDS)
        if summary["count"] == 0:
            return HealthCheckResult(
                status=HealthStatus.HEALTHY,
                message="No requests in the last 5 minutes",
                metrics=summary,
            )

        average = summary["average_ms"]
        if average > self.settings.response_time_threshold:
            status, message = HealthStatus.CRITICAL, f"Very slow responses: {average:.0f}ms average"
        elif average > self.settings.slow_request_threshold:
            status, message = HealthStatus.WARNING, f"Slow responses: {average:.0f}ms average"
        else:
            status, message = HealthStatus.HEALTHY, f"Response times normal: {average:.0f}ms average"
        return HealthCheckResult(status=status, message=message, metrics=summary)

    # ==================== DEPENDENCIES ====================

    async def check_database_connection(self) -> HealthCheckResult:
        engine = self.engine_factory()
        if engine is None:
            return HealthCheckResult(
                status=HealthStatus.HEALTHY,
                message="Database not configured",
                metrics={"configured": False},
            )

        started = time.perf_counter()
        try:
            await ping_database(engine)
        except Exception as e:
            return HealthCheckResult(
                status=HealthStatus.CRITICAL,
                message=f"Database connection failed: {e}",
                metrics={"configured": True},
                error=repr(e),
            )
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            message="Database connection active",
            metrics={
                "configured": True,
                "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )

    async def check_external_services(self) -> HealthCheckResult:
        urls = self.settings.health_check_urls
        if not urls:
            return HealthCheckResult(status=HealthStatus.HEALTHY, message="No external services configured")

        async with httpx.AsyncClient(timeout=EXTERNAL_SERVICE_TIMEOUT, transport=self.transport) as client:
            responses = await asyncio.gather(*(client.get(url) for url in urls), return_exceptions=True)

        services = {}
        for url, response in zip(urls, responses):
            if isinstance(response, BaseException):
                services[url] = f"unreachable: {response.__class__.__name__}"
            elif response.is_success:
                services[url] = "operational"
            else:
                services[url] = f"degraded: HTTP {response.status_code}"

        failing = [url for url, state in services.items() if state != "operational"]
        if failing:
            return HealthCheckResult(
                status=HealthStatus.WARNING,
                message=f"{len(failing)} of {len(urls)} external services unavailable",
                metrics={"services": services},
            )
        return HealthCheckResult(
            status=HealthStatus.HEALTHY,
            message="External services operational",
            metrics={"services": services},
        )
