"""Error monitoring endpoints."""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.api.deps import ErrorServiceDep, SettingsDep
from app.core.exceptions import NotFoundError, ValidationError
from app.domain.error_classification import Severity
from app.schemas.monitoring import ErrorRecord, ErrorReport, ErrorStats, NotificationStats

router = APIRouter()

HOUR_MS = 3_600_000
DAY_MS = 86_400_000
WEEK_MS = 604_800_000

STATS_RANGES = {
    "last_hour": HOUR_MS,
    "last_6_hours": 6 * HOUR_MS,
    "last_24_hours": DAY_MS,
    "last_7_days": WEEK_MS,
}

TimeRange = Annotated[int, Query(gt=0, description="Time range in milliseconds")]


def _check_time_range(time_range_ms: int) -> None:
    # History older than the retention period is already gone
    if time_range_ms > WEEK_MS:
        raise ValidationError(
            "time_range exceeds error retention",
            errors=[{"loc": ["query", "time_range"], "max": WEEK_MS}],
        )


def _time_range_label(time_range_ms: int) -> str:
    labels = {HOUR_MS: "Last Hour", DAY_MS: "Last 24 Hours", WEEK_MS: "Last 7 Days"}
    return labels.get(time_range_ms, f"Last {time_range_ms / 60000:g} minutes")


class TopError(BaseModel):
    fingerprint: str
    count: int


class DashboardResponse(BaseModel):
    """Error monitoring dashboard."""

    total_errors: int
    errors_per_minute: float
    time_range_minutes: float
    time_range_label: str
    by_severity: dict[str, int]
    by_type: dict[str, int]
    top_errors: list[TopError]
    notifications: NotificationStats
    notification_success_rate: float
    timestamp: str


class ErrorListResponse(BaseModel):
    errors: list[ErrorRecord]
    count: int
    timestamp: str


class RangeStats(BaseModel):
    errors: ErrorStats
    notifications: NotificationStats
    errors_per_minute: float


class TestNotificationResponse(BaseModel):
    message: str
    error_id: str
    timestamp: str


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    error_service: ErrorServiceDep,
    time_range: TimeRange = HOUR_MS,
) -> DashboardResponse:
    """Error and notification overview for a time range."""
    _check_time_range(time_range)
    error_stats = error_service.get_error_stats(time_range)
    notification_stats = error_service.get_notification_stats(time_range)

    top_errors = sorted(error_stats.by_fingerprint.items(), key=lambda item: item[1], reverse=True)[:10]
    attempts = notification_stats.successful + notification_stats.failed
    success_rate = notification_stats.successful / attempts * 100 if attempts else 100.0

    return DashboardResponse(
        total_errors=error_stats.total,
        errors_per_minute=round(error_stats.total / (time_range / 60000), 2),
        time_range_minutes=error_stats.time_range_minutes,
        time_range_label=_time_range_label(time_range),
        by_severity=error_stats.by_severity,
        by_type=error_stats.by_type,
        top_errors=[TopError(fingerprint=fp, count=count) for fp, count in top_errors],
        notifications=notification_stats,
        notification_success_rate=round(success_rate, 1),
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/errors", response_model=ErrorListResponse)
async def list_errors(
    error_service: ErrorServiceDep,
    time_range: TimeRange = HOUR_MS,
    severity: Severity | None = None,
    type: str | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
) -> ErrorListResponse:
    """Recent errors, newest first."""
    _check_time_range(time_range)
    errors = error_service.get_recent_errors(
        time_range_ms=time_range,
        severity=severity,
        error_type=type,
        limit=limit,
    )
    return ErrorListResponse(errors=errors, count=len(errors), timestamp=datetime.now(UTC).isoformat())


@router.get("/errors/{error_id}", response_model=ErrorRecord)
async def get_error(error_id: str, error_service: ErrorServiceDep) -> ErrorRecord:
    error = error_service.get_error(error_id)
    if error is None:
        raise NotFoundError("Error", error_id)
    return error


@router.get("/stats", response_model=dict[str, RangeStats])
async def get_stats(error_service: ErrorServiceDep) -> dict[str, RangeStats]:
    """Error and notification statistics for standard time ranges."""
    stats = {}
    for label, time_range in STATS_RANGES.items():
        errors = error_service.get_error_stats(time_range)
        stats[label] = RangeStats(
            errors=errors,
            notifications=error_service.get_notification_stats(time_range),
            errors_per_minute=round(errors.total / (time_range / 60000), 4),
        )
    return stats


@router.post("/test-notification", response_model=TestNotificationResponse)
async def send_test_notification(
    request: Request,
    error_service: ErrorServiceDep,
    settings: SettingsDep,
) -> TestNotificationResponse:
    """Report a synthetic critical error through the normal pipeline."""
    test_error = ErrorReport(
        name="TestError",
        type="test_error",
        message=f"This is a test error notification from {settings.app_name} monitoring system",
        stack=f"TestError: This is a test error\n    at {request.url.path}",
    )
    error_id = await error_service.report_error(
        test_error,
        {
            "url": request.url.path,
            "method": request.method,
            "ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("User-Agent"),
            "status_code": 500,
            "source": "manual_test",
        },
    )
    return TestNotificationResponse(
        message="Test notification sent successfully",
        error_id=error_id,
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/config")
async def get_notification_config(settings: SettingsDep, error_service: ErrorServiceDep) -> dict:
    """Notification configuration without secrets."""
    return {
        "email": {
            "enabled": settings.enable_error_email,
            "configured": bool(settings.smtp_host and settings.error_notification_email),
        },
        "webhooks": {
            "enabled": settings.enable_error_webhooks,
            "slack": bool(settings.slack_webhook_url),
            "discord": bool(settings.discord_webhook_url),
            "custom": bool(settings.error_webhook_url),
        },
        "active_channels": error_service.dispatcher.enabled_channels(),
        "limits": {
            "max_notifications_per_hour": settings.max_notifications_per_hour,
            "cooldown_seconds": settings.notification_cooldown / 1000,
            "critical_error_threshold": settings.critical_error_threshold,
        },
        "thresholds": {
            "error_rate": settings.error_rate_threshold,
            "response_time": settings.response_time_threshold,
        },
    }


@router.get("/health")
async def get_monitoring_health(error_service: ErrorServiceDep, settings: SettingsDep) -> JSONResponse:
    """Health of the error notification subsystem itself."""
    window_ms = 300_000
    recent_errors = error_service.get_error_stats(window_ms)
    recent_notifications = error_service.get_notification_stats(window_ms)
    last_error = error_service.last_error_time

    status = "healthy"
    message = None
    if recent_errors.total > 10:
        status, message = "warning", "High error rate detected"
    if recent_notifications.total > 0 and recent_notifications.failed > recent_notifications.successful:
        status, message = "critical", "Notification system failures detected"

    body = {
        "status": status,
        "message": message,
        "monitoring": {
            "error_count": recent_errors.total,
            "notification_count": recent_notifications.total,
            "last_error_time": last_error.isoformat() if last_error else None,
        },
        "configuration": {
            "email": settings.enable_error_email,
            "webhooks": settings.enable_error_webhooks,
        },
        "timestamp": datetime.now(UTC).isoformat(),
    }
    return JSONResponse(status_code=503 if status == "critical" else 200, content=body)
