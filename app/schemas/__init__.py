"""Pydantic schemas for error notification and health monitoring."""

from app.schemas.health import (
    HealthCheckResult,
    HealthReport,
    HealthStatus,
    HealthSummary,
    HealthTrends,
)
from app.schemas.monitoring import (
    ErrorContext,
    ErrorRecord,
    ErrorReport,
    ErrorStats,
    NotificationRecord,
    NotificationStats,
)

__all__ = [
    "ErrorContext",
    "ErrorRecord",
    "ErrorReport",
    "ErrorStats",
    "HealthCheckResult",
    "HealthReport",
    "HealthStatus",
    "HealthSummary",
    "HealthTrends",
    "NotificationRecord",
    "NotificationStats",
]
