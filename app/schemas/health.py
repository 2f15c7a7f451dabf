"""Health monitoring schemas."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class HealthCheckResult(BaseModel):
    """Result of a single health check run."""

    status: HealthStatus
    message: str
    metrics: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    execution_time: int | None = None  # ms


class HealthSummary(BaseModel):
    """Counts of check results by status."""

    total: int
    healthy: int
    warnings: int
    critical: int
    health_percentage: int


class HealthReport(BaseModel):
    """Aggregated result of one monitoring tick."""

    overall: HealthStatus
    timestamp: datetime
    execution_time: int  # ms
    checks: dict[str, HealthCheckResult]
    summary: HealthSummary


class HealthTrends(BaseModel):
    """Recent health direction derived from report history."""

    trend: Literal["improving", "stable", "degrading"] = "stable"
    average_health: int | None = None
    data: list[int] = Field(default_factory=list)
