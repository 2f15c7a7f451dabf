"""Core utilities: exceptions, middleware, background jobs and metrics."""

from app.core.exceptions import (
    AppException,
    HealthCheckTimeoutError,
    NotFoundError,
    NotificationChannelError,
    ValidationError,
)

__all__ = [
    "AppException",
    "HealthCheckTimeoutError",
    "NotFoundError",
    "NotificationChannelError",
    "ValidationError",
]
