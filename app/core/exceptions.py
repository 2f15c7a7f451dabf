"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class NotificationChannelError(Exception):
    """A single notification channel failed to deliver."""

    def __init__(self, channel: str, detail: str | None = None) -> None:
        self.channel = channel
        message = f"Notification channel '{channel}' failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class HealthCheckTimeoutError(Exception):
    """A health check did not finish within its time limit."""

    def __init__(self, check_name: str, timeout: float) -> None:
        self.check_name = check_name
        self.timeout = timeout
        super().__init__(f"Health check '{check_name}' timed out after {timeout:.1f}s")
