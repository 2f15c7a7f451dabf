"""Error notification schemas."""

import traceback
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.domain.error_classification import Severity

DEFAULT_ERROR_TYPE = "application_error"


class ErrorReport(BaseModel):
    """Normalised error as handed to the notification service."""

    name: str | None = None
    message: str = ""
    stack: str | None = None
    type: str = DEFAULT_ERROR_TYPE

    @field_validator("message", mode="before")
    @classmethod
    def _default_message(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, value: Any) -> str:
        return value or DEFAULT_ERROR_TYPE

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorReport":
        """Build a report from a raised exception."""
        return cls(
            name=type(exc).__name__,
            message=str(exc),
            stack="".join(traceback.format_exception(exc)),
            type=getattr(exc, "error_type", None),
        )

    @classmethod
    def coerce(cls, error: "BaseException | Mapping[str, Any] | ErrorReport") -> "ErrorReport":
        """Accept an exception, a mapping or an existing report."""
        if isinstance(error, ErrorReport):
            return error
        if isinstance(error, BaseException):
            return cls.from_exception(error)
        return cls.model_validate(dict(error))


class ErrorContext(BaseModel):
    """Request context attached to an error, open to extra keys."""

    model_config = ConfigDict(extra="allow")

    url: str | None = None
    method: str | None = None
    status_code: int | None = None
    ip: str | None = None
    user_agent: str | None = None

    @field_validator("status_code", mode="before")
    @classmethod
    def _lenient_status_code(cls, value: Any) -> int | None:
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None


class ErrorRecord(BaseModel):
    """A reported error. Never mutated after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    type: str
    name: str | None = None
    message: str
    stack: str | None = None
    severity: Severity
    context: ErrorContext
    fingerprint: str


class NotificationRecord(BaseModel):
    """Outcome of one notification dispatch."""

    error_id: str
    timestamp: datetime
    successful: int
    failed: int
    severity: Severity
    fingerprint: str


class ErrorStats(BaseModel):
    """Error counts over a time range."""

    total: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)
    by_fingerprint: dict[str, int] = Field(default_factory=dict)
    time_range_minutes: float


class NotificationStats(BaseModel):
    """Notification counts over a time range."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)
