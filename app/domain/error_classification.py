"""Error severity and fingerprint rules.

Severity levels (checked in this order, first match wins):
- critical: database driver errors, refused connections, HTTP 5xx
- high: validation/authentication failures, HTTP 401/403
- medium: any other HTTP 4xx
- low: everything else
"""

import hashlib
from enum import Enum


class Severity(str, Enum):
    """Error severity levels."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


DATABASE_ERROR_NAMES = {
    "MongoError",
    "PostgresError",
    "OperationalError",
    "InterfaceError",
    "DBAPIError",
    "ConnectionRefusedError",
}

SEVERITY_COLORS = {
    Severity.CRITICAL: "#dc3545",
    Severity.HIGH: "#fd7e14",
    Severity.MEDIUM: "#ffc107",
    Severity.LOW: "#28a745",
}
DEFAULT_COLOR = "#6c757d"

FINGERPRINT_MESSAGE_LENGTH = 100


def determine_severity(
    name: str | None,
    message: str,
    status_code: int | None = None,
) -> Severity:
    """Derive error severity from the error and its HTTP status.

    Args:
        name: Error class name
        message: Error message
        status_code: HTTP status code of the failed request, if any

    Returns:
        Severity: Derived severity
    """
    if (
        name in DATABASE_ERROR_NAMES
        or "ECONNREFUSED" in message
        or "Database" in message
        or (status_code is not None and status_code >= 500)
    ):
        return Severity.CRITICAL

    if (
        name == "ValidationError"
        or "Authentication" in message
        or status_code in (401, 403)
    ):
        return Severity.HIGH

    if status_code is not None and status_code >= 400:
        return Severity.MEDIUM

    return Severity.LOW


def generate_fingerprint(
    name: str | None,
    message: str,
    url: str | None = None,
    method: str | None = None,
) -> str:
    """Hash identifying "the same error" for deduplication and cooldowns.

    Empty components are dropped before joining.
    """
    components = [
        name or "UnknownError",
        message[:FINGERPRINT_MESSAGE_LENGTH] if message else "",
        url or "",
        method or "",
    ]
    key = "|".join(c for c in components if c)
    return hashlib.md5(key.encode("utf-8")).hexdigest()


def severity_color(severity: Severity | str) -> str:
    """Hex colour used by notification channels for a severity."""
    try:
        return SEVERITY_COLORS[Severity(severity)]
    except ValueError:
        return DEFAULT_COLOR
