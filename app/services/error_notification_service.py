"""Error aggregation and notification throttling.

Every reported error is stored in process memory with a severity and a
fingerprint. A notification is sent when the gate allows it:

1. critical errors notify unless their fingerprint is cooling down
2. nothing else notifies once the hourly notification cap is reached
3. fingerprints in cooldown never notify
4. bursts (same fingerprint >= CRITICAL_ERROR_THRESHOLD in an hour) notify
5. high severity notifies, medium and low do not

Dispatch runs as a detached task so reporting never waits on, or fails
because of, a notification channel.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.config import Settings
from app.core.background_tasks import PeriodicJob
from app.domain.error_classification import Severity, determine_severity, generate_fingerprint
from app.schemas.monitoring import (
    ErrorContext,
    ErrorRecord,
    ErrorReport,
    ErrorStats,
    NotificationRecord,
    NotificationStats,
)
from app.services.error_pattern_analyzer import ErrorPatternAnalyzer
from app.services.notification_service import DispatchResult, NotificationDispatcher
from app.utils.error_id import generate_error_id

logger = logging.getLogger(__name__)

ONE_HOUR_MS = 3_600_000
ERROR_RETENTION = timedelta(days=7)
MAX_NOTIFICATION_HISTORY = 1000


def utc_now() -> datetime:
    return datetime.now(UTC)


class ErrorNotificationService:
    """In-memory error history, notification gate and dispatch."""

    def __init__(
        self,
        settings: Settings,
        dispatcher: NotificationDispatcher | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize error notification service.

        Args:
            settings: Application settings
            dispatcher: Channel dispatcher (built from settings if omitted)
            clock: Returns the current UTC time
        """
        self.settings = settings
        self.dispatcher = dispatcher or NotificationDispatcher(settings)
        self.clock = clock or utc_now

        self.error_history: list[ErrorRecord] = []
        self.notification_history: list[NotificationRecord] = []
        self.last_notification_times: dict[str, datetime] = {}

        self.pattern_analyzer = ErrorPatternAnalyzer(self)
        self._pending: set[asyncio.Task] = set()
        self._jobs = [
            PeriodicJob(
                "error_pattern_analysis",
                settings.error_pattern_interval / 1000,
                self.pattern_analyzer.analyze,
            ),
            PeriodicJob(
                "error_history_cleanup",
                settings.error_cleanup_interval / 1000,
                self._cleanup_job,
            ),
        ]

        logger.info(
            f"Error notification system initialized: email={settings.enable_error_email}, "
            f"webhooks={settings.enable_error_webhooks}, "
            f"max_notifications_per_hour={settings.max_notifications_per_hour}"
        )

    @property
    def cooldown(self) -> timedelta:
        return timedelta(milliseconds=self.settings.notification_cooldown)

    # ==================== LIFECYCLE ====================

    def start(self) -> None:
        """Start pattern analysis and history cleanup jobs."""
        for job in self._jobs:
            job.start()

    async def stop(self) -> None:
        """Cancel the periodic jobs."""
        for job in self._jobs:
            await job.stop()

    async def drain(self) -> None:
        """Wait for every in-flight notification dispatch to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Stop jobs, finish pending dispatches and release the HTTP client."""
        await self.stop()
        await self.drain()
        await self.dispatcher.close()

    # ==================== REPORTING ====================

    async def report_error(
        self,
        error: BaseException | Mapping[str, Any] | ErrorReport,
        context: ErrorContext | Mapping[str, Any] | None = None,
    ) -> str:
        """Record an error and notify about it if the gate allows.

        Never raises. Missing fields are defaulted rather than rejected.

        Args:
            error: Exception, mapping with name/message/stack/type, or ErrorReport
            context: Request context (url, method, status_code, ip, user_agent, extras)

        Returns:
            str: Id of the stored error record
        """
        return self._record(self._normalize_error(error), self._normalize_context(context))

    async def report_alert(
        self,
        alert: ErrorReport,
        context: Mapping[str, Any],
        severity: Severity,
    ) -> str:
        """Record an internally generated alert with a fixed severity."""
        return self._record(alert, self._normalize_context(context), severity=severity)

    def _record(
        self,
        report: ErrorReport,
        context: ErrorContext,
        severity: Severity | None = None,
    ) -> str:
        record = ErrorRecord(
            id=generate_error_id(),
            timestamp=self.clock(),
            type=report.type,
            name=report.name,
            message=report.message,
            stack=report.stack,
            severity=severity or determine_severity(report.name, report.message, context.status_code),
            context=context,
            fingerprint=generate_fingerprint(report.name, report.message, context.url, context.method),
        )
        self.error_history.append(record)

        should_notify = self.should_notify(record)
        if should_notify:
            self._submit_notification(record)

        logger.error(
            f"Error reported to notification system: id={record.id}, "
            f"severity={record.severity.value}, notify={should_notify}, "
            f"fingerprint={record.fingerprint}"
        )
        return record.id

    @staticmethod
    def _normalize_error(error: Any) -> ErrorReport:
        try:
            return ErrorReport.coerce(error)
        except (TypeError, ValueError, PydanticValidationError):
            return ErrorReport(message=str(error))

    @staticmethod
    def _normalize_context(context: Any) -> ErrorContext:
        if context is None:
            return ErrorContext()
        try:
            return ErrorContext.model_validate(context)
        except PydanticValidationError as e:
            logger.warning(f"Discarding malformed error context: {e.error_count()} invalid field(s)")
            return ErrorContext()

    # ==================== NOTIFICATION GATE ====================

    def should_notify(self, record: ErrorRecord) -> bool:
        """Decide whether a record triggers a notification."""
        if record.severity == Severity.CRITICAL:
            return not self.is_in_cooldown(record.fingerprint)

        if not self.check_rate_limit():
            return False

        if self.is_in_cooldown(record.fingerprint):
            return False

        similar = self.get_recent_errors_by_fingerprint(record.fingerprint, ONE_HOUR_MS)
        if len(similar) >= self.settings.critical_error_threshold:
            return True

        return record.severity == Severity.HIGH

    def is_in_cooldown(self, fingerprint: str) -> bool:
        last_notified = self.last_notification_times.get(fingerprint)
        if last_notified is None:
            return False
        return self.clock() - last_notified < self.cooldown

    def check_rate_limit(self) -> bool:
        """True while fewer than the hourly maximum notifications were sent."""
        cutoff = self.clock() - timedelta(milliseconds=ONE_HOUR_MS)
        sent = sum(1 for n in self.notification_history if n.timestamp > cutoff)
        return sent < self.settings.max_notifications_per_hour

    def get_recent_errors_by_fingerprint(
        self, fingerprint: str, time_range_ms: int = ONE_HOUR_MS
    ) -> list[ErrorRecord]:
        return [e for e in self.recent_errors(time_range_ms) if e.fingerprint == fingerprint]

    # ==================== DISPATCH ====================

    def _submit_notification(self, record: ErrorRecord) -> None:
        # Cooldown and the hourly slot are taken at submission, whatever the
        # delivery outcome; channel counts are filled in when dispatch ends
        self._mark_notified(record.fingerprint)
        notification = self.record_notification(record, successful=0, failed=0)
        task = asyncio.create_task(self._deliver(record, notification), name=f"notify-{record.id}")
        self._pending.add(task)
        task.add_done_callback(self._notification_done)

    def _notification_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Failed to send error notification ({task.get_name()}): {exc}")

    async def send_notifications(self, record: ErrorRecord) -> DispatchResult:
        """Send a record to every channel now, bypassing the gate."""
        self._mark_notified(record.fingerprint)
        notification = self.record_notification(record, successful=0, failed=0)
        return await self._deliver(record, notification)

    async def _deliver(self, record: ErrorRecord, notification: NotificationRecord) -> DispatchResult:
        result = await self.dispatcher.dispatch(record)
        notification.successful = result.successful
        notification.failed = result.failed
        return result

    def _mark_notified(self, fingerprint: str) -> None:
        now = self.clock()
        previous = self.last_notification_times.get(fingerprint)
        if previous is None or now > previous:
            self.last_notification_times[fingerprint] = now

    def record_notification(self, record: ErrorRecord, successful: int, failed: int) -> NotificationRecord:
        """Append a dispatch outcome, keeping only the most recent entries."""
        notification = NotificationRecord(
            error_id=record.id,
            timestamp=self.clock(),
            successful=successful,
            failed=failed,
            severity=record.severity,
            fingerprint=record.fingerprint,
        )
        self.notification_history.append(notification)
        if len(self.notification_history) > MAX_NOTIFICATION_HISTORY:
            del self.notification_history[:-MAX_NOTIFICATION_HISTORY]
        return notification

    # ==================== HISTORY & STATISTICS ====================

    def recent_errors(self, time_range_ms: int = ONE_HOUR_MS) -> list[ErrorRecord]:
        cutoff = self.clock() - timedelta(milliseconds=time_range_ms)
        return [e for e in self.error_history if e.timestamp > cutoff]

    def get_error(self, error_id: str) -> ErrorRecord | None:
        return next((e for e in self.error_history if e.id == error_id), None)

    def get_recent_errors(
        self,
        time_range_ms: int = ONE_HOUR_MS,
        severity: Severity | None = None,
        error_type: str | None = None,
        limit: int = 50,
    ) -> list[ErrorRecord]:
        """Filtered errors within a time range, newest first."""
        errors = self.recent_errors(time_range_ms)
        if severity is not None:
            errors = [e for e in errors if e.severity == severity]
        if error_type:
            errors = [e for e in errors if e.type == error_type]
        errors.sort(key=lambda e: e.timestamp, reverse=True)
        return errors[:limit]

    @property
    def last_error_time(self) -> datetime | None:
        return self.error_history[-1].timestamp if self.error_history else None

    def cleanup_error_history(self) -> int:
        """Drop errors older than the retention period.

        Returns:
            int: Number of records removed
        """
        cutoff = self.clock() - ERROR_RETENTION
        old_count = len(self.error_history)
        self.error_history = [e for e in self.error_history if e.timestamp > cutoff]

        removed = old_count - len(self.error_history)
        if removed:
            logger.debug(
                f"Cleaned up old error history: removed={removed}, "
                f"remaining={len(self.error_history)}"
            )
        return removed

    async def _cleanup_job(self) -> None:
        self.cleanup_error_history()

    def get_error_stats(self, time_range_ms: int = ONE_HOUR_MS) -> ErrorStats:
        """Error counts by severity, type and fingerprint."""
        stats = ErrorStats(time_range_minutes=time_range_ms / 60000)
        for error in self.recent_errors(time_range_ms):
            stats.total += 1
            severity = error.severity.value
            stats.by_severity[severity] = stats.by_severity.get(severity, 0) + 1
            stats.by_type[error.type] = stats.by_type.get(error.type, 0) + 1
            stats.by_fingerprint[error.fingerprint] = stats.by_fingerprint.get(error.fingerprint, 0) + 1
        return stats

    def get_notification_stats(self, time_range_ms: int = ONE_HOUR_MS) -> NotificationStats:
        """Notification counts and channel outcomes."""
        cutoff = self.clock() - timedelta(milliseconds=time_range_ms)
        stats = NotificationStats()
        for notification in self.notification_history:
            if notification.timestamp <= cutoff:
                continue
            stats.total += 1
            stats.successful += notification.successful
            stats.failed += notification.failed
            severity = notification.severity.value
            stats.by_severity[severity] = stats.by_severity.get(severity, 0) + 1
        return stats
