"""Periodic error pattern detection.

Looks at the last hour of errors and feeds three kinds of alerts back
into the notification service:
- high_error_rate: errors per minute above ERROR_RATE_THRESHOLD
- error_spike: one fingerprint seen CRITICAL_ERROR_THRESHOLD times or more
- new_error_type: fingerprint with no history older than a week
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import TYPE_CHECKING

from app.domain.error_classification import Severity
from app.schemas.monitoring import ErrorRecord, ErrorReport

if TYPE_CHECKING:
    from app.services.error_notification_service import ErrorNotificationService

logger = logging.getLogger(__name__)

ANALYSIS_WINDOW_MS = 3_600_000
ANALYSIS_WINDOW_MINUTES = 60
HISTORICAL_AGE = timedelta(days=7)

ALERT_TYPES = frozenset({"high_error_rate", "error_spike", "new_error_type"})


class ErrorPatternAnalyzer:
    """Detects error rate, spikes and novel errors in recent history."""

    def __init__(self, service: ErrorNotificationService) -> None:
        self.service = service

    async def analyze(self) -> list[str]:
        """Run all pattern checks once.

        Returns:
            list[str]: Ids of the alerts that were reported
        """
        # Alert records are stored and notified like any error but never
        # analysed: they count toward neither the rate, spikes nor novelty
        recent = [
            e for e in self.service.recent_errors(ANALYSIS_WINDOW_MS)
            if e.type not in ALERT_TYPES
        ]
        if not recent:
            return []

        alert_ids = []
        alert_ids += await self.check_error_rate(recent)
        alert_ids += await self.check_error_spikes(recent)
        alert_ids += await self.check_new_error_types(recent)

        if alert_ids:
            logger.info(f"Error pattern analysis raised {len(alert_ids)} alert(s)")
        return alert_ids

    async def check_error_rate(self, recent: list[ErrorRecord]) -> list[str]:
        error_rate = len(recent) / ANALYSIS_WINDOW_MINUTES
        if error_rate <= self.service.settings.error_rate_threshold:
            return []

        alert_id = await self.service.report_alert(
            ErrorReport(
                name="HighErrorRateAlert",
                type="high_error_rate",
                message=f"High error rate detected: {error_rate:.2f} errors/minute",
            ),
            {"error_count": len(recent), "time_window": "1 hour"},
            Severity.HIGH,
        )
        return [alert_id]

    async def check_error_spikes(self, recent: list[ErrorRecord]) -> list[str]:
        counts = Counter(e.fingerprint for e in recent)
        alert_ids = []
        for fingerprint, count in counts.items():
            if count < self.service.settings.critical_error_threshold:
                continue
            sample = next(e for e in recent if e.fingerprint == fingerprint)
            alert_ids.append(
                await self.service.report_alert(
                    ErrorReport(
                        name="ErrorSpikeAlert",
                        type="error_spike",
                        message=f'Error spike detected: {count} occurrences of "{sample.message}"',
                    ),
                    {"original_error": sample.message, "count": count, "fingerprint": fingerprint},
                    Severity.HIGH,
                )
            )
        return alert_ids

    async def check_new_error_types(self, recent: list[ErrorRecord]) -> list[str]:
        # Activity between one hour and one week ago counts as neither
        cutoff = self.service.clock() - HISTORICAL_AGE
        historical = {e.fingerprint for e in self.service.error_history if e.timestamp < cutoff}

        new_fingerprints = list(dict.fromkeys(
            e.fingerprint for e in recent if e.fingerprint not in historical
        ))

        alert_ids = []
        for fingerprint in new_fingerprints:
            sample = next(e for e in recent if e.fingerprint == fingerprint)
            alert_ids.append(
                await self.service.report_alert(
                    ErrorReport(
                        name="NewErrorTypeAlert",
                        type="new_error_type",
                        message=f'New error type detected: "{sample.message}"',
                    ),
                    {"original_error": sample.message, "fingerprint": fingerprint},
                    Severity.MEDIUM,
                )
            )
        return alert_ids
