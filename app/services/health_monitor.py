"""Health monitoring: a registry of named async checks run on a timer."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from app.core.background_tasks import PeriodicJob
from app.core.exceptions import HealthCheckTimeoutError
from app.schemas.health import (
    HealthCheckResult,
    HealthReport,
    HealthStatus,
    HealthSummary,
    HealthTrends,
)

logger = logging.getLogger(__name__)

HealthCheck = Callable[[], Awaitable[HealthCheckResult | dict[str, Any]]]


@dataclass
class HealthCheckEntry:
    """A registered check and its latest outcome."""

    name: str
    check: HealthCheck
    last_result: HealthCheckResult | None = None
    last_executed: datetime | None = None
    failures: int = 0
    enabled: bool = True


def aggregate_status(results: Iterable[HealthCheckResult]) -> HealthStatus:
    """Critical if any check is critical, warning if any is not healthy."""
    statuses = {r.status for r in results}
    if HealthStatus.CRITICAL in statuses:
        return HealthStatus.CRITICAL
    if statuses - {HealthStatus.HEALTHY}:
        return HealthStatus.WARNING
    return HealthStatus.HEALTHY


def generate_summary(results: dict[str, HealthCheckResult]) -> HealthSummary:
    total = len(results)
    statuses = [r.status for r in results.values()]
    healthy = statuses.count(HealthStatus.HEALTHY)
    return HealthSummary(
        total=total,
        healthy=healthy,
        warnings=statuses.count(HealthStatus.WARNING),
        critical=statuses.count(HealthStatus.CRITICAL),
        health_percentage=int(healthy * 100 / total + 0.5) if total else 100,
    )


def calculate_trend(scores: list[int]) -> str:
    """Compare the mean of the last 3 scores with the 3 before them."""
    recent = scores[-3:]
    older = scores[-6:-3]
    if len(scores) < 2 or not recent or not older:
        return "stable"

    difference = sum(recent) / len(recent) - sum(older) / len(older)
    if difference > 5:
        return "improving"
    if difference < -5:
        return "degrading"
    return "stable"


class HealthMonitor:
    """Runs registered health checks and keeps a rolling report history."""

    MAX_HISTORY_SIZE = 100
    CHECK_TIMEOUT = 5.0  # seconds
    TREND_WINDOW = 10

    def __init__(
        self,
        interval: float = 60.0,
        check_timeout: float = CHECK_TIMEOUT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize health monitor.

        Args:
            interval: Seconds between scheduled runs
            check_timeout: Ceiling for a single check, in seconds
            clock: Returns the current UTC time
        """
        self.interval = interval
        self.check_timeout = check_timeout
        self.clock = clock or (lambda: datetime.now(UTC))

        self.checks: dict[str, HealthCheckEntry] = {}
        self.history: list[HealthReport] = []
        self.last_check_time: datetime | None = None
        self._job = PeriodicJob("health_monitoring", interval, self.run_all_checks, run_immediately=True)

    # ==================== REGISTRY ====================

    def add_check(self, name: str, check: HealthCheck) -> None:
        """Register (or replace) a named check."""
        self.checks[name] = HealthCheckEntry(name=name, check=check)

    def enable_check(self, name: str) -> None:
        self.checks[name].enabled = True

    def disable_check(self, name: str) -> None:
        self.checks[name].enabled = False

    # ==================== SCHEDULING ====================

    @property
    def is_monitoring(self) -> bool:
        return self._job.is_running

    def start_monitoring(self) -> None:
        """Run all checks now and then every interval."""
        if self.is_monitoring:
            logger.warning("Health monitoring already running")
            return
        self._job.start()
        logger.info(f"Health monitoring started: {len(self.checks)} checks every {self.interval}s")

    async def stop_monitoring(self) -> None:
        await self._job.stop()
        logger.info("Health monitoring stopped")

    # ==================== EXECUTION ====================

    async def run_all_checks(self) -> HealthReport:
        """Run every enabled check and record the aggregated report.

        A check that raises or times out is reported as critical; it never
        aborts the run.
        """
        started = time.perf_counter()
        results: dict[str, HealthCheckResult] = {}

        for name, entry in list(self.checks.items()):
            if not entry.enabled:
                continue
            results[name] = await self.run_single_check(entry)

        overall = aggregate_status(results.values())
        report = HealthReport(
            overall=overall,
            timestamp=self.clock(),
            execution_time=int((time.perf_counter() - started) * 1000),
            checks=results,
            summary=generate_summary(results),
        )
        self._add_to_history(report)
        self.last_check_time = report.timestamp

        if overall == HealthStatus.HEALTHY:
            logger.debug(f"Health check completed - all systems healthy ({report.execution_time}ms)")
        else:
            failed = [name for name, r in results.items() if r.status != HealthStatus.HEALTHY]
            logger.warning(f"Health check completed - {overall.value}: {', '.join(failed)}")

        return report

    async def run_single_check(self, entry: HealthCheckEntry) -> HealthCheckResult:
        """Run one check under the timeout ceiling and update its entry."""
        started = time.perf_counter()
        try:
            outcome = await asyncio.wait_for(entry.check(), timeout=self.check_timeout)
            if isinstance(outcome, HealthCheckResult):
                result = outcome
            else:
                result = HealthCheckResult.model_validate(outcome)
        except asyncio.TimeoutError:
            error = HealthCheckTimeoutError(entry.name, self.check_timeout)
            result = self._failed_result(error)
        except Exception as e:
            result = self._failed_result(e)

        result.execution_time = int((time.perf_counter() - started) * 1000)

        entry.last_result = result
        entry.last_executed = self.clock()
        if result.status == HealthStatus.HEALTHY:
            entry.failures = 0
        else:
            entry.failures += 1
            if result.error:
                logger.error(
                    f"Health check '{entry.name}' failed ({entry.failures} in a row): {result.error}"
                )
        return result

    @staticmethod
    def _failed_result(error: Exception) -> HealthCheckResult:
        return HealthCheckResult(
            status=HealthStatus.CRITICAL,
            message=f"Health check failed: {error}",
            error=repr(error),
        )

    def _add_to_history(self, report: HealthReport) -> None:
        self.history.append(report)
        if len(self.history) > self.MAX_HISTORY_SIZE:
            del self.history[: len(self.history) - self.MAX_HISTORY_SIZE]

    # ==================== QUERIES ====================

    async def get_current_health(self) -> HealthReport:
        """Latest report, re-run when older than two monitoring intervals."""
        stale_after = timedelta(seconds=self.interval * 2)
        if (
            self.last_check_time is None
            or not self.history
            or self.clock() - self.last_check_time > stale_after
        ):
            return await self.run_all_checks()
        return self.history[-1]

    def get_health_history(self, limit: int = 10) -> list[HealthReport]:
        if limit <= 0:
            return []
        return self.history[-limit:]

    def get_health_trends(self) -> HealthTrends:
        if len(self.history) < 2:
            return HealthTrends()

        scores = [r.summary.health_percentage for r in self.history[-self.TREND_WINDOW:]]
        return HealthTrends(
            trend=calculate_trend(scores),
            average_health=int(sum(scores) / len(scores) + 0.5),
            data=scores,
        )
