import asyncio

import pytest

from app.schemas.health import HealthCheckResult, HealthStatus
from app.services.health_monitor import HealthMonitor, calculate_trend, generate_summary


def healthy_check(message="ok"):
    async def check():
        return HealthCheckResult(status=HealthStatus.HEALTHY, message=message)

    return check


def status_check(state: dict):
    """Check whose status is read from a mutable dict at run time."""

    async def check():
        return HealthCheckResult(status=state["status"], message=state["status"].value)

    return check


@pytest.fixture
def monitor(clock) -> HealthMonitor:
    return HealthMonitor(interval=60.0, check_timeout=0.2, clock=clock)


@pytest.mark.asyncio
async def test_failing_check_does_not_abort_the_run(monitor):
    async def broken():
        raise RuntimeError("catalog index unavailable")

    monitor.add_check("a", healthy_check())
    monitor.add_check("b", broken)
    monitor.add_check("c", healthy_check())

    report = await monitor.run_all_checks()

    assert report.overall == HealthStatus.CRITICAL
    assert report.checks["a"].status == HealthStatus.HEALTHY
    assert report.checks["c"].status == HealthStatus.HEALTHY
    assert report.checks["b"].status == HealthStatus.CRITICAL
    assert "catalog index unavailable" in report.checks["b"].message
    assert report.checks["b"].error == "RuntimeError('catalog index unavailable')"
    assert report.summary.model_dump() == {
        "total": 3,
        "healthy": 2,
        "warnings": 0,
        "critical": 1,
        "health_percentage": 67,
    }


@pytest.mark.asyncio
async def test_slow_check_times_out(monitor):
    async def slow():
        await asyncio.sleep(5)

    monitor.add_check("slow", slow)
    report = await monitor.run_all_checks()

    result = report.checks["slow"]
    assert result.status == HealthStatus.CRITICAL
    assert "timed out" in result.message
    assert "HealthCheckTimeoutError" in result.error


@pytest.mark.asyncio
async def test_overall_status_aggregation(monitor):
    state = {"status": HealthStatus.WARNING}
    monitor.add_check("healthy", healthy_check())
    monitor.add_check("variable", status_check(state))

    assert (await monitor.run_all_checks()).overall == HealthStatus.WARNING

    state["status"] = HealthStatus.HEALTHY
    assert (await monitor.run_all_checks()).overall == HealthStatus.HEALTHY


@pytest.mark.asyncio
async def test_dict_results_are_accepted(monitor):
    async def plain():
        return {"status": "warning", "message": "queue backlog", "metrics": {"depth": 12}}

    monitor.add_check("plain", plain)
    result = (await monitor.run_all_checks()).checks["plain"]
    assert result.status == HealthStatus.WARNING
    assert result.metrics == {"depth": 12}


@pytest.mark.asyncio
async def test_failure_counter(monitor):
    state = {"status": HealthStatus.CRITICAL}
    monitor.add_check("variable", status_check(state))

    await monitor.run_all_checks()
    await monitor.run_all_checks()
    assert monitor.checks["variable"].failures == 2

    state["status"] = HealthStatus.HEALTHY
    await monitor.run_all_checks()
    entry = monitor.checks["variable"]
    assert entry.failures == 0
    assert entry.last_result.status == HealthStatus.HEALTHY
    assert entry.last_executed is not None


@pytest.mark.asyncio
async def test_disabled_checks_are_skipped(monitor):
    monitor.add_check("a", healthy_check())
    monitor.add_check("b", healthy_check())
    monitor.disable_check("b")

    report = await monitor.run_all_checks()
    assert set(report.checks) == {"a"}

    monitor.enable_check("b")
    report = await monitor.run_all_checks()
    assert set(report.checks) == {"a", "b"}


@pytest.mark.asyncio
async def test_no_checks_is_healthy(monitor):
    report = await monitor.run_all_checks()
    assert report.overall == HealthStatus.HEALTHY
    assert report.summary.total == 0
    assert report.summary.health_percentage == 100


@pytest.mark.asyncio
async def test_history_keeps_last_100_reports(monitor, clock):
    monitor.add_check("a", healthy_check())
    for _ in range(101):
        clock.advance(seconds=1)
        await monitor.run_all_checks()

    assert len(monitor.history) == 100
    assert monitor.history[-1].timestamp == clock()
    assert monitor.get_health_history(5) == monitor.history[-5:]
    assert monitor.get_health_history(0) == []
    assert len(monitor.get_health_history(500)) == 100


@pytest.mark.asyncio
async def test_current_health_reuses_fresh_report(monitor, clock):
    monitor.add_check("a", healthy_check())

    first = await monitor.get_current_health()
    assert len(monitor.history) == 1

    clock.advance(seconds=119)
    assert await monitor.get_current_health() is first

    clock.advance(seconds=2)
    fresh = await monitor.get_current_health()
    assert fresh is not first
    assert len(monitor.history) == 2


@pytest.mark.asyncio
async def test_trends(monitor):
    state = {"status": HealthStatus.CRITICAL}
    monitor.add_check("variable", status_check(state))

    await monitor.run_all_checks()
    assert monitor.get_health_trends().model_dump() == {
        "trend": "stable",
        "average_health": None,
        "data": [],
    }

    for _ in range(2):
        await monitor.run_all_checks()
    state["status"] = HealthStatus.HEALTHY
    for _ in range(3):
        await monitor.run_all_checks()

    trends = monitor.get_health_trends()
    assert trends.trend == "improving"
    assert trends.data == [0, 0, 0, 100, 100, 100]
    assert trends.average_health == 50

    state["status"] = HealthStatus.CRITICAL
    for _ in range(3):
        await monitor.run_all_checks()
    assert monitor.get_health_trends().trend == "degrading"


@pytest.mark.asyncio
async def test_trend_window_is_last_ten_reports(monitor):
    monitor.add_check("a", healthy_check())
    for _ in range(15):
        await monitor.run_all_checks()

    assert monitor.get_health_trends().data == [100] * 10


@pytest.mark.asyncio
async def test_start_and_stop_monitoring(clock):
    monitor = HealthMonitor(interval=0.01, clock=clock)
    monitor.add_check("a", healthy_check())

    monitor.start_monitoring()
    assert monitor.is_monitoring
    await asyncio.sleep(0.05)
    await monitor.stop_monitoring()

    assert not monitor.is_monitoring
    assert len(monitor.history) >= 2


def test_calculate_trend():
    assert calculate_trend([]) == "stable"
    assert calculate_trend([100, 0]) == "stable"
    assert calculate_trend([50, 50, 50, 56, 56, 56]) == "improving"
    assert calculate_trend([50, 50, 50, 45, 45, 45]) == "stable"
    assert calculate_trend([50, 50, 50, 44, 44, 44]) == "degrading"


def test_health_percentage_rounds_half_up():
    results = {
        "a": HealthCheckResult(status=HealthStatus.HEALTHY, message="ok"),
        "b": HealthCheckResult(status=HealthStatus.WARNING, message="slow"),
    }
    assert generate_summary(results).health_percentage == 50

    results["c"] = HealthCheckResult(status=HealthStatus.HEALTHY, message="ok")
    assert generate_summary(results).health_percentage == 67
