"""
Tests for collectors and the metric feed.

============================================================
TEST PRINCIPLES
============================================================
- Collectors are stubbed except where the real source is cheap
- Missing or malformed metrics resolve to None, never raise
- A failing collector keeps its last good section

============================================================
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from core.clock import MockClock
from monitoring.collectors import (
    BaseCollector,
    SystemMetricsCollector,
    TrafficMetricsCollector,
    score_health,
)
from monitoring.metric_feed import MetricFeed, resolve_metric_path
from traffic.monitor import TrafficMonitor


# ============================================================
# FIXTURES
# ============================================================

class StubCollector(BaseCollector):
    """Collector returning a fixed snapshot."""

    def __init__(self, name, snapshot, clock=None):
        super().__init__(name, clock=clock)
        self.snapshot = snapshot

    async def collect(self):
        return self.snapshot


@pytest.fixture
def clock():
    """Create a clock pinned to a known instant."""
    return MockClock(datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def system_stub(clock):
    """Create a stub system collector."""
    return StubCollector("system", {
        "system": {
            "cpu": {"overall": 42.0, "count": 4},
            "memory": {"usagePercent": 61.5},
            "load": {"load1": 1.2},
        },
    }, clock=clock)


# ============================================================
# PATH RESOLUTION
# ============================================================

class TestResolveMetricPath:
    """Tests for dotted path lookup."""

    SNAPSHOT = {
        "system": {"cpu": {"overall": 55, "cores": [1, 2]}, "healthy": True},
        "custom": {"queue": float("nan")},
    }

    def test_resolves_nested_number(self):
        assert resolve_metric_path(self.SNAPSHOT, "system.cpu.overall") == 55.0

    @pytest.mark.parametrize("path", [
        "system.cpu.missing",
        "system.cpu",
        "system.cpu.cores",
        "system.healthy",
        "custom.queue",
        "nothing.at.all",
    ])
    def test_unusable_values_are_none(self, path):
        assert resolve_metric_path(self.SNAPSHOT, path) is None


# ============================================================
# METRIC FEED
# ============================================================

class TestMetricFeed:
    """Tests for MetricFeed."""

    @pytest.mark.asyncio
    async def test_refresh_merges_sections(self, clock, system_stub):
        monitor = TrafficMonitor(clock=clock)
        monitor.record_request(identifier="a", path="/")
        feed = MetricFeed([system_stub, TrafficMetricsCollector(monitor, clock=clock)], clock=clock)

        await feed.refresh()

        assert feed.get_metric_value("system.cpu.overall") == 42.0
        assert feed.get_metric_value("application.requests_per_minute") == 1.0
        assert feed.refreshed_at == clock.now()

    @pytest.mark.asyncio
    async def test_failing_collector_keeps_last_section(self, clock, system_stub):
        feed = MetricFeed([system_stub], clock=clock)
        await feed.refresh()

        system_stub.collect = AsyncMock(side_effect=RuntimeError("psutil unavailable"))
        await feed.refresh()

        assert feed.get_metric_value("system.memory.usagePercent") == 61.5
        assert system_stub.error_count == 1

    @pytest.mark.asyncio
    async def test_stale_section_expires(self, clock, system_stub):
        """Test that a collector failing repeatedly stops feeding old values."""
        feed = MetricFeed([system_stub], clock=clock, max_failed_refreshes=3)
        await feed.refresh()

        system_stub.collect = AsyncMock(side_effect=RuntimeError("psutil unavailable"))
        await feed.refresh()
        await feed.refresh()
        assert feed.get_metric_value("system.cpu.overall") == 42.0

        await feed.refresh()
        assert feed.get_metric_value("system.cpu.overall") is None

        system_stub.collect = AsyncMock(return_value={"system": {"cpu": {"overall": 55.0}}})
        await feed.refresh()
        assert feed.get_metric_value("system.cpu.overall") == 55.0

    @pytest.mark.asyncio
    async def test_intermittent_failures_do_not_expire(self, clock, system_stub):
        feed = MetricFeed([system_stub], clock=clock, max_failed_refreshes=2)
        await feed.refresh()
        snapshot = system_stub.snapshot

        for _ in range(3):
            system_stub.collect = AsyncMock(side_effect=RuntimeError("timeout"))
            await feed.refresh()
            system_stub.collect = AsyncMock(return_value=snapshot)
            await feed.refresh()

        assert feed.get_metric_value("system.cpu.overall") == 42.0

    def test_empty_feed(self, clock):
        feed = MetricFeed(clock=clock)
        assert feed.get_metric_value("system.cpu.overall") is None

    def test_custom_metrics(self, clock):
        feed = MetricFeed(clock=clock)

        feed.add_custom_metric("queue_depth", 17, labels={"queue": "email"})

        assert feed.get_metric_value("custom.queue_depth") == 17.0
        assert feed.custom_metrics()["queue_depth"]["labels"] == {"queue": "email"}


# ============================================================
# COLLECTORS
# ============================================================

class TestTrafficMetricsCollector:
    """Tests for TrafficMetricsCollector."""

    @pytest.mark.asyncio
    async def test_error_rate_as_percentage(self, clock):
        monitor = TrafficMonitor(clock=clock)
        for _ in range(10):
            monitor.record_request(identifier="a")
        monitor.record_response(latency_ms=300, status_code=500)
        monitor.record_response(latency_ms=100, status_code=200)

        snapshot = await TrafficMetricsCollector(monitor, clock=clock).collect()

        app = snapshot["application"]
        assert app["error_rate"] == pytest.approx(10.0)
        assert app["response_time"] == pytest.approx(200.0)
        assert app["total_requests"] == 10


class TestSystemMetricsCollector:
    """Tests for SystemMetricsCollector."""

    @pytest.mark.asyncio
    async def test_collect_shape(self):
        collector = SystemMetricsCollector()

        snapshot = await collector.collect()

        assert 0.0 <= snapshot["system"]["cpu"]["overall"] <= 100.0
        assert "usagePercent" in snapshot["system"]["memory"]
        assert snapshot["process"]["pid"] > 0
        assert collector.health_status()["status"] in ("healthy", "warning", "critical")


class TestScoreHealth:
    """Tests for the system health score."""

    def test_healthy(self):
        assert score_health({}) == {"status": "healthy", "score": 100, "issues": []}

    def test_cpu_and_memory_penalties(self):
        result = score_health({"system": {
            "cpu": {"overall": 85.0, "count": 4},
            "memory": {"usagePercent": 95.0},
        }})

        assert result["score"] == 55
        assert result["status"] == "warning"
        assert len(result["issues"]) == 2

    def test_critical(self):
        result = score_health({"system": {
            "cpu": {"overall": 99.0, "count": 2},
            "memory": {"usagePercent": 99.0},
            "load": {"load1": 8.0},
        }})

        assert result["score"] == 40
        assert result["status"] == "critical"
