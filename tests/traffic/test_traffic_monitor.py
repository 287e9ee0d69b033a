"""
Tests for the traffic monitor.

============================================================
TEST PRINCIPLES
============================================================
- Time is driven by MockClock, never by sleeping
- Windows are exercised at their exact boundaries
- Statistics are checked against hand-computed values

============================================================
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.clock import MockClock
from core.exceptions import ConfigurationError
from traffic.config import HealthThresholds, TrafficConfig
from traffic.models import HealthStatus, RequestEvent, TrafficSnapshot
from traffic.monitor import TrafficMonitor, health_status


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock():
    """Create a clock pinned to a known instant."""
    return MockClock(datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def monitor(clock):
    """Create a monitor with default windows."""
    return TrafficMonitor(clock=clock)


def _record(monitor, count, identifier="10.0.0.1", path="/api/items"):
    for _ in range(count):
        monitor.record_request(identifier=identifier, method="get", path=path)


# ============================================================
# RECORDING
# ============================================================

class TestRecording:
    """Tests for request and response recording."""

    def test_record_request_from_keywords(self, monitor, clock):
        """Test that keyword fields become a timestamped event."""
        event = monitor.record_request(identifier="1.2.3.4", method="post", path="/login")

        assert event.identifier == "1.2.3.4"
        assert event.method == "POST"
        assert event.path == "/login"
        assert event.timestamp == clock.now()

    def test_record_request_accepts_http_aliases(self, monitor):
        """Test that ip/url/userAgent aliases are understood."""
        event = monitor.record_request({"ip": "5.6.7.8", "url": "/a?b=1", "userAgent": "curl"})

        assert event.identifier == "5.6.7.8"
        assert event.endpoint == "/a"
        assert event.user_agent == "curl"

    def test_missing_fields_become_unknown(self, monitor):
        """Test that incomplete metadata is still recorded."""
        event = monitor.record_request({})

        assert event.identifier == "unknown"
        assert event.method == "UNKNOWN"
        assert monitor.event_counts()["requests"] == 1

    def test_prebuilt_event_is_kept(self, monitor, clock):
        """Test that a RequestEvent is stored as given."""
        event = RequestEvent("a", "GET", "/", "ua", clock.now())
        assert monitor.record_request(event) is event

    def test_naive_timestamp_is_taken_as_utc(self, monitor, clock):
        """Test that a timestamp without tzinfo does not break the windows."""
        naive = datetime(2024, 1, 15, 11, 59, 30)
        event = monitor.record_request({"identifier": "a", "timestamp": naive})
        monitor.record_response({"timestamp": naive, "latency_ms": 40, "status_code": 500})

        assert event.timestamp == naive.replace(tzinfo=timezone.utc)

        stats = monitor.current_stats()
        assert stats.requests_per_minute == 1
        assert stats.error_rate == 1.0

        clock.advance(hours=2)
        assert monitor.cleanup() == 3

    def test_offset_timestamp_is_converted(self, monitor):
        """Test that an aware non-UTC timestamp is normalised."""
        local = datetime(2024, 1, 15, 13, 0, 0, tzinfo=timezone(timedelta(hours=1)))
        event = monitor.record_request({"timestamp": local})

        assert event.timestamp == datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
        assert event.timestamp.utcoffset() == timedelta(0)

    def test_error_responses_land_in_error_log(self, monitor):
        """Test that status >= 400 counts as an error."""
        monitor.record_response(latency_ms=10, status_code=200)
        monitor.record_response(latency_ms=10, status_code=404)
        monitor.record_response(latency_ms=10, status_code=503)

        counts = monitor.event_counts()
        assert counts["responses"] == 3
        assert counts["errors"] == 2

    def test_bad_latency_is_coerced(self, monitor):
        """Test that unparseable latency becomes zero."""
        event = monitor.record_response({"latency": "n/a", "statusCode": "500"})

        assert event.latency_ms == 0.0
        assert event.status_code == 500
        assert event.is_error


# ============================================================
# STATISTICS
# ============================================================

class TestCurrentStats:
    """Tests for windowed statistics."""

    def test_empty_monitor(self, monitor):
        """Test that an idle monitor reports zeros."""
        stats = monitor.current_stats()

        assert stats.requests_per_second == 0.0
        assert stats.requests_per_minute == 0
        assert stats.average_latency_ms == 0.0
        assert stats.error_rate == 0.0

    def test_rps_is_requests_over_window(self, monitor):
        """Test that RPS is the 60s count divided by 60."""
        _record(monitor, 90)

        stats = monitor.current_stats()

        assert stats.requests_per_minute == 90
        assert stats.requests_per_second == pytest.approx(1.5)

    def test_error_rate_round_trip(self, monitor):
        """Test that k errors out of N requests yields k/N."""
        _record(monitor, 40)
        for status in [500] * 6 + [200] * 34:
            monitor.record_response(latency_ms=100, status_code=status)

        stats = monitor.current_stats()

        assert stats.error_rate == pytest.approx(6 / 40)

    def test_average_latency(self, monitor):
        """Test mean latency over window responses."""
        for latency in (100, 200, 600):
            monitor.record_response(latency_ms=latency, status_code=200)

        assert monitor.current_stats().average_latency_ms == pytest.approx(300)

    def test_window_boundary_excludes_old_events(self, monitor, clock):
        """Test that an event exactly 60s old is outside the window."""
        _record(monitor, 30)
        clock.advance(seconds=60)
        _record(monitor, 6)

        stats = monitor.current_stats()

        assert stats.requests_per_minute == 6
        assert stats.total_requests == 36

    def test_out_of_order_event_does_not_hide_window(self, monitor, clock):
        """Test that a late, older event leaves in-window events counted."""
        _record(monitor, 10)
        monitor.record_response(latency_ms=100, status_code=200)
        old = clock.now() - timedelta(seconds=120)
        monitor.record_request({"identifier": "late", "timestamp": old})
        monitor.record_response({"timestamp": old, "latency_ms": 900, "status_code": 500})

        stats = monitor.current_stats()

        assert stats.requests_per_minute == 10
        assert stats.average_latency_ms == pytest.approx(100)
        assert stats.error_rate == 0.0
        assert stats.total_requests == 11

    def test_current_stats_is_idempotent(self, monitor):
        """Test that repeated reads without new events agree."""
        _record(monitor, 12)
        monitor.record_response(latency_ms=250, status_code=500)

        first = monitor.current_stats()
        second = monitor.current_stats()

        assert first.to_dict() == second.to_dict()

    def test_peaks_only_move_up(self, monitor, clock):
        """Test that peak RPS survives a quiet period."""
        _record(monitor, 120)
        busy = monitor.current_stats()

        clock.advance(seconds=120)
        quiet = monitor.current_stats()

        assert quiet.requests_per_second == 0.0
        assert quiet.peak_rps == busy.requests_per_second == pytest.approx(2.0)

    def test_stats_ignore_pattern_window(self, clock):
        """Test that a custom stats window is honoured."""
        monitor = TrafficMonitor(TrafficConfig(stats_window_seconds=10), clock=clock)
        _record(monitor, 20)

        assert monitor.current_stats().requests_per_second == pytest.approx(2.0)


class TestCleanup:
    """Tests for retention pruning."""

    def test_cleanup_drops_expired_events(self, monitor, clock):
        """Test that events older than an hour are removed."""
        _record(monitor, 5)
        monitor.record_response(latency_ms=5, status_code=500)

        clock.advance(hours=1)
        _record(monitor, 2)

        removed = monitor.cleanup()

        assert removed == 7
        assert monitor.event_counts() == {"requests": 2, "responses": 0, "errors": 0}

    def test_cleanup_ignores_arrival_order(self, monitor, clock):
        """Test that an expired event behind a fresh one is still pruned."""
        _record(monitor, 2)
        monitor.record_request({"timestamp": clock.now() - timedelta(hours=2)})
        _record(monitor, 1)

        assert monitor.cleanup() == 1
        assert monitor.event_counts()["requests"] == 3

    def test_cleanup_keeps_totals(self, monitor, clock):
        """Test that lifetime totals survive pruning."""
        _record(monitor, 3)
        clock.advance(hours=2)
        monitor.cleanup()

        assert monitor.current_stats().total_requests == 3

    def test_reset_clears_everything(self, monitor):
        """Test that reset drops logs, totals and peaks."""
        _record(monitor, 10)
        monitor.current_stats()
        monitor.reset()

        stats = monitor.current_stats()
        assert stats.total_requests == 0
        assert stats.peak_rps == 0.0
        assert monitor.event_counts()["requests"] == 0


# ============================================================
# PATTERNS AND HISTORY
# ============================================================

class TestPatterns:
    """Tests for frequency tables."""

    def test_pattern_tables(self, monitor):
        """Test endpoint, identifier and method counts."""
        _record(monitor, 3, identifier="a", path="/x?page=1")
        _record(monitor, 1, identifier="b", path="/y")

        patterns = monitor.traffic_patterns()

        assert patterns.top_endpoints == {"/x": 3, "/y": 1}
        assert patterns.top_identifiers == {"a": 3, "b": 1}
        assert patterns.method_distribution == {"GET": 4}
        assert patterns.hourly_distribution == {12: 4}

    def test_pattern_window_is_five_minutes(self, monitor, clock):
        """Test that requests older than 5 minutes drop out."""
        _record(monitor, 2, path="/old")
        clock.advance(minutes=5)
        _record(monitor, 1, path="/new")

        assert monitor.traffic_patterns().top_endpoints == {"/new": 1}

    def test_traffic_history(self, monitor, clock):
        """Test raw event history for a number of minutes."""
        _record(monitor, 2)
        clock.advance(minutes=10)
        _record(monitor, 1)
        monitor.record_response(latency_ms=1, status_code=502)

        history = monitor.traffic_history(minutes=5)

        assert len(history["requests"]) == 1
        assert len(history["errors"]) == 1

    def test_detailed_analytics_shape(self, monitor):
        """Test the combined observer payload."""
        _record(monitor, 1)

        analytics = monitor.detailed_analytics()

        assert analytics["requests_per_minute"] == 1
        assert "patterns" in analytics
        assert analytics["health"]["status"] == "healthy"
        assert analytics["summary"]["total_requests"] == 1


# ============================================================
# HEALTH
# ============================================================

class TestHealthStatus:
    """Tests for health classification."""

    @pytest.mark.parametrize("stats,expected", [
        (TrafficSnapshot(), HealthStatus.HEALTHY),
        (TrafficSnapshot(requests_per_second=101), HealthStatus.HIGH_LOAD),
        (TrafficSnapshot(requests_per_second=51), HealthStatus.MEDIUM_LOAD),
        (TrafficSnapshot(error_rate=0.11), HealthStatus.CRITICAL),
        (TrafficSnapshot(error_rate=0.06), HealthStatus.WARNING),
        (TrafficSnapshot(average_latency_ms=1001), HealthStatus.CRITICAL),
        (TrafficSnapshot(average_latency_ms=501), HealthStatus.WARNING),
        (TrafficSnapshot(error_rate=0.05, average_latency_ms=500), HealthStatus.HEALTHY),
    ])
    def test_classification(self, stats, expected):
        """Test each tier of the classification."""
        assert health_status(stats) == expected

    def test_traffic_checked_before_errors(self):
        """Test that load wins over a high error rate."""
        stats = TrafficSnapshot(requests_per_second=150, error_rate=0.5)
        assert health_status(stats) == HealthStatus.HIGH_LOAD

    def test_custom_thresholds(self, clock):
        """Test that the monitor uses its configured thresholds."""
        config = TrafficConfig(thresholds=HealthThresholds(high_traffic_rps=1, medium_traffic_rps=0.5))
        monitor = TrafficMonitor(config, clock=clock)
        _record(monitor, 90)

        assert monitor.health_status() == HealthStatus.HIGH_LOAD

    def test_invalid_thresholds_rejected(self):
        """Test threshold validation."""
        with pytest.raises(ConfigurationError):
            HealthThresholds(warning_error_rate=0.2, critical_error_rate=0.1)
