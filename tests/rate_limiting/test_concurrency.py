"""
Tests for shared state under concurrent access.

============================================================
TEST PRINCIPLES
============================================================
- Recording and quota computation race against cleanup passes
- No worker may raise
- Totals must add up once every worker has joined

============================================================
"""

import threading

from rate_limiting.config import LimiterConfig
from rate_limiting.enforcer import QuotaEnforcer
from rate_limiting.limiter import AdaptiveLimiter
from traffic.monitor import TrafficMonitor


WORKERS = 8
ITERATIONS = 120


# ============================================================
# HELPERS
# ============================================================

def _run(targets):
    errors = []

    def wrap(target):
        def runner():
            try:
                target()
            except Exception as e:
                errors.append(e)
        return runner

    threads = [threading.Thread(target=wrap(t)) for t in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert not any(thread.is_alive() for thread in threads)
    return errors


# ============================================================
# SHARED STATE
# ============================================================

class TestSharedState:
    """Tests for monitor, limiter and enforcer under thread contention."""

    def test_recording_races_cleanup(self):
        """Test that appends and cleanup passes do not corrupt each other."""
        monitor = TrafficMonitor()
        config = LimiterConfig()
        limiter = AdaptiveLimiter(monitor=monitor, config=config)
        stop = threading.Event()

        def producer(worker):
            def run():
                identifier = f"10.0.0.{worker}"
                for _ in range(ITERATIONS):
                    monitor.record_request(identifier=identifier, method="GET", path="/items")
                    monitor.record_response(latency_ms=5, status_code=500 if worker % 2 else 200)
                    quota = limiter.compute_quota(identifier, {"method": "GET", "path": "/items"})
                    assert config.min_limit <= quota.max <= config.max_limit
                    limiter.on_limit_exceeded(identifier, quota)
            return run

        def sweeper():
            while not stop.is_set():
                monitor.cleanup()
                monitor.current_stats()
                monitor.traffic_patterns()
                limiter.cleanup()

        sweep = threading.Thread(target=sweeper)
        sweep.start()
        try:
            errors = _run([producer(w) for w in range(WORKERS)])
        finally:
            stop.set()
            sweep.join(timeout=30)

        assert errors == []

        stats = monitor.current_stats()
        assert stats.total_requests == WORKERS * ITERATIONS
        assert stats.total_errors == (WORKERS // 2) * ITERATIONS
        assert monitor.event_counts() == {
            "requests": WORKERS * ITERATIONS,
            "responses": WORKERS * ITERATIONS,
            "errors": (WORKERS // 2) * ITERATIONS,
        }

        assert sorted(limiter.tracked_identifiers()) == sorted(f"10.0.0.{w}" for w in range(WORKERS))
        for worker in range(WORKERS):
            summary = limiter.identifier_stats(f"10.0.0.{worker}")
            assert summary["offense_count"] == ITERATIONS
            assert summary["request_count"] == config.history_cap

    def test_enforcer_admits_exactly_the_quota(self):
        """Test that concurrent checks never admit more than the limit."""
        config = LimiterConfig(base_limit=50, min_limit=1, enable_adaptive_limits=False)
        limiter = AdaptiveLimiter(config=config)
        enforcer = QuotaEnforcer(limiter)
        admitted = []
        lock = threading.Lock()

        def caller():
            for _ in range(20):
                if enforcer.check("shared").allowed:
                    with lock:
                        admitted.append(1)
                enforcer.cleanup()

        errors = _run([caller for _ in range(WORKERS)])

        assert errors == []
        assert len(admitted) == 50
        assert enforcer.hit_count("shared") == 50
        assert limiter.identifier_stats("shared")["offense_count"] == WORKERS * 20 - 50
