"""
Traffic Monitoring - Monitor.

============================================================
PURPOSE
============================================================
Turns the stream of request/response events into windowed
statistics and pattern summaries.

- Rolling request, response and error logs (1 hour retention)
- RPS, mean latency and error rate over the last 60 seconds
- Frequency tables over the last 5 minutes
- Health classification of a snapshot

============================================================
THREAD SAFETY
============================================================

Every log is guarded by one re-entrant lock. Logs are kept in
arrival order, which is not necessarily timestamp order: callers
may supply their own timestamps. Pruning and window scans
therefore filter on each event's timestamp.

Recording never prunes. Pruning runs on the stats tick
(``cleanup``) and lazily inside ``current_stats``.

============================================================
"""

import logging
import threading
from collections import Counter, deque
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, Iterable, List, Mapping, Optional, Union

from core.clock import ClockProtocol, default_clock

from .config import HealthThresholds, TrafficConfig
from .models import (
    HealthStatus,
    RequestEvent,
    ResponseEvent,
    TrafficPatterns,
    TrafficSnapshot,
)


logger = logging.getLogger(__name__)


# =============================================================
# HEALTH CLASSIFICATION
# =============================================================


def health_status(
    stats: TrafficSnapshot,
    thresholds: Optional[HealthThresholds] = None,
) -> HealthStatus:
    """
    Classify a snapshot.

    Checks run in a fixed order and the first match wins:
    traffic volume, then error rate, then latency.
    """
    t = thresholds or HealthThresholds()

    if stats.requests_per_second > t.high_traffic_rps:
        return HealthStatus.HIGH_LOAD
    if stats.requests_per_second > t.medium_traffic_rps:
        return HealthStatus.MEDIUM_LOAD

    if stats.error_rate > t.critical_error_rate:
        return HealthStatus.CRITICAL
    if stats.error_rate > t.warning_error_rate:
        return HealthStatus.WARNING

    if stats.average_latency_ms > t.critical_latency_ms:
        return HealthStatus.CRITICAL
    if stats.average_latency_ms > t.warning_latency_ms:
        return HealthStatus.WARNING

    return HealthStatus.HEALTHY


# =============================================================
# TRAFFIC MONITOR
# =============================================================


EventData = Union[RequestEvent, ResponseEvent, Mapping[str, Any], None]


class TrafficMonitor:
    """
    Sliding-window traffic statistics.

    Owns the raw event logs exclusively; callers only see
    snapshots and copies.
    """

    def __init__(
        self,
        config: Optional[TrafficConfig] = None,
        clock: Optional[ClockProtocol] = None,
    ):
        """Initialize traffic monitor."""
        self._config = config or TrafficConfig()
        self._clock = default_clock(clock)
        self._lock = threading.RLock()

        self._requests: Deque[RequestEvent] = deque()
        self._responses: Deque[ResponseEvent] = deque()
        self._errors: Deque[ResponseEvent] = deque()

        self._total_requests = 0
        self._total_errors = 0
        self._peak_rps = 0.0
        self._peak_latency_ms = 0.0
        self._started_at = self._clock.now()

    @property
    def config(self) -> TrafficConfig:
        return self._config

    @property
    def thresholds(self) -> HealthThresholds:
        return self._config.thresholds

    # =========================================================
    # RECORD METHODS
    # =========================================================

    def record_request(self, event: EventData = None, **fields: Any) -> RequestEvent:
        """
        Record an inbound request.

        Accepts a RequestEvent, a mapping, or keyword fields.
        Never raises.
        """
        if not isinstance(event, RequestEvent):
            data = dict(event) if isinstance(event, Mapping) else {}
            data.update(fields)
            event = RequestEvent.from_data(data, self._clock.now())

        with self._lock:
            self._requests.append(event)
            self._total_requests += 1

        return event

    def record_response(self, event: EventData = None, **fields: Any) -> ResponseEvent:
        """
        Record a completed response.

        Status codes >= 400 also land in the error log.
        """
        if not isinstance(event, ResponseEvent):
            data = dict(event) if isinstance(event, Mapping) else {}
            data.update(fields)
            event = ResponseEvent.from_data(data, self._clock.now())

        with self._lock:
            self._responses.append(event)
            if event.is_error:
                self._errors.append(event)
                self._total_errors += 1

        return event

    # =========================================================
    # PRUNING
    # =========================================================

    def cleanup(self) -> int:
        """Drop events older than the retention horizon. Returns the count removed."""
        with self._lock:
            return self._prune(self._clock.now())

    def _prune(self, now: datetime) -> int:
        cutoff = now - timedelta(seconds=self._config.retention_seconds)
        removed = 0
        for log in (self._requests, self._responses, self._errors):
            kept = [e for e in log if e.timestamp > cutoff]
            if len(kept) != len(log):
                removed += len(log) - len(kept)
                log.clear()
                log.extend(kept)
        return removed

    @staticmethod
    def _since(log: Iterable, cutoff: datetime) -> List:
        """Events newer than ``cutoff``, in arrival order."""
        return [e for e in log if e.timestamp > cutoff]

    # =========================================================
    # STATISTICS
    # =========================================================

    def current_stats(self) -> TrafficSnapshot:
        """
        Compute statistics over the last stats window.

        Peaks only ever move up, so repeated calls without new
        events return the same values apart from ``computed_at``.
        """
        with self._lock:
            now = self._clock.now()
            self._prune(now)

            window = self._config.stats_window_seconds
            cutoff = now - timedelta(seconds=window)

            recent_requests = self._since(self._requests, cutoff)
            recent_responses = self._since(self._responses, cutoff)
            recent_errors = self._since(self._errors, cutoff)

            request_count = len(recent_requests)
            rps = request_count / window

            average_latency = 0.0
            if recent_responses:
                latencies = [r.latency_ms for r in recent_responses]
                average_latency = sum(latencies) / len(latencies)
                self._peak_latency_ms = max(self._peak_latency_ms, max(latencies))

            error_rate = len(recent_errors) / request_count if request_count else 0.0

            self._peak_rps = max(self._peak_rps, rps)

            return TrafficSnapshot(
                requests_per_second=rps,
                requests_per_minute=request_count,
                average_latency_ms=average_latency,
                error_rate=error_rate,
                peak_rps=self._peak_rps,
                peak_latency_ms=self._peak_latency_ms,
                total_requests=self._total_requests,
                total_errors=self._total_errors,
                computed_at=now,
            )

    def traffic_patterns(self) -> TrafficPatterns:
        """Frequency tables over the pattern window. Display only."""
        with self._lock:
            now = self._clock.now()
            cutoff = now - timedelta(seconds=self._config.pattern_window_seconds)
            recent = self._since(self._requests, cutoff)

        endpoints: Counter = Counter()
        identifiers: Counter = Counter()
        user_agents: Counter = Counter()
        methods: Counter = Counter()
        hours: Counter = Counter()

        for req in recent:
            endpoints[req.endpoint] += 1
            identifiers[req.identifier] += 1
            user_agents[req.user_agent] += 1
            methods[req.method] += 1
            hours[req.timestamp.hour] += 1

        return TrafficPatterns(
            top_endpoints=dict(endpoints),
            top_identifiers=dict(identifiers),
            top_user_agents=dict(user_agents),
            method_distribution=dict(methods),
            hourly_distribution=dict(hours),
        )

    def health_status(self, stats: Optional[TrafficSnapshot] = None) -> HealthStatus:
        """Classify ``stats`` (or fresh stats) with the configured thresholds."""
        return health_status(stats or self.current_stats(), self._config.thresholds)

    def traffic_history(self, minutes: int = 60) -> Dict[str, List[Dict[str, Any]]]:
        """Raw events of the last ``minutes``."""
        with self._lock:
            cutoff = self._clock.now() - timedelta(minutes=minutes)
            return {
                "requests": [e.to_dict() for e in self._since(self._requests, cutoff)],
                "responses": [e.to_dict() for e in self._since(self._responses, cutoff)],
                "errors": [e.to_dict() for e in self._since(self._errors, cutoff)],
            }

    def system_health(self) -> Dict[str, Any]:
        """Health status with the metrics and thresholds behind it."""
        stats = self.current_stats()
        return {
            "status": self.health_status(stats).value,
            "metrics": {
                "requests_per_second": stats.requests_per_second,
                "average_latency_ms": stats.average_latency_ms,
                "error_rate": stats.error_rate,
                "total_requests": stats.total_requests,
                "total_errors": stats.total_errors,
            },
            "thresholds": self._config.thresholds.to_dict(),
        }

    def detailed_analytics(self) -> Dict[str, Any]:
        """Stats, patterns and health combined for observers."""
        stats = self.current_stats()
        patterns = self.traffic_patterns()
        health = self.system_health()

        analytics = stats.to_dict()
        analytics["patterns"] = patterns.to_dict()
        analytics["health"] = health
        analytics["summary"] = {
            "total_requests": stats.total_requests,
            "total_errors": stats.total_errors,
            "uptime_seconds": (self._clock.now() - self._started_at).total_seconds(),
            "status": health["status"],
        }
        return analytics

    def log_traffic_stats(self) -> None:
        """Periodic traffic summary line."""
        stats = self.current_stats()
        patterns = self.traffic_patterns()

        logger.info(
            f"Traffic statistics: rps={stats.requests_per_second:.2f} "
            f"latency={stats.average_latency_ms:.1f}ms "
            f"error_rate={stats.error_rate:.4f} "
            f"top_endpoints={TrafficPatterns.top(patterns.top_endpoints)} "
            f"top_identifiers={TrafficPatterns.top(patterns.top_identifiers)} "
            f"methods={patterns.method_distribution}"
        )

    # =========================================================
    # ADMIN
    # =========================================================

    def reset(self) -> None:
        """Clear all logs, counters and peaks."""
        with self._lock:
            self._requests.clear()
            self._responses.clear()
            self._errors.clear()
            self._total_requests = 0
            self._total_errors = 0
            self._peak_rps = 0.0
            self._peak_latency_ms = 0.0
            self._started_at = self._clock.now()

        logger.info("Traffic statistics reset")

    def event_counts(self) -> Dict[str, int]:
        """Sizes of the raw logs."""
        with self._lock:
            return {
                "requests": len(self._requests),
                "responses": len(self._responses),
                "errors": len(self._errors),
            }
