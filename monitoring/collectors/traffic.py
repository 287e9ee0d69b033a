"""
Monitoring Collectors - Traffic Metrics.

Exposes traffic monitor statistics under ``application.*``.
Error rate is published as a percentage so rule thresholds read
naturally (``application.error_rate > 5``).
"""

import logging
from typing import Optional

from core.clock import ClockProtocol
from traffic.monitor import TrafficMonitor

from .base import BaseCollector, MetricSnapshot


logger = logging.getLogger(__name__)


class TrafficMetricsCollector(BaseCollector):
    """Reads the traffic monitor's current snapshot."""

    def __init__(self, monitor: TrafficMonitor, clock: Optional[ClockProtocol] = None):
        super().__init__("traffic", clock=clock)
        self._monitor = monitor

    async def collect(self) -> MetricSnapshot:
        stats = self._monitor.current_stats()
        return {
            "application": {
                "response_time": stats.average_latency_ms,
                "error_rate": stats.error_rate * 100,
                "requests_per_second": stats.requests_per_second,
                "requests_per_minute": stats.requests_per_minute,
                "peak_rps": stats.peak_rps,
                "total_requests": stats.total_requests,
                "total_errors": stats.total_errors,
            }
        }
