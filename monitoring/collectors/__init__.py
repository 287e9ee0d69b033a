"""
Monitoring Collectors Package.

Read-only metric collectors for the metric feed.
"""

from .base import (
    BaseCollector,
    MetricSnapshot,
)
from .system import (
    SystemMetricsCollector,
    score_health,
)
from .traffic import (
    TrafficMetricsCollector,
)


__all__ = [
    # Base
    "BaseCollector",
    "MetricSnapshot",

    # System
    "SystemMetricsCollector",
    "score_health",

    # Traffic
    "TrafficMetricsCollector",
]
