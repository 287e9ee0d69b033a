"""
Traffic Monitoring Package.

Sliding-window request/response statistics feeding the
adaptive limiter and the application metrics.
"""

from .config import HealthThresholds, TrafficConfig
from .models import (
    HealthStatus,
    RequestEvent,
    ResponseEvent,
    TrafficSnapshot,
    TrafficPatterns,
)
from .monitor import TrafficMonitor, health_status


__all__ = [
    # Config
    "HealthThresholds",
    "TrafficConfig",

    # Models
    "HealthStatus",
    "RequestEvent",
    "ResponseEvent",
    "TrafficSnapshot",
    "TrafficPatterns",

    # Monitor
    "TrafficMonitor",
    "health_status",
]
