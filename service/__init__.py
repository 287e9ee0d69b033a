"""
Service Package.

Composition root of the DAASR engine: configuration, periodic
ticks, observer broadcast and the request path.
"""

from .config import ServiceConfig
from .scheduler import PeriodicTask
from .broadcast import (
    BroadcastHub,
    BroadcastSink,
    QueueSink,
    alert_message,
    stats_message,
)
from .engine import RateLimitingService


__all__ = [
    "ServiceConfig",
    "PeriodicTask",
    "BroadcastHub",
    "BroadcastSink",
    "QueueSink",
    "alert_message",
    "stats_message",
    "RateLimitingService",
]
