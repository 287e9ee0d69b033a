"""
Core Module Package.

Infrastructure shared by every engine component.

Components:
- clock: Unified time abstraction
- exceptions: Custom exception hierarchy
- log_config: Root logger setup
"""

from .clock import ClockProtocol, SystemClock, MockClock, default_clock
from .exceptions import (
    RateLimitingError,
    ConfigurationError,
    RuleValidationError,
    ChannelError,
    ChannelDeliveryError,
    EvaluationError,
)
from .log_config import setup_logging, attach_alert_log_file, ALERT_LOGGER_NAME


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "default_clock",
    "RateLimitingError",
    "ConfigurationError",
    "RuleValidationError",
    "ChannelError",
    "ChannelDeliveryError",
    "EvaluationError",
    "setup_logging",
    "attach_alert_log_file",
    "ALERT_LOGGER_NAME",
]
