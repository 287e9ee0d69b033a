"""
Traffic Monitoring - Configuration.

============================================================
CONFIGURABLE WINDOWS AND THRESHOLDS
============================================================

- Retention horizon for raw events (1 hour)
- Stats window (60 seconds) and pattern window (5 minutes)
- Health thresholds, checked in order:
  traffic volume -> error rate -> latency

Configuration can be loaded from:
- Default values
- Environment variables (DAASR_*)

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict
import logging

from core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


# =============================================================
# HEALTH THRESHOLDS
# =============================================================


@dataclass
class HealthThresholds:
    """
    Thresholds for the traffic health classification.

    - high-load:   rps > high_traffic_rps
    - medium-load: rps > medium_traffic_rps
    - critical:    error_rate > critical_error_rate, or latency > critical_latency_ms
    - warning:     error_rate > warning_error_rate, or latency > warning_latency_ms
    """
    high_traffic_rps: float = 100.0
    medium_traffic_rps: float = 50.0
    critical_error_rate: float = 0.10
    warning_error_rate: float = 0.05
    critical_latency_ms: float = 1000.0
    warning_latency_ms: float = 500.0

    def __post_init__(self) -> None:
        """Validate thresholds."""
        if self.medium_traffic_rps > self.high_traffic_rps:
            raise ConfigurationError(
                "medium_traffic_rps must be <= high_traffic_rps",
                config_key="medium_traffic_rps",
                actual_value=self.medium_traffic_rps,
            )
        for key in ("critical_error_rate", "warning_error_rate"):
            value = getattr(self, key)
            if not 0 <= value <= 1:
                raise ConfigurationError(
                    f"{key} must be between 0 and 1",
                    config_key=key,
                    expected="0.0 - 1.0",
                    actual_value=value,
                )
        if self.warning_error_rate > self.critical_error_rate:
            raise ConfigurationError(
                "warning_error_rate must be <= critical_error_rate",
                config_key="warning_error_rate",
                actual_value=self.warning_error_rate,
            )
        if self.warning_latency_ms > self.critical_latency_ms:
            raise ConfigurationError(
                "warning_latency_ms must be <= critical_latency_ms",
                config_key="warning_latency_ms",
                actual_value=self.warning_latency_ms,
            )
        if min(self.medium_traffic_rps, self.warning_latency_ms) < 0:
            raise ConfigurationError("thresholds must be non-negative")

    def to_dict(self) -> Dict[str, float]:
        """Convert to dictionary."""
        return {
            "high_traffic_rps": self.high_traffic_rps,
            "medium_traffic_rps": self.medium_traffic_rps,
            "critical_error_rate": self.critical_error_rate,
            "warning_error_rate": self.warning_error_rate,
            "critical_latency_ms": self.critical_latency_ms,
            "warning_latency_ms": self.warning_latency_ms,
        }


# =============================================================
# MAIN CONFIGURATION
# =============================================================


@dataclass
class TrafficConfig:
    """Windows and thresholds for the traffic monitor."""

    retention_seconds: int = 3600
    stats_window_seconds: int = 60
    pattern_window_seconds: int = 300

    thresholds: HealthThresholds = field(default_factory=HealthThresholds)

    def __post_init__(self) -> None:
        """Validate windows."""
        if self.stats_window_seconds <= 0:
            raise ConfigurationError(
                "stats_window_seconds must be positive",
                config_key="stats_window_seconds",
                actual_value=self.stats_window_seconds,
            )
        if self.pattern_window_seconds <= 0:
            raise ConfigurationError(
                "pattern_window_seconds must be positive",
                config_key="pattern_window_seconds",
                actual_value=self.pattern_window_seconds,
            )
        if self.retention_seconds < max(self.stats_window_seconds, self.pattern_window_seconds):
            raise ConfigurationError(
                "retention_seconds must cover the stats and pattern windows",
                config_key="retention_seconds",
                actual_value=self.retention_seconds,
            )

    @classmethod
    def from_env(cls) -> "TrafficConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - DAASR_TRAFFIC_RETENTION_SECONDS
        - DAASR_HIGH_TRAFFIC_THRESHOLD
        - DAASR_MEDIUM_TRAFFIC_THRESHOLD
        - DAASR_CRITICAL_ERROR_RATE
        - DAASR_WARNING_ERROR_RATE
        - DAASR_CRITICAL_RESPONSE_TIME
        - DAASR_WARNING_RESPONSE_TIME
        """
        try:
            thresholds = HealthThresholds(
                high_traffic_rps=float(os.getenv("DAASR_HIGH_TRAFFIC_THRESHOLD", "100")),
                medium_traffic_rps=float(os.getenv("DAASR_MEDIUM_TRAFFIC_THRESHOLD", "50")),
                critical_error_rate=float(os.getenv("DAASR_CRITICAL_ERROR_RATE", "0.1")),
                warning_error_rate=float(os.getenv("DAASR_WARNING_ERROR_RATE", "0.05")),
                critical_latency_ms=float(os.getenv("DAASR_CRITICAL_RESPONSE_TIME", "1000")),
                warning_latency_ms=float(os.getenv("DAASR_WARNING_RESPONSE_TIME", "500")),
            )
            return cls(
                retention_seconds=int(os.getenv("DAASR_TRAFFIC_RETENTION_SECONDS", "3600")),
                thresholds=thresholds,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid traffic configuration: {e}", cause=e)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "retention_seconds": self.retention_seconds,
            "stats_window_seconds": self.stats_window_seconds,
            "pattern_window_seconds": self.pattern_window_seconds,
            "thresholds": self.thresholds.to_dict(),
        }
