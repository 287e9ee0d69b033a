"""
Service - Configuration.

============================================================
CONFIGURATION SOURCES
============================================================

1. Defaults
2. ``.env`` file (python-dotenv) and process environment
3. YAML file, section per component:

    limiter:       {base_limit: 100, ...}
    traffic:       {retention_seconds: 3600, thresholds: {...}}
    alerting:      {max_alerts: 1000, ...}
    service:       {broadcast_interval_seconds: 2, ...}
    rules:         [...]          (see monitoring.alerts.rules)

============================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

from dotenv import load_dotenv

from core.exceptions import ConfigurationError
from monitoring.config import AlertingConfig, NotificationConfig, load_yaml
from rate_limiting.config import LimiterConfig
from traffic.config import HealthThresholds, TrafficConfig


logger = logging.getLogger(__name__)


_INTERVAL_KEYS = (
    "stats_interval_seconds",
    "metrics_interval_seconds",
    "broadcast_interval_seconds",
    "traffic_log_interval_seconds",
)


@dataclass
class ServiceConfig:
    """Tick intervals plus every component configuration."""

    stats_interval_seconds: float = 60.0
    metrics_interval_seconds: float = 5.0
    broadcast_interval_seconds: float = 2.0
    traffic_log_interval_seconds: float = 300.0
    enable_broadcast: bool = True

    rules_file: Optional[str] = None

    limiter: LimiterConfig = field(default_factory=LimiterConfig)
    traffic: TrafficConfig = field(default_factory=TrafficConfig)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    def __post_init__(self) -> None:
        """Validate intervals."""
        for key in _INTERVAL_KEYS:
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigurationError(
                    f"{key} must be a positive number of seconds",
                    config_key=key,
                    actual_value=value,
                )

    @property
    def alert_interval_seconds(self) -> float:
        return self.alerting.check_interval_seconds

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ServiceConfig":
        """
        Load configuration from ``.env`` and the environment.

        Environment variables:
        - DAASR_STATS_INTERVAL / DAASR_METRICS_INTERVAL /
          DAASR_BROADCAST_INTERVAL / DAASR_TRAFFIC_LOG_INTERVAL (ms)
        - DAASR_ENABLE_BROADCAST
        - DAASR_RULES_FILE
        - component variables (see LimiterConfig, TrafficConfig,
          AlertingConfig, NotificationConfig)
        """
        if env_file:
            if not Path(env_file).exists():
                raise ConfigurationError(f"Env file not found: {env_file}", config_key="env_file")
            load_dotenv(env_file)
        else:
            load_dotenv()

        try:
            return cls(
                stats_interval_seconds=int(os.getenv("DAASR_STATS_INTERVAL", "60000")) / 1000,
                metrics_interval_seconds=int(os.getenv("DAASR_METRICS_INTERVAL", "5000")) / 1000,
                broadcast_interval_seconds=int(os.getenv("DAASR_BROADCAST_INTERVAL", "2000")) / 1000,
                traffic_log_interval_seconds=int(os.getenv("DAASR_TRAFFIC_LOG_INTERVAL", "300000")) / 1000,
                enable_broadcast=os.getenv("DAASR_ENABLE_BROADCAST", "true").lower() != "false",
                rules_file=os.getenv("DAASR_RULES_FILE") or None,
                limiter=LimiterConfig.from_env(),
                traffic=TrafficConfig.from_env(),
                alerting=AlertingConfig.from_env(),
                notifications=NotificationConfig.from_env(),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid service configuration: {e}", cause=e)

    @classmethod
    def from_yaml(
        cls,
        path: Union[str, Path],
        base: Optional["ServiceConfig"] = None,
    ) -> "ServiceConfig":
        """
        Overlay YAML sections on ``base`` (defaults when omitted).

        Raises:
            ConfigurationError: Missing file, bad YAML or invalid values
        """
        data = load_yaml(path)
        base = base or cls()

        limiter = base.limiter
        if "limiter" in data:
            merged = limiter.to_dict()
            merged.update(data["limiter"] or {})
            limiter = LimiterConfig.from_dict(merged)

        traffic = base.traffic
        if "traffic" in data:
            section = dict(data["traffic"] or {})
            thresholds = traffic.thresholds.to_dict()
            thresholds.update(section.pop("thresholds", None) or {})
            try:
                traffic = TrafficConfig(
                    retention_seconds=section.get("retention_seconds", traffic.retention_seconds),
                    stats_window_seconds=section.get("stats_window_seconds", traffic.stats_window_seconds),
                    pattern_window_seconds=section.get("pattern_window_seconds", traffic.pattern_window_seconds),
                    thresholds=HealthThresholds(**thresholds),
                )
            except TypeError as e:
                raise ConfigurationError(f"Invalid traffic section in {path}: {e}", cause=e)

        alerting = base.alerting
        if "alerting" in data:
            merged = alerting.to_dict()
            merged.update(data["alerting"] or {})
            try:
                alerting = AlertingConfig(**merged)
            except TypeError as e:
                raise ConfigurationError(f"Invalid alerting section in {path}: {e}", cause=e)

        service: Dict[str, Any] = {key: getattr(base, key) for key in _INTERVAL_KEYS}
        service["enable_broadcast"] = base.enable_broadcast
        unknown = set(data.get("service") or {}) - set(service)
        if unknown:
            raise ConfigurationError(f"Unknown service settings: {sorted(unknown)}", config_key="service")
        service.update(data.get("service") or {})

        return cls(
            **service,
            rules_file=str(path) if "rules" in data else base.rules_file,
            limiter=limiter,
            traffic=traffic,
            alerting=alerting,
            notifications=base.notifications,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stats_interval_seconds": self.stats_interval_seconds,
            "metrics_interval_seconds": self.metrics_interval_seconds,
            "alert_interval_seconds": self.alert_interval_seconds,
            "broadcast_interval_seconds": self.broadcast_interval_seconds,
            "traffic_log_interval_seconds": self.traffic_log_interval_seconds,
            "enable_broadcast": self.enable_broadcast,
            "rules_file": self.rules_file,
            "limiter": self.limiter.to_dict(),
            "traffic": self.traffic.to_dict(),
            "alerting": self.alerting.to_dict(),
        }
