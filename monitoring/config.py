"""
Monitoring - Configuration.

============================================================
CONFIGURABLE SETTINGS
============================================================

- Alert evaluation interval and history bounds
- Default rule channels and suppression
- Notification transports (log file, SMTP, webhook)

Configuration can be loaded from:
- Default values
- Environment variables
- YAML file (rules and alerting settings)

============================================================
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

import yaml

from core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


# =============================================================
# ALERTING CONFIGURATION
# =============================================================


@dataclass
class AlertingConfig:
    """Alert evaluator settings."""

    check_interval_seconds: float = 30.0
    max_alerts: int = 1000
    history_retention_hours: int = 24
    load_default_rules: bool = True

    def __post_init__(self) -> None:
        """Validate settings."""
        if self.check_interval_seconds <= 0:
            raise ConfigurationError(
                "check_interval_seconds must be positive",
                config_key="check_interval_seconds",
                actual_value=self.check_interval_seconds,
            )
        if self.max_alerts < 1:
            raise ConfigurationError(
                "max_alerts must be at least 1",
                config_key="max_alerts",
                actual_value=self.max_alerts,
            )
        if self.history_retention_hours < 1:
            raise ConfigurationError(
                "history_retention_hours must be at least 1",
                config_key="history_retention_hours",
                actual_value=self.history_retention_hours,
            )

    @classmethod
    def from_env(cls) -> "AlertingConfig":
        """
        Load from environment variables.

        - DAASR_ALERT_CHECK_INTERVAL (ms)
        - DAASR_MAX_ALERTS
        - DAASR_ALERT_HISTORY_HOURS
        - DAASR_LOAD_DEFAULT_RULES
        """
        try:
            return cls(
                check_interval_seconds=int(os.getenv("DAASR_ALERT_CHECK_INTERVAL", "30000")) / 1000,
                max_alerts=int(os.getenv("DAASR_MAX_ALERTS", "1000")),
                history_retention_hours=int(os.getenv("DAASR_ALERT_HISTORY_HOURS", "24")),
                load_default_rules=os.getenv("DAASR_LOAD_DEFAULT_RULES", "true").lower() != "false",
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid alerting configuration: {e}", cause=e)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "check_interval_seconds": self.check_interval_seconds,
            "max_alerts": self.max_alerts,
            "history_retention_hours": self.history_retention_hours,
            "load_default_rules": self.load_default_rules,
        }


# =============================================================
# NOTIFICATION CONFIGURATION
# =============================================================


@dataclass
class NotificationConfig:
    """
    Notification transports.

    Email is only registered when ``smtp_host`` is set and the
    webhook only when ``webhook_url`` is set.
    """

    alert_log_file: Optional[str] = "logs/alerts.log"

    # SMTP
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_secure: bool = False
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    email_from: Optional[str] = None
    email_to: List[str] = field(default_factory=list)

    # Webhook
    webhook_url: Optional[str] = None
    webhook_method: str = "POST"
    webhook_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.smtp_host and not self.email_to:
            logger.warning("SMTP_HOST set without ALERT_TO_EMAIL; email alerts have no recipients")
        if self.webhook_timeout_seconds <= 0:
            raise ConfigurationError(
                "webhook_timeout_seconds must be positive",
                config_key="webhook_timeout_seconds",
                actual_value=self.webhook_timeout_seconds,
            )

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host)

    @property
    def webhook_enabled(self) -> bool:
        return bool(self.webhook_url)

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        """
        Load from environment variables.

        - DAASR_ALERT_LOG_FILE
        - SMTP_HOST / SMTP_PORT / SMTP_SECURE / SMTP_USER / SMTP_PASS
        - ALERT_FROM_EMAIL / ALERT_TO_EMAIL (comma separated)
        - WEBHOOK_URL / WEBHOOK_METHOD
        """
        recipients = os.getenv("ALERT_TO_EMAIL", "")
        try:
            return cls(
                alert_log_file=os.getenv("DAASR_ALERT_LOG_FILE", "logs/alerts.log") or None,
                smtp_host=os.getenv("SMTP_HOST") or None,
                smtp_port=int(os.getenv("SMTP_PORT", "587")),
                smtp_secure=os.getenv("SMTP_SECURE", "false").lower() == "true",
                smtp_user=os.getenv("SMTP_USER"),
                smtp_password=os.getenv("SMTP_PASS"),
                email_from=os.getenv("ALERT_FROM_EMAIL"),
                email_to=[r.strip() for r in recipients.split(",") if r.strip()],
                webhook_url=os.getenv("WEBHOOK_URL") or None,
                webhook_method=os.getenv("WEBHOOK_METHOD", "POST").upper(),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid notification configuration: {e}", cause=e)


# =============================================================
# YAML LOADING
# =============================================================


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a YAML mapping; missing or malformed files raise ConfigurationError."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Config file not found: {path}", config_key=str(path))

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Malformed YAML in {path}: {e}", cause=e)

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping",
            expected="mapping",
            actual_value=type(data).__name__,
        )
    return data
