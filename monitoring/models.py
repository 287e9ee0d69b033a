"""
╔══════════════════════════════════════════════════════════════════════════════╗
║                    MONITORING & ALERTING SUBSYSTEM                           ║
║                                                                              ║
║  Threshold rules over live metrics, with a sustain duration before an       ║
║  alert fires, suppression, and per-channel notification.                     ║
║                                                                              ║
╚══════════════════════════════════════════════════════════════════════════════╝

============================================================
ALERT LIFECYCLE
============================================================

    INACTIVE -> PENDING -> TRIGGERED -> (SUPPRESSED) -> RESOLVED -> INACTIVE

- PENDING:    condition true, sustain duration not yet reached
- TRIGGERED:  condition held for the full duration
- SUPPRESSED: triggered, notifications muted until a deadline
- RESOLVED:   condition false (or metric missing); alert leaves
              the active set

============================================================
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


DEFAULT_CHANNELS: Tuple[str, ...] = ("console", "logfile")
DEFAULT_SUPPRESSION_MS = 300_000


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


# ============================================================
# ENUMS
# ============================================================

class AlertSeverity(Enum):
    """Alert severity tiers."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AlertCondition(Enum):
    """Comparison applied as ``value <condition> threshold``."""

    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    EQUAL_TO = "equal_to"
    NOT_EQUAL_TO = "not_equal_to"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"


class AlertState(Enum):
    """Lifecycle state of an active alert."""

    INACTIVE = "inactive"
    PENDING = "pending"
    TRIGGERED = "triggered"
    SUPPRESSED = "suppressed"
    RESOLVED = "resolved"


class AlertEventType(Enum):
    """Kind of outbound alert event."""

    TRIGGERED = "triggered"
    RESOLVED = "resolved"


class ChannelType(Enum):
    """Notification channel transports."""

    CONSOLE = "console"
    LOGFILE = "logfile"
    WEBHOOK = "webhook"
    EMAIL = "email"


# ============================================================
# RULES
# ============================================================

@dataclass
class AlertRule:
    """
    Threshold rule over one metric path.

    Immutable in practice except for the trigger bookkeeping
    (``last_triggered_at``, ``trigger_count``).
    """

    id: str
    name: str
    metric: str
    condition: AlertCondition
    threshold: float

    duration_ms: int = 0
    severity: AlertSeverity = AlertSeverity.WARNING
    description: str = ""
    enabled: bool = True
    channels: List[str] = field(default_factory=lambda: list(DEFAULT_CHANNELS))
    suppression_ms: int = DEFAULT_SUPPRESSION_MS
    metadata: Dict[str, Any] = field(default_factory=dict)

    # Bookkeeping
    created_at: Optional[datetime] = None
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "metric": self.metric,
            "condition": self.condition.value,
            "threshold": self.threshold,
            "duration_ms": self.duration_ms,
            "severity": self.severity.value,
            "enabled": self.enabled,
            "channels": list(self.channels),
            "suppression_ms": self.suppression_ms,
            "metadata": dict(self.metadata),
            "created_at": _iso(self.created_at),
            "last_triggered_at": _iso(self.last_triggered_at),
            "trigger_count": self.trigger_count,
        }


# ============================================================
# ALERTS
# ============================================================

@dataclass
class ActiveAlert:
    """An alert currently tracked by the evaluator."""

    id: str
    rule_id: str
    state: AlertState
    severity: AlertSeverity
    first_observed_at: datetime
    last_updated_at: datetime
    current_value: Optional[float] = None

    triggered_at: Optional[datetime] = None
    suppressed_until: Optional[datetime] = None
    notifications_sent: int = 0
    last_notified_at: Optional[datetime] = None

    def is_suppressed(self, now: datetime) -> bool:
        return self.suppressed_until is not None and now < self.suppressed_until

    def snapshot(self) -> "ActiveAlert":
        """Detached copy for history and outbound events."""
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "state": self.state.value,
            "severity": self.severity.value,
            "first_observed_at": _iso(self.first_observed_at),
            "last_updated_at": _iso(self.last_updated_at),
            "current_value": self.current_value,
            "triggered_at": _iso(self.triggered_at),
            "suppressed_until": _iso(self.suppressed_until),
            "notifications_sent": self.notifications_sent,
            "last_notified_at": _iso(self.last_notified_at),
        }


@dataclass(frozen=True)
class AlertHistoryEntry:
    """Snapshot of an alert at trigger or resolution time."""

    event_type: AlertEventType
    alert: ActiveAlert
    rule_name: str
    threshold: float
    recorded_at: datetime
    resolved_at: Optional[datetime] = None

    @property
    def alert_id(self) -> str:
        return self.alert.id

    @property
    def rule_id(self) -> str:
        return self.alert.rule_id

    def to_dict(self) -> Dict[str, Any]:
        data = self.alert.to_dict()
        data.update({
            "event_type": self.event_type.value,
            "rule_name": self.rule_name,
            "threshold": self.threshold,
            "recorded_at": _iso(self.recorded_at),
            "resolved_at": _iso(self.resolved_at),
        })
        return data


@dataclass(frozen=True)
class AlertEvent:
    """
    Outbound message emitted by the evaluator.

    ``notify`` is False when the transition happened while the
    alert was suppressed or inside the re-notification interval;
    observers still see the event, channels do not.
    """

    event_type: AlertEventType
    alert: ActiveAlert
    rule: AlertRule
    channels: Tuple[str, ...]
    notify: bool
    message: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Payload shape shared by webhooks and broadcasts."""
        return {
            "type": self.event_type.value,
            "alert": {
                "id": self.alert.id,
                "rule_id": self.alert.rule_id,
                "name": self.rule.name,
                "description": self.rule.description,
                "severity": self.alert.severity.value,
                "state": self.alert.state.value,
                "value": self.alert.current_value,
                "threshold": self.rule.threshold,
                "start_time": _iso(self.alert.first_observed_at),
                "message": self.message,
            },
            "timestamp": _iso(self.timestamp),
        }


# ============================================================
# CHANNELS
# ============================================================

@dataclass
class NotificationChannel:
    """Registered notification destination."""

    id: str
    type: ChannelType
    enabled: bool = True
    config: Dict[str, Any] = field(default_factory=dict)

    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    message_count: int = 0
    failure_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        # Credentials stay out of transport payloads
        safe_config = {
            k: v for k, v in self.config.items()
            if k not in ("password", "smtp_password", "headers")
        }
        return {
            "id": self.id,
            "type": self.type.value,
            "enabled": self.enabled,
            "config": safe_config,
            "created_at": _iso(self.created_at),
            "last_used_at": _iso(self.last_used_at),
            "message_count": self.message_count,
            "failure_count": self.failure_count,
        }
