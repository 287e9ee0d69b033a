"""
Alert Evaluator.

============================================================
PURPOSE
============================================================
Evaluates threshold rules against the metric feed and drives
the alert lifecycle.

PRINCIPLES:
- Deterministic rule evaluation, rules visited in insertion order
- Sustain duration gates PENDING -> TRIGGERED; any dip resets it
- Missing metric data counts as "condition false"
- A failing rule is logged and skipped, the tick continues
- No I/O during evaluation: transitions become AlertEvents

============================================================
RE-NOTIFICATION
============================================================

While an alert stays triggered it is re-triggered once every
``rule.suppression_ms`` (measured from ``rule.last_triggered_at``).
Each re-trigger updates the rule counters and history. A
re-trigger that happens while the alert is suppressed is
emitted with ``notify=False``. Suppression never silences
the resolution.

============================================================
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

from core.clock import ClockProtocol, default_clock
from core.exceptions import ConfigurationError, EvaluationError, RuleValidationError

from ..config import AlertingConfig
from ..models import (
    ActiveAlert,
    AlertEvent,
    AlertEventType,
    AlertHistoryEntry,
    AlertRule,
    AlertState,
)
from .events import AlertEventChannel
from .rules import build_rule, evaluate_condition, get_default_rules


logger = logging.getLogger(__name__)


class MetricSource(Protocol):
    """Anything that can resolve a dotted metric path."""

    def get_metric_value(self, path: str) -> Optional[float]:
        ...


_RULE_FIELDS = (
    "id", "name", "description", "metric", "condition", "threshold",
    "duration_ms", "severity", "enabled", "channels", "suppression_ms", "metadata",
)


def format_alert_message(rule: AlertRule, value: Optional[float]) -> str:
    return f"{rule.name}: {rule.description} ({value} {rule.condition.value} {rule.threshold})"


def format_resolution_message(rule: AlertRule) -> str:
    return f"RESOLVED: {rule.name} - {rule.description}"


# ============================================================
# ALERT HISTORY
# ============================================================

class AlertHistory:
    """
    Bounded log of trigger and resolution snapshots.

    Entries older than the retention window are dropped by
    ``cleanup``; the oldest entries go first once ``max_alerts``
    is exceeded.
    """

    def __init__(self, max_alerts: int = 1000, retention_hours: int = 24):
        """Initialize alert history."""
        self._entries: List[AlertHistoryEntry] = []
        self._max_alerts = max_alerts
        self._retention = timedelta(hours=retention_hours)

    def add(self, entry: AlertHistoryEntry) -> None:
        self._entries.append(entry)

    def cleanup(self, now: datetime) -> int:
        """Apply retention and size cap. Returns the count removed."""
        before = len(self._entries)
        cutoff = now - self._retention
        self._entries = [e for e in self._entries if e.recorded_at > cutoff]

        if len(self._entries) > self._max_alerts:
            self._entries = self._entries[-self._max_alerts:]

        return before - len(self._entries)

    def get_recent(self, limit: int = 100) -> List[AlertHistoryEntry]:
        """Get recent entries, newest first."""
        ordered = sorted(self._entries, key=lambda e: e.recorded_at, reverse=True)
        return ordered[:limit]

    def count_since(
        self,
        since: datetime,
        event_type: Optional[AlertEventType] = None,
    ) -> int:
        return sum(
            1 for e in self._entries
            if e.recorded_at > since and (event_type is None or e.event_type == event_type)
        )

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# ============================================================
# ALERT EVALUATOR
# ============================================================

class AlertEvaluator:
    """
    Rule registry, active-alert state machine and alert history.

    ``evaluate_all`` is synchronous and guarded by a lock so the
    admin surface can be called from any thread. Notification
    delivery is the caller's job (see NotificationDispatcher).
    """

    def __init__(
        self,
        metric_source: Optional[MetricSource] = None,
        config: Optional[AlertingConfig] = None,
        clock: Optional[ClockProtocol] = None,
        event_channel: Optional[AlertEventChannel] = None,
        rules: Optional[List[AlertRule]] = None,
    ):
        """Initialize alert evaluator."""
        self._metric_source = metric_source
        self._config = config or AlertingConfig()
        self._clock = default_clock(clock)
        self._events = event_channel or AlertEventChannel()
        self._history = AlertHistory(
            max_alerts=self._config.max_alerts,
            retention_hours=self._config.history_retention_hours,
        )

        self._lock = threading.RLock()
        self._rules: Dict[str, AlertRule] = {}
        self._active: Dict[str, ActiveAlert] = {}
        self._enabled = True

        self._evaluation_count = 0
        self._last_evaluation: Optional[datetime] = None

        if rules is None and self._config.load_default_rules:
            rules = get_default_rules()
        for rule in rules or []:
            self.add_rule(rule)

    @property
    def events(self) -> AlertEventChannel:
        return self._events

    @property
    def history(self) -> AlertHistory:
        return self._history

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_metric_source(self, metric_source: MetricSource) -> None:
        self._metric_source = metric_source

    def enable(self) -> None:
        """Enable evaluation."""
        self._enabled = True

    def disable(self) -> None:
        """Disable evaluation; active alerts are kept as they are."""
        self._enabled = False

    # ========================================================
    # RULE ADMINISTRATION
    # ========================================================

    def add_rule(self, rule: Union[AlertRule, Mapping[str, Any]]) -> AlertRule:
        """
        Add (or replace) a rule.

        Raises:
            RuleValidationError: If a mapping fails validation
        """
        if not isinstance(rule, AlertRule):
            rule = build_rule(rule)

        with self._lock:
            if rule.created_at is None:
                rule.created_at = self._clock.now()
            if rule.id in self._rules:
                logger.warning(f"Replacing existing alert rule: {rule.id}")
            self._rules[rule.id] = rule

        logger.info(f"Alert rule added: {rule.id} ({rule.name})")
        return rule

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule and forget its active alert."""
        with self._lock:
            rule = self._rules.pop(rule_id, None)
            if rule is None:
                return False
            self._active.pop(rule_id, None)

        logger.info(f"Alert rule removed: {rule_id} ({rule.name})")
        return True

    def update_rule(self, rule_id: str, **changes: Any) -> AlertRule:
        """
        Update a rule in place.

        The merged definition is validated before anything is
        applied; counters and ``created_at`` are preserved.

        Raises:
            RuleValidationError: Unknown rule, unknown field, id change
                or invalid value
        """
        with self._lock:
            current = self._rules.get(rule_id)
            if current is None:
                raise RuleValidationError(f"Unknown alert rule: {rule_id}", rule_id=rule_id)

            unknown = set(changes) - set(_RULE_FIELDS)
            if unknown:
                raise RuleValidationError(
                    f"Unknown rule fields: {sorted(unknown)}",
                    rule_id=rule_id,
                )
            if changes.get("id", rule_id) != rule_id:
                raise RuleValidationError("Rule id cannot be changed", rule_id=rule_id, config_key="id")

            definition = {name: getattr(current, name) for name in _RULE_FIELDS}
            definition.update(changes)
            validated = build_rule(definition)

            for name in _RULE_FIELDS:
                setattr(current, name, getattr(validated, name))

        logger.info(f"Alert rule updated: {rule_id} {sorted(changes)}")
        return current

    def get_rule(self, rule_id: str) -> Optional[AlertRule]:
        with self._lock:
            return self._rules.get(rule_id)

    @property
    def rules(self) -> List[AlertRule]:
        with self._lock:
            return list(self._rules.values())

    def enable_rule(self, rule_id: str) -> bool:
        rule = self.get_rule(rule_id)
        if rule is None:
            return False
        rule.enabled = True
        return True

    def disable_rule(self, rule_id: str) -> bool:
        rule = self.get_rule(rule_id)
        if rule is None:
            return False
        rule.enabled = False
        return True

    # ========================================================
    # EVALUATION
    # ========================================================

    def evaluate_all(self, now: Optional[datetime] = None) -> List[AlertEvent]:
        """
        Run one evaluation tick.

        Returns the events produced, in rule order. Events are
        also published on the event channel. Never raises.
        """
        if not self._enabled:
            return []

        now = now or self._clock.now()
        events: List[AlertEvent] = []

        with self._lock:
            for rule in list(self._rules.values()):
                if not rule.enabled:
                    continue

                try:
                    event = self._evaluate_rule(rule, now)
                    if event is not None:
                        events.append(event)
                except Exception as e:
                    error = EvaluationError(rule.id, str(e), cause=e)
                    logger.error(f"{error.message}", exc_info=True)

            self._history.cleanup(now)
            self._evaluation_count += 1
            self._last_evaluation = now

        for event in events:
            self._events.publish(event)

        return events

    def _read_metric(self, path: str) -> Optional[float]:
        if self._metric_source is None:
            return None
        return self._metric_source.get_metric_value(path)

    def _evaluate_rule(self, rule: AlertRule, now: datetime) -> Optional[AlertEvent]:
        value = self._read_metric(rule.metric)
        condition_met = evaluate_condition(value, rule.condition, rule.threshold)
        alert = self._active.get(rule.id)

        if not condition_met:
            if alert is not None:
                return self._resolve(rule, alert, now)
            return None

        if alert is None:
            alert = ActiveAlert(
                id=f"{rule.id}_{int(now.timestamp() * 1000)}",
                rule_id=rule.id,
                state=AlertState.PENDING,
                severity=rule.severity,
                first_observed_at=now,
                last_updated_at=now,
                current_value=value,
            )
            self._active[rule.id] = alert
            logger.info(
                f"New alert condition detected: {alert.id} "
                f"value={value} threshold={rule.threshold}"
            )
        else:
            alert.last_updated_at = now
            alert.current_value = value

        if alert.state is AlertState.SUPPRESSED and not alert.is_suppressed(now):
            alert.state = AlertState.TRIGGERED

        sustained = (now - alert.first_observed_at) >= timedelta(milliseconds=rule.duration_ms)
        if not sustained:
            return None

        if alert.state is AlertState.PENDING:
            return self._trigger(rule, alert, now)

        interval = timedelta(milliseconds=rule.suppression_ms)
        if rule.last_triggered_at is None or now - rule.last_triggered_at >= interval:
            return self._trigger(rule, alert, now)

        return None

    def _trigger(self, rule: AlertRule, alert: ActiveAlert, now: datetime) -> AlertEvent:
        suppressed = alert.is_suppressed(now)

        if alert.state is AlertState.PENDING:
            alert.triggered_at = now
        alert.state = AlertState.SUPPRESSED if suppressed else AlertState.TRIGGERED

        rule.last_triggered_at = now
        rule.trigger_count += 1

        notify = not suppressed
        if notify:
            alert.notifications_sent += 1
            alert.last_notified_at = now

        self._history.add(AlertHistoryEntry(
            event_type=AlertEventType.TRIGGERED,
            alert=alert.snapshot(),
            rule_name=rule.name,
            threshold=rule.threshold,
            recorded_at=now,
        ))

        if notify:
            logger.warning(
                f"Alert triggered: {alert.id} [{rule.severity.value}] "
                f"value={alert.current_value} threshold={rule.threshold}"
            )
        else:
            logger.info(f"Alert re-triggered while suppressed: {alert.id}")

        return AlertEvent(
            event_type=AlertEventType.TRIGGERED,
            alert=alert.snapshot(),
            rule=rule,
            channels=tuple(rule.channels),
            notify=notify,
            message=format_alert_message(rule, alert.current_value),
            timestamp=now,
        )

    def _resolve(self, rule: AlertRule, alert: ActiveAlert, now: datetime) -> AlertEvent:
        """Resolution always notifies, suppressed or not."""
        del self._active[rule.id]
        alert.state = AlertState.RESOLVED
        alert.last_updated_at = now

        self._history.add(AlertHistoryEntry(
            event_type=AlertEventType.RESOLVED,
            alert=alert.snapshot(),
            rule_name=rule.name,
            threshold=rule.threshold,
            recorded_at=now,
            resolved_at=now,
        ))

        duration = (now - alert.first_observed_at).total_seconds()
        logger.info(f"Alert resolved: {alert.id} after {duration:.0f}s")

        return AlertEvent(
            event_type=AlertEventType.RESOLVED,
            alert=alert.snapshot(),
            rule=rule,
            channels=tuple(rule.channels),
            notify=True,
            message=format_resolution_message(rule),
            timestamp=now,
        )

    # ========================================================
    # ALERT ADMINISTRATION
    # ========================================================

    def suppress(self, alert_id: str, duration_ms: int) -> bool:
        """
        Mute notifications for an active alert until now + duration.

        Returns False when no active alert has that id.
        """
        if isinstance(duration_ms, bool) or not isinstance(duration_ms, (int, float)) or duration_ms < 0:
            raise ConfigurationError(
                "Suppression duration must be a non-negative number of milliseconds",
                config_key="duration_ms",
                actual_value=duration_ms,
            )

        with self._lock:
            for alert in self._active.values():
                if alert.id != alert_id:
                    continue
                now = self._clock.now()
                alert.suppressed_until = now + timedelta(milliseconds=duration_ms)
                if alert.state is AlertState.TRIGGERED:
                    alert.state = AlertState.SUPPRESSED
                logger.info(f"Alert suppressed: {alert_id} for {duration_ms}ms")
                return True

        return False

    def get_active_alerts(self) -> List[ActiveAlert]:
        with self._lock:
            return [a.snapshot() for a in self._active.values()]

    def get_alert_history(self, limit: int = 100) -> List[AlertHistoryEntry]:
        with self._lock:
            return self._history.get_recent(limit)

    def cleanup_history(self, now: Optional[datetime] = None) -> int:
        with self._lock:
            return self._history.cleanup(now or self._clock.now())

    def get_statistics(self) -> Dict[str, Any]:
        """Alerting statistics for the admin surface."""
        with self._lock:
            now = self._clock.now()
            states = [a.state for a in self._active.values()]
            return {
                "enabled": self._enabled,
                "active_alerts": len(self._active),
                "pending_alerts": states.count(AlertState.PENDING),
                "triggered_alerts": states.count(AlertState.TRIGGERED),
                "suppressed_alerts": sum(1 for a in self._active.values() if a.is_suppressed(now)),
                "total_rules": len(self._rules),
                "enabled_rules": sum(1 for r in self._rules.values() if r.enabled),
                "alerts_24h": self._history.count_since(
                    now - timedelta(hours=24), AlertEventType.TRIGGERED
                ),
                "history_size": len(self._history),
                "evaluation_count": self._evaluation_count,
                "last_evaluation": self._last_evaluation.isoformat() if self._last_evaluation else None,
            }

    def reset(self) -> None:
        """Forget active alerts and history; rules are kept."""
        with self._lock:
            self._active.clear()
            self._history.clear()
        logger.info("Alert state reset")
