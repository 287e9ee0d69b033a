"""
Alert Rules and Definitions.

============================================================
PURPOSE
============================================================
Threshold rules with explicit triggers.

PRINCIPLES:
- All thresholds are explicit and configurable
- Simple condition evaluation, unknown condition is false
- Missing metric data never fires a rule
- Rules are validated when built, not when evaluated

============================================================
"""

import logging
import math
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from core.exceptions import RuleValidationError

from ..config import load_yaml
from ..models import (
    AlertCondition,
    AlertRule,
    AlertSeverity,
    DEFAULT_CHANNELS,
    DEFAULT_SUPPRESSION_MS,
)


logger = logging.getLogger(__name__)


# ============================================================
# CONDITIONS
# ============================================================

_SYMBOLS = {
    ">": AlertCondition.GREATER_THAN,
    "<": AlertCondition.LESS_THAN,
    "==": AlertCondition.EQUAL_TO,
    "!=": AlertCondition.NOT_EQUAL_TO,
    ">=": AlertCondition.GREATER_THAN_OR_EQUAL,
    "<=": AlertCondition.LESS_THAN_OR_EQUAL,
}


def evaluate_condition(
    value: Optional[float],
    condition: Union[AlertCondition, str],
    threshold: float,
) -> bool:
    """
    Apply ``value <condition> threshold``.

    Returns False for a missing value or an unknown condition.
    Never raises.
    """
    if value is None:
        return False

    if not isinstance(condition, AlertCondition):
        try:
            condition = parse_condition(condition)
        except RuleValidationError:
            return False

    try:
        if condition is AlertCondition.GREATER_THAN:
            return value > threshold
        if condition is AlertCondition.LESS_THAN:
            return value < threshold
        if condition is AlertCondition.EQUAL_TO:
            return value == threshold
        if condition is AlertCondition.NOT_EQUAL_TO:
            return value != threshold
        if condition is AlertCondition.GREATER_THAN_OR_EQUAL:
            return value >= threshold
        if condition is AlertCondition.LESS_THAN_OR_EQUAL:
            return value <= threshold
    except TypeError:
        return False

    return False


def parse_condition(raw: Union[AlertCondition, str]) -> AlertCondition:
    """Accept enum members, enum values or comparison symbols."""
    if isinstance(raw, AlertCondition):
        return raw
    if isinstance(raw, str):
        key = raw.strip()
        if key in _SYMBOLS:
            return _SYMBOLS[key]
        try:
            return AlertCondition(key.lower())
        except ValueError:
            pass
    raise RuleValidationError(
        f"Unknown condition: {raw!r}",
        config_key="condition",
        expected=", ".join(c.value for c in AlertCondition),
        actual_value=raw,
    )


def parse_severity(raw: Union[AlertSeverity, str]) -> AlertSeverity:
    if isinstance(raw, AlertSeverity):
        return raw
    try:
        return AlertSeverity(str(raw).strip().lower())
    except ValueError:
        raise RuleValidationError(
            f"Unknown severity: {raw!r}",
            config_key="severity",
            expected=", ".join(s.value for s in AlertSeverity),
            actual_value=raw,
        )


# ============================================================
# RULE BUILDING
# ============================================================

def _number(value: Any, key: str, rule_id: Optional[str]) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise RuleValidationError(
            f"{key} must be numeric",
            rule_id=rule_id,
            config_key=key,
            expected="number",
            actual_value=value,
        )
    if math.isnan(value):
        raise RuleValidationError(f"{key} must not be NaN", rule_id=rule_id, config_key=key)
    return value


def _duration(value: Any, key: str, rule_id: Optional[str]) -> int:
    number = _number(value, key, rule_id)
    if number < 0:
        raise RuleValidationError(
            f"{key} must be non-negative",
            rule_id=rule_id,
            config_key=key,
            actual_value=value,
        )
    return int(number)


def build_rule(
    data: Optional[Mapping[str, Any]] = None,
    created_at: Optional[datetime] = None,
    **fields: Any,
) -> AlertRule:
    """
    Build a validated AlertRule from a mapping or keyword fields.

    Required: ``id``, ``metric``, ``condition``, ``threshold``.
    Defaults: name = id, channels = console + logfile,
    suppression 5 minutes, duration 0.

    Raises:
        RuleValidationError: On any missing or invalid field
    """
    definition: Dict[str, Any] = dict(data or {})
    definition.update(fields)

    rule_id = definition.get("id")
    if not isinstance(rule_id, str) or not rule_id.strip():
        raise RuleValidationError("Rule id is required", config_key="id", actual_value=rule_id)

    metric = definition.get("metric")
    if not isinstance(metric, str) or not metric.strip():
        raise RuleValidationError(
            "Rule metric is required",
            rule_id=rule_id,
            config_key="metric",
            actual_value=metric,
        )

    if "condition" not in definition:
        raise RuleValidationError("Rule condition is required", rule_id=rule_id, config_key="condition")
    if "threshold" not in definition:
        raise RuleValidationError("Rule threshold is required", rule_id=rule_id, config_key="threshold")

    try:
        condition = parse_condition(definition["condition"])
        severity = parse_severity(definition.get("severity", AlertSeverity.WARNING))
    except RuleValidationError as e:
        raise RuleValidationError(e.message, rule_id=rule_id, context=e.context)

    channels = definition.get("channels")
    if channels is None:
        channels = list(DEFAULT_CHANNELS)
    elif isinstance(channels, str) or not all(isinstance(c, str) for c in channels):
        raise RuleValidationError(
            "channels must be a list of channel ids",
            rule_id=rule_id,
            config_key="channels",
            actual_value=channels,
        )

    metadata = definition.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        raise RuleValidationError("metadata must be a mapping", rule_id=rule_id, config_key="metadata")

    return AlertRule(
        id=rule_id,
        name=str(definition.get("name") or rule_id),
        description=str(definition.get("description") or ""),
        metric=metric,
        condition=condition,
        threshold=_number(definition["threshold"], "threshold", rule_id),
        duration_ms=_duration(definition.get("duration_ms", 0), "duration_ms", rule_id),
        severity=severity,
        enabled=bool(definition.get("enabled", True)),
        channels=list(channels),
        suppression_ms=_duration(
            definition.get("suppression_ms", DEFAULT_SUPPRESSION_MS), "suppression_ms", rule_id
        ),
        metadata=dict(metadata),
        created_at=created_at,
    )


def load_rules_file(path: Union[str, Path]) -> List[AlertRule]:
    """
    Load rules from a YAML file.

    Expected layout::

        rules:
          - id: high_queue_depth
            metric: application.requests_per_second
            condition: greater_than
            threshold: 200
            duration_ms: 60000
    """
    data = load_yaml(path)
    entries = data.get("rules") or []
    if not isinstance(entries, list):
        raise RuleValidationError("'rules' must be a list", config_key="rules")

    rules = [build_rule(entry) for entry in entries]
    logger.info(f"Loaded {len(rules)} alert rules from {path}")
    return rules


# ============================================================
# DEFAULT RULES
# ============================================================

def get_default_rules() -> List[AlertRule]:
    """Get the default rule set."""
    return [
        build_rule(
            id="high_cpu_usage",
            name="High CPU Usage",
            description="CPU usage is above threshold",
            metric="system.cpu.overall",
            condition=AlertCondition.GREATER_THAN,
            threshold=80,
            duration_ms=60_000,
            severity=AlertSeverity.WARNING,
        ),
        build_rule(
            id="critical_cpu_usage",
            name="Critical CPU Usage",
            description="CPU usage is critically high",
            metric="system.cpu.overall",
            condition=AlertCondition.GREATER_THAN,
            threshold=95,
            duration_ms=30_000,
            severity=AlertSeverity.CRITICAL,
        ),
        build_rule(
            id="high_memory_usage",
            name="High Memory Usage",
            description="Memory usage is above threshold",
            metric="system.memory.usagePercent",
            condition=AlertCondition.GREATER_THAN,
            threshold=85,
            duration_ms=60_000,
            severity=AlertSeverity.WARNING,
        ),
        build_rule(
            id="critical_memory_usage",
            name="Critical Memory Usage",
            description="Memory usage is critically high",
            metric="system.memory.usagePercent",
            condition=AlertCondition.GREATER_THAN,
            threshold=95,
            duration_ms=30_000,
            severity=AlertSeverity.CRITICAL,
        ),
        build_rule(
            id="high_load_average",
            name="High Load Average",
            description="System load average is high",
            metric="system.load.load1",
            condition=AlertCondition.GREATER_THAN,
            threshold=4.0,
            duration_ms=120_000,
            severity=AlertSeverity.WARNING,
        ),
        build_rule(
            id="slow_response_time",
            name="Slow Response Time",
            description="Average response time is too high",
            metric="application.response_time",
            condition=AlertCondition.GREATER_THAN,
            threshold=1000,
            duration_ms=60_000,
            severity=AlertSeverity.WARNING,
        ),
        build_rule(
            id="high_error_rate",
            name="High Error Rate",
            description="Error rate is above acceptable threshold",
            metric="application.error_rate",
            condition=AlertCondition.GREATER_THAN,
            threshold=5,
            duration_ms=60_000,
            severity=AlertSeverity.CRITICAL,
        ),
    ]
