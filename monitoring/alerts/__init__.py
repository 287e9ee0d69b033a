"""
Alerts Package.

Threshold rules, the alert lifecycle and alert events.
"""

from .rules import (
    build_rule,
    evaluate_condition,
    get_default_rules,
    load_rules_file,
    parse_condition,
    parse_severity,
)
from .events import (
    AlertEventChannel,
    AlertEventSubscriber,
)
from .evaluator import (
    AlertEvaluator,
    AlertHistory,
    MetricSource,
    format_alert_message,
    format_resolution_message,
)


__all__ = [
    # Rules
    "build_rule",
    "evaluate_condition",
    "get_default_rules",
    "load_rules_file",
    "parse_condition",
    "parse_severity",

    # Events
    "AlertEventChannel",
    "AlertEventSubscriber",

    # Evaluator
    "AlertEvaluator",
    "AlertHistory",
    "MetricSource",
    "format_alert_message",
    "format_resolution_message",
]
