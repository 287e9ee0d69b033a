"""
Monitoring & Alerting Package.

============================================================
PURPOSE
============================================================
Metric collection, threshold alerting and notification for
the rate limiting engine.

PRINCIPLES:
1. OBSERVATIONAL - Never influences the quota computation
2. DETERMINISTIC - Explicit rules, explicit thresholds
3. NO SIGNAL, NO ALERT - Missing metrics read as condition-false
4. RESILIENT - Failing collectors, rules or channels are isolated

============================================================
"""

from .models import (
    # Enums
    AlertSeverity,
    AlertCondition,
    AlertState,
    AlertEventType,
    ChannelType,

    # Records
    AlertRule,
    ActiveAlert,
    AlertHistoryEntry,
    AlertEvent,
    NotificationChannel,

    # Defaults
    DEFAULT_CHANNELS,
    DEFAULT_SUPPRESSION_MS,
)

from .config import (
    AlertingConfig,
    NotificationConfig,
    load_yaml,
)

from .collectors import (
    BaseCollector,
    SystemMetricsCollector,
    TrafficMetricsCollector,
    score_health,
)

from .metric_feed import (
    MetricFeed,
    resolve_metric_path,
)

from .alerts import (
    AlertEvaluator,
    AlertEventChannel,
    AlertHistory,
    MetricSource,
    build_rule,
    evaluate_condition,
    get_default_rules,
    load_rules_file,
)

from .notifications import (
    ChannelSender,
    NotificationDispatcher,
)


__all__ = [
    # Enums
    "AlertSeverity",
    "AlertCondition",
    "AlertState",
    "AlertEventType",
    "ChannelType",

    # Records
    "AlertRule",
    "ActiveAlert",
    "AlertHistoryEntry",
    "AlertEvent",
    "NotificationChannel",
    "DEFAULT_CHANNELS",
    "DEFAULT_SUPPRESSION_MS",

    # Config
    "AlertingConfig",
    "NotificationConfig",
    "load_yaml",

    # Collectors
    "BaseCollector",
    "SystemMetricsCollector",
    "TrafficMetricsCollector",
    "score_health",

    # Metric feed
    "MetricFeed",
    "resolve_metric_path",

    # Alerts
    "AlertEvaluator",
    "AlertEventChannel",
    "AlertHistory",
    "MetricSource",
    "build_rule",
    "evaluate_condition",
    "get_default_rules",
    "load_rules_file",

    # Notifications
    "ChannelSender",
    "NotificationDispatcher",
]
