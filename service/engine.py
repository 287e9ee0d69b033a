"""
Service - Rate Limiting Engine.

============================================================
RESPONSIBILITY
============================================================
Composition root. Builds and owns every component, exposes
the request path and the administrative surface, and runs
the periodic ticks.

============================================================
REQUEST PATH (synchronous, thread-safe, never raises)
============================================================

    handle_request -> TrafficMonitor.record_request
                   -> QuotaEnforcer.check (AdaptiveLimiter.compute_quota)
    complete_request -> TrafficMonitor.record_response

============================================================
TICKS (asyncio)
============================================================

    stats/cleanup    60s   prune traffic logs, idle profiles, hit logs
    metrics          5s    refresh collectors into the metric feed
    alerts           30s   evaluate rules, notify, flush alert broadcasts
    broadcast        2s    stats payload to observers
    traffic log      300s  traffic summary log line

============================================================
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from core.clock import ClockProtocol, default_clock
from core.log_config import attach_alert_log_file
from monitoring.alerts import (
    AlertEvaluator,
    AlertEventChannel,
    get_default_rules,
    load_rules_file,
)
from monitoring.collectors import (
    BaseCollector,
    SystemMetricsCollector,
    TrafficMetricsCollector,
    score_health,
)
from monitoring.metric_feed import MetricFeed
from monitoring.models import (
    ActiveAlert,
    AlertEvent,
    AlertHistoryEntry,
    AlertRule,
    ChannelType,
    NotificationChannel,
)
from monitoring.notifications import NotificationDispatcher
from rate_limiting.enforcer import EnforcementDecision, QuotaEnforcer
from rate_limiting.limiter import AdaptiveLimiter
from rate_limiting.models import Quota
from traffic.models import ResponseEvent
from traffic.monitor import TrafficMonitor

from .broadcast import BroadcastHub, BroadcastSink, stats_message
from .config import ServiceConfig
from .scheduler import PeriodicTask


logger = logging.getLogger(__name__)


class RateLimitingService:
    """
    DAASR engine.

    Collaborators can be injected for tests; anything omitted is
    built from ``config``.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        clock: Optional[ClockProtocol] = None,
        rules: Optional[List[AlertRule]] = None,
        resource_probe: Optional[Callable[[], float]] = None,
        system_collector: Optional[BaseCollector] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        """Initialize the engine and all of its components."""
        self._config = config or ServiceConfig()
        self._clock = default_clock(clock)

        # Traffic and limiting
        self.monitor = TrafficMonitor(self._config.traffic, clock=self._clock)
        self.limiter = AdaptiveLimiter(
            monitor=self.monitor,
            config=self._config.limiter,
            clock=self._clock,
            resource_probe=resource_probe,
        )
        self.enforcer = QuotaEnforcer(self.limiter, clock=self._clock)

        # Metrics
        self.system_collector = system_collector or SystemMetricsCollector(clock=self._clock)
        self.metric_feed = MetricFeed(
            collectors=[
                self.system_collector,
                TrafficMetricsCollector(self.monitor, clock=self._clock),
            ],
            clock=self._clock,
        )

        # Alerting
        if rules is None and self._config.rules_file:
            rules = load_rules_file(self._config.rules_file)
            if self._config.alerting.load_default_rules:
                rules = get_default_rules() + rules

        self.alert_events = AlertEventChannel()
        self.evaluator = AlertEvaluator(
            metric_source=self.metric_feed,
            config=self._config.alerting,
            clock=self._clock,
            event_channel=self.alert_events,
            rules=rules,
        )
        self.dispatcher = dispatcher or NotificationDispatcher(
            self._config.notifications,
            clock=self._clock,
        )

        # Observers
        self.broadcast = BroadcastHub(clock=self._clock)
        self.alert_events.subscribe(self.broadcast.on_alert_event)

        self._tasks: List[PeriodicTask] = self._build_tasks()
        self._running = False
        self._alert_log_handler: Optional[logging.Handler] = None

    def _build_tasks(self) -> List[PeriodicTask]:
        cfg = self._config
        tasks = [
            PeriodicTask("stats", cfg.stats_interval_seconds, self.run_cleanup_tick),
            PeriodicTask("metrics", cfg.metrics_interval_seconds, self.metric_feed.refresh),
            PeriodicTask("alerts", cfg.alert_interval_seconds, self.run_alert_tick),
            PeriodicTask("traffic_log", cfg.traffic_log_interval_seconds, self.monitor.log_traffic_stats),
        ]
        if cfg.enable_broadcast:
            tasks.append(
                PeriodicTask("broadcast", cfg.broadcast_interval_seconds, self.run_broadcast_tick)
            )
        return tasks

    @property
    def config(self) -> ServiceConfig:
        return self._config

    @property
    def is_running(self) -> bool:
        return self._running

    # ========================================================
    # LIFECYCLE
    # ========================================================

    async def start(self) -> None:
        """Take an initial metrics sample and start every tick."""
        if self._running:
            logger.warning("Rate limiting service already running")
            return

        logger.info("=== DAASR STARTUP ===")

        if self._config.notifications.alert_log_file and self._alert_log_handler is None:
            self._alert_log_handler = attach_alert_log_file(self._config.notifications.alert_log_file)

        await self.metric_feed.refresh()
        for task in self._tasks:
            await task.start()

        self._running = True
        logger.info(
            f"DAASR started: {len(self.evaluator.rules)} alert rules, "
            f"{len(self.dispatcher.channels)} channels, {len(self._tasks)} ticks"
        )

    async def stop(self) -> None:
        """Stop ticks and close transports."""
        if not self._running:
            return

        logger.info("=== DAASR SHUTDOWN ===")
        for task in reversed(self._tasks):
            await task.stop()

        await self.dispatcher.close()
        self._running = False
        logger.info("DAASR stopped")

    # ========================================================
    # REQUEST PATH
    # ========================================================

    def handle_request(
        self,
        identifier: str,
        method: str = "GET",
        path: str = "/",
        user_agent: Optional[str] = None,
    ) -> EnforcementDecision:
        """
        Record an inbound request and decide whether to admit it.

        Fails open: if enforcement breaks, the request is admitted
        under the base limit.
        """
        self.monitor.record_request(
            identifier=identifier,
            method=method,
            path=path,
            user_agent=user_agent,
        )

        meta = {"method": method, "path": path, "user_agent": user_agent}
        try:
            return self.enforcer.check(identifier, meta)
        except Exception as e:
            logger.error(f"Quota enforcement failed for {identifier}, admitting: {e}", exc_info=True)
            limiter_config = self._config.limiter
            quota = Quota(
                window_ms=limiter_config.default_window_ms,
                max=limiter_config.clamp(limiter_config.base_limit),
                computed_at=self._clock.now(),
            )
            return EnforcementDecision(
                allowed=True,
                quota=quota,
                remaining=quota.max,
                reset_seconds=quota.retry_after_seconds,
            )

    def complete_request(
        self,
        latency_ms: float,
        status_code: int,
        body_size: int = 0,
    ) -> ResponseEvent:
        """Record a completed response."""
        return self.monitor.record_response(
            latency_ms=latency_ms,
            status_code=status_code,
            body_size=body_size,
        )

    # ========================================================
    # TICKS
    # ========================================================

    def run_cleanup_tick(self) -> Dict[str, int]:
        removed = {
            "traffic_events": self.monitor.cleanup(),
            "profiles": self.limiter.cleanup(),
            "hit_logs": self.enforcer.cleanup(),
            "history": self.evaluator.cleanup_history(),
        }
        logger.debug(f"Cleanup tick: {removed}")
        return removed

    async def run_alert_tick(self) -> List[AlertEvent]:
        """Evaluate rules, deliver notifications, flush alert broadcasts."""
        events = self.evaluator.evaluate_all()
        for event in events:
            await self.dispatcher.dispatch(event)
        if self._config.enable_broadcast:
            await self.broadcast.flush()
        return events

    async def run_broadcast_tick(self) -> None:
        await self.broadcast.broadcast(stats_message(self.stats_payload()))

    def stats_payload(self) -> Dict[str, Any]:
        """Periodic observer payload."""
        snapshot = self.metric_feed.latest()
        return {
            "system": snapshot.get("system", {}),
            "process": snapshot.get("process", {}),
            "traffic": self.monitor.detailed_analytics(),
            "health": score_health(snapshot),
            "timestamp": self._clock.now().isoformat(),
        }

    # ========================================================
    # ADMINISTRATIVE SURFACE
    # ========================================================

    def add_rule(self, rule: Union[AlertRule, Mapping[str, Any]]) -> AlertRule:
        return self.evaluator.add_rule(rule)

    def remove_rule(self, rule_id: str) -> bool:
        return self.evaluator.remove_rule(rule_id)

    def update_rule(self, rule_id: str, **changes: Any) -> AlertRule:
        return self.evaluator.update_rule(rule_id, **changes)

    def add_channel(
        self,
        channel_id: str,
        channel_type: Union[ChannelType, str],
        enabled: bool = True,
        **config: Any,
    ) -> NotificationChannel:
        return self.dispatcher.add_channel(channel_id, channel_type, enabled=enabled, **config)

    def remove_channel(self, channel_id: str) -> bool:
        return self.dispatcher.remove_channel(channel_id)

    def suppress_alert(self, alert_id: str, duration_ms: int) -> bool:
        return self.evaluator.suppress(alert_id, duration_ms)

    def active_alerts(self) -> List[ActiveAlert]:
        return self.evaluator.get_active_alerts()

    def alert_history(self, limit: int = 100) -> List[AlertHistoryEntry]:
        return self.evaluator.get_alert_history(limit)

    def identifier_stats(self, identifier: str) -> Optional[Dict[str, Any]]:
        return self.limiter.identifier_stats(identifier)

    def add_sink(self, sink: BroadcastSink) -> None:
        self.broadcast.add_sink(sink)

    def reset_monitor(self) -> None:
        """Clear traffic statistics."""
        self.monitor.reset()

    def statistics(self) -> Dict[str, Any]:
        alerting = self.evaluator.get_statistics()
        notifications = self.dispatcher.get_statistics()
        alerting["is_running"] = self._running
        alerting["channels"] = notifications["channels"]
        alerting["enabled_channels"] = notifications["enabled_channels"]

        return {
            "running": self._running,
            "alerting": alerting,
            "notifications": notifications,
            "traffic": self.monitor.current_stats().to_dict(),
            "limiter": self.limiter.to_dict(),
            "broadcast": self.broadcast.stats(),
            "ticks": [task.stats() for task in self._tasks],
        }
