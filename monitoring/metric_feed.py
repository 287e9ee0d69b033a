"""
Monitoring - Metric Feed.

============================================================
RESPONSIBILITY
============================================================
Latest merged snapshot of every collector, addressable by
dotted metric path (``system.cpu.overall``).

- ``refresh`` runs every collector; a failing collector keeps
  its previous section until it has failed
  ``max_failed_refreshes`` times in a row, then the section is
  dropped and its metrics read as None
- ``get_metric_value`` resolves a path to a float or None
- Custom metrics live under ``custom.<name>``

============================================================
"""

import logging
import math
import threading
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from core.clock import ClockProtocol, default_clock

from .collectors.base import BaseCollector, MetricSnapshot


logger = logging.getLogger(__name__)


# ============================================================
# PATH RESOLUTION
# ============================================================

def resolve_metric_path(snapshot: Mapping[str, Any], path: str) -> Optional[float]:
    """
    Walk ``snapshot`` along a dotted path.

    Returns None when a segment is missing, the leaf is not a
    number, the leaf is a bool, or the leaf is NaN.
    """
    node: Any = snapshot
    for segment in path.split("."):
        if not isinstance(node, Mapping) or segment not in node:
            return None
        node = node[segment]

    if isinstance(node, bool) or not isinstance(node, (int, float)):
        return None
    if math.isnan(node):
        return None
    return float(node)


def _merge(target: Dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        elif isinstance(value, Mapping):
            target[key] = dict(value)
        else:
            target[key] = value


# ============================================================
# METRIC FEED
# ============================================================

class MetricFeed:
    """Collector registry and snapshot store."""

    def __init__(
        self,
        collectors: Optional[List[BaseCollector]] = None,
        clock: Optional[ClockProtocol] = None,
        max_failed_refreshes: int = 3,
    ):
        self._collectors: List[BaseCollector] = list(collectors or [])
        self._max_failed_refreshes = max_failed_refreshes
        self._failures: Dict[str, int] = {}
        self._clock = default_clock(clock)
        self._sections: Dict[str, MetricSnapshot] = {}
        self._custom: Dict[str, Dict[str, Any]] = {}
        self._refreshed_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def add_collector(self, collector: BaseCollector) -> None:
        self._collectors.append(collector)

    @property
    def collectors(self) -> List[BaseCollector]:
        return list(self._collectors)

    @property
    def refreshed_at(self) -> Optional[datetime]:
        return self._refreshed_at

    async def refresh(self) -> MetricSnapshot:
        """Run every collector and return the merged snapshot."""
        for collector in self._collectors:
            section = await collector.safe_collect()
            with self._lock:
                if section is not None:
                    self._sections[collector.name] = section
                    self._failures[collector.name] = 0
                    continue

                failures = self._failures.get(collector.name, 0) + 1
                self._failures[collector.name] = failures
                if failures >= self._max_failed_refreshes and collector.name in self._sections:
                    del self._sections[collector.name]
                    logger.warning(
                        f"Dropping stale metrics from {collector.name} "
                        f"after {failures} failed refreshes"
                    )

        self._refreshed_at = self._clock.now()
        return self.latest()

    def add_custom_metric(
        self,
        name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """Publish an application-defined metric under ``custom.<name>``."""
        with self._lock:
            self._custom[name] = {
                "value": value,
                "labels": dict(labels or {}),
                "timestamp": self._clock.now().isoformat(),
            }

    def custom_metrics(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {k: dict(v) for k, v in self._custom.items()}

    def latest(self) -> MetricSnapshot:
        """Merged snapshot of all collector sections and custom metrics."""
        merged: Dict[str, Any] = {}
        with self._lock:
            for section in self._sections.values():
                _merge(merged, section)
            if self._custom:
                merged["custom"] = {name: entry["value"] for name, entry in self._custom.items()}
        return merged

    def get_metric_value(self, path: str) -> Optional[float]:
        return resolve_metric_path(self.latest(), path)
