"""
Monitoring Collectors - System Metrics.

Host and process figures from psutil, under the
``system.*`` and ``process.*`` metric paths:

- system.cpu.{overall,count,cores}
- system.memory.{total,free,used,usagePercent}
- system.load.{load1,load5,load15}
- system.uptime
- process.{pid,uptime,memory.rss,memory.vms,cpu_percent,num_threads}
"""

import logging
import os
import time
from typing import Any, Dict, List, Optional

import psutil

from core.clock import ClockProtocol

from .base import BaseCollector, MetricSnapshot


logger = logging.getLogger(__name__)


# ============================================================
# HEALTH SCORING
# ============================================================

CPU_PENALTY_THRESHOLD = 80.0
MEMORY_PENALTY_THRESHOLD = 90.0
LOAD_PER_CORE_THRESHOLD = 2.0


def score_health(snapshot: MetricSnapshot) -> Dict[str, Any]:
    """
    Score a system snapshot from 100 down.

    - CPU above 80%: -20
    - memory above 90%: -25
    - 1 minute load above 2x core count: -15

    Below 50 is critical, below 80 is warning.
    """
    system = snapshot.get("system") or {}
    cpu = system.get("cpu") or {}
    memory = system.get("memory") or {}
    load = system.get("load") or {}

    score = 100
    issues: List[str] = []

    overall = cpu.get("overall")
    if overall is not None and overall > CPU_PENALTY_THRESHOLD:
        score -= 20
        issues.append(f"High CPU usage: {overall:.1f}%")

    usage = memory.get("usagePercent")
    if usage is not None and usage > MEMORY_PENALTY_THRESHOLD:
        score -= 25
        issues.append(f"High memory usage: {usage:.1f}%")

    load1 = load.get("load1")
    cores = cpu.get("count") or 1
    if load1 is not None and load1 > cores * LOAD_PER_CORE_THRESHOLD:
        score -= 15
        issues.append(f"High load average: {load1:.2f}")

    if score < 50:
        status = "critical"
    elif score < 80:
        status = "warning"
    else:
        status = "healthy"

    return {"status": status, "score": score, "issues": issues}


# ============================================================
# SYSTEM METRICS COLLECTOR
# ============================================================

class SystemMetricsCollector(BaseCollector):
    """Samples host and process metrics."""

    def __init__(self, clock: Optional[ClockProtocol] = None):
        """Initialize system metrics collector."""
        super().__init__("system", clock=clock)
        self._process = psutil.Process(os.getpid())
        self._latest: MetricSnapshot = {}

        # Prime the CPU counters; the first non-blocking read is always 0.
        psutil.cpu_percent(interval=None)
        self._process.cpu_percent(interval=None)

    async def collect(self) -> MetricSnapshot:
        snapshot = {
            "system": self._system_metrics(),
            "process": self._process_metrics(),
        }
        self._latest = snapshot
        return snapshot

    def _system_metrics(self) -> Dict[str, Any]:
        cores = psutil.cpu_percent(interval=None, percpu=True)
        memory = psutil.virtual_memory()

        metrics: Dict[str, Any] = {
            "cpu": {
                "overall": sum(cores) / len(cores) if cores else 0.0,
                "count": psutil.cpu_count() or len(cores),
                "cores": cores,
            },
            "memory": {
                "total": memory.total,
                "free": memory.available,
                "used": memory.total - memory.available,
                "usagePercent": memory.percent,
            },
            "uptime": time.time() - psutil.boot_time(),
        }

        try:
            load1, load5, load15 = psutil.getloadavg()
            metrics["load"] = {"load1": load1, "load5": load5, "load15": load15}
        except (AttributeError, OSError) as e:
            logger.debug(f"Load average unavailable: {e}")

        return metrics

    def _process_metrics(self) -> Dict[str, Any]:
        with self._process.oneshot():
            memory = self._process.memory_info()
            return {
                "pid": self._process.pid,
                "uptime": time.time() - self._process.create_time(),
                "memory": {"rss": memory.rss, "vms": memory.vms},
                "cpu_percent": self._process.cpu_percent(interval=None),
                "num_threads": self._process.num_threads(),
            }

    def health_status(self) -> Dict[str, Any]:
        """Health score of the most recent sample."""
        return score_health(self._latest)
