"""
Rate Limiting - Adaptive Limiter.

============================================================
ALGORITHM (DAASR-v1)
============================================================

    max = clamp(round(base * traffic * burst * resource
                      * reputation * penalty), min, max)

- traffic:    current load tier (RPS, then error rate, then
              latency; first matching tier wins)
- burst:      max(0.5, 1 - requests_last_60s / 100)
- resource:   injected probe, clamped to [0.5, 1.0]
- reputation: 1.2 for callers with fewer than 10 recorded
              requests
- penalty:    max(0.5, 1 - 0.1 * offenses_last_15min)

The window shrinks with load: RPS > 100 -> 1 minute,
RPS > 10 -> 5 minutes, otherwise 15 minutes.

============================================================
FAILURE MODEL
============================================================

Nothing on the request path raises. When traffic statistics
cannot be read the limiter fails open (traffic factor 1.0,
longest window).

============================================================
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from core.clock import ClockProtocol, default_clock
from traffic.models import TrafficSnapshot

from .config import LimiterConfig
from .models import ALGORITHM_ID, Quota, QuotaFactors, RateLimitRejection
from .profiles import IdentifierProfileStore, ProfileRequest


logger = logging.getLogger(__name__)


# =============================================================
# TIERS
# =============================================================

# (threshold, multiplier), strictly greater-than, highest first
RPS_TIERS: Tuple[Tuple[float, float], ...] = ((1000, 0.5), (500, 0.7), (100, 0.9))
ERROR_RATE_TIERS: Tuple[Tuple[float, float], ...] = ((0.10, 0.6), (0.05, 0.8))
LATENCY_TIERS: Tuple[Tuple[float, float], ...] = ((1000, 0.7), (500, 0.9))

# (rps threshold, window ms)
WINDOW_TIERS: Tuple[Tuple[float, int], ...] = ((100, 60_000), (10, 300_000))
DEFAULT_WINDOW_MS = 900_000

RESOURCE_FLOOR = 0.5


def _first_tier(value: float, tiers: Tuple[Tuple[float, Any], ...]) -> Optional[Any]:
    for threshold, result in tiers:
        if value > threshold:
            return result
    return None


# =============================================================
# ADAPTIVE LIMITER
# =============================================================


class AdaptiveLimiter:
    """
    Computes a per-identifier quota from live traffic and caller history.

    Collaborators are injected:
    - ``monitor``: anything with ``current_stats() -> TrafficSnapshot``
    - ``resource_probe``: zero-argument callable returning a factor
    """

    def __init__(
        self,
        monitor: Optional[Any] = None,
        config: Optional[LimiterConfig] = None,
        clock: Optional[ClockProtocol] = None,
        resource_probe: Optional[Callable[[], float]] = None,
        profiles: Optional[IdentifierProfileStore] = None,
    ):
        """Initialize adaptive limiter."""
        self._monitor = monitor
        self._config = config or LimiterConfig()
        self._clock = default_clock(clock)
        self._resource_probe = resource_probe
        self._profiles = profiles or IdentifierProfileStore(
            max_identifiers=self._config.max_tracked_identifiers,
            ttl_seconds=self._config.identifier_ttl_seconds,
            history_cap=self._config.history_cap,
            clock=self._clock,
        )
        self._last_adjustment_log: Optional[datetime] = None

    @property
    def config(self) -> LimiterConfig:
        return self._config

    @property
    def profiles(self) -> IdentifierProfileStore:
        return self._profiles

    # =========================================================
    # FACTORS
    # =========================================================

    def traffic_multiplier(self, stats: Optional[TrafficSnapshot]) -> float:
        """
        Load tier multiplier.

        RPS tiers are checked first, then error rate, then latency.
        The first tier that matches decides; an overloaded server
        with a high error rate still gets the RPS multiplier.
        """
        if stats is None:
            return 1.0

        for value, tiers in (
            (stats.requests_per_second, RPS_TIERS),
            (stats.error_rate, ERROR_RATE_TIERS),
            (stats.average_latency_ms, LATENCY_TIERS),
        ):
            multiplier = _first_tier(value, tiers)
            if multiplier is not None:
                return multiplier

        return 1.0

    def burst_factor(
        self,
        identifier: str,
        request_meta: Optional[Mapping[str, Any]] = None,
    ) -> float:
        """
        Burst factor from the caller's last 60 seconds.

        Records the current request in the caller's history, so
        call it once per request.
        """
        if not self._config.enable_user_tracking:
            return 1.0

        meta = request_meta or {}
        now = self._clock.now()
        cutoff = now - timedelta(seconds=self._config.burst_window_seconds)

        with self._profiles.lock:
            profile = self._profiles.get_or_create(identifier)
            recent = profile.requests_since(cutoff)
            profile.record_request(ProfileRequest(
                timestamp=now,
                method=str(meta.get("method") or "unknown"),
                path=str(meta.get("path") or meta.get("url") or "unknown"),
            ))

        if not self._config.enable_burst_detection:
            return 1.0

        return max(self._config.burst_floor, 1.0 - recent / self._config.burst_divisor)

    def resource_factor(self) -> float:
        if self._resource_probe is None:
            return 1.0
        try:
            value = float(self._resource_probe())
        except Exception as e:
            logger.error(f"Resource probe failed: {e}")
            return 1.0
        if math.isnan(value):
            return 1.0
        return max(RESOURCE_FLOOR, min(1.0, value))

    def reputation_factor(self, identifier: str) -> float:
        """New-caller bonus for identifiers with little history."""
        if not self._config.enable_user_tracking:
            return 1.0
        with self._profiles.lock:
            profile = self._profiles.get(identifier)
            total = len(profile.requests) if profile else 0
        if total < self._config.new_user_threshold:
            return self._config.new_user_bonus
        return 1.0

    def penalty_factor(self, identifier: str) -> float:
        """Offense penalty; expired offenses are pruned first."""
        if not self._config.enable_user_tracking:
            return 1.0
        cutoff = self._clock.now() - timedelta(seconds=self._config.offense_window_seconds)
        with self._profiles.lock:
            profile = self._profiles.get(identifier)
            if profile is None:
                return 1.0
            offenses = profile.prune_offenses(cutoff)
        return max(self._config.penalty_floor, 1.0 - self._config.penalty_step * offenses)

    def window_size(self, stats: Optional[TrafficSnapshot]) -> int:
        if stats is None:
            return DEFAULT_WINDOW_MS
        window = _first_tier(stats.requests_per_second, WINDOW_TIERS)
        return window if window is not None else DEFAULT_WINDOW_MS

    # =========================================================
    # QUOTA
    # =========================================================

    def _read_stats(self) -> Optional[TrafficSnapshot]:
        if self._monitor is None:
            return None
        try:
            return self._monitor.current_stats()
        except Exception as e:
            logger.error(f"Traffic statistics unavailable, failing open: {e}")
            return None

    def compute_quota(
        self,
        identifier: str,
        request_meta: Optional[Mapping[str, Any]] = None,
    ) -> Quota:
        """Quota for one inbound request from ``identifier``."""
        now = self._clock.now()

        if not self._config.enable_adaptive_limits:
            return Quota(
                window_ms=self._config.default_window_ms,
                max=self._config.clamp(self._config.base_limit),
                computed_at=now,
            )

        stats = self._read_stats()

        # burst records the request, so reputation sees it
        traffic = self.traffic_multiplier(stats)
        burst = self.burst_factor(identifier, request_meta)
        factors = QuotaFactors(
            traffic=traffic,
            burst=burst,
            resource=self.resource_factor(),
            reputation=self.reputation_factor(identifier),
            penalty=self.penalty_factor(identifier),
        )

        quota = Quota(
            window_ms=self.window_size(stats),
            max=self._config.clamp(self._config.base_limit * factors.product),
            factors=factors,
            computed_at=now,
        )

        if self._config.enable_user_tracking:
            with self._profiles.lock:
                self._profiles.get_or_create(identifier).last_quota = quota

        self._log_adjustment(identifier, quota, stats, now)
        return quota

    def _log_adjustment(
        self,
        identifier: str,
        quota: Quota,
        stats: Optional[TrafficSnapshot],
        now: datetime,
    ) -> None:
        interval = timedelta(milliseconds=self._config.adjustment_interval_ms)
        if self._last_adjustment_log and now - self._last_adjustment_log < interval:
            return
        self._last_adjustment_log = now

        rps = stats.requests_per_second if stats else None
        logger.info(
            f"Adaptive limit: identifier={identifier} max={quota.max} "
            f"window_ms={quota.window_ms} rps={rps} "
            f"factors={quota.factors.to_dict()}"
        )

    def on_limit_exceeded(
        self,
        identifier: str,
        quota: Optional[Quota] = None,
    ) -> RateLimitRejection:
        """Record an offense and build the rejection payload."""
        now = self._clock.now()
        offenses = 0

        if self._config.enable_user_tracking:
            with self._profiles.lock:
                profile = self._profiles.get_or_create(identifier)
                profile.offenses.append(now)
                offenses = len(profile.offenses)
                quota = quota or profile.last_quota

        if quota is None:
            quota = Quota(
                window_ms=self.window_size(self._read_stats()),
                max=self._config.clamp(self._config.base_limit),
                computed_at=now,
            )

        logger.warning(
            f"Rate limit exceeded: identifier={identifier} limit={quota.max} "
            f"window_ms={quota.window_ms} offenses={offenses}"
        )

        return RateLimitRejection(
            identifier=identifier,
            limit=quota.max,
            retry_after=quota.retry_after_seconds,
            timestamp=now,
            algorithm=ALGORITHM_ID,
        )

    # =========================================================
    # ADMIN
    # =========================================================

    def identifier_stats(self, identifier: str) -> Optional[Dict[str, Any]]:
        """Profile summary with the factors it would get right now."""
        with self._profiles.lock:
            profile = self._profiles.get(identifier)
            if profile is None:
                return None
            summary = profile.to_dict()

        summary["reputation_factor"] = self.reputation_factor(identifier)
        summary["penalty_factor"] = self.penalty_factor(identifier)
        return summary

    def tracked_identifiers(self) -> List[str]:
        return self._profiles.identifiers()

    def cleanup(self) -> int:
        """Evict idle profiles."""
        return self._profiles.evict_idle()

    def reset(self) -> None:
        self._profiles.clear()
        self._last_adjustment_log = None
        logger.info("Adaptive limiter state reset")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "algorithm": ALGORITHM_ID,
            "tracked_identifiers": len(self._profiles),
            "config": self._config.to_dict(),
        }
