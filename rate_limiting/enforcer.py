"""
Rate Limiting - Quota Enforcer.

Sliding-window hit counter that applies the adaptive quota
to a stream of requests. Any other limiting mechanism can take
its place; it only needs ``compute_quota`` and
``on_limit_exceeded`` from the limiter.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, Mapping, Optional

from core.clock import ClockProtocol, default_clock

from .limiter import DEFAULT_WINDOW_MS, AdaptiveLimiter
from .models import Quota, RateLimitRejection


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnforcementDecision:
    """Outcome of one quota check."""

    allowed: bool
    quota: Quota
    remaining: int
    reset_seconds: int
    rejection: Optional[RateLimitRejection] = None

    def headers(self) -> Dict[str, str]:
        """Standard ``RateLimit-*`` response headers."""
        headers = {
            "RateLimit-Limit": str(self.quota.max),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(self.reset_seconds),
        }
        if self.rejection is not None:
            headers["Retry-After"] = str(self.rejection.retry_after)
        return headers

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "quota": self.quota.to_dict(),
            "remaining": self.remaining,
            "reset_seconds": self.reset_seconds,
            "rejection": self.rejection.to_dict() if self.rejection else None,
        }


class QuotaEnforcer:
    """Counts hits per identifier inside the quota window."""

    def __init__(
        self,
        limiter: AdaptiveLimiter,
        clock: Optional[ClockProtocol] = None,
    ):
        self._limiter = limiter
        self._clock = default_clock(clock)
        self._hits: Dict[str, Deque[datetime]] = {}
        self._lock = threading.Lock()

    def check(
        self,
        identifier: str,
        request_meta: Optional[Mapping[str, Any]] = None,
    ) -> EnforcementDecision:
        """Compute the quota and admit or reject one request."""
        quota = self._limiter.compute_quota(identifier, request_meta)
        now = self._clock.now()
        cutoff = now - timedelta(milliseconds=quota.window_ms)
        # the window moves with load; keep hits for the longest one
        horizon = now - timedelta(milliseconds=max(DEFAULT_WINDOW_MS, quota.window_ms))

        with self._lock:
            hits = self._hits.setdefault(identifier, deque())
            while hits and hits[0] <= horizon:
                hits.popleft()

            in_window = [h for h in hits if h > cutoff]
            allowed = len(in_window) < quota.max
            if allowed:
                hits.append(now)
                in_window.append(now)

            oldest = in_window[0] if in_window else now
            remaining = max(0, quota.max - len(in_window))

        elapsed = (now - oldest).total_seconds()
        reset_seconds = max(0, int(quota.window_ms / 1000 - elapsed))

        if allowed:
            return EnforcementDecision(
                allowed=True,
                quota=quota,
                remaining=remaining,
                reset_seconds=reset_seconds,
            )

        rejection = self._limiter.on_limit_exceeded(identifier, quota)
        return EnforcementDecision(
            allowed=False,
            quota=quota,
            remaining=0,
            reset_seconds=reset_seconds,
            rejection=rejection,
        )

    def hit_count(self, identifier: str) -> int:
        """Hits retained for ``identifier``, across the longest window."""
        with self._lock:
            return len(self._hits.get(identifier, ()))

    def cleanup(self, horizon_ms: int = DEFAULT_WINDOW_MS) -> int:
        """Drop hits older than ``horizon_ms`` and empty logs. Returns logs removed."""
        cutoff = self._clock.now() - timedelta(milliseconds=horizon_ms)
        with self._lock:
            for hits in self._hits.values():
                while hits and hits[0] <= cutoff:
                    hits.popleft()
            empty = [k for k, hits in self._hits.items() if not hits]
            for key in empty:
                del self._hits[key]
        return len(empty)

    def reset(self, identifier: Optional[str] = None) -> None:
        with self._lock:
            if identifier is None:
                self._hits.clear()
            else:
                self._hits.pop(identifier, None)
