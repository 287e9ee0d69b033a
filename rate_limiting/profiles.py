"""
Rate Limiting - Identifier Profiles.

============================================================
PURPOSE
============================================================
Per-caller request history and offense record.

A profile is created lazily on first sight of an identifier.
The store is an LRU map bounded by ``max_identifiers``;
profiles idle for longer than ``ttl_seconds`` are evicted by
``evict_idle``.

============================================================
THREAD SAFETY
============================================================

The store lock also guards the contents of every profile.
Callers that read-modify-write a profile hold ``store.lock``.

============================================================
"""

import logging
import threading
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Deque, Dict, List, Optional

from core.clock import ClockProtocol, default_clock

from .models import Quota


logger = logging.getLogger(__name__)


# =============================================================
# PROFILE
# =============================================================


@dataclass
class ProfileRequest:
    """One entry of a caller's request history."""
    timestamp: datetime
    method: str = "unknown"
    path: str = "unknown"


@dataclass
class IdentifierProfile:
    """Request history and offenses of one caller."""

    identifier: str
    first_seen: datetime
    last_seen: datetime
    requests: Deque[ProfileRequest] = field(default_factory=lambda: deque(maxlen=100))
    offenses: List[datetime] = field(default_factory=list)
    last_quota: Optional[Quota] = None

    def record_request(self, request: ProfileRequest) -> None:
        """Append to history; the oldest entry drops off at capacity."""
        self.requests.append(request)
        self.last_seen = request.timestamp

    def requests_since(self, cutoff: datetime) -> int:
        return sum(1 for r in self.requests if r.timestamp > cutoff)

    def prune_offenses(self, cutoff: datetime) -> int:
        """Drop offenses at or before ``cutoff``. Returns the count kept."""
        self.offenses = [t for t in self.offenses if t > cutoff]
        return len(self.offenses)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "first_seen": self.first_seen.isoformat(),
            "last_seen": self.last_seen.isoformat(),
            "request_count": len(self.requests),
            "offense_count": len(self.offenses),
            "last_quota": self.last_quota.to_dict() if self.last_quota else None,
        }


# =============================================================
# PROFILE STORE
# =============================================================


class IdentifierProfileStore:
    """Bounded LRU map of identifier -> profile."""

    def __init__(
        self,
        max_identifiers: int = 10_000,
        ttl_seconds: int = 3600,
        history_cap: int = 100,
        clock: Optional[ClockProtocol] = None,
    ):
        self._max_identifiers = max_identifiers
        self._ttl = timedelta(seconds=ttl_seconds)
        self._history_cap = history_cap
        self._clock = default_clock(clock)
        self._profiles: "OrderedDict[str, IdentifierProfile]" = OrderedDict()
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def get(self, identifier: str) -> Optional[IdentifierProfile]:
        """Look up without creating or touching."""
        with self._lock:
            return self._profiles.get(identifier)

    def get_or_create(self, identifier: str) -> IdentifierProfile:
        """Look up, creating on first sight, and mark most recently used."""
        with self._lock:
            profile = self._profiles.get(identifier)
            now = self._clock.now()
            if profile is not None:
                self._profiles.move_to_end(identifier)
                profile.last_seen = now
                return profile

            profile = IdentifierProfile(
                identifier=identifier,
                first_seen=now,
                last_seen=now,
                requests=deque(maxlen=self._history_cap),
            )
            self._profiles[identifier] = profile

            while len(self._profiles) > self._max_identifiers:
                evicted, _ = self._profiles.popitem(last=False)
                logger.debug(f"Evicted least recently used profile: {evicted}")

            return profile

    def evict_idle(self) -> int:
        """Remove profiles not seen within the TTL. Returns the count removed."""
        with self._lock:
            cutoff = self._clock.now() - self._ttl
            stale = [k for k, p in self._profiles.items() if p.last_seen <= cutoff]
            for key in stale:
                del self._profiles[key]

        if stale:
            logger.debug(f"Evicted {len(stale)} idle identifier profiles")
        return len(stale)

    def identifiers(self) -> List[str]:
        with self._lock:
            return list(self._profiles.keys())

    def clear(self) -> None:
        with self._lock:
            self._profiles.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._profiles)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._profiles
