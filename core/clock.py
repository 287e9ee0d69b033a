"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
Single time source for every windowed computation.

- Traffic windows, burst windows and offense expiry read this clock
- Alert sustain durations and suppression read this clock
- Tests inject MockClock to step through windows deterministically

============================================================
DESIGN PRINCIPLES
============================================================
- UTC only
- Millisecond helpers for the quota / alert wire formats
- Thread-safe

============================================================
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional
import threading
import time


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Abstract interface for the engine clock."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Get current Unix timestamp in seconds."""
        pass

    def now_ms(self) -> int:
        """Get current Unix timestamp in milliseconds."""
        return int(self.timestamp() * 1000)

    def elapsed_ms(self, since: datetime) -> float:
        """Milliseconds elapsed between ``since`` and now."""
        return (self.now() - since).total_seconds() * 1000.0

    def format_iso(self, dt: Optional[datetime] = None) -> str:
        """Format datetime as ISO 8601."""
        dt = dt or self.now()
        return dt.isoformat()


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Wall clock, UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return time.time()


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Manually driven clock for tests.

    Time only moves when ``advance`` or ``set_time`` is called.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Initialize mock clock.

        Args:
            initial_time: Starting time (defaults to current UTC)
        """
        initial_time = initial_time or datetime.now(timezone.utc)
        if initial_time.tzinfo is None:
            initial_time = initial_time.replace(tzinfo=timezone.utc)
        self._time = initial_time
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def timestamp(self) -> float:
        with self._lock:
            return self._time.timestamp()

    def set_time(self, new_time: datetime) -> None:
        """Jump to an absolute time."""
        with self._lock:
            if new_time.tzinfo is None:
                new_time = new_time.replace(tzinfo=timezone.utc)
            self._time = new_time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Advance time by the specified amount.

        Args:
            seconds: Number of seconds to advance
            **kwargs: Passed to timedelta (milliseconds, minutes, hours, ...)
        """
        with self._lock:
            self._time = self._time + timedelta(seconds=seconds, **kwargs)


# ============================================================
# DEFAULT CLOCK
# ============================================================

def default_clock(clock: Optional[ClockProtocol] = None) -> ClockProtocol:
    """Return ``clock`` or a fresh SystemClock."""
    return clock if clock is not None else SystemClock()
