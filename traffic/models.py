"""
Traffic Monitoring - Models.

============================================================
PURPOSE
============================================================
Events recorded by the traffic monitor and the snapshots
derived from them.

- RequestEvent / ResponseEvent are appended on the hot path
- TrafficSnapshot / TrafficPatterns are derived, never stored
- Malformed input is coerced, never rejected

============================================================
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


UNKNOWN = "unknown"


# ============================================================
# COERCION HELPERS
# ============================================================

def _first(data: Mapping[str, Any], *keys: str) -> Any:
    """First non-None value among ``keys``."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _to_str(value: Any) -> str:
    if value is None or value == "":
        return UNKNOWN
    return str(value)


def _to_float(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if result != result:  # NaN
        return 0.0
    return result


def _to_int(value: Any) -> int:
    return int(_to_float(value))


def _as_utc(timestamp: datetime) -> datetime:
    """Naive timestamps are taken as UTC; aware ones are converted."""
    if timestamp.tzinfo is None or timestamp.utcoffset() is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


# ============================================================
# HEALTH STATUS
# ============================================================

class HealthStatus(Enum):
    """Traffic health classification."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    HIGH_LOAD = "high-load"
    MEDIUM_LOAD = "medium-load"


# ============================================================
# EVENTS
# ============================================================

@dataclass
class RequestEvent:
    """One inbound request."""

    identifier: str
    method: str
    path: str
    user_agent: str
    timestamp: datetime

    def __post_init__(self):
        self.timestamp = _as_utc(self.timestamp)

    @classmethod
    def from_data(cls, data: Mapping[str, Any], now: datetime) -> "RequestEvent":
        """
        Build an event from loosely-typed request metadata.

        Accepts both the engine field names and the common HTTP
        layer aliases (``ip``, ``url``, ``userAgent``).
        """
        timestamp = data.get("timestamp")
        if not isinstance(timestamp, datetime):
            timestamp = now

        return cls(
            identifier=_to_str(_first(data, "identifier", "ip")),
            method=_to_str(_first(data, "method")).upper(),
            path=_to_str(_first(data, "path", "url")),
            user_agent=_to_str(_first(data, "user_agent", "userAgent")),
            timestamp=timestamp,
        )

    @property
    def endpoint(self) -> str:
        """Path with the query string stripped."""
        return self.path.split("?", 1)[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "method": self.method,
            "path": self.path,
            "user_agent": self.user_agent,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ResponseEvent:
    """Completion of one request."""

    timestamp: datetime
    latency_ms: float = 0.0
    status_code: int = 0
    body_size: int = 0

    def __post_init__(self):
        self.timestamp = _as_utc(self.timestamp)

    @classmethod
    def from_data(cls, data: Mapping[str, Any], now: datetime) -> "ResponseEvent":
        """Build an event, defaulting missing numeric fields to 0."""
        timestamp = data.get("timestamp")
        if not isinstance(timestamp, datetime):
            timestamp = now

        return cls(
            timestamp=timestamp,
            latency_ms=max(0.0, _to_float(_first(data, "latency_ms", "latency", "responseTime"))),
            status_code=_to_int(_first(data, "status_code", "statusCode")),
            body_size=max(0, _to_int(_first(data, "body_size", "content_length", "contentLength"))),
        )

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "latency_ms": self.latency_ms,
            "status_code": self.status_code,
            "body_size": self.body_size,
        }


# ============================================================
# DERIVED VIEWS
# ============================================================

@dataclass(frozen=True)
class TrafficSnapshot:
    """
    Point-in-time traffic statistics.

    Computed from the last stats window (60 seconds by default).
    """

    requests_per_second: float = 0.0
    requests_per_minute: int = 0
    average_latency_ms: float = 0.0
    error_rate: float = 0.0
    peak_rps: float = 0.0
    peak_latency_ms: float = 0.0
    total_requests: int = 0
    total_errors: int = 0
    computed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requests_per_second": self.requests_per_second,
            "requests_per_minute": self.requests_per_minute,
            "average_latency_ms": self.average_latency_ms,
            "error_rate": self.error_rate,
            "peak_rps": self.peak_rps,
            "peak_latency_ms": self.peak_latency_ms,
            "total_requests": self.total_requests,
            "total_errors": self.total_errors,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }


@dataclass
class TrafficPatterns:
    """Frequency tables over the pattern window (5 minutes by default)."""

    top_endpoints: Dict[str, int] = field(default_factory=dict)
    top_identifiers: Dict[str, int] = field(default_factory=dict)
    top_user_agents: Dict[str, int] = field(default_factory=dict)
    method_distribution: Dict[str, int] = field(default_factory=dict)
    hourly_distribution: Dict[int, int] = field(default_factory=dict)

    @staticmethod
    def top(table: Dict[Any, int], limit: int = 5) -> List[Tuple[Any, int]]:
        """Most frequent entries of a table."""
        return Counter(table).most_common(limit)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "top_endpoints": dict(self.top_endpoints),
            "top_identifiers": dict(self.top_identifiers),
            "top_user_agents": dict(self.top_user_agents),
            "method_distribution": dict(self.method_distribution),
            "hourly_distribution": {str(k): v for k, v in self.hourly_distribution.items()},
        }
