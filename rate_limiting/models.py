"""
Rate Limiting - Models.

Quota handed to the limiting mechanism, the factor breakdown
behind it, and the rejection payload returned to a caller that
exceeded it.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


ALGORITHM_ID = "DAASR-v1"


@dataclass(frozen=True)
class QuotaFactors:
    """Multiplicative terms applied to the base limit."""

    traffic: float = 1.0
    burst: float = 1.0
    resource: float = 1.0
    reputation: float = 1.0
    penalty: float = 1.0

    @property
    def product(self) -> float:
        return self.traffic * self.burst * self.resource * self.reputation * self.penalty

    def to_dict(self) -> Dict[str, float]:
        return {
            "traffic": self.traffic,
            "burst": self.burst,
            "resource": self.resource,
            "reputation": self.reputation,
            "penalty": self.penalty,
        }


@dataclass(frozen=True)
class Quota:
    """Window and ceiling for one identifier."""

    window_ms: int
    max: int
    factors: QuotaFactors = QuotaFactors()
    computed_at: Optional[datetime] = None

    @property
    def retry_after_seconds(self) -> int:
        return math.ceil(self.window_ms / 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_ms": self.window_ms,
            "max": self.max,
            "factors": self.factors.to_dict(),
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }


@dataclass(frozen=True)
class RateLimitRejection:
    """Payload returned to a caller whose quota is exhausted."""

    identifier: str
    limit: int
    retry_after: int
    timestamp: datetime
    algorithm: str = ALGORITHM_ID
    error: str = "Rate limit exceeded"

    status_code: int = 429

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "retry_after": self.retry_after,
            "limit": self.limit,
            "algorithm": self.algorithm,
            "timestamp": self.timestamp.isoformat(),
        }
