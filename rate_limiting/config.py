"""
Rate Limiting - Configuration.

============================================================
PURPOSE
============================================================
All tunables of the adaptive limiter.

- Base / min / max ceiling
- Reputation, burst and penalty constants
- Identifier tracking bounds
- Feature flags

Invalid values fail fast with ConfigurationError.

============================================================
"""

import os
from dataclasses import dataclass, asdict
from typing import Any, Dict, Tuple
import logging

from core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() != "false"


# ============================================================
# LIMITER CONFIGURATION
# ============================================================

@dataclass
class LimiterConfig:
    """
    Adaptive limiter configuration.

    Ranges mirror the deployment schema:
    base 1-10000, min 1-1000, max 1-10000.
    """

    base_limit: int = 100
    """Ceiling before any factor is applied."""

    min_limit: int = 10
    """Lowest ceiling ever returned."""

    max_limit: int = 1000
    """Highest ceiling ever returned."""

    default_window_ms: int = 900_000
    """Window used when adaptive limits are disabled."""

    adjustment_interval_ms: int = 30_000
    """Minimum spacing between adjustment log lines."""

    # Reputation
    new_user_bonus: float = 1.2
    new_user_threshold: int = 10

    # Burst
    burst_floor: float = 0.5
    burst_window_seconds: int = 60
    burst_divisor: int = 100
    history_cap: int = 100

    # Penalty
    offense_window_seconds: int = 900
    penalty_step: float = 0.1
    penalty_floor: float = 0.5

    # Tracking bounds
    max_tracked_identifiers: int = 10_000
    identifier_ttl_seconds: int = 3600

    # Feature flags
    enable_adaptive_limits: bool = True
    enable_user_tracking: bool = True
    enable_burst_detection: bool = True

    def __post_init__(self) -> None:
        """Validate ranges."""
        self._check_range("base_limit", 1, 10_000)
        self._check_range("min_limit", 1, 1000)
        self._check_range("max_limit", 1, 10_000)
        self._check_range("default_window_ms", 1000, 3_600_000)
        self._check_range("adjustment_interval_ms", 1000, 300_000)
        self._check_range("new_user_bonus", 0.5, 2.0)
        self._check_range("burst_floor", 0.1, 1.0)
        self._check_range("penalty_floor", 0.1, 1.0)
        self._check_range("penalty_step", 0.0, 1.0)
        self._check_range("history_cap", 1, 10_000)
        self._check_range("max_tracked_identifiers", 1, 1_000_000)

        if self.min_limit > self.max_limit:
            raise ConfigurationError(
                "min_limit must be <= max_limit",
                config_key="min_limit",
                expected=f"<= {self.max_limit}",
                actual_value=self.min_limit,
            )
        for key in (
            "new_user_threshold",
            "burst_window_seconds",
            "burst_divisor",
            "offense_window_seconds",
            "identifier_ttl_seconds",
        ):
            if getattr(self, key) <= 0:
                raise ConfigurationError(
                    f"{key} must be positive",
                    config_key=key,
                    actual_value=getattr(self, key),
                )

    def _check_range(self, key: str, low: float, high: float) -> None:
        value = getattr(self, key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(
                f"{key} must be numeric",
                config_key=key,
                expected="number",
                actual_value=value,
            )
        if not low <= value <= high:
            raise ConfigurationError(
                f"{key} out of range",
                config_key=key,
                expected=f"{low} - {high}",
                actual_value=value,
            )

    @property
    def limit_bounds(self) -> Tuple[int, int]:
        return self.min_limit, self.max_limit

    def clamp(self, value: float) -> int:
        """Round and clamp a raw ceiling into [min_limit, max_limit]."""
        return max(self.min_limit, min(self.max_limit, int(round(value))))

    @classmethod
    def from_env(cls) -> "LimiterConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - DAASR_BASE_RATE_LIMIT / DAASR_MIN_RATE_LIMIT / DAASR_MAX_RATE_LIMIT
        - DAASR_ADJUSTMENT_INTERVAL / DAASR_WINDOW_SIZE
        - DAASR_NEW_USER_BONUS / DAASR_BURST_PENALTY
        - DAASR_CACHE_SIZE / DAASR_CACHE_TTL (ms)
        - DAASR_ENABLE_ADAPTIVE_LIMITS / DAASR_ENABLE_USER_TRACKING /
          DAASR_ENABLE_BURST_DETECTION
        """
        try:
            return cls(
                base_limit=int(os.getenv("DAASR_BASE_RATE_LIMIT", "100")),
                min_limit=int(os.getenv("DAASR_MIN_RATE_LIMIT", "10")),
                max_limit=int(os.getenv("DAASR_MAX_RATE_LIMIT", "1000")),
                adjustment_interval_ms=int(os.getenv("DAASR_ADJUSTMENT_INTERVAL", "30000")),
                default_window_ms=int(os.getenv("DAASR_WINDOW_SIZE", "900000")),
                new_user_bonus=float(os.getenv("DAASR_NEW_USER_BONUS", "1.2")),
                burst_floor=float(os.getenv("DAASR_BURST_PENALTY", "0.5")),
                max_tracked_identifiers=int(os.getenv("DAASR_CACHE_SIZE", "10000")),
                identifier_ttl_seconds=int(os.getenv("DAASR_CACHE_TTL", "3600000")) // 1000,
                enable_adaptive_limits=_env_flag("DAASR_ENABLE_ADAPTIVE_LIMITS"),
                enable_user_tracking=_env_flag("DAASR_ENABLE_USER_TRACKING"),
                enable_burst_detection=_env_flag("DAASR_ENABLE_BURST_DETECTION"),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid limiter configuration: {e}", cause=e)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LimiterConfig":
        """Build from a mapping, ignoring unknown keys."""
        known = cls.__dataclass_fields__.keys()
        unknown = set(data) - set(known)
        if unknown:
            logger.warning(f"Ignoring unknown limiter settings: {sorted(unknown)}")
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
