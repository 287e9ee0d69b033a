"""
Rate Limiting Package.

DAASR adaptive limiter: per-caller quotas that follow live
traffic load, burstiness and caller reputation.
"""

from .config import LimiterConfig
from .models import (
    ALGORITHM_ID,
    Quota,
    QuotaFactors,
    RateLimitRejection,
)
from .profiles import (
    IdentifierProfile,
    IdentifierProfileStore,
    ProfileRequest,
)
from .limiter import AdaptiveLimiter
from .enforcer import EnforcementDecision, QuotaEnforcer


__all__ = [
    # Config
    "LimiterConfig",

    # Models
    "ALGORITHM_ID",
    "Quota",
    "QuotaFactors",
    "RateLimitRejection",

    # Profiles
    "IdentifierProfile",
    "IdentifierProfileStore",
    "ProfileRequest",

    # Limiter
    "AdaptiveLimiter",

    # Enforcement
    "EnforcementDecision",
    "QuotaEnforcer",
]
