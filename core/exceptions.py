"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Exception hierarchy for the rate limiting and alerting engine.

Only configuration problems are allowed to surface as hard
failures. Everything on the request path and inside the
periodic ticks is caught, logged and degraded to a neutral
value.

============================================================
EXCEPTION HIERARCHY
============================================================
RateLimitingError (base)
├── ConfigurationError
│   └── RuleValidationError
├── ChannelError
│   └── ChannelDeliveryError
└── EvaluationError

============================================================
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# BASE EXCEPTION
# ============================================================

class RateLimitingError(Exception):
    """
    Base exception for all engine errors.

    Carries a context dict for structured logging.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(RateLimitingError):
    """Invalid threshold, limit or interval value."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if expected:
            context["expected"] = expected
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        self.config_key = config_key
        super().__init__(message, context=context, **kwargs)


class RuleValidationError(ConfigurationError):
    """An alert rule definition or update is invalid."""

    def __init__(
        self,
        message: str,
        rule_id: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if rule_id:
            context["rule_id"] = rule_id

        self.rule_id = rule_id
        super().__init__(message, context=context, **kwargs)


# ============================================================
# NOTIFICATION ERRORS
# ============================================================

class ChannelError(RateLimitingError):
    """Notification channel misconfiguration."""

    def __init__(
        self,
        message: str,
        channel_id: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if channel_id:
            context["channel_id"] = channel_id

        self.channel_id = channel_id
        super().__init__(message, context=context, **kwargs)


class ChannelDeliveryError(ChannelError):
    """
    A channel failed to deliver a notification.

    Caught by the dispatcher, never propagated to evaluation.
    """


# ============================================================
# EVALUATION ERRORS
# ============================================================

class EvaluationError(RateLimitingError):
    """Unexpected failure while evaluating a single rule."""

    def __init__(
        self,
        rule_id: str,
        reason: str,
        cause: Optional[Exception] = None,
    ):
        self.rule_id = rule_id
        super().__init__(
            f"Failed to evaluate rule {rule_id}: {reason}",
            context={"rule_id": rule_id, "reason": reason},
            cause=cause,
        )
