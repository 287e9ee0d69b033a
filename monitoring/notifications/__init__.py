"""
Notifications Package.

Channel senders and the dispatcher that fans alert events out
to them.
"""

from .channels import (
    ChannelSender,
    ConsoleSender,
    LogfileSender,
    WebhookSender,
    EmailSender,
)
from .dispatcher import (
    NotificationDispatcher,
    default_senders,
)


__all__ = [
    # Senders
    "ChannelSender",
    "ConsoleSender",
    "LogfileSender",
    "WebhookSender",
    "EmailSender",

    # Dispatcher
    "NotificationDispatcher",
    "default_senders",
]
