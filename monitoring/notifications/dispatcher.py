"""
Notification Dispatcher.

============================================================
PURPOSE
============================================================
Fans alert events out to registered channels.

PRINCIPLES:
- Each channel is attempted independently
- A failing channel is logged and counted, never propagated
- No retries
- Unknown or disabled channels are skipped

============================================================
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from core.clock import ClockProtocol, default_clock
from core.exceptions import ChannelError, ConfigurationError

from ..config import NotificationConfig
from ..models import AlertEvent, ChannelType, NotificationChannel
from .channels import (
    ChannelSender,
    ConsoleSender,
    EmailSender,
    LogfileSender,
    WebhookSender,
)


logger = logging.getLogger(__name__)


def default_senders() -> Dict[ChannelType, ChannelSender]:
    return {
        ChannelType.CONSOLE: ConsoleSender(),
        ChannelType.LOGFILE: LogfileSender(),
        ChannelType.WEBHOOK: WebhookSender(),
        ChannelType.EMAIL: EmailSender(),
    }


class NotificationDispatcher:
    """
    Channel registry and fan-out.

    Console and logfile channels are always registered. Email is
    registered when SMTP is configured and the webhook when a URL
    is configured.
    """

    def __init__(
        self,
        config: Optional[NotificationConfig] = None,
        clock: Optional[ClockProtocol] = None,
        senders: Optional[Dict[ChannelType, ChannelSender]] = None,
        register_defaults: bool = True,
    ):
        """Initialize dispatcher."""
        self._config = config or NotificationConfig()
        self._clock = default_clock(clock)
        self._senders = default_senders()
        self._senders.update(senders or {})
        self._channels: Dict[str, NotificationChannel] = {}

        self._dispatch_count = 0

        if register_defaults:
            self._register_defaults()

    def _register_defaults(self) -> None:
        self.add_channel("console", ChannelType.CONSOLE)
        self.add_channel("logfile", ChannelType.LOGFILE, path=self._config.alert_log_file)

        if self._config.email_enabled:
            self.add_channel(
                "email",
                ChannelType.EMAIL,
                host=self._config.smtp_host,
                port=self._config.smtp_port,
                secure=self._config.smtp_secure,
                user=self._config.smtp_user,
                password=self._config.smtp_password,
                from_addr=self._config.email_from,
                to=list(self._config.email_to),
            )

        if self._config.webhook_enabled:
            self.add_channel(
                "webhook",
                ChannelType.WEBHOOK,
                url=self._config.webhook_url,
                method=self._config.webhook_method,
                timeout_seconds=self._config.webhook_timeout_seconds,
            )

    # ========================================================
    # CHANNEL REGISTRY
    # ========================================================

    def add_channel(
        self,
        channel_id: str,
        channel_type: Union[ChannelType, str],
        enabled: bool = True,
        **config: Any,
    ) -> NotificationChannel:
        """
        Register (or replace) a channel.

        Raises:
            ConfigurationError: Unknown type, or missing url/host
        """
        if not channel_id:
            raise ConfigurationError("Channel id is required", config_key="id")

        if not isinstance(channel_type, ChannelType):
            try:
                channel_type = ChannelType(str(channel_type).lower())
            except ValueError:
                raise ConfigurationError(
                    f"Unknown channel type: {channel_type}",
                    config_key="type",
                    expected=", ".join(t.value for t in ChannelType),
                    actual_value=channel_type,
                )

        if channel_type is ChannelType.WEBHOOK and not config.get("url"):
            raise ConfigurationError("Webhook channel requires a url", config_key="url")
        if channel_type is ChannelType.EMAIL and not config.get("host"):
            raise ConfigurationError("Email channel requires an SMTP host", config_key="host")

        channel = NotificationChannel(
            id=channel_id,
            type=channel_type,
            enabled=enabled,
            config=dict(config),
            created_at=self._clock.now(),
        )
        self._channels[channel_id] = channel

        logger.info(f"Notification channel added: {channel_id} ({channel_type.value})")
        return channel

    def remove_channel(self, channel_id: str) -> bool:
        channel = self._channels.pop(channel_id, None)
        if channel is None:
            return False
        logger.info(f"Notification channel removed: {channel_id}")
        return True

    def get_channel(self, channel_id: str) -> Optional[NotificationChannel]:
        return self._channels.get(channel_id)

    @property
    def channels(self) -> List[NotificationChannel]:
        return list(self._channels.values())

    def enable_channel(self, channel_id: str) -> bool:
        channel = self._channels.get(channel_id)
        if channel is None:
            return False
        channel.enabled = True
        return True

    def disable_channel(self, channel_id: str) -> bool:
        channel = self._channels.get(channel_id)
        if channel is None:
            return False
        channel.enabled = False
        return True

    # ========================================================
    # DISPATCH
    # ========================================================

    async def dispatch(self, event: AlertEvent) -> Dict[str, bool]:
        """
        Deliver one event to each of its channels.

        Returns channel id -> delivered, for the channels attempted.
        Events with ``notify=False`` are not delivered.
        """
        results: Dict[str, bool] = {}
        if not event.notify:
            return results

        self._dispatch_count += 1

        for channel_id in event.channels:
            channel = self._channels.get(channel_id)
            if channel is None:
                logger.debug(f"Skipping unknown channel {channel_id} for {event.alert.id}")
                continue
            if not channel.enabled:
                continue

            results[channel_id] = await self._send(channel, event)

        return results

    async def dispatch_all(self, events: Iterable[AlertEvent]) -> List[Dict[str, bool]]:
        return [await self.dispatch(event) for event in events]

    async def _send(self, channel: NotificationChannel, event: AlertEvent) -> bool:
        sender = self._senders.get(channel.type)
        try:
            if sender is None:
                raise ChannelError(f"No sender for channel type {channel.type.value}", channel_id=channel.id)
            await sender.send(channel, event)
        except Exception as e:
            channel.failure_count += 1
            logger.error(
                f"Failed to send {event.event_type.value} notification "
                f"for {event.alert.id} via {channel.id}: {e}"
            )
            return False

        channel.last_used_at = self._clock.now()
        channel.message_count += 1
        return True

    async def close(self) -> None:
        """Close transports."""
        for sender in self._senders.values():
            try:
                await sender.close()
            except Exception as e:
                logger.error(f"Error closing notification sender: {e}")

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "channels": len(self._channels),
            "enabled_channels": sum(1 for c in self._channels.values() if c.enabled),
            "dispatched_events": self._dispatch_count,
            "messages_sent": sum(c.message_count for c in self._channels.values()),
            "failures": sum(c.failure_count for c in self._channels.values()),
        }
