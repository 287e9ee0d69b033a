"""
Notification Channel Senders.

============================================================
PURPOSE
============================================================
Deliver one alert event over one transport.

- console: stdout line with a severity icon
- logfile: the dedicated alert logger
- webhook: JSON POST (aiohttp)
- email: SMTP, run off the event loop

A sender raises ChannelDeliveryError on failure. Retries are
not attempted; the dispatcher counts the failure and moves on.

============================================================
"""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from typing import Any, Dict, Optional

import aiohttp

from core.exceptions import ChannelDeliveryError
from core.log_config import ALERT_LOGGER_NAME

from ..models import AlertEvent, AlertEventType, AlertSeverity, NotificationChannel


logger = logging.getLogger(__name__)


# ============================================================
# BASE SENDER
# ============================================================

class ChannelSender(ABC):
    """Transport for one channel type."""

    @abstractmethod
    async def send(self, channel: NotificationChannel, event: AlertEvent) -> None:
        """
        Deliver ``event`` over ``channel``.

        Raises:
            ChannelDeliveryError: When delivery fails
        """
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None


# ============================================================
# CONSOLE
# ============================================================

class ConsoleSender(ChannelSender):
    """Prints alerts to stdout."""

    SEVERITY_ICONS = {
        AlertSeverity.INFO: "ℹ️",
        AlertSeverity.WARNING: "⚠️",
        AlertSeverity.CRITICAL: "🚨",
    }

    @classmethod
    def format_line(cls, event: AlertEvent) -> str:
        if event.event_type is AlertEventType.RESOLVED:
            return f"✅ {event.message}"
        icon = cls.SEVERITY_ICONS.get(event.alert.severity, "🚨")
        return f"{icon} ALERT [{event.alert.severity.value.upper()}]: {event.message}"

    async def send(self, channel: NotificationChannel, event: AlertEvent) -> None:
        print(self.format_line(event), flush=True)


# ============================================================
# LOG FILE
# ============================================================

class LogfileSender(ChannelSender):
    """Writes alerts to the alert logger (file handler attached at startup)."""

    def __init__(self, logger_name: str = ALERT_LOGGER_NAME):
        self._alert_logger = logging.getLogger(logger_name)

    async def send(self, channel: NotificationChannel, event: AlertEvent) -> None:
        if event.event_type is AlertEventType.RESOLVED:
            level = logging.INFO
        elif event.alert.severity is AlertSeverity.CRITICAL:
            level = logging.ERROR
        else:
            level = logging.WARNING

        self._alert_logger.log(
            level,
            f"{event.message} | alert_id={event.alert.id} rule_id={event.alert.rule_id} "
            f"severity={event.alert.severity.value} value={event.alert.current_value} "
            f"threshold={event.rule.threshold}",
        )


# ============================================================
# WEBHOOK
# ============================================================

class WebhookSender(ChannelSender):
    """
    POSTs the alert payload as JSON.

    Channel config:
    - url (required)
    - method (default POST)
    - headers (optional mapping)
    - timeout_seconds (default 10)
    """

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    @staticmethod
    def build_payload(event: AlertEvent) -> Dict[str, Any]:
        payload = event.to_dict()
        return {"alert": payload["alert"], "type": payload["type"], "timestamp": payload["timestamp"]}

    async def send(self, channel: NotificationChannel, event: AlertEvent) -> None:
        url = channel.config.get("url")
        if not url:
            raise ChannelDeliveryError("Webhook channel has no url", channel_id=channel.id)

        method = str(channel.config.get("method", "POST")).upper()
        headers = {"Content-Type": "application/json"}
        headers.update(channel.config.get("headers") or {})
        timeout = aiohttp.ClientTimeout(total=float(channel.config.get("timeout_seconds", 10)))

        try:
            session = await self._get_session()
            async with session.request(
                method,
                url,
                json=self.build_payload(event),
                headers=headers,
                timeout=timeout,
            ) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    raise ChannelDeliveryError(
                        f"Webhook returned HTTP {response.status}: {body[:200]}",
                        channel_id=channel.id,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ChannelDeliveryError(
                f"Webhook notification failed: {e}",
                channel_id=channel.id,
                cause=e,
            )


# ============================================================
# EMAIL
# ============================================================

class EmailSender(ChannelSender):
    """
    Sends alerts over SMTP.

    Channel config: host, port, secure, user, password,
    from_addr, to (list of recipients).
    """

    @staticmethod
    def build_message(channel: NotificationChannel, event: AlertEvent) -> EmailMessage:
        config = channel.config
        message = EmailMessage()
        prefix = "DAASR Resolved" if event.event_type is AlertEventType.RESOLVED else "DAASR Alert"
        message["Subject"] = f"{prefix}: {event.rule.name}"
        message["From"] = config.get("from_addr") or config.get("user") or "daasr@localhost"
        message["To"] = ", ".join(config.get("to") or [])
        message.set_content(
            f"{event.message}\n\n"
            f"Alert: {event.alert.id}\n"
            f"Rule: {event.alert.rule_id}\n"
            f"Severity: {event.alert.severity.value}\n"
            f"Value: {event.alert.current_value}\n"
            f"Threshold: {event.rule.threshold}\n"
            f"Time: {event.timestamp.isoformat()}\n"
        )
        return message

    @staticmethod
    def _deliver(config: Dict[str, Any], message: EmailMessage) -> None:
        host = config["host"]
        port = int(config.get("port", 587))
        timeout = float(config.get("timeout_seconds", 10))

        if config.get("secure"):
            smtp: smtplib.SMTP = smtplib.SMTP_SSL(host, port, timeout=timeout)
        else:
            smtp = smtplib.SMTP(host, port, timeout=timeout)

        with smtp:
            if not config.get("secure") and port == 587:
                smtp.starttls()
            if config.get("user"):
                smtp.login(config["user"], config.get("password") or "")
            smtp.send_message(message)

    async def send(self, channel: NotificationChannel, event: AlertEvent) -> None:
        if not channel.config.get("host"):
            raise ChannelDeliveryError("Email channel has no SMTP host", channel_id=channel.id)
        if not channel.config.get("to"):
            raise ChannelDeliveryError("Email channel has no recipients", channel_id=channel.id)

        message = self.build_message(channel, event)
        try:
            await asyncio.to_thread(self._deliver, channel.config, message)
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelDeliveryError(
                f"Email notification failed: {e}",
                channel_id=channel.id,
                cause=e,
            )
