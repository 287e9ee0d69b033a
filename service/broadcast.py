"""
Service - Broadcast.

============================================================
PURPOSE
============================================================
Pushes JSON-safe messages to observers (a WebSocket layer, a
dashboard, a test queue). Transport is out of scope: a sink is
anything with ``async send(message)``.

MESSAGES:
- {"type": "stats", "payload": {system, process, traffic, health, timestamp}}
- {"type": "alertTriggered" | "alertResolved", "payload": {"alert": ..., "timestamp": ...}}

============================================================
"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Protocol

from core.clock import ClockProtocol, default_clock
from monitoring.models import AlertEvent, AlertEventType


logger = logging.getLogger(__name__)


Message = Dict[str, Any]


class BroadcastSink(Protocol):
    """Receives broadcast messages."""

    async def send(self, message: Message) -> None:
        ...


# ============================================================
# MESSAGE BUILDERS
# ============================================================

def stats_message(payload: Dict[str, Any]) -> Message:
    return {"type": "stats", "payload": payload}


def alert_message(event: AlertEvent) -> Message:
    message_type = (
        "alertResolved" if event.event_type is AlertEventType.RESOLVED else "alertTriggered"
    )
    data = event.to_dict()
    return {
        "type": message_type,
        "payload": {"alert": data["alert"], "timestamp": data["timestamp"]},
    }


# ============================================================
# QUEUE SINK
# ============================================================

class QueueSink:
    """
    Bounded in-memory sink.

    When full, the oldest message is dropped to make room.
    """

    def __init__(self, maxsize: int = 100):
        self.queue: "asyncio.Queue[Message]" = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    async def send(self, message: Message) -> None:
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(message)

    def drain(self) -> List[Message]:
        messages = []
        while not self.queue.empty():
            messages.append(self.queue.get_nowait())
        return messages


# ============================================================
# BROADCAST HUB
# ============================================================

class BroadcastHub:
    """
    Fan-out to registered sinks.

    Alert events arrive synchronously from the event channel and
    are queued; ``flush`` delivers them from the event loop.
    """

    def __init__(self, clock: Optional[ClockProtocol] = None, max_pending: int = 1000):
        self._clock = default_clock(clock)
        self._sinks: List[BroadcastSink] = []
        self._pending: Deque[Message] = deque(maxlen=max_pending)

        self._sent = 0
        self._failures = 0

    def add_sink(self, sink: BroadcastSink) -> None:
        self._sinks.append(sink)
        logger.info(f"Broadcast sink registered ({len(self._sinks)} total)")

    def remove_sink(self, sink: BroadcastSink) -> bool:
        if sink in self._sinks:
            self._sinks.remove(sink)
            return True
        return False

    @property
    def sink_count(self) -> int:
        return len(self._sinks)

    def on_alert_event(self, event: AlertEvent) -> None:
        """AlertEventChannel subscriber."""
        self._pending.append(alert_message(event))

    async def flush(self) -> int:
        """Deliver queued alert messages. Returns the count flushed."""
        count = 0
        while self._pending:
            await self.broadcast(self._pending.popleft())
            count += 1
        return count

    async def broadcast(self, message: Message) -> None:
        """Send to every sink; a failing sink is logged and skipped."""
        for sink in list(self._sinks):
            try:
                await sink.send(message)
                self._sent += 1
            except Exception as e:
                self._failures += 1
                logger.error(f"Broadcast sink error ({message.get('type')}): {e}")

    def stats(self) -> Dict[str, Any]:
        return {
            "sinks": len(self._sinks),
            "pending": len(self._pending),
            "sent": self._sent,
            "failures": self._failures,
        }
