"""
Alert Event Channel.

Outbound fan-out of AlertEvents. The evaluator publishes;
loggers, the broadcast hub and tests subscribe. A failing
subscriber is logged and skipped.
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, List

from ..models import AlertEvent


logger = logging.getLogger(__name__)


AlertEventSubscriber = Callable[[AlertEvent], None]


class AlertEventChannel:
    """Synchronous publish/subscribe for alert events."""

    def __init__(self, buffer_size: int = 100):
        self._subscribers: List[AlertEventSubscriber] = []
        self._recent: Deque[AlertEvent] = deque(maxlen=buffer_size)
        self._lock = threading.Lock()

    def subscribe(self, subscriber: AlertEventSubscriber) -> Callable[[], None]:
        """Register a subscriber. Returns a callable that unsubscribes it."""
        with self._lock:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            self.unsubscribe(subscriber)

        return unsubscribe

    def unsubscribe(self, subscriber: AlertEventSubscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    def publish(self, event: AlertEvent) -> None:
        with self._lock:
            self._recent.append(event)
            subscribers = list(self._subscribers)

        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception as e:
                logger.error(f"Alert event subscriber error ({event.alert.id}): {e}")

    def recent(self, limit: int = 100) -> List[AlertEvent]:
        """Most recent events, newest first."""
        with self._lock:
            return list(self._recent)[-limit:][::-1]

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
