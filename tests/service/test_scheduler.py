"""
Tests for periodic tasks and the observer broadcast.

============================================================
TEST PRINCIPLES
============================================================
- A failing tick or sink is logged and counted, never raised
- Real sleeps are kept to a few milliseconds

============================================================
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from monitoring.alerts import build_rule
from monitoring.models import (
    ActiveAlert,
    AlertEvent,
    AlertEventType,
    AlertSeverity,
    AlertState,
)
from service.broadcast import BroadcastHub, QueueSink, alert_message, stats_message
from service.scheduler import PeriodicTask


# ============================================================
# FIXTURES
# ============================================================

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def _event(event_type=AlertEventType.TRIGGERED):
    rule = build_rule(id="busy", metric="application.requests_per_second",
                      condition=">", threshold=100)
    alert = ActiveAlert(
        id="busy_1705320000000",
        rule_id="busy",
        state=AlertState.TRIGGERED,
        severity=AlertSeverity.WARNING,
        first_observed_at=NOW,
        last_updated_at=NOW,
        current_value=150.0,
    )
    return AlertEvent(
        event_type=event_type,
        alert=alert,
        rule=rule,
        channels=tuple(rule.channels),
        notify=True,
        message="busy",
        timestamp=NOW,
    )


# ============================================================
# PERIODIC TASK
# ============================================================

class TestPeriodicTask:
    """Tests for PeriodicTask."""

    @pytest.mark.asyncio
    async def test_run_once_sync_callback(self):
        callback = MagicMock()
        task = PeriodicTask("stats", 60, callback)

        assert await task.run_once() is True
        callback.assert_called_once_with()
        assert task.stats()["runs"] == 1

    @pytest.mark.asyncio
    async def test_run_once_async_callback(self):
        callback = AsyncMock()
        task = PeriodicTask("alerts", 30, callback)

        await task.run_once()

        callback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self):
        task = PeriodicTask("metrics", 5, MagicMock(side_effect=RuntimeError("sensor gone")))

        assert await task.run_once() is False

        stats = task.stats()
        assert stats["errors"] == 1
        assert stats["last_error"] == "sensor gone"

    @pytest.mark.asyncio
    async def test_loop_keeps_running_after_error(self):
        calls = []

        def callback():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first")

        task = PeriodicTask("flaky", 0.001, callback, run_immediately=True)

        await task.start()
        for _ in range(100):
            if len(calls) >= 3:
                break
            await asyncio.sleep(0.005)
        await task.stop()

        assert len(calls) >= 3
        assert task.stats()["errors"] == 1
        assert not task.is_running

    @pytest.mark.asyncio
    async def test_stop_before_first_run(self):
        callback = MagicMock()
        task = PeriodicTask("slow", 3600, callback)

        await task.start()
        await task.stop()

        callback.assert_not_called()


# ============================================================
# BROADCAST
# ============================================================

class TestMessages:
    """Tests for broadcast message builders."""

    def test_alert_message_types(self):
        assert alert_message(_event())["type"] == "alertTriggered"
        assert alert_message(_event(AlertEventType.RESOLVED))["type"] == "alertResolved"

    def test_alert_message_payload(self):
        payload = alert_message(_event())["payload"]

        assert payload["alert"]["id"] == "busy_1705320000000"
        assert payload["timestamp"] == NOW.isoformat()

    def test_stats_message(self):
        assert stats_message({"a": 1}) == {"type": "stats", "payload": {"a": 1}}


class TestQueueSink:
    """Tests for QueueSink."""

    @pytest.mark.asyncio
    async def test_drops_oldest_when_full(self):
        sink = QueueSink(maxsize=2)
        for i in range(3):
            await sink.send({"n": i})

        assert sink.drain() == [{"n": 1}, {"n": 2}]
        assert sink.dropped == 1


class TestBroadcastHub:
    """Tests for BroadcastHub."""

    @pytest.mark.asyncio
    async def test_alert_events_are_queued_until_flush(self):
        hub = BroadcastHub()
        sink = QueueSink()
        hub.add_sink(sink)

        hub.on_alert_event(_event())
        assert sink.drain() == []

        assert await hub.flush() == 1
        assert sink.drain()[0]["type"] == "alertTriggered"

    @pytest.mark.asyncio
    async def test_failing_sink_is_isolated(self):
        hub = BroadcastHub()
        broken = MagicMock()
        broken.send = AsyncMock(side_effect=ConnectionResetError("client gone"))
        healthy = QueueSink()
        hub.add_sink(broken)
        hub.add_sink(healthy)

        await hub.broadcast(stats_message({}))

        assert len(healthy.drain()) == 1
        assert hub.stats()["failures"] == 1
        assert hub.stats()["sent"] == 1

    def test_remove_sink(self):
        hub = BroadcastHub()
        sink = QueueSink()
        hub.add_sink(sink)

        assert hub.remove_sink(sink) is True
        assert hub.sink_count == 0
