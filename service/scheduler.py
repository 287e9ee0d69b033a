"""
Service - Periodic Tasks.

A named callback run on a fixed interval as an asyncio task.
A tick that raises is logged and the loop keeps going.
"""

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Union


logger = logging.getLogger(__name__)


TickCallback = Callable[[], Union[None, Awaitable[Any]]]


class PeriodicTask:
    """Background loop calling ``callback`` every ``interval_seconds``."""

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: TickCallback,
        run_immediately: bool = False,
    ):
        """Initialize periodic task."""
        self._name = name
        self._interval = interval_seconds
        self._callback = callback
        self._run_immediately = run_immediately

        self._running = False
        self._task: Optional[asyncio.Task] = None

        self._run_count = 0
        self._error_count = 0
        self._last_run: Optional[datetime] = None
        self._last_error: Optional[str] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run(), name=f"tick:{self._name}")
        logger.debug(f"Periodic task {self._name} started (every {self._interval}s)")

    async def stop(self) -> None:
        """Stop the loop."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.debug(f"Periodic task {self._name} stopped")

    async def run_once(self) -> bool:
        """Run the callback once. Returns False if it raised."""
        self._last_run = datetime.now(timezone.utc)
        self._run_count += 1
        try:
            result = self._callback()
            if inspect.isawaitable(result):
                await result
            return True
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._error_count += 1
            self._last_error = str(e)
            logger.error(f"Periodic task {self._name} error: {e}", exc_info=True)
            return False

    async def _run(self) -> None:
        """Main run loop."""
        if not self._run_immediately:
            await asyncio.sleep(self._interval)

        while self._running:
            await self.run_once()
            await asyncio.sleep(self._interval)

    def stats(self) -> Dict[str, Any]:
        return {
            "name": self._name,
            "interval_seconds": self._interval,
            "running": self._running,
            "runs": self._run_count,
            "errors": self._error_count,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_error": self._last_error,
        }
