"""
Monitoring Collectors - Base.

============================================================
PURPOSE
============================================================
Read-only metric collectors feeding the metric feed.

PRINCIPLES:
- Collectors only read
- A collector returns a nested dict keyed by metric path segment
- Missing data is left out, never guessed
- ``safe_collect`` never throws

============================================================
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from core.clock import ClockProtocol, default_clock


logger = logging.getLogger(__name__)


MetricSnapshot = Dict[str, Any]


class BaseCollector(ABC):
    """
    Base class for all monitoring collectors.

    All collectors MUST be read-only.
    """

    def __init__(self, name: str, clock: Optional[ClockProtocol] = None):
        """Initialize collector."""
        self._name = name
        self._clock = default_clock(clock)
        self._last_collection_time: Optional[datetime] = None
        self._collection_count = 0
        self._error_count = 0

    @property
    def name(self) -> str:
        """Collector name."""
        return self._name

    @property
    def error_count(self) -> int:
        return self._error_count

    @abstractmethod
    async def collect(self) -> MetricSnapshot:
        """
        Collect data.

        MUST be read-only.
        MUST leave out metrics it cannot read.
        """
        pass

    async def safe_collect(self) -> Optional[MetricSnapshot]:
        """
        Safely collect data with error handling.

        Never throws, returns None on error.
        """
        try:
            self._last_collection_time = self._clock.now()
            self._collection_count += 1
            return await self.collect()
        except Exception as e:
            self._error_count += 1
            logger.error(f"Collector {self._name} error: {e}")
            return None

    def stats(self) -> Dict[str, Any]:
        return {
            "name": self._name,
            "collections": self._collection_count,
            "errors": self._error_count,
            "last_collection": (
                self._last_collection_time.isoformat() if self._last_collection_time else None
            ),
        }
