"""Time sources for cooldowns and balance accrual.

Operations read the clock once at entry and compare stored timestamps
against that value; nothing in the engine sleeps.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod

from daovsdao.core import parse_duration_seconds


class Clock(ABC):
    """Source of integer UNIX timestamps (seconds)."""

    @abstractmethod
    def now(self) -> int:
        ...


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> int:
        return int(time.time())


class ManualClock(Clock):
    """Clock that only moves when told to. Used by tests and scenarios."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError("start must be non-negative")
        self._now = int(start)
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def advance(self, duration) -> int:
        """Move forward by a duration ("90s", "2h", 30). Returns the new time."""
        seconds = parse_duration_seconds(duration)
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, timestamp: int) -> None:
        with self._lock:
            if timestamp < self._now:
                raise ValueError(f"Clock cannot go backwards: {timestamp} < {self._now}")
            self._now = int(timestamp)
