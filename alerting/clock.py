"""Time sources used by the alerting runtime."""

from __future__ import annotations

import abc
from datetime import datetime, timedelta, timezone

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Clock(abc.ABC):
    """Source of the current time, replaceable for deterministic tests."""

    @abc.abstractmethod
    def now(self) -> datetime:
        """Return the current time."""


class RealClock(Clock):
    """Reads the current UTC time from the system clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = _EPOCH) -> None:
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta) -> datetime:
        """Move the clock forward by ``delta`` and return the new time."""
        self._current = self._current + delta
        return self._current