"""Clocks and a per-minute request counter with second resolution."""

from __future__ import annotations

import abc
import math
from datetime import datetime, timedelta, timezone


class Clock(abc.ABC):
    """Source of the current time."""

    @abc.abstractmethod
    def now_utc(self) -> datetime:
        """Returns the current time in UTC."""


class SystemClock(Clock):
    """Clock that reads the system time."""

    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class SettableClock(Clock):
    """Clock whose time is set explicitly and only moves when advanced."""

    def __init__(self, now: datetime) -> None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        self._now = now

    def now_utc(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        """Moves the clock forward by `delta`."""
        self._now += delta


def _unix_timestamp(when: datetime) -> int:
    return math.floor(when.timestamp())


class RequestCounter:
    """Counts requests over the last minute with second resolution."""

    _SLOTS = 60

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._counts: list[tuple[int, int]] = [(0, 0)] * self._SLOTS

    def account(self) -> None:
        """Records one request at the current time."""
        now = self._clock.now_utc()
        slot = now.second % self._SLOTS
        ts = _unix_timestamp(now)
        old_ts, count = self._counts[slot]
        self._counts[slot] = (ts, count + 1) if old_ts == ts else (ts, 1)

    def last_minute(self) -> int:
        """Returns the number of requests during the last minute."""
        since = _unix_timestamp(self._clock.now_utc() - timedelta(seconds=60))
        return sum(count for ts, count in self._counts if ts > since)