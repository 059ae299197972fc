"""Injectable time source.

Aggregates stamp audit fields, lifecycle timestamps and events from the
clock they were built with, never from ``datetime.now()``.  Production
wiring uses ``WallClock``; tests and replays use ``SimClock`` so every
timestamp is predictable.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

DEFAULT_SIM_START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return *value* converted to UTC; naive datetimes are rejected."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"Timestamp must be timezone-aware, got naive {value!r}")
    return value.astimezone(timezone.utc)


class IClock(Protocol):
    def now(self) -> datetime:
        """Timezone-aware UTC now."""
        ...

    def now_ms(self) -> int:
        ...


class WallClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)


class SimClock:
    """Manually driven clock.

    Parameters
    ----------
    start:
        First reading.  Converted to UTC; must be timezone-aware.
    step:
        Added after every ``now()`` read.  Zero (the default) freezes time
        between explicit moves; a small step gives every stamped event a
        distinct timestamp.
    """

    def __init__(self, start: datetime | None = None, *, step: timedelta = timedelta(0)) -> None:
        if step < timedelta(0):
            raise ValueError(f"SimClock step must not be negative, got {step}")
        self._time = ensure_utc(start or DEFAULT_SIM_START)
        self._step = step

    def now(self) -> datetime:
        current = self._time
        self._time += self._step
        return current

    def now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)

    def peek(self) -> datetime:
        """Current reading without consuming a step."""
        return self._time

    def set_time(self, t: datetime) -> None:
        t = ensure_utc(t)
        if t < self._time:
            raise ValueError(f"SimClock cannot go backwards: {t} < {self._time}")
        self._time = t

    def advance(self, delta: timedelta) -> None:
        self.set_time(self._time + delta)

    def advance_ms(self, ms: int) -> None:
        self.advance(timedelta(milliseconds=ms))
