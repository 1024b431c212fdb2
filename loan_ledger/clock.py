"""
clock.py - Clock capability

The engine never reads the wall clock directly. Anything that needs "today"
(default batch date, no-period summaries) takes a Clock, so tests and demos
can pin time without mutating shared state.

Classes:
- Clock: Protocol defining today() and now()
- SystemClock: Real calendar date (optionally in a fixed timezone)
- FixedClock: A pinned date, advanceable for simulations
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Source of the current business date."""

    def today(self) -> date:
        ...

    def now(self) -> datetime:
        """Current instant, timezone-aware. Used for job record timestamps."""
        ...


class SystemClock:
    """Wall-clock date, in tz when given, else local time."""

    def __init__(self, tz: Optional[tzinfo] = None):
        self.tz = tz

    def today(self) -> date:
        return datetime.now(self.tz).date()

    def now(self) -> datetime:
        return datetime.now(self.tz or timezone.utc)

    def __repr__(self):
        return f"SystemClock(tz={self.tz})"


class FixedClock:
    """
    Clock pinned to a date.

    Example:
        clock = FixedClock(date(2026, 6, 15))
        clock.advance(days=1)
        clock.today()  # date(2026, 6, 16)
    """

    def __init__(self, current: date):
        self._current = current

    def today(self) -> date:
        return self._current

    def now(self) -> datetime:
        """Midnight UTC of the pinned date."""
        return datetime.combine(self._current, time(0, 0), tzinfo=timezone.utc)

    def set(self, current: date) -> None:
        self._current = current

    def advance(self, days: int = 1) -> date:
        """Move the pinned date forward and return it."""
        self._current = self._current + timedelta(days=days)
        return self._current

    def __repr__(self):
        return f"FixedClock({self._current.isoformat()})"
