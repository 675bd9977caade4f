"""
Clock -- injectable source of "now" for audit stamps and period maths.

Services never call ``datetime.now()`` or ``date.today()`` themselves.
createdAt/updatedAt, voidedAt, clearedAt, closedAt and the archival cutoff
all come from the Clock handed to the façade, so a test can pin a budget
period and move through it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone


class Clock(ABC):
    """
    Guarantees:
        - ``now()`` is timezone-aware UTC.
        - ``today()`` is the UTC calendar date of ``now()``; budget periods
          and the archival sweep compare against it.
    """

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock frozen at a chosen instant until moved explicitly.

    Defaults to noon UTC on the first day of the 2026 budget year.
    """

    def __init__(self, current: datetime | None = None):
        self._current = current or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, current: datetime) -> None:
        self._current = current

    def advance(self, seconds: float = 1, *, days: int = 0) -> datetime:
        """Move forward and return the new instant."""
        self._current += timedelta(days=days, seconds=seconds)
        return self._current

    def move_to_date(self, day: date, at: time = time(12, 0)) -> datetime:
        """Jump to *day* (UTC), e.g. the first day of the next budget period."""
        self._current = datetime.combine(day, at, tzinfo=timezone.utc)
        return self._current
