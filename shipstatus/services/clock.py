"""Clock abstraction for date-dependent status rules.

The evaluator compares dates against "today". Reading the system clock
inside it would make it non-deterministic, so "today" is supplied by a
Clock instead: SystemClock in production, FixedClock under test.
"""

from datetime import date, datetime
from typing import Protocol
from zoneinfo import ZoneInfo

# Business day for every "today" comparison and for the reconciliation schedule
DEFAULT_TIMEZONE = "Asia/Riyadh"


class Clock(Protocol):
    """Source of the current calendar day."""

    def today(self) -> date:
        """Return the current day (start-of-day normalized)."""
        ...


class SystemClock:
    """Clock backed by the system time in a fixed timezone.

    Attributes:
        timezone: IANA timezone name used to decide which day it is.
    """

    def __init__(self, timezone: str = DEFAULT_TIMEZONE) -> None:
        self.timezone = timezone
        self._tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        """Return the current timezone-aware datetime."""
        return datetime.now(self._tz)

    def today(self) -> date:
        return self.now().date()

    def __repr__(self) -> str:
        return f"<SystemClock(timezone={self.timezone!r})>"


class FixedClock:
    """Clock frozen on a given day."""

    def __init__(self, day: date | str) -> None:
        self.day = date.fromisoformat(day) if isinstance(day, str) else day

    def today(self) -> date:
        return self.day

    def __repr__(self) -> str:
        return f"<FixedClock(day={self.day.isoformat()!r})>"


DEFAULT_CLOCK = SystemClock()
