"""
Time source for phase status derivation.

All timestamps handled by the engine are naive UTC datetimes, because SQLite
drops tzinfo on the way in and comparisons between aware and naive values
raise. Aware values coming from callers are normalised with to_naive_utc().
"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Clock:
    """Wall-clock time source"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class ManualClock(Clock):
    """
    Clock that only moves when told to.

    Used by tests and replay scripts that need deterministic phase statuses.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = to_naive_utc(start) if start else super().now()

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = to_naive_utc(value)

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta built from kwargs (e.g. minutes=5)"""
        self._now = self._now + timedelta(**kwargs)
        return self._now
