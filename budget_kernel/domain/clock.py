"""
Clock -- injectable time source.

Responsibility:
    Domain and service code ask a Clock for "now" instead of calling
    ``datetime.now()``.  Contribution months, spending windows and the
    monthly idempotency key are all cut from this one value, so a test can
    pin or move time.

Architecture position:
    Kernel > Domain.  SystemClock is the only place wall-clock time enters.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Mid-January: far enough from a month boundary that plan tests are stable
DEFAULT_TEST_TIME = datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC datetimes."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen time that only moves when told to."""

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or DEFAULT_TEST_TIME

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        """Jump to ``time``; naive values are read as UTC."""
        self._current = time if time.tzinfo else time.replace(tzinfo=timezone.utc)

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)
