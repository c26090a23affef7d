"""
Clock abstraction for time operations.
Allows faking time in tests.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock interface."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC datetime."""

    def now_ms(self) -> int:
        """Get current time as Unix milliseconds."""
        return int(self.now().timestamp() * 1000)


class SystemClock(Clock):
    """Real system clock implementation."""

    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


class FakeClock(Clock):
    """
    Fake clock for testing.
    Time can be set and advanced manually.
    """

    def __init__(self, initial: datetime = None):
        if initial is None:
            initial = datetime(2024, 11, 15, 12, 0, 0, tzinfo=timezone.utc)
        self._current = initial

    def now(self) -> datetime:
        return self._current

    def set(self, dt: datetime) -> None:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        self._current = dt

    def advance(self, **kwargs) -> None:
        """Advance by any timedelta keyword (seconds=, hours=, milliseconds=...)."""
        self._current += timedelta(**kwargs)


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from databases that drop tzinfo."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
