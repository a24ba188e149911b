"""
Time provider abstraction for deterministic testing

Decay and patronage are pure functions of elapsed time, so the clock is
injected rather than read from a global. Tests drive it second by second.
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        """Return current UTC time from system clock"""
        return datetime.now(timezone.utc)


class FixedTimeProvider:
    """Time pinned to one instant (the CLI's --at flag)"""

    def __init__(self, instant: datetime) -> None:
        self._instant = instant

    def now(self) -> datetime:
        return self._instant


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Starts at the Unix epoch, so "time 0" in a scenario is a real, licensable
    instant rather than a sentinel.
    """

    __test__ = False

    def __init__(self, initial_time: datetime | None = None) -> None:
        """
        Initialize with optional fixed time

        Args:
            initial_time: Starting time (defaults to Unix epoch)
        """
        self._current_time = initial_time or EPOCH

    def now(self) -> datetime:
        """Return current test time"""
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        """Set current time to specific value"""
        self._current_time = dt

    def set_seconds(self, seconds: int) -> None:
        """Set current time to an offset in seconds from the Unix epoch"""
        self._current_time = EPOCH + timedelta(seconds=seconds)

    def advance_seconds(self, seconds: int) -> None:
        """Advance time by specified seconds"""
        self._current_time += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        """Advance time by specified days"""
        self._current_time += timedelta(days=days)


def from_epoch_seconds(seconds: int) -> datetime:
    """Convert epoch seconds to an aware UTC datetime"""
    return EPOCH + timedelta(seconds=seconds)


def elapsed_seconds(since: datetime, now: datetime) -> int:
    """Whole seconds from since to now, never negative"""
    return max(0, int((now - since).total_seconds()))

