"""Clock helpers so supervision and dispatch logic can run on virtual time."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

ClockProvider = Callable[[], datetime]


def domain_utc_now() -> datetime:
    """Return the current timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


class ManualClock:
    """Callable clock advanced explicitly, used to drive virtual time."""

    def __init__(self, start: datetime | None = None):
        """Initialize manual clock.

        Args:
            start: Optional initial timestamp, defaults to current UTC time.

        Raises:
            ValueError: Raised when start is timezone-naive.
        """

        initial_time = start or domain_utc_now()
        if initial_time.tzinfo is None:
            raise ValueError("start must be timezone-aware")
        self._current_time = initial_time

    def __call__(self) -> datetime:
        return self._current_time

    def clock_advance(self, seconds: float) -> datetime:
        """Move the clock forward.

        Args:
            seconds: Non-negative number of seconds to advance.

        Returns:
            datetime: New current time.

        Raises:
            ValueError: Raised when seconds is negative.
        """

        if seconds < 0:
            raise ValueError("seconds must be >= 0")
        self._current_time = self._current_time + timedelta(seconds=seconds)
        return self._current_time
