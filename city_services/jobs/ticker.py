"""Ticker implementations for real and virtual time."""

from __future__ import annotations

import threading

from city_services.domain import ManualClock

from .interfaces import TickerPort


class EventTicker(TickerPort):
    """Wall-clock ticker that can be interrupted from another thread or a signal handler."""

    def __init__(self):
        self._stop_event = threading.Event()

    def ticker_wait(self, interval_seconds: float) -> bool:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        return not self._stop_event.wait(timeout=interval_seconds)

    def ticker_stop(self) -> None:
        self._stop_event.set()


class ManualTicker(TickerPort):
    """Ticker that allows a fixed number of ticks and advances a manual clock."""

    def __init__(self, ticks: int, clock: ManualClock | None = None):
        """Initialize manual ticker.

        Args:
            ticks: Number of waits that return `True`.
            clock: Optional manual clock advanced by each interval.

        Raises:
            ValueError: Raised when ticks is negative.
        """

        if ticks < 0:
            raise ValueError("ticks must be >= 0")
        self._remaining_ticks = ticks
        self._clock = clock
        self._stopped = False
        self.waited_intervals: list[float] = []

    def ticker_wait(self, interval_seconds: float) -> bool:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        if self._stopped or self._remaining_ticks == 0:
            return False
        self._remaining_ticks -= 1
        self.waited_intervals.append(interval_seconds)
        if self._clock is not None:
            self._clock.clock_advance(interval_seconds)
        return True

    def ticker_stop(self) -> None:
        self._stopped = True
