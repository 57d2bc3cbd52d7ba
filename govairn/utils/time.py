"""Time utilities (UTC + injectable clocks)."""

import time
from datetime import datetime, timezone
from typing import Callable

# Seconds-based clock; caches take one so TTL behaviour can be tested without sleeping
Clock = Callable[[], float]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def monotonic_clock() -> float:
    return time.monotonic()


class ManualClock:
    """
    Settable clock for tests and replay.

    Calling the instance returns the current reading; `advance` moves it forward.
    """

    def __init__(self, start: float = 0.0):
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
