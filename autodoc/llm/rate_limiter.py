"""Rolling-window request throttling for backend calls."""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Optional

from ..cancellation import CancellationToken
from ..logging import get_logger

DEFAULT_WINDOW_SECONDS = 60.0


class RateLimiter:
    """Grants at most ``requests_per_minute`` calls in any trailing window.

    The limiter keeps the timestamps of the last N grants. ``acquire`` blocks
    until a new grant would not put N + 1 grants inside the window; it never
    rejects a caller. One instance belongs to one pipeline run and is only
    touched from that run's sequential loop, so it carries no lock.

    Pass ``sleep=token.sleep`` to make throttling waits interruptible.
    """

    def __init__(
        self,
        requests_per_minute: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
        window: float = DEFAULT_WINDOW_SECONDS,
    ) -> None:
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be at least 1")
        if window <= 0:
            raise ValueError("window must be positive")
        self.requests_per_minute = requests_per_minute
        self.window = window
        self._clock = clock
        self._sleep = sleep or time.sleep
        self._grants: Deque[float] = deque(maxlen=requests_per_minute)
        self.logger = get_logger("rate_limiter")

    def pending_delay(self) -> float:
        """Seconds the next ``acquire`` would wait, without granting anything."""
        if len(self._grants) < self.requests_per_minute:
            return 0.0
        oldest = self._grants[0]
        return max(0.0, oldest + self.window - self._clock())

    def acquire(self, cancel_token: Optional[CancellationToken] = None) -> float:
        """Block until a grant is allowed, record it and return the time waited."""
        waited = 0.0
        while True:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()
            delay = self.pending_delay()
            if delay <= 0:
                break
            self.logger.debug(
                "Rate limit of %d requests/%.0fs reached; waiting %.2fs",
                self.requests_per_minute,
                self.window,
                delay,
            )
            self._sleep(delay)
            waited += delay
        self._grants.append(self._clock())
        return waited

    @property
    def grants(self) -> tuple[float, ...]:
        return tuple(self._grants)


__all__ = ["RateLimiter", "DEFAULT_WINDOW_SECONDS"]
