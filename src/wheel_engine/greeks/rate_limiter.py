"""
Sliding window rate limiter for the market data provider.

At most ``max_requests`` dispatches happen inside any rolling window of
``window_seconds``, and consecutive dispatches are at least
``window_seconds / max_requests`` apart so a burst is smoothed out instead of
firing everything at once and then stalling.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections import deque
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Callable, Deque, Optional

from ..exceptions import RateLimitExceeded
from ..utils import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RateLimiterState:
    """Point-in-time view of the limiter."""

    window_start: Optional[float]
    dispatched_in_window: int
    pending: int


class SlidingWindowRateLimiter:
    """
    Global request budget shared by every caller of one fetcher.

    Waiters are served strictly first come, first served: the lock is held
    while a waiter sleeps, and ``asyncio.Lock`` wakes waiters in FIFO order.
    Dispatch bookkeeping happens under the lock, so concurrent callers can
    never exceed the budget.

    Parameters
    ----------
    max_requests : int
        Requests allowed per window (R)
    window_seconds : float
        Length of the rolling window (W)
    clock : Callable[[], float]
        Monotonic time source in seconds
    sleep : Callable[[float], Awaitable[None]]
        Coroutine used to wait; tests pass one that advances a virtual clock
    """

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 60.0,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ):
        if max_requests < 1:
            raise ValueError(f"max_requests must be at least 1, got {max_requests}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")

        self.max_requests = max_requests
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._sleep = sleep
        self._dispatches: Deque[float] = deque()
        self._lock = asyncio.Lock()
        self._pending = 0

    @property
    def min_spacing(self) -> float:
        """Minimum seconds between two dispatches (W/R)."""
        return self.window_seconds / self.max_requests

    def _prune(self, now: float) -> None:
        while self._dispatches and now - self._dispatches[0] >= self.window_seconds:
            self._dispatches.popleft()

    def delay_until_available(self) -> float:
        """Seconds until the next dispatch would be allowed."""
        now = self._clock()
        self._prune(now)

        wait = 0.0
        if len(self._dispatches) >= self.max_requests:
            wait = self._dispatches[0] + self.window_seconds - now
        if self._dispatches:
            wait = max(wait, self._dispatches[-1] + self.min_spacing - now)
        return max(wait, 0.0)

    def try_acquire(self) -> float:
        """
        Record a dispatch now if the budget allows it.

        Returns
        -------
        float
            Clock time of the dispatch

        Raises
        ------
        RateLimitExceeded
            If the window or the spacing rule forbids dispatching now
        """
        wait = self.delay_until_available()
        if wait > 0:
            raise RateLimitExceeded(retry_after=wait)

        now = self._clock()
        self._dispatches.append(now)
        return now

    async def acquire(self) -> float:
        """
        Wait for a dispatch slot.

        Cancelling a waiter before it is granted a slot leaves the window
        untouched.

        Returns
        -------
        float
            Seconds spent waiting
        """
        self._pending += 1
        started = self._clock()
        try:
            async with self._lock:
                while True:
                    try:
                        dispatched_at = self.try_acquire()
                        break
                    except RateLimitExceeded as e:
                        logger.debug(
                            "Rate limited, waiting",
                            extra={
                                "wait_seconds": round(e.retry_after or 0.0, 3),
                                "pending": self._pending,
                                "in_window": len(self._dispatches),
                            },
                        )
                        await self._sleep(e.retry_after or 0.0)
        finally:
            self._pending -= 1

        waited = dispatched_at - started
        logger.debug(
            "Request slot granted",
            extra={"waited_seconds": round(waited, 3), "in_window": len(self._dispatches)},
        )
        return waited

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def state(self) -> RateLimiterState:
        self._prune(self._clock())
        return RateLimiterState(
            window_start=self._dispatches[0] if self._dispatches else None,
            dispatched_in_window=len(self._dispatches),
            pending=self._pending,
        )

    def max_queue_wait(self, pending: Optional[int] = None) -> float:
        """Upper bound on how long the last of ``pending`` waiters can queue."""
        pending = self._pending if pending is None else pending
        if pending <= 0:
            return 0.0
        return math.ceil(pending / self.max_requests) * self.window_seconds
