"""
SLIDING WINDOW RATE LIMITER

Two trailing windows enforced together:
- per-second budget (1000ms window)
- per-minute budget (60000ms window)

Both logs keep dispatch timestamps. Before a dispatch, stale entries are
pruned; if either log is full the caller sleeps until the oldest entry
leaves its window, then re-checks against the clock.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Dict

logger = logging.getLogger(__name__)

SECOND_WINDOW = 1.0
MINUTE_WINDOW = 60.0

# Floor on a single wait so a float rounding residue cannot spin the loop
MIN_WAIT_SECONDS = 0.001


class SlidingWindowRateLimiter:
    """
    Global request budget shared by every upstream call.

    The limiter assumes a single flow of dispatches (the scan orchestrator
    guarantees that); the asyncio.Lock only serialises accidental concurrent
    callers so the windows stay consistent.
    """

    def __init__(
        self,
        max_per_second: int,
        max_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            max_per_second: Dispatch ceiling for any 1000ms window
            max_per_minute: Dispatch ceiling for any 60000ms window
            clock: Monotonic clock in seconds
            sleep: Awaitable sleep (injectable for tests)
        """
        if max_per_second < 1 or max_per_minute < 1:
            raise ValueError("rate limits must be >= 1")

        self.max_per_second = max_per_second
        self.max_per_minute = max_per_minute
        self._clock = clock
        self._sleep = sleep

        self._second_log: Deque[float] = deque()
        self._minute_log: Deque[float] = deque()
        self._lock = asyncio.Lock()

        # Stats
        self.dispatches = 0
        self.waits = 0
        self.total_wait_seconds = 0.0

    def _prune(self, now: float):
        while self._second_log and now - self._second_log[0] >= SECOND_WINDOW:
            self._second_log.popleft()
        while self._minute_log and now - self._minute_log[0] >= MINUTE_WINDOW:
            self._minute_log.popleft()

    def _required_wait(self, now: float) -> float:
        """Seconds until both logs have room, 0 if they already do."""
        wait = 0.0
        if len(self._second_log) >= self.max_per_second:
            wait = max(wait, SECOND_WINDOW - (now - self._second_log[0]))
        if len(self._minute_log) >= self.max_per_minute:
            wait = max(wait, MINUTE_WINDOW - (now - self._minute_log[0]))
        return wait

    async def acquire(self) -> float:
        """
        Wait for room in both windows and record the dispatch.

        Returns:
            The recorded dispatch timestamp
        """
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                wait = self._required_wait(now)
                if wait <= 0:
                    break

                wait = max(wait, MIN_WAIT_SECONDS)
                self.waits += 1
                self.total_wait_seconds += wait
                logger.debug(
                    f"[RATE LIMIT] Budget reached "
                    f"({len(self._second_log)}/{self.max_per_second} per s, "
                    f"{len(self._minute_log)}/{self.max_per_minute} per min), waiting {wait * 1000:.0f}ms"
                )
                await self._sleep(wait)

            self._second_log.append(now)
            self._minute_log.append(now)
            self.dispatches += 1
            return now

    def get_stats(self) -> Dict:
        """Current window occupancy and lifetime counters."""
        now = self._clock()
        self._prune(now)
        return {
            'dispatches': self.dispatches,
            'in_last_second': len(self._second_log),
            'in_last_minute': len(self._minute_log),
            'max_per_second': self.max_per_second,
            'max_per_minute': self.max_per_minute,
            'waits': self.waits,
            'total_wait_seconds': round(self.total_wait_seconds, 3),
        }
