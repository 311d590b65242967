"""
Injectable wall clock for the uptime engine.

The engine reads time only through a clock object so that windows,
thresholds and retention can be driven deterministically in tests:

    clock = ManualClock(start=1_700_000_000.0)
    engine = UptimeEngine(clock=clock)
    clock.advance(30)   # wakes any timer whose deadline has passed
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from typing import List, Tuple


class SystemClock:
    """Real time: epoch seconds and ``asyncio.sleep``."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class ManualClock:
    """
    Clock that only moves when told to.

    ``sleep()`` parks the caller until ``advance()`` moves the clock past its
    deadline. Waiters are released in deadline order.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._waiters: List[Tuple[float, int, asyncio.Future]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def set(self, timestamp: float) -> None:
        """Jump to an absolute time (never backwards)."""
        self.advance(max(0.0, timestamp - self._now))

    def advance(self, seconds: float) -> None:
        self._now += seconds
        while self._waiters and self._waiters[0][0] <= self._now:
            _, _, future = heapq.heappop(self._waiters)
            if not future.done():
                future.set_result(None)

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._waiters, (self._now + seconds, next(self._seq), future))
        await future

    @property
    def pending_sleepers(self) -> int:
        return sum(1 for _, _, f in self._waiters if not f.done())
