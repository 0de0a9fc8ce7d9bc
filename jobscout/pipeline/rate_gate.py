from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from loguru import logger


class RateGate:
    """
    Shared pacing for outbound requests: successive `wait()` calls return at
    least `interval_sec` apart, no matter how many callers are in flight.
    """

    def __init__(
        self,
        interval_sec: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.interval_sec = max(0.0, float(interval_sec))
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_pass: float | None = None
        self.passes = 0

    async def wait(self) -> None:
        if self.interval_sec <= 0:
            self.passes += 1
            return
        async with self._lock:
            now = self._clock()
            if self._last_pass is not None:
                wait_for = (self._last_pass + self.interval_sec) - now
                if wait_for > 0:
                    logger.debug("rate gate holding request for {:.2f}s", wait_for)
                    await self._sleep(wait_for)
            self._last_pass = self._clock()
            self.passes += 1
