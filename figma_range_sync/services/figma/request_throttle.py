"""
Request Throttle - outbound request pacing for the Figma API.

Fixed-interval gate: callers are released one at a time, at least
``1 / requests_per_second`` seconds apart. A single instance is shared by
every read the client issues, so concurrent fan-out batches queue behind the
same schedule for the life of the process.

Usage:
    throttle = RequestThrottle(requests_per_second=5)

    await throttle.acquire()
    response = await client.get(url)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from figma_range_sync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class RequestThrottle:
    """Fixed-interval request gate."""

    def __init__(
        self,
        requests_per_second: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")

        self.requests_per_second = requests_per_second
        self.interval_seconds = 1.0 / requests_per_second
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._next_slot: float | None = None

    async def acquire(self) -> None:
        """Wait until the next request slot is free, then claim it."""
        async with self._lock:
            now = self._clock()
            if self._next_slot is not None and self._next_slot > now:
                delay = self._next_slot - now
                logger.debug("Throttling Figma request", delay_seconds=round(delay, 3))
                await self._sleep(delay)
                now = self._next_slot
            self._next_slot = now + self.interval_seconds
