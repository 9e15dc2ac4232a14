"""Per-key minimum-interval rate limiter."""

import asyncio
import time
from typing import Awaitable, Callable, Dict


class KeyedRateLimiter:
    """Enforces a minimum interval between invocations for each key.

    A call for key X waits until ``last_invocation[X] + min_interval``.
    Keys are independent: merchant A never waits on merchant B. Slots are
    reserved before sleeping, so concurrent callers for the same key queue
    one interval apart instead of waking together.
    """

    def __init__(
        self,
        min_interval_ms: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            min_interval_ms: Minimum delay between two calls for the same key
            clock: Monotonic clock in seconds
            sleep: Coroutine used to wait
        """
        self.min_interval = max(0, min_interval_ms) / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._last_invocation: Dict[str, float] = {}

    def _reserve(self, key: str) -> float:
        """Claim the next slot for key and return how long to wait for it."""
        now = self._clock()
        last = self._last_invocation.get(key)
        if last is None:
            slot = now
        else:
            slot = max(now, last + self.min_interval)
        self._last_invocation[key] = slot
        return slot - now

    async def acquire(self, key: str) -> None:
        """Wait until key may be invoked again.

        Args:
            key: Rate limit key (merchant id)
        """
        if self.min_interval <= 0:
            return
        wait_time = self._reserve(key)
        if wait_time > 0:
            await self._sleep(wait_time)

    def last_invocation(self, key: str) -> float:
        """Timestamp of the most recently reserved slot for key (0 if none)."""
        return self._last_invocation.get(key, 0.0)
