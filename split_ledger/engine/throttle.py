"""
Token-bucket rate limiting for sequential ledger calls.

The allocation fan-out and the cascade delete both hit the ledger
once per participant. The limiter spaces those calls out so a large
split doesn't trip the backend's quota. It shapes load; nothing
depends on it for correctness.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from split_ledger.config import LedgerSettings


class RateLimiter:
    """
    Token bucket with `burst` capacity refilled at `calls_per_second`.

    A rate of 0 disables limiting entirely. `clock` and `sleep`
    can be swapped out in tests.
    """

    def __init__(
        self,
        calls_per_second: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if calls_per_second < 0:
            raise ValueError("calls_per_second must not be negative")
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self._rate = calls_per_second
        self._burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._last: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> "RateLimiter":
        return cls(settings.calls_per_second)

    @classmethod
    def unlimited(cls) -> "RateLimiter":
        return cls(0)

    @property
    def enabled(self) -> bool:
        return self._rate > 0

    async def acquire(self) -> None:
        """Wait until one call is allowed."""
        if not self.enabled:
            return

        now = self._clock()
        if self._last is not None:
            self._tokens = min(self._burst, self._tokens + (now - self._last) * self._rate)
        self._last = now

        if self._tokens >= 1:
            self._tokens -= 1
            return

        wait = (1 - self._tokens) / self._rate
        await self._sleep(wait)
        # The token that arrives at now + wait is spent immediately
        self._tokens = 0.0
        self._last = now + wait
