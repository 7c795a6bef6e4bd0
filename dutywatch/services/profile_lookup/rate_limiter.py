"""
Client-side throttle for the Roblox API.

Roblox rate limits the public user endpoints aggressively. This module keeps
requests at least `min_interval` apart and, after `threshold` consecutive 429
responses, refuses new requests until a cooldown window has passed.

All bookkeeping lives in one RateLimitState owned by one ProfileRateLimiter
and is only touched while holding its lock.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass

from dutywatch.infrastructure.observability.logging import get_logger
from dutywatch.services.profile_lookup.errors import CooldownActiveError

logger = get_logger(__name__)


@dataclass
class RateLimitState:
    last_request_at: float | None = None  # monotonic seconds of the latest reserved slot
    consecutive_limited: int = 0
    cooldown_until: float = 0.0


class ProfileRateLimiter:
    def __init__(
        self,
        min_interval: float = 1.0,
        threshold: int = 3,
        cooldown_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self.threshold = threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._state = RateLimitState()

    async def acquire(self, operation: str | None = None) -> None:
        """
        Wait for the next request slot.

        Raises:
            CooldownActiveError: While a cooldown window is in effect
        """
        async with self._lock:
            now = self._clock()
            if now < self._state.cooldown_until:
                remaining = self._state.cooldown_until - now
                raise CooldownActiveError(retry_after=remaining, operation=operation)

            wait = 0.0
            if self._state.last_request_at is not None:
                wait = max(0.0, self._state.last_request_at + self.min_interval - now)
            # Reserve the slot before releasing the lock so concurrent callers queue up
            self._state.last_request_at = now + wait

        if wait > 0:
            await self._sleep(wait)

    async def record_success(self) -> None:
        async with self._lock:
            self._state.consecutive_limited = 0

    async def record_rate_limited(self, retry_after: float | None = None) -> float | None:
        """
        Count a 429. Returns the cooldown length when one was started.
        """
        async with self._lock:
            self._state.consecutive_limited += 1
            if self._state.consecutive_limited < self.threshold:
                return None

            cooldown = max(self.cooldown_seconds, retry_after or 0.0)
            self._state.cooldown_until = self._clock() + cooldown
            self._state.consecutive_limited = 0

        logger.warning("Roblox rate limit cooldown started", cooldown_seconds=cooldown)
        return cooldown

    async def snapshot(self) -> dict:
        async with self._lock:
            data = asdict(self._state)
            data["cooling_down"] = self._clock() < self._state.cooldown_until
            return data
