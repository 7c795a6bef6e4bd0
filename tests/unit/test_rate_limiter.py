"""
Tests for the Roblox request throttle.
"""

import pytest

from dutywatch.services.profile_lookup.errors import RateLimitedError
from dutywatch.services.profile_lookup.rate_limiter import ProfileRateLimiter


class ManualClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def limiter_parts(sleep):
    clock = ManualClock()
    limiter = ProfileRateLimiter(
        min_interval=1.0, threshold=3, cooldown_seconds=30.0, clock=clock, sleep=sleep
    )
    return limiter, clock


@pytest.mark.asyncio
async def test_requests_are_spaced(limiter_parts, sleep):
    limiter, clock = limiter_parts

    await limiter.acquire()
    clock.now += 0.25
    await limiter.acquire()

    assert sleep.delays == [0.75]


@pytest.mark.asyncio
async def test_no_wait_after_interval(limiter_parts, sleep):
    limiter, clock = limiter_parts

    await limiter.acquire()
    clock.now += 5
    await limiter.acquire()

    assert sleep.delays == []


@pytest.mark.asyncio
async def test_cooldown_after_consecutive_429s(limiter_parts):
    limiter, clock = limiter_parts

    assert await limiter.record_rate_limited() is None
    assert await limiter.record_rate_limited() is None
    assert await limiter.record_rate_limited(retry_after=45) == 45

    with pytest.raises(RateLimitedError) as exc:
        await limiter.acquire("find_by_name")
    assert exc.value.retry_after == pytest.approx(45)

    clock.now += 46
    await limiter.acquire()
    assert (await limiter.snapshot())["cooling_down"] is False


@pytest.mark.asyncio
async def test_success_resets_consecutive_count(limiter_parts):
    limiter, _ = limiter_parts

    await limiter.record_rate_limited()
    await limiter.record_rate_limited()
    await limiter.record_success()
    assert await limiter.record_rate_limited() is None

    assert (await limiter.snapshot())["consecutive_limited"] == 1
