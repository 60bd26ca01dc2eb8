import asyncio

import pytest

from restpipe.infrastructure.resilience.rate_limiter import RateLimiter


@pytest.fixture
def limiter(fake_clock):
    """Default budget: burst of 5, one permit per second, on a fake clock."""
    return RateLimiter(capacity=5, per_second=1.0, clock=fake_clock, sleep=fake_clock.sleep)


@pytest.mark.asyncio
async def test_full_bucket_allows_burst_without_waiting(limiter: RateLimiter, fake_clock):
    waits = [await limiter.acquire() for _ in range(5)]

    assert waits == [0.0] * 5
    assert fake_clock.sleeps == []
    assert limiter.available_permits() == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_sixth_request_waits_for_refill(limiter: RateLimiter, fake_clock):
    for _ in range(5):
        await limiter.acquire()

    waited = await limiter.acquire()

    assert waited == pytest.approx(1.0)
    assert fake_clock.now == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_sustained_rate_after_burst(limiter: RateLimiter, fake_clock):
    """10 requests in a row: 5 burst, then one per second."""
    for _ in range(10):
        await limiter.acquire()

    assert fake_clock.now == pytest.approx(5.0)
    assert sum(fake_clock.sleeps) == pytest.approx(5.0)


@pytest.mark.asyncio
async def test_refill_is_capped_at_capacity(limiter: RateLimiter, fake_clock):
    for _ in range(5):
        await limiter.acquire()
    fake_clock.now += 100.0

    waits = [await limiter.acquire() for _ in range(6)]

    assert waits[:5] == [0.0] * 5
    assert waits[5] == pytest.approx(1.0)


@pytest.mark.asyncio
async def test_concurrent_acquires_respect_budget(limiter: RateLimiter, fake_clock):
    results = await asyncio.gather(*(limiter.acquire() for _ in range(10)))

    assert sum(1 for waited in results if waited == 0.0) == 5
    assert fake_clock.now == pytest.approx(5.0)
    assert limiter.get_stats()["total_acquired"] == 10


@pytest.mark.asyncio
async def test_cancelled_waiter_consumes_no_permit(limiter: RateLimiter, fake_clock):
    for _ in range(5):
        await limiter.acquire()
    fake_clock.blocker = asyncio.Event()

    waiter = asyncio.create_task(limiter.acquire())
    await asyncio.sleep(0)
    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter

    fake_clock.blocker = None
    fake_clock.now += 1.0
    assert await limiter.acquire() == 0.0
    assert limiter.get_stats()["total_acquired"] == 6


@pytest.mark.asyncio
async def test_wait_time_estimate_does_not_consume(limiter: RateLimiter, fake_clock):
    for _ in range(5):
        await limiter.acquire()
    fake_clock.now += 0.25

    assert limiter.get_wait_time() == pytest.approx(0.75)
    assert limiter.get_wait_time() == pytest.approx(0.75)
    assert limiter.available_permits() == pytest.approx(0.25)


def test_get_stats_reports_configuration(limiter: RateLimiter):
    stats = limiter.get_stats()

    assert stats["capacity"] == 5
    assert stats["per_second"] == 1.0
    assert stats["available_permits"] == 5.0
    assert stats["total_acquired"] == 0


@pytest.mark.parametrize("capacity, per_second", [(0, 1.0), (5, 0.0), (5, -1.0)])
def test_invalid_budget_is_rejected(capacity, per_second):
    with pytest.raises(ValueError):
        RateLimiter(capacity=capacity, per_second=per_second)
