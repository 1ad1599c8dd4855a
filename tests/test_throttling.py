from __future__ import annotations

import pytest

from rate_compare.utils.throttling import RateLimiter


class _FakeTime:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay


@pytest.mark.asyncio
async def test_burst_limit_spaces_requests() -> None:
    fake = _FakeTime()
    limiter = RateLimiter(requests_per_minute=30, burst_limit=2, clock=fake.clock, sleep=fake.sleep)

    await limiter.acquire()
    await limiter.acquire()
    assert fake.sleeps == []

    await limiter.acquire()
    assert fake.sleeps == [pytest.approx(1.0)]
    assert limiter.requests_in_window == 3


@pytest.mark.asyncio
async def test_minute_budget_waits_for_oldest_request() -> None:
    fake = _FakeTime()
    limiter = RateLimiter(requests_per_minute=2, burst_limit=5, clock=fake.clock, sleep=fake.sleep)

    await limiter.acquire()
    fake.now = 10.0
    await limiter.acquire()
    assert limiter.delay_needed() == pytest.approx(50.0)

    await limiter.acquire()
    assert fake.now == pytest.approx(60.0)
    assert limiter.requests_in_window == 2


def test_rejects_non_positive_budgets() -> None:
    with pytest.raises(ValueError):
        RateLimiter(requests_per_minute=0)
