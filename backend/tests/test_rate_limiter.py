"""Sliding-window limiter with an injected clock: waits, per-route isolation, budget fraction."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest

from ingestion.rate_limiter import DEFAULT_BUCKET, MIN_DELAY_SECONDS, RouteRateLimiter, WindowSpec


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(clock: FakeClock, limit: int = 2, window: float = 10.0, fraction: float = 1.0) -> RouteRateLimiter:
    return RouteRateLimiter(
        buckets={"r": (WindowSpec(limit, window),), "other": (WindowSpec(limit, window),)},
        fraction=fraction,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.mark.asyncio
async def test_third_call_waits_for_the_window() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)
    assert await limiter.acquire("r") == 0.0
    assert await limiter.acquire("r") == pytest.approx(MIN_DELAY_SECONDS)
    waited = await limiter.acquire("r")
    assert waited == pytest.approx(10.0 - MIN_DELAY_SECONDS)
    assert clock.now == pytest.approx(10.0)
    assert limiter.in_window_count("r", 10.0) == 2


@pytest.mark.asyncio
async def test_routes_do_not_share_a_budget() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)
    await limiter.acquire("r")
    clock.now += 1.0
    await limiter.acquire("r")
    assert await limiter.acquire("other") == 0.0
    assert limiter.compute_wait("r") > 0
    assert limiter.compute_wait("other") == pytest.approx(MIN_DELAY_SECONDS)


@pytest.mark.asyncio
async def test_reset_clears_history() -> None:
    clock = FakeClock()
    limiter = _limiter(clock, limit=1)
    await limiter.acquire("r")
    assert limiter.compute_wait("r") > 0
    limiter.reset()
    assert limiter.compute_wait("r") == 0.0


def test_fraction_scales_every_window() -> None:
    limiter = RouteRateLimiter(fraction=0.5)
    assert limiter.windows_for("match") == [WindowSpec(1000, 10.0)]
    assert limiter.windows_for("league-challenger-master-grandmaster") == [
        WindowSpec(15, 10.0),
        WindowSpec(250, 600.0),
    ]


def test_unknown_route_uses_default_bucket() -> None:
    limiter = RouteRateLimiter()
    assert limiter.windows_for("nope") == list(DEFAULT_BUCKET)


def test_fraction_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RouteRateLimiter(fraction=0.0)
    with pytest.raises(ValueError):
        RouteRateLimiter(fraction=1.5)
