"""
Per-route sliding-window rate limiter for the Riot API.

Each route group (e.g. ``match``, ``match-ids``, ``account``) has its own list of
(limit, window) budgets mirroring the published application rate limits. ``acquire``
suspends until every window of the group has room, then records the call. The budget
is shared by all callers holding the same limiter instance, which is process-wide by
default.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowSpec:
    limit: int
    window_seconds: float


ROUTE_BUCKETS: Dict[str, Tuple[WindowSpec, ...]] = {
    "league-challenger-master-grandmaster": (WindowSpec(30, 10.0), WindowSpec(500, 600.0)),
    "league-entries": (WindowSpec(50, 10.0),),
    "league-entries-by-puuid": (WindowSpec(20_000, 10.0), WindowSpec(1_200_000, 600.0)),
    "league-entries-by-summoner": (WindowSpec(500, 10.0),),
    "summoner-by-puuid": (WindowSpec(1600, 60.0),),
    "summoner-by-name": (WindowSpec(1600, 60.0),),
    "summoner-by-id": (WindowSpec(1600, 60.0),),
    "account": (WindowSpec(1000, 60.0),),
    "match": (WindowSpec(2000, 10.0),),
    "match-ids": (WindowSpec(2000, 10.0),),
}

DEFAULT_BUCKET: Tuple[WindowSpec, ...] = (WindowSpec(100, 60.0),)

# Minimum spacing between two calls of the same route group.
MIN_DELAY_SECONDS = 0.005


class RouteRateLimiter:
    """Sliding-window limiter keyed by route group.

    ``fraction`` scales every budget down (e.g. 0.5 when two workers share one key).
    ``clock`` and ``sleep`` are injectable so tests never wait.
    """

    def __init__(
        self,
        buckets: Optional[Dict[str, Tuple[WindowSpec, ...]]] = None,
        fraction: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if not 0 < fraction <= 1:
            raise ValueError("fraction must be in (0, 1]")
        self._buckets = dict(buckets if buckets is not None else ROUTE_BUCKETS)
        self._fraction = fraction
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Dict[str, Deque[float]] = {}
        self._last_call: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def windows_for(self, route: str) -> List[WindowSpec]:
        specs = self._buckets.get(route, DEFAULT_BUCKET)
        return [WindowSpec(max(1, int(s.limit * self._fraction)), s.window_seconds) for s in specs]

    def _lock_for(self, route: str) -> asyncio.Lock:
        lock = self._locks.get(route)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[route] = lock
        return lock

    def compute_wait(self, route: str, now: Optional[float] = None) -> float:
        """Seconds to wait before the next call on ``route`` fits in every window."""
        now = self._clock() if now is None else now
        windows = self.windows_for(route)
        ts = self._timestamps.setdefault(route, deque())
        horizon = max(max(w.window_seconds for w in windows), 60.0)
        while ts and ts[0] <= now - horizon:
            ts.popleft()

        wait = 0.0
        for win in windows:
            cutoff = now - win.window_seconds
            in_window = [t for t in ts if t > cutoff]
            if len(in_window) >= win.limit:
                # The call that must age out before one more fits.
                expire_at = in_window[len(in_window) - win.limit] + win.window_seconds
                wait = max(wait, expire_at - now)

        last = self._last_call.get(route)
        if last is not None:
            elapsed = now - last
            if elapsed < MIN_DELAY_SECONDS:
                wait = max(wait, MIN_DELAY_SECONDS - elapsed)
        return wait

    async def acquire(self, route: str) -> float:
        """Suspend until capacity is available for ``route``; return total seconds waited."""
        waited = 0.0
        async with self._lock_for(route):
            wait = self.compute_wait(route)
            while wait > 0:
                if wait >= 1.0:
                    logger.debug("Rate limiter waiting %.2fs on route=%s", wait, route)
                await self._sleep(wait)
                waited += wait
                wait = self.compute_wait(route)
            now = self._clock()
            self._timestamps.setdefault(route, deque()).append(now)
            self._last_call[route] = now
        return waited

    def in_window_count(self, route: str, window_seconds: float) -> int:
        now = self._clock()
        return sum(1 for t in self._timestamps.get(route, ()) if t > now - window_seconds)

    def reset(self) -> None:
        self._timestamps.clear()
        self._last_call.clear()


_default_limiter: Optional[RouteRateLimiter] = None


def get_rate_limiter(fraction: float = 1.0) -> RouteRateLimiter:
    """Process-wide limiter shared by every client in this process."""
    global _default_limiter
    if _default_limiter is None:
        _default_limiter = RouteRateLimiter(fraction=fraction)
    return _default_limiter
