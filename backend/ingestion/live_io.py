"""
Provider IO errors and metrics.
Typed errors raised by the Riot client once its local retries are exhausted, a rolling
429 tracker used to dampen bursts, and thread-safe request metrics (counters + latency p50/p95).
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional

# Provider error message fragment emitted when a stored PUUID was encrypted with a retired key.
DECRYPT_FAILURE_MARKER = "exception decrypting"


class RiotApiError(Exception):
    """Base error for provider calls; carries status code, route group and provider message."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        route: Optional[str] = None,
        provider_message: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.route = route
        self.provider_message = provider_message


class RiotAuthError(RiotApiError):
    """401/403: credential rejected. Never retried."""


class RiotNotFoundError(RiotApiError):
    """404 on a single resource."""


class RiotRateLimitedError(RiotApiError):
    """429 responses persisted after all retries."""


class RiotServerError(RiotApiError):
    """5xx (or timeouts) persisted after all retries."""


class RiotTimeoutError(RiotServerError):
    """Request timed out on every attempt."""


class RiotIdentifierRotationError(RiotApiError):
    """Provider could not decrypt a PUUID: identifiers were rotated and need migration."""


class RiotPayloadError(RiotApiError):
    """2xx body did not validate against the expected payload model."""


class RiotConfigError(RiotApiError):
    """No API key could be resolved."""


def is_decrypt_failure(message: Optional[str]) -> bool:
    return bool(message) and DECRYPT_FAILURE_MARKER in str(message).lower()


class RollingCounter:
    """Counts events in a trailing time window (default 60s)."""

    def __init__(self, window_seconds: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._window = window_seconds
        self._clock = clock
        self._events: Deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        cutoff = now - self._window
        while self._events and self._events[0] <= cutoff:
            self._events.popleft()

    def record(self) -> int:
        """Record one event; return the count inside the window including it."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._events.append(now)
            return len(self._events)

    def count(self) -> int:
        with self._lock:
            self._prune(self._clock())
            return len(self._events)

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


def _percentile(sorted_values: List[float], p: float) -> float:
    """Compute percentile (0..100). Returns 0.0 if empty."""
    if not sorted_values:
        return 0.0
    k = (len(sorted_values) - 1) * (p / 100.0)
    f = int(k)
    c = f + 1 if f + 1 < len(sorted_values) else f
    return float(sorted_values[f] + (k - f) * (sorted_values[c] - sorted_values[f]))


class LiveIOMetrics:
    """Thread-safe counters and latency samples for provider requests."""

    COUNTERS = (
        "requests_total",
        "failures_total",
        "retries_total",
        "timeouts_total",
        "rate_limited_total",
        "server_errors_total",
        "auth_failures_total",
        "not_found_total",
    )
    MAX_LATENCY_SAMPLES = 2000

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {name: 0 for name in self.COUNTERS}
        self._latency_ms: Deque[float] = deque(maxlen=self.MAX_LATENCY_SAMPLES)

    def record_request(
        self,
        *,
        success: bool,
        latency_ms: float,
        timeout: bool = False,
        rate_limited: bool = False,
        server_error: bool = False,
        auth_failure: bool = False,
        not_found: bool = False,
    ) -> None:
        with self._lock:
            self._counters["requests_total"] += 1
            if not success:
                self._counters["failures_total"] += 1
            if timeout:
                self._counters["timeouts_total"] += 1
            if rate_limited:
                self._counters["rate_limited_total"] += 1
            if server_error:
                self._counters["server_errors_total"] += 1
            if auth_failure:
                self._counters["auth_failures_total"] += 1
            if not_found:
                self._counters["not_found_total"] += 1
            self._latency_ms.append(round(latency_ms, 2))

    def record_retry(self) -> None:
        with self._lock:
            self._counters["retries_total"] += 1

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def snapshot(self) -> Dict[str, Any]:
        """Counters plus latency p50/p95 from measured durations."""
        with self._lock:
            counters = dict(self._counters)
            latencies = sorted(self._latency_ms)
        return {
            "counters": counters,
            "latency_ms": {
                "count": len(latencies),
                "p50": round(_percentile(latencies, 50), 2),
                "p95": round(_percentile(latencies, 95), 2),
            },
        }

    def reset(self) -> None:
        with self._lock:
            for k in self._counters:
                self._counters[k] = 0
            self._latency_ms.clear()


_default_metrics = LiveIOMetrics()


def default_metrics() -> LiveIOMetrics:
    return _default_metrics


def live_io_metrics_snapshot() -> Dict[str, Any]:
    """Snapshot of the process-wide provider metrics."""
    return _default_metrics.snapshot()


def reset_metrics() -> None:
    """Reset all metrics (for tests)."""
    _default_metrics.reset()
