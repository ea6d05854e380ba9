"""
Outbound alerts. The sink itself (chat webhook, pager) lives outside this package;
``AlertDispatcher`` fires sends as background tasks and never lets a failure reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Deque, Dict, Mapping, Optional, Set

logger = logging.getLogger(__name__)


class AlertSink(ABC):
    @abstractmethod
    async def send(
        self,
        title: str,
        message: str,
        error: Optional[BaseException] = None,
        context: Optional[Mapping[str, str]] = None,
    ) -> None:
        ...


class LoggingAlertSink(AlertSink):
    """Default sink: one WARNING line per alert."""

    async def send(
        self,
        title: str,
        message: str,
        error: Optional[BaseException] = None,
        context: Optional[Mapping[str, str]] = None,
    ) -> None:
        ctx = " ".join(f"{k}={v}" for k, v in sorted((context or {}).items()))
        if error is not None:
            logger.warning("ALERT %s: %s (%s: %s) %s", title, message, type(error).__name__, error, ctx)
        else:
            logger.warning("ALERT %s: %s %s", title, message, ctx)


class AlertDispatcher:
    def __init__(self, sink: Optional[AlertSink] = None, failure_log_size: int = 50) -> None:
        self._sink = sink or LoggingAlertSink()
        self._pending: Set[asyncio.Task] = set()
        self.failures: Deque[Dict[str, Any]] = deque(maxlen=failure_log_size)
        self.sent = 0

    def alert(
        self,
        title: str,
        message: str,
        error: Optional[BaseException] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Schedule the alert and return immediately."""
        ctx = {str(k): str(v) for k, v in (context or {}).items()}
        task = asyncio.get_running_loop().create_task(self._send(title, message, error, ctx))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(
        self,
        title: str,
        message: str,
        error: Optional[BaseException],
        context: Dict[str, str],
    ) -> None:
        try:
            await self._sink.send(title, message, error, context)
            self.sent += 1
        except Exception as e:
            self.failures.append({"title": title, "error": f"{type(e).__name__}: {e}"})
            logger.warning("Alert sink failed for %r: %s", title, e)

    async def flush(self) -> None:
        """Wait for every scheduled alert to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
