"""
Asynchronous handoff from match ingestion to the aggregation engine.

``submit`` never blocks or raises: a full queue drops the item and records the drop.
A single consumer task processes items in submission order; failures are logged and
kept in a bounded error log instead of reaching the ingesting caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from matchups.aggregator import MatchAggregationInput, MatchupAggregator

logger = logging.getLogger(__name__)

DEFAULT_MAXSIZE = 1000
ERROR_LOG_SIZE = 50


class AggregationFeed:
    def __init__(
        self,
        aggregator: MatchupAggregator,
        maxsize: int = DEFAULT_MAXSIZE,
        error_log_size: int = ERROR_LOG_SIZE,
    ) -> None:
        self._aggregator = aggregator
        self._queue: "asyncio.Queue[MatchAggregationInput]" = asyncio.Queue(maxsize=maxsize)
        self._consumer: Optional[asyncio.Task] = None
        self.errors: Deque[Dict[str, Any]] = deque(maxlen=error_log_size)
        self.processed = 0
        self.dropped = 0

    def _record_error(self, match_id: str, error: str) -> None:
        self.errors.append(
            {"match_id": match_id, "error": error, "at": datetime.now(timezone.utc).isoformat()}
        )

    def _ensure_consumer(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.get_running_loop().create_task(self._consume(), name="aggregation-feed")

    def submit(self, item: MatchAggregationInput) -> bool:
        """Queue one match for aggregation; returns False if it had to be dropped."""
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.dropped += 1
            self._record_error(item.match_id, "aggregation queue full; item dropped")
            logger.warning("Aggregation queue full, dropped %s", item.match_id)
            return False
        self._ensure_consumer()
        return True

    async def _consume(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                await self._aggregator.ingest_match(item)
                self.processed += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._record_error(item.match_id, f"{type(e).__name__}: {e}")
                logger.exception("Aggregation failed for %s", item.match_id)
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every submitted item has been processed."""
        if not self._queue.empty():
            self._ensure_consumer()
        await self._queue.join()

    async def close(self) -> None:
        await self.join()
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

    def pending(self) -> int:
        return self._queue.qsize()

    def error_log(self) -> List[Dict[str, Any]]:
        return list(self.errors)
