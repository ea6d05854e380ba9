"""Aggregation feed: non-blocking submit, ordered single consumer, bounded error log."""

from __future__ import annotations

import sys
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest

from matchups.aggregator import MatchAggregationInput
from matchups.feed import AggregationFeed


class FakeAggregator:
    def __init__(self, fail_on=()) -> None:
        self.seen = []
        self._fail_on = set(fail_on)

    async def ingest_match(self, item: MatchAggregationInput) -> int:
        if item.match_id in self._fail_on:
            raise RuntimeError("database is locked")
        self.seen.append(item.match_id)
        return 1


def _item(match_id: str) -> MatchAggregationInput:
    return MatchAggregationInput(
        match_id=match_id, game_version="14.3.1.1", rank_label=None, end_of_game_result="GameComplete"
    )


@pytest.mark.asyncio
async def test_items_processed_in_submission_order() -> None:
    aggregator = FakeAggregator()
    feed = AggregationFeed(aggregator)
    for i in range(5):
        assert feed.submit(_item(f"EUW1_{i}")) is True
    await feed.join()
    assert aggregator.seen == [f"EUW1_{i}" for i in range(5)]
    assert feed.processed == 5
    assert feed.pending() == 0
    await feed.close()


@pytest.mark.asyncio
async def test_failures_are_logged_not_raised() -> None:
    aggregator = FakeAggregator(fail_on={"EUW1_2"})
    feed = AggregationFeed(aggregator, error_log_size=3)
    for i in range(4):
        feed.submit(_item(f"EUW1_{i}"))
    await feed.close()
    assert aggregator.seen == ["EUW1_0", "EUW1_1", "EUW1_3"]
    (error,) = feed.error_log()
    assert error["match_id"] == "EUW1_2"
    assert "RuntimeError" in error["error"]


@pytest.mark.asyncio
async def test_full_queue_drops_and_records() -> None:
    aggregator = FakeAggregator()
    feed = AggregationFeed(aggregator, maxsize=1)
    assert feed.submit(_item("EUW1_1")) is True
    assert feed.submit(_item("EUW1_2")) is False
    assert feed.dropped == 1
    assert feed.error_log()[0]["match_id"] == "EUW1_2"
    await feed.close()
    assert aggregator.seen == ["EUW1_1"]


@pytest.mark.asyncio
async def test_close_is_idempotent() -> None:
    feed = AggregationFeed(FakeAggregator())
    await feed.close()
    feed.submit(_item("EUW1_1"))
    await feed.close()
    await feed.close()
    assert feed.processed == 1
