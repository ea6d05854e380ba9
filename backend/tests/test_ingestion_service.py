"""
Match ingestion: idempotent insert, ranked-solo filter, role normalization, participant fan-out,
player refresh and the post-commit hand-off to the aggregation feed.
"""

from __future__ import annotations

import sys
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest
from sqlalchemy import func, select

from dev.stub_server import make_lobby
from ingestion.ingestion_service import (
    MatchIngestionError,
    MatchIngestionService,
    NotRankedSoloError,
    normalize_role,
    parse_match,
)
from ingestion.ranks import UNRANKED, RankEntry
from matchups.aggregator import MatchAggregationInput
from models.match import Match
from models.participant import Participant
from repositories.match_repo import MatchRepository
from repositories.player_repo import PlayerRepository


class RecordingFeed:
    def __init__(self) -> None:
        self.items = []

    def submit(self, item: MatchAggregationInput) -> bool:
        self.items.append(item)
        return True


async def _count(db, model) -> int:
    async with db.session() as session:
        return int((await session.execute(select(func.count()).select_from(model))).scalar_one())


def test_normalize_role() -> None:
    assert normalize_role("TOP") == "TOP"
    assert normalize_role("mid") == "MIDDLE"
    assert normalize_role("BOT") == "BOTTOM"
    assert normalize_role("SUPPORT") == "UTILITY"
    assert normalize_role("", "JUNGLE") == "JUNGLE"
    assert normalize_role("INVALID") is None
    assert normalize_role(None, None) is None
    assert normalize_role("ARAM") is None


def test_parse_match_rejects_malformed_payload() -> None:
    with pytest.raises(MatchIngestionError):
        parse_match({"metadata": {"matchId": "EUW1_1"}})
    bad_participant = make_lobby("EUW1_1", "A")
    bad_participant["info"]["participants"][0]["puuid"] = ""
    with pytest.raises(MatchIngestionError):
        parse_match(bad_participant)


@pytest.mark.asyncio
async def test_ingest_is_idempotent(db) -> None:
    feed = RecordingFeed()
    service = MatchIngestionService(db, feed=feed)
    payload = make_lobby("EUW1_100", "A")

    first = await service.ingest("euw1", payload)
    second = await service.ingest("euw1", payload)

    assert first.inserted is True
    assert first.match_pk is not None
    assert second.inserted is False
    assert second.participant_puuids == first.participant_puuids
    assert await _count(db, Match) == 1
    assert await _count(db, Participant) == 10
    # only the committed insert reaches the aggregation feed
    assert [item.match_id for item in feed.items] == ["EUW1_100"]


@pytest.mark.asyncio
async def test_conflicting_insert_returns_none(db) -> None:
    service = MatchIngestionService(db)
    await service.ingest("euw1", make_lobby("EUW1_101", "A"))
    async with db.session() as session:
        pk = await MatchRepository(session).insert_ignore_conflict(
            {"match_id": "EUW1_101", "region": "euw1", "queue_id": 420}
        )
    assert pk is None
    assert await _count(db, Match) == 1


@pytest.mark.asyncio
async def test_non_ranked_solo_is_rejected_without_writes(db) -> None:
    feed = RecordingFeed()
    service = MatchIngestionService(db, feed=feed)
    with pytest.raises(NotRankedSoloError):
        await service.ingest("euw1", make_lobby("EUW1_440", "F", queue_id=440))
    assert await _count(db, Match) == 0
    assert feed.items == []


@pytest.mark.asyncio
async def test_participant_rows_and_rank_label(db) -> None:
    payload = make_lobby("EUW1_102", "A")
    payload["info"]["participants"][3]["teamPosition"] = "INVALID"
    payload["info"]["participants"][3]["individualPosition"] = "Invalid"
    ranks = {"A-B-TOP": RankEntry("GOLD", "II", 40), "A-R-TOP": UNRANKED}
    result = await MatchIngestionService(db).ingest("euw1", payload, ranks)
    assert result.rank_label == "GOLD_II"

    async with db.session() as session:
        match = await MatchRepository(session).get_by_match_id("EUW1_102")
        rows = {
            p.puuid: p
            for p in (await session.execute(select(Participant).where(Participant.match_id == match.id))).scalars()
        }
    assert match.rank == "GOLD_II"
    assert match.platform_id == "euw1"
    assert match.game_version == "14.3.555.1234"
    assert match.end_of_game_result == "GameComplete"

    top = rows["A-B-TOP"]
    assert (top.role, top.team_position, top.champion_id, top.team_id) == ("TOP", "TOP", 10, 100)
    assert (top.rank_tier, top.rank_division, top.rank_lp) == ("GOLD", "II", 40)
    assert top.win is True
    assert top.kills == 3
    assert top.items == [3071, 3047, 3364]
    assert top.summoner_spells == ["4", "12"]
    assert rows["A-R-TOP"].rank_tier == "UNRANKED"
    assert rows["A-B-JUNGLE"].rank_tier is None
    assert rows["A-B-JUNGLE"].role == "JUNGLE"
    # INVALID position: no role, raw value kept
    assert rows["A-R-JUNGLE"].role is None
    assert rows["A-R-JUNGLE"].team_position == "INVALID"


@pytest.mark.asyncio
async def test_players_refreshed_after_insert(db) -> None:
    service = MatchIngestionService(db)
    await service.ingest("euw1", make_lobby("EUW1_103", "A"))
    await service.ingest("euw1", make_lobby("EUW1_104", "A", blue_wins=False))
    async with db.session() as session:
        player = await PlayerRepository(session).get_by_puuid("A-B-MIDDLE")
    assert player is not None
    assert player.region == "euw1"
    assert player.summoner_name == "Player A-B-MI#EUW"
    assert player.total_games == 2
    assert player.total_wins == 1
    assert player.last_seen is not None


@pytest.mark.asyncio
async def test_feed_item_carries_duel_fields(db) -> None:
    feed = RecordingFeed()
    await MatchIngestionService(db, feed=feed).ingest(
        "euw1", make_lobby("EUW1_105", "A"), {"A-B-TOP": RankEntry("DIAMOND", "IV", 0)}
    )
    (item,) = feed.items
    assert item.rank_label == "DIAMOND_IV"
    assert item.game_version == "14.3.555.1234"
    assert item.end_of_game_result == "GameComplete"
    roles = sorted({p.role for p in item.participants})
    assert roles == ["BOTTOM", "JUNGLE", "MIDDLE", "TOP", "UTILITY"]
