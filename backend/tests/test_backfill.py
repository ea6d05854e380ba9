"""Rank and role backfills: bounded passes, match label derivation, buckets to rebuild. Player name refresh."""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest
from sqlalchemy import select

from dev.stub_server import StubData, create_stub_app, make_lobby
from ingestion.ingestion_service import MatchIngestionService
from models.match import Match
from models.participant import Participant
from repositories.player_repo import PlayerRepository
from runner.backfill_runner import account_display_name, backfill_ranks, backfill_roles, count_missing, enrich_players

GOLD_II = [{"queueType": "RANKED_SOLO_5x5", "tier": "GOLD", "rank": "II", "leaguePoints": 40}]


def _without_positions(payload):
    for p in payload["info"]["participants"]:
        p.pop("teamPosition", None)
        p.pop("individualPosition", None)
    return payload


@pytest.mark.asyncio
async def test_rank_backfill_fills_rows_and_match_label(db, make_services) -> None:
    lobby = make_lobby("EUW1_7001", "B")
    await MatchIngestionService(db).ingest("euw1", lobby)
    assert await count_missing(db) == (10, 0)

    data = StubData(league_entries={p["puuid"]: GOLD_II for p in lobby["info"]["participants"]})
    services = make_services(create_stub_app(data))

    result = await backfill_ranks(db, services.client, limit=200)
    assert result.kind == "ranks"
    assert result.processed == 10
    assert result.updated == 10
    assert result.errors == 0
    assert result.remaining == 0
    assert result.buckets == {("14.3", "GOLD")}
    async with db.session() as session:
        assert (await session.execute(select(Match.rank))).scalar_one() == "GOLD_II"


@pytest.mark.asyncio
async def test_rank_backfill_is_bounded(db, make_services) -> None:
    lobby = make_lobby("EUW1_7001", "B")
    await MatchIngestionService(db).ingest("euw1", lobby)
    services = make_services(create_stub_app(StubData()))

    result = await backfill_ranks(db, services.client, limit=3)
    assert result.processed == 3
    # no solo entry: rows become UNRANKED, the match label stays unset
    assert result.updated == 3
    assert result.remaining == 7
    assert result.buckets == set()
    assert result.counters()["remaining"] == 7


@pytest.mark.asyncio
async def test_failed_rank_lookups_move_to_the_back(db, make_services) -> None:
    lobby = make_lobby("EUW1_7001", "B")
    await MatchIngestionService(db).ingest("euw1", lobby)

    failing = make_services(create_stub_app(mode="500"))
    first = await backfill_ranks(db, failing.client, limit=3)
    assert first.processed == 3
    assert first.errors == 3
    assert first.updated == 0

    healthy = make_services(create_stub_app(StubData()))
    second = await backfill_ranks(db, healthy.client, limit=3)
    assert second.errors == 0
    assert second.updated == 3

    async with db.session() as session:
        rows = (await session.execute(select(Participant.puuid, Participant.rank_tier, Participant.rank_attempts))).all()
    failed = {puuid for puuid, tier, attempts in rows if attempts == 1}
    filled = {puuid for puuid, tier, _ in rows if tier is not None}
    assert failed == {"B-B-BOTTOM", "B-B-JUNGLE", "B-B-MIDDLE"}
    assert filled == {"B-B-TOP", "B-B-UTILITY", "B-R-BOTTOM"}


@pytest.mark.asyncio
async def test_role_backfill_refetches_positions(db, make_services) -> None:
    await MatchIngestionService(db).ingest("euw1", _without_positions(make_lobby("EUW1_7002", "P")))
    await MatchIngestionService(db).ingest("euw1", _without_positions(make_lobby("EUW1_7003", "Q")))
    assert await count_missing(db) == (20, 20)

    data = StubData(matches={"EUW1_7002": make_lobby("EUW1_7002", "P")})
    services = make_services(create_stub_app(data))

    result = await backfill_roles(db, services.client, match_limit=50)
    assert result.processed == 2
    assert result.updated == 10
    assert result.errors == 0
    assert result.remaining == 0
    assert result.buckets == {("14.3", "GLOBAL")}

    async with db.session() as session:
        rows = (await session.execute(select(Participant.role, Participant.team_position))).all()
    assert sorted(r for r, _ in rows if r) == sorted(["TOP", "JUNGLE", "MIDDLE", "BOTTOM", "UTILITY"] * 2)
    assert [tp for r, tp in rows if r is None] == [""] * 10


@pytest.mark.asyncio
async def test_role_backfill_with_nothing_missing(db, make_services) -> None:
    await MatchIngestionService(db).ingest("euw1", make_lobby("EUW1_7004", "F"))
    services = make_services(create_stub_app(StubData()))
    result = await backfill_roles(db, services.client)
    assert result.processed == 0
    assert result.remaining == 0
    assert result.buckets == set()


@pytest.mark.asyncio
async def test_enrich_players_refreshes_display_names(db, make_services) -> None:
    await MatchIngestionService(db).ingest("euw1", make_lobby("EUW1_7005", "B"))
    async with db.session() as session:
        await PlayerRepository(session).upsert_seen("NONAME", "euw1")

    data = StubData(accounts={"renamed#euw": "B-B-TOP", "fresh#tag": "NONAME"})
    services = make_services(create_stub_app(data))

    # never-checked players without a name go first
    first = await enrich_players(db, services.client, limit=1)
    assert first.kind == "players"
    assert (first.processed, first.updated, first.errors) == (1, 1, 0)
    assert first.remaining == 10

    rest = await enrich_players(db, services.client, limit=50)
    assert rest.processed == 10
    assert rest.updated == 1
    # unknown accounts keep their match name and are stamped anyway
    assert rest.errors == 9
    assert rest.remaining == 0
    assert (await enrich_players(db, services.client, limit=50)).processed == 0

    async with db.session() as session:
        players = PlayerRepository(session)
        assert (await players.get_by_puuid("NONAME")).summoner_name == "fresh#tag"
        assert (await players.get_by_puuid("B-B-TOP")).summoner_name == "renamed#euw"
        stale = await players.get_by_puuid("B-R-TOP")
        assert stale.name_refreshed_at is not None
        stale.name_refreshed_at = datetime.now(timezone.utc) - timedelta(days=40)

    again = await enrich_players(db, services.client, limit=50, stale_days=30)
    assert again.processed == 1
    assert again.errors == 1


def test_account_display_name() -> None:
    assert account_display_name("Faker", "KR1") == "Faker#KR1"
    assert account_display_name(" Solo ", "") == "Solo"
    assert account_display_name(None, "TAG") is None
