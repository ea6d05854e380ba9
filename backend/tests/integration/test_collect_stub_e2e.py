"""
Integration tests: one collection pass against the in-process Riot stub.
No external network; the client talks to the stub over ASGITransport.
"""

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest
from sqlalchemy import func, select

from dev.stub_server import create_stub_app
from models.collector_state import CollectorState
from models.match import Match
from models.matchup_tier_score import MatchupTierScore
from models.participant import Participant
from repositories.crawl_queue_repo import CrawlQueueRepository
from runner.collect_runner import JOB_NAME, run_collection_once


@pytest.fixture
def seeded(settings):
    return replace(settings, seed_players=["seed#euw@euw1"])


@pytest.mark.asyncio
async def test_collect_pass_ok(make_services, seeded, db) -> None:
    services = make_services(create_stub_app(), settings_override=seeded)
    summary = await run_collection_once(services)

    assert summary.error is None
    assert summary.collected == 2
    assert summary.skipped_not_ranked == 1
    assert summary.errors == 0
    assert summary.auth_error is False
    assert summary.rate_limit_hit is False
    assert summary.discovered == 19
    # seed + two ladder players + every discovered participant
    assert summary.players_processed == 22
    assert summary.aggregation_errors == 0

    async with db.session() as session:
        ranks = dict((await session.execute(select(Match.match_id, Match.rank))).all())
        participants = (await session.execute(select(func.count()).select_from(Participant))).scalar_one()
        queued = await CrawlQueueRepository(session).count()
        buckets = set((await session.execute(select(MatchupTierScore.rank_filter_key).distinct())).scalars())
        state = await session.get(CollectorState, JOB_NAME)
    assert ranks == {"EUW1_1001": "GOLD_II", "EUW1_1002": None}
    assert participants == 20
    assert queued == 19
    assert buckets == {"GLOBAL", "GOLD"}
    assert state.last_success_at is not None
    assert state.last_error is None
    assert state.last_summary["collected"] == 2


@pytest.mark.asyncio
async def test_second_pass_collects_nothing_new(make_services, seeded, db) -> None:
    services = make_services(create_stub_app(), settings_override=seeded)
    await run_collection_once(services)
    again = await run_collection_once(services)
    assert again.error is None
    assert again.collected == 0
    async with db.session() as session:
        assert (await session.execute(select(func.count()).select_from(Match))).scalar_one() == 2


@pytest.mark.asyncio
async def test_rate_limited_pass(make_services, seeded, sleeps) -> None:
    services = make_services(create_stub_app(mode="rate_limit"), settings_override=seeded)
    summary = await run_collection_once(services)
    assert summary.collected == 0
    assert summary.rate_limit_hit is True
    assert summary.errors >= 1
    assert summary.error is None
    assert 1.0 in sleeps.calls


@pytest.mark.asyncio
async def test_server_errors_are_counted(make_services, seeded) -> None:
    services = make_services(create_stub_app(mode="500"), settings_override=seeded)
    summary = await run_collection_once(services)
    assert summary.collected == 0
    assert summary.server_error_5xx >= 1
    assert summary.auth_error is False


@pytest.mark.asyncio
async def test_rejected_key_aborts_pass(make_services, seeded, alert_sink, db) -> None:
    services = make_services(create_stub_app(mode="unauthorized"), settings_override=seeded)
    summary = await run_collection_once(services)
    await services.alerts.flush()

    assert summary.auth_error is True
    assert summary.error.startswith("auth:")
    assert summary.collected == 0
    assert "Riot collect: API key rejected" in alert_sink.titles()
    async with db.session() as session:
        state = await session.get(CollectorState, JOB_NAME)
    assert state.last_success_at is None
    assert state.last_error.startswith("auth:")


@pytest.mark.asyncio
async def test_missing_key_skips_pass(make_services, seeded, alert_sink) -> None:
    services = make_services(create_stub_app(), settings_override=replace(seeded, riot_api_key=None))
    summary = await run_collection_once(services)
    await services.alerts.flush()

    assert summary.error == "RIOT_API_KEY not configured"
    assert summary.players_processed == 0
    assert alert_sink.titles() == ["Riot collect: no API key"]


@pytest.mark.asyncio
async def test_decrypt_failure_requests_migration(make_services, seeded) -> None:
    services = make_services(create_stub_app(mode="decrypt"), settings_override=seeded)
    assert services.control.migration_requested() is None
    summary = await run_collection_once(services)
    assert summary.errors >= 1
    request = services.control.migration_requested()
    assert request is not None
    assert "Exception decrypting" in request["reason"]
