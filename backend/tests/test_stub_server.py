"""Local Riot API stub: fixture routes, token check, deterministic failure modes."""

from __future__ import annotations

import sys
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest
from fastapi.testclient import TestClient

from dev.stub_server import STUB_RETRY_AFTER, create_stub_app

TOKEN = {"X-Riot-Token": "RGAPI-test"}


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_stub_app())


def test_missing_token_is_unauthorized(client) -> None:
    r = client.get("/lol/match/v5/matches/EUW1_1001")
    assert r.status_code == 401
    assert r.json()["status"]["status_code"] == 401


def test_account_and_match_routes(client) -> None:
    r = client.get("/riot/account/v1/accounts/by-riot-id/Seed/EUW", headers=TOKEN)
    assert r.status_code == 200
    assert r.json()["puuid"] == "SEED1"

    ids = client.get("/lol/match/v5/matches/by-puuid/SEED1/ids", params={"count": 2}, headers=TOKEN).json()
    assert ids == ["EUW1_1003", "EUW1_1002"]

    match = client.get("/lol/match/v5/matches/EUW1_1001", headers=TOKEN).json()
    assert match["metadata"]["participants"][0] == "SEED1"
    assert match["info"]["queueId"] == 420

    entries = client.get("/lol/league/v4/entries/by-puuid/SEED1", headers=TOKEN).json()
    assert entries[0]["tier"] == "GOLD"


def test_unknown_resources_return_provider_envelope(client) -> None:
    r = client.get("/lol/match/v5/matches/EUW1_404", headers=TOKEN)
    assert r.status_code == 404
    assert "not found" in r.json()["status"]["message"]
    assert client.get("/riot/account/v1/accounts/by-riot-id/nobody/none", headers=TOKEN).status_code == 404


def test_ladder_and_summoner_routes(client) -> None:
    league = client.get("/lol/league/v4/challengerleagues/by-queue/RANKED_SOLO_5x5", headers=TOKEN).json()
    assert [e.get("puuid") for e in league["entries"]] == ["LADDER1", None]
    summoner = client.get("/lol/summoner/v4/summoners/summ-2", headers=TOKEN).json()
    assert summoner["puuid"] == "LADDER2"
    assert client.get("/lol/summoner/v4/summoners/by-name/ladder two", headers=TOKEN).json()["id"] == "summ-2"


def test_failure_modes_by_query_and_header(client) -> None:
    path = "/lol/match/v5/matches/EUW1_1001"
    r = client.get(path, params={"mode": "rate_limit"}, headers=TOKEN)
    assert r.status_code == 429
    assert r.headers["Retry-After"] == STUB_RETRY_AFTER
    assert client.get(path, headers={**TOKEN, "X-Stub-Mode": "500"}).status_code == 500
    assert client.get(path, params={"mode": "unauthorized"}, headers=TOKEN).status_code == 401
    r = client.get(path, params={"mode": "decrypt"}, headers=TOKEN)
    assert r.status_code == 400
    assert "Exception decrypting" in r.json()["status"]["message"]
    assert client.get(path, params={"mode": "bogus"}, headers=TOKEN).status_code == 200


def test_app_default_mode_and_request_log() -> None:
    app = create_stub_app(mode="500")
    client = TestClient(app)
    assert client.get("/lol/match/v5/matches/EUW1_1001", headers=TOKEN).status_code == 500
    assert client.get("/lol/match/v5/matches/EUW1_1001", params={"mode": "ok"}, headers=TOKEN).status_code == 200
    assert app.state.data.requests == ["/lol/match/v5/matches/EUW1_1001"] * 2
