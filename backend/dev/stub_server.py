"""
Local deterministic stub of the Riot API routes the collector calls.
Offline-friendly, no randomness. Failure modes via query param, header or app.state.mode
(mode=ok|rate_limit|500|unauthorized|decrypt).
Tests mount it with ``httpx.ASGITransport(app=create_stub_app(...))``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse

from version import get_version

STUB_MODES = ("ok", "rate_limit", "500", "unauthorized", "decrypt")
STUB_RETRY_AFTER = "1"
# Page size of the league-exp entries route.
STUB_LEAGUE_PAGE_SIZE = 205

LANES = ("TOP", "JUNGLE", "MIDDLE", "BOTTOM", "UTILITY")


def make_participant(
    puuid: str,
    champion_id: int,
    team_id: int,
    position: str,
    win: bool,
    kills: int = 2,
    deaths: int = 2,
    assists: int = 4,
    gold: int = 9000,
    level: int = 14,
    name: Optional[str] = None,
) -> Dict[str, Any]:
    """One match-v5 participant in provider (camelCase) shape."""
    return {
        "puuid": puuid,
        "riotIdGameName": name or f"Player {puuid[:6]}",
        "riotIdTagline": "EUW",
        "championId": champion_id,
        "teamId": team_id,
        "teamPosition": position,
        "individualPosition": position,
        "win": win,
        "kills": kills,
        "deaths": deaths,
        "assists": assists,
        "goldEarned": gold,
        "champLevel": level,
        "totalMinionsKilled": 150,
        "visionScore": 20,
        "item0": 3071,
        "item1": 3047,
        "item6": 3364,
        "summoner1Id": 4,
        "summoner2Id": 12,
    }


def make_match(
    match_id: str,
    participants: List[Dict[str, Any]],
    queue_id: int = 420,
    game_version: str = "14.3.555.1234",
    end_of_game_result: Optional[str] = "GameComplete",
) -> Dict[str, Any]:
    platform = match_id.split("_", 1)[0]
    info: Dict[str, Any] = {
        "gameCreation": 1_700_000_000_000,
        "gameDuration": 1800,
        "gameVersion": game_version,
        "queueId": queue_id,
        "platformId": platform,
        "participants": participants,
        "teams": [{"teamId": 100, "win": True}, {"teamId": 200, "win": False}],
    }
    if end_of_game_result is not None:
        info["endOfGameResult"] = end_of_game_result
    return {
        "metadata": {
            "matchId": match_id,
            "dataVersion": "2",
            "participants": [p["puuid"] for p in participants],
        },
        "info": info,
    }


def make_lobby(match_id: str, prefix: str, blue_wins: bool = True, queue_id: int = 420) -> Dict[str, Any]:
    """Ten participants, one per lane and side; puuids are ``<prefix>-B-<LANE>`` / ``<prefix>-R-<LANE>``."""
    participants: List[Dict[str, Any]] = []
    for i, lane in enumerate(LANES):
        participants.append(make_participant(f"{prefix}-B-{lane}", 10 + i, 100, lane, blue_wins, kills=3 + i))
        participants.append(make_participant(f"{prefix}-R-{lane}", 50 + i, 200, lane, not blue_wins, kills=1 + i))
    return make_match(match_id, participants, queue_id=queue_id)


@dataclass
class StubData:
    accounts: Dict[str, str] = field(default_factory=dict)  # "name#tag" -> puuid
    summoners: Dict[str, Dict[str, Any]] = field(default_factory=dict)  # summoner id / name -> summoner
    leagues: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)  # tier -> entries
    match_ids: Dict[str, List[str]] = field(default_factory=dict)  # puuid -> ids, newest first
    matches: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    league_entries: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)  # puuid -> entries
    league_exp: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)  # "TIER:DIVISION" -> entries
    requests: List[str] = field(default_factory=list)


def default_stub_data() -> StubData:
    data = StubData()
    data.accounts["seed#euw"] = "SEED1"
    data.match_ids["SEED1"] = ["EUW1_1003", "EUW1_1002", "EUW1_1001"]
    data.matches["EUW1_1003"] = make_lobby("EUW1_1003", "M3", queue_id=440)
    data.matches["EUW1_1002"] = make_lobby("EUW1_1002", "M2", blue_wins=False)
    first = make_lobby("EUW1_1001", "M1")
    first["info"]["participants"][0]["puuid"] = "SEED1"
    first["metadata"]["participants"][0] = "SEED1"
    data.matches["EUW1_1001"] = first
    data.leagues["challenger"] = [
        {"puuid": "LADDER1", "leaguePoints": 1500, "rank": "I"},
        {"summonerId": "summ-2", "leaguePoints": 1400, "rank": "I"},
    ]
    data.summoners["summ-2"] = {"puuid": "LADDER2", "id": "summ-2", "name": "Ladder Two"}
    data.league_entries["SEED1"] = [
        {"queueType": "RANKED_SOLO_5x5", "tier": "GOLD", "rank": "II", "leaguePoints": 40}
    ]
    data.league_exp["GOLD:I"] = [
        {"queueType": "RANKED_SOLO_5x5", "tier": "GOLD", "rank": "I", "leaguePoints": 75, "puuid": "GOLDEXP1"},
        {"queueType": "RANKED_SOLO_5x5", "tier": "GOLD", "rank": "I", "leaguePoints": 20, "summonerId": "summ-g2"},
    ]
    data.summoners["summ-g2"] = {"puuid": "GOLDEXP2", "id": "summ-g2", "name": "Gold Two"}
    return data


def _envelope(status: int, message: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={"status": {"message": message, "status_code": status}},
        headers=headers,
    )


def _get_mode(request: Request, mode: str | None, x_stub_mode: str | None) -> str:
    """Resolve mode from query param, header, then app default. Unknown values mean ok."""
    m = (mode or x_stub_mode or getattr(request.app.state, "mode", None) or "ok").strip().lower()
    return m if m in STUB_MODES else "ok"


def _failure(request: Request, mode: str | None, x_stub_mode: str | None, token: str | None) -> Optional[JSONResponse]:
    request.app.state.data.requests.append(request.url.path)
    m = _get_mode(request, mode, x_stub_mode)
    if not token or m == "unauthorized":
        return _envelope(401, "Unauthorized")
    if m == "rate_limit":
        return _envelope(429, "Rate limit exceeded", headers={"Retry-After": STUB_RETRY_AFTER})
    if m == "500":
        return _envelope(500, "Internal server error")
    if m == "decrypt":
        return _envelope(400, "Bad Request - Exception decrypting " + request.url.path.rsplit("/", 1)[-1])
    return None


def create_stub_app(data: Optional[StubData] = None, mode: str = "ok") -> FastAPI:
    """Create the stub app; ``app.state.data`` holds the fixtures and the request log."""

    app = FastAPI(title="Riot API Stub", version=get_version())
    app.state.data = data if data is not None else default_stub_data()
    app.state.mode = mode

    def fixtures(request: Request) -> StubData:
        return request.app.state.data

    @app.get("/lol/league/v4/{tier}leagues/by-queue/{queue}", summary="Apex ladder")
    async def apex_league(
        tier: str,
        queue: str,
        request: Request,
        mode: str | None = Query(None),
        x_stub_mode: str | None = Header(None),
        x_riot_token: str | None = Header(None),
    ) -> Any:
        failure = _failure(request, mode, x_stub_mode, x_riot_token)
        if failure is not None:
            return failure
        return {"tier": tier.upper(), "queue": queue, "entries": list(fixtures(request).leagues.get(tier, []))}

    @app.get("/riot/account/v1/accounts/by-riot-id/{game_name}/{tag_line}", summary="Account by Riot id")
    async def account_by_riot_id(
        game_name: str,
        tag_line: str,
        request: Request,
        mode: str | None = Query(None),
        x_stub_mode: str | None = Header(None),
        x_riot_token: str | None = Header(None),
    ) -> Any:
        failure = _failure(request, mode, x_stub_mode, x_riot_token)
        if failure is not None:
            return failure
        puuid = fixtures(request).accounts.get(f"{game_name}#{tag_line}".lower())
        if puuid is None:
            return _envelope(404, "Data not found - No results found for player with riot id")
        return {"puuid": puuid, "gameName": game_name, "tagLine": tag_line}

    @app.get("/riot/account/v1/accounts/by-puuid/{puuid}", summary="Account by puuid")
    async def account_by_puuid(
        puuid: str,
        request: Request,
        mode: str | None = Query(None),
        x_stub_mode: str | None = Header(None),
        x_riot_token: str | None = Header(None),
    ) -> Any:
        failure = _failure(request, mode, x_stub_mode, x_riot_token)
        if failure is not None:
            return failure
        for handle, known in fixtures(request).accounts.items():
            if known == puuid:
                name, _, tag = handle.partition("#")
                return {"puuid": puuid, "gameName": name, "tagLine": tag}
        return _envelope(404, "Data not found")

    @app.get("/lol/summoner/v4/summoners/by-name/{name}", summary="Summoner by legacy name")
    async def summoner_by_name(
        name: str,
        request: Request,
        mode: str | None = Query(None),
        x_stub_mode: str | None = Header(None),
        x_riot_token: str | None = Header(None),
    ) -> Any:
        failure = _failure(request, mode, x_stub_mode, x_riot_token)
        if failure is not None:
            return failure
        for summoner in fixtures(request).summoners.values():
            if (summoner.get("name") or "").lower() == name.lower():
                return summoner
        return _envelope(404, "Data not found - summoner not found")

    @app.get("/lol/summoner/v4/summoners/{summoner_id}", summary="Summoner by id")
    async def summoner_by_id(
        summoner_id: str,
        request: Request,
        mode: str | None = Query(None),
        x_stub_mode: str | None = Header(None),
        x_riot_token: str | None = Header(None),
    ) -> Any:
        failure = _failure(request, mode, x_stub_mode, x_riot_token)
        if failure is not None:
            return failure
        summoner = fixtures(request).summoners.get(summoner_id)
        if summoner is None:
            return _envelope(404, "Data not found - summoner not found")
        return summoner

    @app.get("/lol/match/v5/matches/by-puuid/{puuid}/ids", summary="Match ids by puuid")
    async def match_ids(
        puuid: str,
        request: Request,
        queue: int | None = Query(None),
        start: int = Query(0),
        count: int = Query(20),
        mode: str | None = Query(None),
        x_stub_mode: str | None = Header(None),
        x_riot_token: str | None = Header(None),
    ) -> Any:
        failure = _failure(request, mode, x_stub_mode, x_riot_token)
        if failure is not None:
            return failure
        ids = fixtures(request).match_ids.get(puuid, [])
        return ids[start : start + count]

    @app.get("/lol/match/v5/matches/{match_id}", summary="Match detail")
    async def match_detail(
        match_id: str,
        request: Request,
        mode: str | None = Query(None),
        x_stub_mode: str | None = Header(None),
        x_riot_token: str | None = Header(None),
    ) -> Any:
        failure = _failure(request, mode, x_stub_mode, x_riot_token)
        if failure is not None:
            return failure
        match = fixtures(request).matches.get(match_id)
        if match is None:
            return _envelope(404, f"Data not found - match {match_id} not found")
        return match

    @app.get("/lol/league/v4/entries/by-puuid/{puuid}", summary="League entries by puuid")
    async def league_entries(
        puuid: str,
        request: Request,
        mode: str | None = Query(None),
        x_stub_mode: str | None = Header(None),
        x_riot_token: str | None = Header(None),
    ) -> Any:
        failure = _failure(request, mode, x_stub_mode, x_riot_token)
        if failure is not None:
            return failure
        return list(fixtures(request).league_entries.get(puuid, []))

    @app.get("/lol/league/v4/entries/{queue}/{tier}/{division}", summary="League entries by tier and division")
    async def league_exp_entries(
        queue: str,
        tier: str,
        division: str,
        request: Request,
        page: int = Query(1),
        mode: str | None = Query(None),
        x_stub_mode: str | None = Header(None),
        x_riot_token: str | None = Header(None),
    ) -> Any:
        failure = _failure(request, mode, x_stub_mode, x_riot_token)
        if failure is not None:
            return failure
        entries = fixtures(request).league_exp.get(f"{tier.upper()}:{division.upper()}", [])
        start = (max(1, page) - 1) * STUB_LEAGUE_PAGE_SIZE
        return entries[start : start + STUB_LEAGUE_PAGE_SIZE]

    return app


def serve(host: str = "127.0.0.1", port: int = 8010, mode: str = "ok") -> None:
    """Serve the stub locally (local-only bind). Point the collector at it with
    RIOT_API_HOST_TEMPLATE=http://127.0.0.1:8010 and any RIOT_API_KEY."""
    import uvicorn

    uvicorn.run(create_stub_app(mode=mode), host=host, port=port, log_level="info")
