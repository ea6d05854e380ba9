"""Schema validation tests for Riot payload models."""

from __future__ import annotations

import sys
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest
from pydantic import ValidationError

from dev.stub_server import make_lobby
from ingestion.schema import (
    LeagueEntryList,
    LeagueList,
    MatchIdList,
    ProviderErrorEnvelope,
    RiotMatch,
    RiotParticipant,
)


def test_match_payload_decodes_camel_case():
    """RiotMatch maps camelCase provider fields onto snake_case attributes."""
    m = RiotMatch.model_validate(make_lobby("EUW1_1", "S"))
    assert m.match_id == "EUW1_1"
    assert m.is_ranked_solo()
    assert m.info.game_version == "14.3.555.1234"
    p = m.info.participants[0]
    assert p.champion_id == 10
    assert p.team_position == "TOP"
    assert p.gold_earned == 9000
    assert p.items() == [3071, 3047, 3364]


def test_participant_counters_tolerate_missing_and_odd_values():
    """Missing, null, float and bool counters become ints; unknown fields are ignored."""
    p = RiotParticipant.model_validate(
        {"puuid": "x", "kills": None, "deaths": 2.0, "firstBloodKill": True, "timeCCingOthers": 7, "newField": 1}
    )
    assert p.kills == 0
    assert p.deaths == 2
    assert p.first_blood_kill == 1
    assert p.time_ccing_others == 7
    assert p.assists == 0
    assert p.team_position is None


def test_participant_requires_puuid():
    with pytest.raises(ValidationError):
        RiotParticipant.model_validate({"championId": 1})
    with pytest.raises(ValidationError):
        RiotParticipant.model_validate({"puuid": ""})


def test_display_name_prefers_riot_id():
    assert RiotParticipant(puuid="x", riot_id_game_name="Name", riot_id_tagline="EUW").display_name() == "Name#EUW"
    assert RiotParticipant(puuid="x", riot_id_game_name="Name").display_name() == "Name"
    assert RiotParticipant(puuid="x", summoner_name="Legacy").display_name() == "Legacy"
    assert RiotParticipant(puuid="x").display_name() is None


def test_match_requires_metadata_match_id():
    payload = make_lobby("EUW1_1", "S")
    payload["metadata"]["matchId"] = ""
    with pytest.raises(ValidationError):
        RiotMatch.model_validate(payload)


def test_list_adapters_and_league_models():
    assert MatchIdList.validate_python(["EUW1_1", "EUW1_2"]) == ["EUW1_1", "EUW1_2"]
    with pytest.raises(ValidationError):
        MatchIdList.validate_python({"ids": []})
    (entry,) = LeagueEntryList.validate_python(
        [{"queueType": "RANKED_SOLO_5x5", "tier": "GOLD", "rank": "II", "leaguePoints": 40}]
    )
    assert (entry.queue_type, entry.tier, entry.rank, entry.league_points) == ("RANKED_SOLO_5x5", "GOLD", "II", 40)
    league = LeagueList.model_validate({"tier": "CHALLENGER", "entries": [{"summonerId": "s1", "leaguePoints": 10}]})
    assert league.entries[0].puuid is None
    assert league.entries[0].summoner_id == "s1"


def test_provider_error_envelope():
    env = ProviderErrorEnvelope.model_validate({"status": {"message": "Forbidden", "status_code": 403}})
    assert env.status.message == "Forbidden"
    assert env.status.status_code == 403
