"""
Validated Riot API payload models (match-v5, league-v4, account-v1, summoner-v4).

Every 2xx body is decoded through these models at the client boundary. Unknown
fields are ignored; missing optional counters default to 0 or None.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

RANKED_SOLO_QUEUE_ID = 420
RANKED_SOLO_QUEUE_TYPE = "RANKED_SOLO_5x5"


class RiotModel(BaseModel):
    """Base: camelCase aliases, snake_case attributes, extra fields ignored."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RiotParticipant(RiotModel):
    puuid: str = Field(..., min_length=1, description="Opaque player id; rotates with the key")
    summoner_id: Optional[str] = None
    summoner_name: Optional[str] = None
    riot_id_game_name: Optional[str] = None
    riot_id_tagline: Optional[str] = None

    champion_id: int = 0
    team_id: Optional[int] = None
    win: bool = False
    team_position: Optional[str] = None
    individual_position: Optional[str] = None

    kills: int = 0
    deaths: int = 0
    assists: int = 0
    champ_level: int = 0
    gold_earned: int = 0
    gold_spent: int = 0
    total_minions_killed: int = 0
    neutral_minions_killed: int = 0
    total_damage_dealt: int = 0
    total_damage_dealt_to_champions: int = 0
    physical_damage_dealt_to_champions: int = 0
    magic_damage_dealt_to_champions: int = 0
    true_damage_dealt_to_champions: int = 0
    total_damage_taken: int = 0
    damage_self_mitigated: int = 0
    damage_dealt_to_buildings: int = 0
    damage_dealt_to_objectives: int = 0
    total_heal: int = 0
    total_heals_on_teammates: int = 0
    total_damage_shielded_on_teammates: int = 0
    time_ccing_others: int = Field(0, alias="timeCCingOthers")
    vision_score: int = 0
    wards_placed: int = 0
    wards_killed: int = 0
    vision_wards_bought_in_game: int = 0
    double_kills: int = 0
    triple_kills: int = 0
    quadra_kills: int = 0
    penta_kills: int = 0
    largest_killing_spree: int = 0
    largest_multi_kill: int = 0
    turret_kills: int = 0
    inhibitor_kills: int = 0
    dragon_kills: int = 0
    baron_kills: int = 0
    first_blood_kill: int = 0
    time_played: int = 0

    item0: int = 0
    item1: int = 0
    item2: int = 0
    item3: int = 0
    item4: int = 0
    item5: int = 0
    item6: int = 0
    summoner1_id: Optional[int] = None
    summoner2_id: Optional[int] = None
    perks: Optional[Any] = None

    @field_validator(
        "kills",
        "deaths",
        "assists",
        "champ_level",
        "gold_earned",
        "gold_spent",
        "total_minions_killed",
        "neutral_minions_killed",
        "total_damage_dealt",
        "total_damage_dealt_to_champions",
        "physical_damage_dealt_to_champions",
        "magic_damage_dealt_to_champions",
        "true_damage_dealt_to_champions",
        "total_damage_taken",
        "damage_self_mitigated",
        "damage_dealt_to_buildings",
        "damage_dealt_to_objectives",
        "total_heal",
        "total_heals_on_teammates",
        "total_damage_shielded_on_teammates",
        "time_ccing_others",
        "vision_score",
        "wards_placed",
        "wards_killed",
        "vision_wards_bought_in_game",
        "double_kills",
        "triple_kills",
        "quadra_kills",
        "penta_kills",
        "largest_killing_spree",
        "largest_multi_kill",
        "turret_kills",
        "inhibitor_kills",
        "dragon_kills",
        "baron_kills",
        "first_blood_kill",
        "time_played",
        "champion_id",
        "item0",
        "item1",
        "item2",
        "item3",
        "item4",
        "item5",
        "item6",
        mode="before",
    )
    @classmethod
    def _counter(cls, v: Any) -> int:
        if v is None:
            return 0
        if isinstance(v, bool):
            return int(v)
        if isinstance(v, float):
            return int(v)
        return v

    def items(self) -> List[int]:
        """Non-empty item slots in inventory order."""
        slots = (self.item0, self.item1, self.item2, self.item3, self.item4, self.item5, self.item6)
        return [i for i in slots if i]

    def display_name(self) -> Optional[str]:
        if self.riot_id_game_name:
            if self.riot_id_tagline:
                return f"{self.riot_id_game_name}#{self.riot_id_tagline}"
            return self.riot_id_game_name
        return self.summoner_name or None


class RiotMatchMetadata(RiotModel):
    match_id: str = Field(..., min_length=1)
    data_version: Optional[str] = None
    participants: List[str] = Field(default_factory=list)


class RiotMatchInfo(RiotModel):
    game_creation: Optional[int] = None
    game_duration: Optional[int] = None
    game_version: Optional[str] = None
    queue_id: Optional[int] = None
    platform_id: Optional[str] = None
    end_of_game_result: Optional[str] = None
    participants: List[RiotParticipant] = Field(default_factory=list)
    teams: List[Any] = Field(default_factory=list)


class RiotMatch(RiotModel):
    metadata: RiotMatchMetadata
    info: RiotMatchInfo

    @property
    def match_id(self) -> str:
        return self.metadata.match_id

    def is_ranked_solo(self) -> bool:
        return self.info.queue_id == RANKED_SOLO_QUEUE_ID


class LeagueEntry(RiotModel):
    """league-v4 entry (by-puuid / by-summoner)."""

    queue_type: Optional[str] = None
    tier: Optional[str] = None
    rank: Optional[str] = None
    league_points: int = 0
    wins: int = 0
    losses: int = 0
    puuid: Optional[str] = None
    summoner_id: Optional[str] = None


class LeagueItem(RiotModel):
    """Entry of an apex ladder (challenger/grandmaster/master)."""

    puuid: Optional[str] = None
    summoner_id: Optional[str] = None
    summoner_name: Optional[str] = None
    league_points: int = 0
    rank: Optional[str] = None
    wins: int = 0
    losses: int = 0


class LeagueList(RiotModel):
    tier: Optional[str] = None
    league_id: Optional[str] = None
    queue: Optional[str] = None
    name: Optional[str] = None
    entries: List[LeagueItem] = Field(default_factory=list)


class RiotAccount(RiotModel):
    puuid: str = Field(..., min_length=1)
    game_name: Optional[str] = None
    tag_line: Optional[str] = None


class RiotSummoner(RiotModel):
    puuid: str = Field(..., min_length=1)
    id: Optional[str] = None
    name: Optional[str] = None
    profile_icon_id: Optional[int] = None
    summoner_level: Optional[int] = None


MatchIdList = TypeAdapter(List[str])
LeagueEntryList = TypeAdapter(List[LeagueEntry])


class ProviderErrorStatus(RiotModel):
    message: Optional[str] = None
    status_code: Optional[int] = None


class ProviderErrorEnvelope(RiotModel):
    """Non-2xx body: ``{"status": {"message": ..., "status_code": ...}}``."""

    status: Optional[ProviderErrorStatus] = None
