from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .match import Match

# Lane enumeration; anything else is stored as NULL.
VALID_ROLES = ("TOP", "JUNGLE", "MIDDLE", "BOTTOM", "UTILITY")

# Counters copied one-to-one from the provider participant payload (snake_case).
PARTICIPANT_COUNTERS = (
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
)


class Participant(Base):
    """One player's performance within a match."""

    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(
        ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    puuid: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    summoner_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    riot_id_game_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    riot_id_tagline: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    champion_id: Mapped[int] = mapped_column(Integer, nullable=False)
    team_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    role: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    # Raw position string from the provider; "" once a re-fetch found none.
    team_position: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    win: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    deaths: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assists: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    champ_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gold_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    gold_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_minions_killed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    neutral_minions_killed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_damage_dealt: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_damage_dealt_to_champions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    physical_damage_dealt_to_champions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    magic_damage_dealt_to_champions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    true_damage_dealt_to_champions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_damage_taken: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    damage_self_mitigated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    damage_dealt_to_buildings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    damage_dealt_to_objectives: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_heal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_heals_on_teammates: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_damage_shielded_on_teammates: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_ccing_others: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vision_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wards_placed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wards_killed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vision_wards_bought_in_game: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    double_kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    triple_kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    quadra_kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    penta_kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    largest_killing_spree: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    largest_multi_kill: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    turret_kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inhibitor_kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dragon_kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    baron_kills: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_blood_kill: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_played: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    items: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    summoner_spells: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    runes: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    rank_tier: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    rank_division: Mapped[Optional[str]] = mapped_column(String(4), nullable=True)
    rank_lp: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Failed rank lookups; identifiers with fewer attempts are backfilled first.
    rank_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    match: Mapped["Match"] = relationship(back_populates="participants")

    __table_args__ = (
        Index("ix_participant_match_role", "match_id", "role"),
        Index("ix_participant_rank_tier", "rank_tier"),
    )
