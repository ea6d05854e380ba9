from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class MatchupTierScore(Base):
    """Accumulated duel stats for (patch, lane, champion, opponent, rank bucket)."""

    __tablename__ = "matchup_tier_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patch: Mapped[str] = mapped_column(String(16), nullable=False)
    lane: Mapped[str] = mapped_column(String(16), nullable=False)
    champion_id: Mapped[int] = mapped_column(Integer, nullable=False)
    opponent_champion_id: Mapped[int] = mapped_column(Integer, nullable=False)
    rank_filter_key: Mapped[str] = mapped_column(String(16), nullable=False)

    games: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    wins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sum_kda: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    sum_level: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_kda: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    avg_level: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    prev_patch_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    delta_vs_prev_patch: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "patch",
            "lane",
            "champion_id",
            "opponent_champion_id",
            "rank_filter_key",
            name="uq_matchup_tier_key",
        ),
        Index("ix_matchup_tier_patch_rank", "patch", "rank_filter_key", "lane"),
    )
