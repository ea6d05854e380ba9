from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class SeedPlayer(Base):
    """Operator-provided seed handle (Riot ID or legacy summoner name)."""

    __tablename__ = "seed_players"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    platform: Mapped[str] = mapped_column(String(16), nullable=False)
    game_name: Mapped[str] = mapped_column(String(64), nullable=False)
    tag_line: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    puuid: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("platform", "game_name", "tag_line", name="uq_seed_player_handle"),
    )
