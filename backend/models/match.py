from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .participant import Participant


class Match(Base):
    """One finished ranked solo/duo game, keyed by the provider match id."""

    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    region: Mapped[str] = mapped_column(String(16), nullable=False)
    platform_id: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    queue_id: Mapped[int] = mapped_column(Integer, nullable=False)
    game_version: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    game_creation: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    game_duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_of_game_result: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    teams_json: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)

    # Average rank label of the lobby (e.g. GOLD_II); set at creation or by the rank backfill.
    rank: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    puuid_key_version: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    participants: Mapped[List["Participant"]] = relationship(
        back_populates="match",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_match_game_version", "game_version"),
        Index("ix_match_region_created", "region", "created_at"),
    )
