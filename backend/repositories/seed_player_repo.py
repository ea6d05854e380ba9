from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_insert
from models.seed_player import SeedPlayer
from .base import BaseRepository


class SeedPlayerRepository(BaseRepository[SeedPlayer]):
    """Admin-provided seed handles."""

    model = SeedPlayer

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def list_enabled(self) -> List[SeedPlayer]:
        stmt = select(SeedPlayer).where(SeedPlayer.enabled.is_(True)).order_by(SeedPlayer.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def add_handle(self, platform: str, game_name: str, tag_line: Optional[str] = None) -> None:
        stmt = (
            dialect_insert(self.session, SeedPlayer)
            .values(platform=platform, game_name=game_name, tag_line=tag_line, enabled=True)
            .on_conflict_do_nothing(index_elements=["platform", "game_name", "tag_line"])
        )
        await self.session.execute(stmt)

    async def set_puuid(self, seed_id: int, puuid: str) -> None:
        stmt = (
            update(SeedPlayer)
            .where(SeedPlayer.id == seed_id)
            .values(puuid=puuid)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def rewrite_identifier(self, old_puuid: str, new_puuid: str) -> int:
        stmt = (
            update(SeedPlayer)
            .where(SeedPlayer.puuid == old_puuid)
            .values(puuid=new_puuid)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)
