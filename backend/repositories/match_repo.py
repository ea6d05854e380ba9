from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_insert
from models.match import Match
from .base import BaseRepository


class MatchRepository(BaseRepository[Match]):
    """Repository for Match entities."""

    model = Match

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def get_by_match_id(self, match_id: str) -> Optional[Match]:
        """Get match by provider match id (e.g. EUW1_1234)."""
        stmt = select(Match).where(Match.match_id == match_id)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def exists(self, match_id: str) -> bool:
        stmt = select(Match.id).where(Match.match_id == match_id).limit(1)
        result = await self.session.execute(stmt)
        return result.first() is not None

    async def insert_ignore_conflict(self, values: Dict[str, Any]) -> Optional[int]:
        """Insert a match row; return its id, or None when match_id already exists.

        Relies on the unique constraint, so two workers racing on the same match
        both succeed and exactly one of them gets an id back.
        """
        stmt = (
            dialect_insert(self.session, Match)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["match_id"])
            .returning(Match.id)
        )
        result = await self.session.execute(stmt)
        row = result.first()
        return int(row[0]) if row is not None else None

    async def list_after_id(
        self,
        after_id: int,
        limit: int,
        skip_key_version: Optional[str] = None,
    ) -> List[Match]:
        """Stable cursor page ordered by id; optionally skip rows already stamped with a key version."""
        stmt = select(Match).where(Match.id > after_id)
        if skip_key_version is not None:
            stmt = stmt.where(
                or_(Match.puuid_key_version.is_(None), Match.puuid_key_version != skip_key_version)
            )
        stmt = stmt.order_by(Match.id).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def stamp_key_version(self, ids: Sequence[int], key_version: str) -> int:
        if not ids:
            return 0
        stmt = (
            update(Match)
            .where(Match.id.in_(list(ids)))
            .values(puuid_key_version=key_version)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def set_rank_if_empty(self, match_pk: int, rank: str) -> bool:
        """Set the lobby rank label only where none was recorded yet."""
        stmt = (
            update(Match)
            .where(Match.id == match_pk)
            .where(or_(Match.rank.is_(None), Match.rank == ""))
            .values(rank=rank)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def list_for_patch(self, patch: str, after_id: int, limit: int) -> List[Match]:
        """Id-cursor page of matches whose client version starts with '<major>.<minor>.'."""
        stmt = (
            select(Match)
            .where(Match.id > after_id)
            .where(Match.game_version.is_not(None))
            .where(Match.game_version.like(f"{patch}.%"))
            .order_by(Match.id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
