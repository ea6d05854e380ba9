from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import distinct, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.match import Match
from models.participant import Participant
from .base import BaseRepository


class ParticipantRepository(BaseRepository[Participant]):
    """Repository for Participant rows (bulk insert, identifier rewrite, backfill queries)."""

    model = Participant

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def bulk_insert(self, rows: Sequence[Dict[str, Any]]) -> int:
        if not rows:
            return 0
        await self.session.execute(insert(Participant), list(rows))
        return len(rows)

    async def list_for_match(self, match_pk: int) -> List[Participant]:
        stmt = select(Participant).where(Participant.match_id == match_pk).order_by(Participant.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_matches(self, match_pks: Sequence[int]) -> List[Participant]:
        if not match_pks:
            return []
        stmt = (
            select(Participant)
            .where(Participant.match_id.in_(list(match_pks)))
            .order_by(Participant.match_id, Participant.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def rewrite_identifier(self, old_puuid: str, new_puuid: str) -> int:
        """Point every participant row of old_puuid at new_puuid; returns rows updated."""
        stmt = (
            update(Participant)
            .where(Participant.puuid == old_puuid)
            .values(puuid=new_puuid)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    # --- rank backfill ---

    async def count_missing_rank(self) -> int:
        stmt = select(func.count()).select_from(Participant).where(Participant.rank_tier.is_(None))
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def distinct_puuids_missing_rank(self, limit: int) -> List[Tuple[str, str]]:
        """(puuid, region) pairs with at least one participant row lacking a rank tier."""
        stmt = (
            select(Participant.puuid, func.min(Match.region))
            .join(Match, Match.id == Participant.match_id)
            .where(Participant.rank_tier.is_(None))
            .group_by(Participant.puuid)
            .order_by(func.max(Participant.rank_attempts), Participant.puuid)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def record_rank_attempt(self, puuid: str) -> int:
        stmt = (
            update(Participant)
            .where(Participant.puuid == puuid, Participant.rank_tier.is_(None))
            .values(rank_attempts=Participant.rank_attempts + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def set_rank_for_puuid(
        self,
        puuid: str,
        tier: str,
        division: Optional[str],
        lp: Optional[int],
    ) -> List[int]:
        """Fill rank on every rank-less row of puuid; return the affected match ids."""
        match_stmt = select(distinct(Participant.match_id)).where(
            Participant.puuid == puuid, Participant.rank_tier.is_(None)
        )
        match_ids = [int(r) for r in (await self.session.execute(match_stmt)).scalars().all()]
        if not match_ids:
            return []
        stmt = (
            update(Participant)
            .where(Participant.puuid == puuid)
            .where(Participant.rank_tier.is_(None))
            .values(rank_tier=tier, rank_division=division, rank_lp=lp)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)
        return match_ids

    async def rank_rows_for_match(
        self, match_pk: int
    ) -> List[Tuple[str, Optional[str], Optional[str], Optional[int]]]:
        """(puuid, tier, division, lp) of every participant of one match."""
        stmt = select(
            Participant.puuid, Participant.rank_tier, Participant.rank_division, Participant.rank_lp
        ).where(Participant.match_id == match_pk)
        result = await self.session.execute(stmt)
        return [(r[0], r[1], r[2], r[3]) for r in result.all()]

    # --- role backfill ---

    def _missing_role_clause(self):
        return Participant.role.is_(None) & Participant.team_position.is_(None)

    async def count_missing_role(self) -> int:
        stmt = select(func.count()).select_from(Participant).where(self._missing_role_clause())
        result = await self.session.execute(stmt)
        return int(result.scalar_one())

    async def matches_missing_role(self, limit: int) -> List[Match]:
        """Matches owning participants whose raw position was never captured."""
        sub = select(distinct(Participant.match_id)).where(self._missing_role_clause())
        stmt = select(Match).where(Match.id.in_(sub)).order_by(Match.id).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def set_position(self, participant_pk: int, role: Optional[str], team_position: str) -> None:
        stmt = (
            update(Participant)
            .where(Participant.id == participant_pk)
            .values(role=role, team_position=team_position)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def mark_positions_unknown(self, match_pk: int) -> int:
        """Store an empty raw position so rows of an unfetchable match are not retried."""
        stmt = (
            update(Participant)
            .where(Participant.match_id == match_pk)
            .where(self._missing_role_clause())
            .values(team_position="")
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)
