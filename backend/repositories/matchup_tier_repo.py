from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_insert
from models.matchup_tier_score import MatchupTierScore
from .base import BaseRepository


@dataclass(frozen=True)
class MatchupKey:
    patch: str
    lane: str
    champion_id: int
    opponent_champion_id: int
    rank_filter_key: str

    def where(self, patch: Optional[str] = None):
        return (
            (MatchupTierScore.patch == (patch or self.patch))
            & (MatchupTierScore.lane == self.lane)
            & (MatchupTierScore.champion_id == self.champion_id)
            & (MatchupTierScore.opponent_champion_id == self.opponent_champion_id)
            & (MatchupTierScore.rank_filter_key == self.rank_filter_key)
        )


@dataclass
class MatchupTotals:
    games: int
    wins: int
    sum_kda: float
    sum_level: float


_KEY_COLUMNS = ["patch", "lane", "champion_id", "opponent_champion_id", "rank_filter_key"]


class MatchupTierRepository(BaseRepository[MatchupTierScore]):
    """Aggregate table access: atomic accumulate, score updates, bucket rebuilds, tier-list reads."""

    model = MatchupTierScore

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)

    async def accumulate(self, key: MatchupKey, totals: MatchupTotals) -> None:
        """Insert the key or add totals to the existing sums in one statement."""
        stmt = dialect_insert(self.session, MatchupTierScore).values(
            patch=key.patch,
            lane=key.lane,
            champion_id=key.champion_id,
            opponent_champion_id=key.opponent_champion_id,
            rank_filter_key=key.rank_filter_key,
            games=totals.games,
            wins=totals.wins,
            sum_kda=totals.sum_kda,
            sum_level=totals.sum_level,
            avg_kda=0.0,
            avg_level=0.0,
            score=0,
            confidence=0.0,
        )
        table = MatchupTierScore.__table__
        stmt = stmt.on_conflict_do_update(
            index_elements=_KEY_COLUMNS,
            set_={
                "games": table.c.games + stmt.excluded.games,
                "wins": table.c.wins + stmt.excluded.wins,
                "sum_kda": table.c.sum_kda + stmt.excluded.sum_kda,
                "sum_level": table.c.sum_level + stmt.excluded.sum_level,
                "updated_at": func.now(),
            },
        )
        await self.session.execute(stmt)

    async def read(self, key: MatchupKey) -> Optional[MatchupTotals]:
        stmt = select(
            MatchupTierScore.games,
            MatchupTierScore.wins,
            MatchupTierScore.sum_kda,
            MatchupTierScore.sum_level,
        ).where(key.where())
        row = (await self.session.execute(stmt)).first()
        if row is None:
            return None
        return MatchupTotals(
            games=int(row[0] or 0),
            wins=int(row[1] or 0),
            sum_kda=float(row[2] or 0.0),
            sum_level=float(row[3] or 0.0),
        )

    async def get_score(self, key: MatchupKey, patch: str) -> Optional[int]:
        """Score of the same duel key under another patch, if recorded."""
        stmt = select(MatchupTierScore.score).where(key.where(patch))
        row = (await self.session.execute(stmt)).first()
        return int(row[0]) if row is not None else None

    async def update_scores(
        self,
        key: MatchupKey,
        avg_kda: float,
        avg_level: float,
        score: int,
        confidence: float,
        prev_patch_score: Optional[int],
        delta: Optional[int],
    ) -> None:
        stmt = (
            update(MatchupTierScore)
            .where(key.where())
            .values(
                avg_kda=avg_kda,
                avg_level=avg_level,
                score=score,
                confidence=confidence,
                prev_patch_score=prev_patch_score,
                delta_vs_prev_patch=delta,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def delete_bucket(self, patch: str, rank_filter_key: str) -> int:
        stmt = (
            delete(MatchupTierScore)
            .where(MatchupTierScore.patch == patch)
            .where(MatchupTierScore.rank_filter_key == rank_filter_key)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return int(result.rowcount or 0)

    async def tier_list_rows(
        self,
        patch: str,
        rank_filter_key: str,
        lane: Optional[str],
        min_games: int,
        limit: int,
    ) -> List[Dict[str, Any]]:
        """Per-champion aggregate over its matchups, ordered by games-weighted score."""
        games_sum = func.sum(MatchupTierScore.games)
        avg_score = func.sum(MatchupTierScore.score * MatchupTierScore.games) * 1.0 / games_sum
        stmt = (
            select(
                MatchupTierScore.champion_id,
                func.count().label("matchups"),
                games_sum.label("total_games"),
                func.sum(MatchupTierScore.wins).label("total_wins"),
                avg_score.label("avg_score"),
                func.avg(MatchupTierScore.avg_kda).label("avg_kda"),
                func.avg(MatchupTierScore.avg_level).label("avg_level"),
                func.avg(MatchupTierScore.confidence).label("avg_confidence"),
                func.avg(MatchupTierScore.delta_vs_prev_patch).label("avg_delta_vs_prev_patch"),
            )
            .where(MatchupTierScore.patch == patch)
            .where(MatchupTierScore.rank_filter_key == rank_filter_key)
            .where(MatchupTierScore.games >= min_games)
        )
        if lane:
            stmt = stmt.where(MatchupTierScore.lane == lane)
        stmt = (
            stmt.group_by(MatchupTierScore.champion_id)
            .order_by(avg_score.desc(), games_sum.desc(), MatchupTierScore.champion_id)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [dict(row._mapping) for row in result.all()]

    async def matchup_rows(
        self,
        patch: str,
        rank_filter_key: str,
        champion_id: int,
        lane: Optional[str],
        min_games: int,
        limit: int,
    ) -> List[MatchupTierScore]:
        stmt = (
            select(MatchupTierScore)
            .where(MatchupTierScore.patch == patch)
            .where(MatchupTierScore.rank_filter_key == rank_filter_key)
            .where(MatchupTierScore.champion_id == champion_id)
            .where(MatchupTierScore.games >= min_games)
        )
        if lane:
            stmt = stmt.where(MatchupTierScore.lane == lane)
        stmt = stmt.order_by(
            MatchupTierScore.score.desc(), MatchupTierScore.games.desc(), MatchupTierScore.opponent_champion_id
        ).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
