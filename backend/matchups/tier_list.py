"""Tier-list read path over ``matchup_tier_scores``. Returns empty lists when nothing was collected."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from matchups.aggregator import normalize_lane, normalize_rank_key
from repositories.matchup_tier_repo import MatchupTierRepository


def _bounded(value: Optional[int], default: int, low: int, high: int) -> int:
    return max(low, min(high, value if value is not None else default))


def _round(value: Any, digits: int) -> Optional[float]:
    return None if value is None else round(float(value), digits)


async def get_tier_list_by_lane(
    session: AsyncSession,
    patch: str,
    lane: Optional[str] = None,
    rank_tier: Optional[str] = None,
    limit: Optional[int] = None,
    min_games: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Champions ranked by games-weighted matchup score for one patch and rank bucket."""
    patch = (patch or "").strip()
    if not patch:
        return []
    rows = await MatchupTierRepository(session).tier_list_rows(
        patch=patch,
        rank_filter_key=normalize_rank_key(rank_tier),
        lane=normalize_lane(lane),
        min_games=_bounded(min_games, 20, 1, 1000),
        limit=_bounded(limit, 100, 1, 500),
    )
    out: List[Dict[str, Any]] = []
    for row in rows:
        games = int(row["total_games"] or 0)
        wins = int(row["total_wins"] or 0)
        out.append(
            {
                "champion_id": int(row["champion_id"]),
                "matchups": int(row["matchups"]),
                "total_games": games,
                "avg_score": _round(row["avg_score"], 2),
                "avg_winrate": round(100.0 * wins / games, 2) if games else 0.0,
                "avg_kda": _round(row["avg_kda"], 2),
                "avg_level": _round(row["avg_level"], 2),
                "avg_confidence": _round(row["avg_confidence"], 4),
                "avg_delta_vs_prev_patch": _round(row["avg_delta_vs_prev_patch"], 2),
            }
        )
    return out


async def get_matchup_details(
    session: AsyncSession,
    patch: str,
    champion_id: int,
    lane: Optional[str] = None,
    rank_tier: Optional[str] = None,
    min_games: Optional[int] = None,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Opponents of one champion, best matchups first."""
    patch = (patch or "").strip()
    if not patch:
        return []
    rows = await MatchupTierRepository(session).matchup_rows(
        patch=patch,
        rank_filter_key=normalize_rank_key(rank_tier),
        champion_id=champion_id,
        lane=normalize_lane(lane),
        min_games=_bounded(min_games, 10, 1, 1000),
        limit=_bounded(limit, 100, 1, 500),
    )
    return [
        {
            "opponent_champion_id": r.opponent_champion_id,
            "lane": r.lane,
            "games": r.games,
            "wins": r.wins,
            "winrate": round(100.0 * r.wins / r.games, 2) if r.games else 0.0,
            "avg_kda": round(r.avg_kda, 2),
            "avg_level": round(r.avg_level, 2),
            "score": r.score,
            "confidence": r.confidence,
            "prev_patch_score": r.prev_patch_score,
            "delta_vs_prev_patch": r.delta_vs_prev_patch,
        }
        for r in rows
    ]
