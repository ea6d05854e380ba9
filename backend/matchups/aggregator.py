"""
Matchup aggregation engine.

A duel is two opposing participants in the same lane. Each duel yields one row per
direction (champion vs opponent) under the ``GLOBAL`` bucket and, when the lobby has
a rank label, under that label's tier (``GOLD_II`` -> ``GOLD``). Incremental ingestion
adds a match's duel totals to the stored sums; ``rebuild`` recomputes a whole
(patch, bucket) from stored matches. Both use ``build_matchup_rows`` and the same
end-of-game filter, so they converge on identical totals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from core.database import DatabaseManager
from ingestion.ranks import rank_tier_from_label
from matchups.scoring import compute_score, kda, patch_from_game_version, previous_patch
from models.participant import VALID_ROLES
from ops.ops_events import log_matchup_rebuild
from repositories.match_repo import MatchRepository
from repositories.matchup_tier_repo import MatchupKey, MatchupTierRepository, MatchupTotals
from repositories.participant_repo import ParticipantRepository

logger = logging.getLogger(__name__)

GLOBAL_RANK_KEY = "GLOBAL"
BLUE_TEAM = 100
RED_TEAM = 200
COMPLETE_RESULT = "GameComplete"

REBUILD_PAGE_SIZE = 200


@dataclass(frozen=True)
class DuelParticipant:
    champion_id: int
    team_id: Optional[int]
    role: Optional[str]
    win: bool
    kills: int = 0
    deaths: int = 0
    assists: int = 0
    champ_level: int = 0


@dataclass
class MatchAggregationInput:
    """What the engine needs from one ingested match."""

    match_id: str
    game_version: Optional[str]
    rank_label: Optional[str]
    end_of_game_result: Optional[str]
    participants: List[DuelParticipant] = field(default_factory=list)


@dataclass
class RebuildResult:
    patch: str
    rank_filter_key: str
    rows: int
    matches_scanned: int


def normalize_lane(role: Optional[str]) -> Optional[str]:
    lane = (role or "").strip().upper()
    return lane if lane in VALID_ROLES else None


def normalize_rank_key(rank_tier: Optional[str]) -> str:
    value = (rank_tier or "").strip().upper()
    return value or GLOBAL_RANK_KEY


def is_aggregatable(end_of_game_result: Optional[str]) -> bool:
    """Remakes and aborted games carry another result code and are never counted."""
    return end_of_game_result is None or end_of_game_result == COMPLETE_RESULT


def build_matchup_rows(
    patch: str,
    rank_label: Optional[str],
    participants: Sequence[DuelParticipant],
) -> Dict[MatchupKey, MatchupTotals]:
    """Per-key duel totals contributed by one match."""
    rank_tier = rank_tier_from_label(rank_label)
    by_team_lane: Dict[Tuple[int, str], List[DuelParticipant]] = {}
    for p in participants:
        lane = normalize_lane(p.role)
        if lane is None or p.team_id not in (BLUE_TEAM, RED_TEAM) or p.champion_id <= 0:
            continue
        by_team_lane.setdefault((p.team_id, lane), []).append(p)

    bucket_keys = [GLOBAL_RANK_KEY]
    if rank_tier and rank_tier != GLOBAL_RANK_KEY:
        bucket_keys.append(rank_tier)

    rows: Dict[MatchupKey, MatchupTotals] = {}
    for lane in VALID_ROLES:
        blue = by_team_lane.get((BLUE_TEAM, lane), [])
        red = by_team_lane.get((RED_TEAM, lane), [])
        for b in blue:
            for r in red:
                for me, opp in ((b, r), (r, b)):
                    for bucket in bucket_keys:
                        key = MatchupKey(patch, lane, me.champion_id, opp.champion_id, bucket)
                        totals = rows.get(key)
                        if totals is None:
                            totals = MatchupTotals(games=0, wins=0, sum_kda=0.0, sum_level=0.0)
                            rows[key] = totals
                        totals.games += 1
                        totals.wins += 1 if me.win else 0
                        totals.sum_kda += kda(me.kills, me.deaths, me.assists)
                        totals.sum_level += float(me.champ_level or 0)
    return rows


async def recompute_scores(repo: MatchupTierRepository, key: MatchupKey) -> None:
    """Refresh averages, score, confidence and delta vs the previous patch from current totals."""
    totals = await repo.read(key)
    if totals is None:
        return
    games = totals.games
    avg_kda = totals.sum_kda / games if games > 0 else 0.0
    avg_level = totals.sum_level / games if games > 0 else 0.0
    score, confidence = compute_score(games, totals.wins, avg_kda, avg_level)
    prev = previous_patch(key.patch)
    prev_score = await repo.get_score(key, prev) if prev is not None else None
    delta = score - prev_score if prev_score is not None else None
    await repo.update_scores(key, avg_kda, avg_level, score, confidence, prev_score, delta)


class MatchupAggregator:
    """Writes duel totals into ``matchup_tier_scores``."""

    def __init__(self, db: DatabaseManager, page_size: int = REBUILD_PAGE_SIZE) -> None:
        self._db = db
        self._page_size = max(1, page_size)

    async def ingest_match(self, item: MatchAggregationInput) -> int:
        """Accumulate one match; returns the number of keys touched."""
        if not is_aggregatable(item.end_of_game_result):
            logger.debug("Skipping aggregation of %s (result=%s)", item.match_id, item.end_of_game_result)
            return 0
        patch = patch_from_game_version(item.game_version)
        if patch is None:
            return 0
        rows = build_matchup_rows(patch, item.rank_label, item.participants)
        if not rows:
            return 0
        async with self._db.session() as session:
            repo = MatchupTierRepository(session)
            for key, totals in rows.items():
                await repo.accumulate(key, totals)
            for key in rows:
                await recompute_scores(repo, key)
        return len(rows)

    async def rebuild(self, patch: str, rank_tier: Optional[str] = None) -> RebuildResult:
        """Replace the (patch, bucket) aggregate with totals recomputed from stored matches."""
        patch = (patch or "").strip()
        if not patch:
            raise ValueError("patch is required")
        rank_key = normalize_rank_key(rank_tier)
        async with self._db.session() as session:
            result = await self._rebuild_in_session(session, patch, rank_key)
        log_matchup_rebuild(patch, rank_key, result.rows, result.matches_scanned)
        return result

    async def _rebuild_in_session(self, session: AsyncSession, patch: str, rank_key: str) -> RebuildResult:
        matches_repo = MatchRepository(session)
        participants_repo = ParticipantRepository(session)
        totals_by_key: Dict[MatchupKey, MatchupTotals] = {}
        scanned = 0
        cursor = 0
        while True:
            page = await matches_repo.list_for_patch(patch, cursor, self._page_size)
            if not page:
                break
            cursor = page[-1].id
            eligible = [
                m
                for m in page
                if is_aggregatable(m.end_of_game_result)
                and (rank_key == GLOBAL_RANK_KEY or rank_tier_from_label(m.rank) == rank_key)
            ]
            if not eligible:
                continue
            scanned += len(eligible)
            by_match: Dict[int, List[DuelParticipant]] = {}
            for p in await participants_repo.list_for_matches([m.id for m in eligible]):
                by_match.setdefault(p.match_id, []).append(
                    DuelParticipant(
                        champion_id=p.champion_id,
                        team_id=p.team_id,
                        role=p.role,
                        win=bool(p.win),
                        kills=p.kills,
                        deaths=p.deaths,
                        assists=p.assists,
                        champ_level=p.champ_level,
                    )
                )
            for m in eligible:
                for key, totals in build_matchup_rows(patch, m.rank, by_match.get(m.id, [])).items():
                    if key.rank_filter_key != rank_key:
                        continue
                    acc = totals_by_key.get(key)
                    if acc is None:
                        totals_by_key[key] = MatchupTotals(totals.games, totals.wins, totals.sum_kda, totals.sum_level)
                    else:
                        acc.games += totals.games
                        acc.wins += totals.wins
                        acc.sum_kda += totals.sum_kda
                        acc.sum_level += totals.sum_level

        repo = MatchupTierRepository(session)
        await repo.delete_bucket(patch, rank_key)
        for key, totals in totals_by_key.items():
            await repo.accumulate(key, totals)
        for key in totals_by_key:
            await recompute_scores(repo, key)
        return RebuildResult(patch=patch, rank_filter_key=rank_key, rows=len(totals_by_key), matches_scanned=scanned)

    async def rebuild_buckets(self, buckets: Iterable[Tuple[str, str]]) -> List[RebuildResult]:
        """Rebuild each distinct (patch, rank key) once, in sorted order."""
        results: List[RebuildResult] = []
        for patch, rank_key in sorted({(p, normalize_rank_key(r)) for p, r in buckets}):
            results.append(await self.rebuild(patch, rank_key))
        return results
