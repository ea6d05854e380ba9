"""
Backfills for participant fields that were missing at ingestion time, plus the player
display-name refresh.

Each pass is bounded per round and returns the (patch, rank bucket) pairs whose aggregate
must be rebuilt; the worker hands them to ``MatchupAggregator.rebuild_buckets``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Set, Tuple

from core.database import DatabaseManager
from ingestion.ingestion_service import normalize_role
from ingestion.live_io import RiotApiError, RiotAuthError, RiotConfigError, RiotNotFoundError
from ingestion.ranks import RankEntry, compute_match_rank_label, rank_tier_from_label
from ingestion.regions import platform_from_match_id
from ingestion.riot_client import RiotClient
from ingestion.schema import RiotParticipant
from matchups.aggregator import GLOBAL_RANK_KEY
from matchups.scoring import patch_from_game_version
from models.match import Match
from ops.ops_events import log_backfill_summary
from repositories.match_repo import MatchRepository
from repositories.participant_repo import ParticipantRepository
from repositories.player_repo import PlayerRepository
from runner.migration_runner import fingerprint

logger = logging.getLogger(__name__)

Bucket = Tuple[str, str]


@dataclass
class BackfillResult:
    kind: str
    processed: int = 0
    updated: int = 0
    errors: int = 0
    remaining: int = 0
    buckets: Set[Bucket] = field(default_factory=set)

    def counters(self) -> Dict[str, int]:
        return {
            "processed": self.processed,
            "updated": self.updated,
            "errors": self.errors,
            "remaining": self.remaining,
            "buckets": len(self.buckets),
        }


def _buckets_for(match: Match, include_global: bool) -> Set[Bucket]:
    patch = patch_from_game_version(match.game_version)
    if patch is None:
        return set()
    out: Set[Bucket] = set()
    if include_global:
        out.add((patch, GLOBAL_RANK_KEY))
    tier = rank_tier_from_label(match.rank)
    if tier:
        out.add((patch, tier))
    return out


async def count_missing(db: DatabaseManager) -> Tuple[int, int]:
    """(participants without rank, participants without role)."""
    async with db.session() as session:
        repo = ParticipantRepository(session)
        return await repo.count_missing_rank(), await repo.count_missing_role()


async def backfill_ranks(db: DatabaseManager, client: RiotClient, limit: int = 200) -> BackfillResult:
    """Look up solo rank for up to ``limit`` identifiers and fill their rank-less rows."""
    result = BackfillResult(kind="ranks")
    async with db.session() as session:
        pending = await ParticipantRepository(session).distinct_puuids_missing_rank(limit)

    for puuid, region in pending:
        result.processed += 1
        try:
            rank = await client.get_solo_rank(region, puuid)
        except (RiotAuthError, RiotConfigError):
            raise
        except RiotApiError as e:
            result.errors += 1
            logger.warning("Rank backfill for %s failed: %s", puuid[:12], e)
            async with db.session() as session:
                await ParticipantRepository(session).record_rank_attempt(puuid)
            continue

        async with db.session() as session:
            participants = ParticipantRepository(session)
            matches = MatchRepository(session)
            match_ids = await participants.set_rank_for_puuid(puuid, rank.tier, rank.division, rank.lp)
            result.updated += len(match_ids)
            for match_pk in match_ids:
                rows = await participants.rank_rows_for_match(match_pk)
                if any(tier is None for _, tier, _, _ in rows):
                    continue
                label = compute_match_rank_label(
                    {p: RankEntry(tier=tier, division=div, lp=lp or 0) for p, tier, div, lp in rows}
                )
                if label and await matches.set_rank_if_empty(match_pk, label):
                    match = await matches.get_by_pk(match_pk)
                    if match is not None:
                        result.buckets |= _buckets_for(match, include_global=False)

    async with db.session() as session:
        result.remaining = await ParticipantRepository(session).count_missing_rank()
    log_backfill_summary(result.kind, **result.counters())
    return result


def _pair_fresh(
    stored_puuid: str, stored_fp: tuple, fresh: List[RiotParticipant], used: Set[int]
) -> Optional[RiotParticipant]:
    for i, p in enumerate(fresh):
        if i not in used and p.puuid == stored_puuid:
            used.add(i)
            return p
    for i, p in enumerate(fresh):
        if i not in used and fingerprint(p) == stored_fp:
            used.add(i)
            return p
    return None


async def backfill_roles(db: DatabaseManager, client: RiotClient, match_limit: int = 50) -> BackfillResult:
    """Re-fetch matches whose participants lack a raw position and store role + raw position."""
    result = BackfillResult(kind="roles")
    async with db.session() as session:
        targets = await ParticipantRepository(session).matches_missing_role(match_limit)

    for match in targets:
        result.processed += 1
        platform = platform_from_match_id(match.match_id, match.platform_id or match.region)
        try:
            fresh = await client.get_match(platform, match.match_id)
        except (RiotAuthError, RiotConfigError):
            raise
        except RiotNotFoundError:
            async with db.session() as session:
                await ParticipantRepository(session).mark_positions_unknown(match.id)
            continue
        except RiotApiError as e:
            result.errors += 1
            logger.warning("Role backfill for %s failed: %s", match.match_id, e)
            continue

        changed = False
        async with db.session() as session:
            repo = ParticipantRepository(session)
            used: Set[int] = set()
            for row in await repo.list_for_match(match.id):
                if row.role is not None or row.team_position is not None:
                    continue
                p = _pair_fresh(row.puuid, fingerprint(row), fresh.info.participants, used)
                if p is None:
                    await repo.set_position(row.id, None, "")
                    continue
                role = normalize_role(p.team_position, p.individual_position)
                raw = p.team_position or p.individual_position or ""
                await repo.set_position(row.id, role, raw)
                result.updated += 1
                changed = changed or role is not None
        if changed:
            result.buckets |= _buckets_for(match, include_global=True)

    async with db.session() as session:
        result.remaining = await ParticipantRepository(session).count_missing_role()
    log_backfill_summary(result.kind, **result.counters())
    return result


def account_display_name(game_name: Optional[str], tag_line: Optional[str]) -> Optional[str]:
    name = (game_name or "").strip()
    if not name:
        return None
    tag = (tag_line or "").strip()
    return f"{name}#{tag}" if tag else name


async def enrich_players(
    db: DatabaseManager, client: RiotClient, limit: int = 50, stale_days: int = 30
) -> BackfillResult:
    """Refresh display names of players that have none or whose name is older than ``stale_days``.

    Every lookup stamps the player, failed ones included, so the next pass moves on to others.
    """
    result = BackfillResult(kind="players")
    stale_before = datetime.now(timezone.utc) - timedelta(days=max(1, stale_days))
    async with db.session() as session:
        pending = await PlayerRepository(session).list_needing_name(limit, stale_before)

    for puuid, region in pending:
        result.processed += 1
        name: Optional[str] = None
        try:
            account = await client.get_account_by_puuid(region, puuid)
            name = account_display_name(account.game_name, account.tag_line)
        except (RiotAuthError, RiotConfigError):
            raise
        except RiotApiError as e:
            result.errors += 1
            logger.warning("Name lookup for %s failed: %s", puuid[:12], e)

        async with db.session() as session:
            if await PlayerRepository(session).mark_name_checked(puuid, datetime.now(timezone.utc), name):
                result.updated += 1

    async with db.session() as session:
        result.remaining = await PlayerRepository(session).count_needing_name(stale_before)
    log_backfill_summary(result.kind, **result.counters())
    return result
