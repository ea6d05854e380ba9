"""
PUUID migration after the provider rotated its identifier-encryption key.

Phase 1 re-fetches every stored match (stable cursor on ``matches.id``) and pairs stored
participants with fresh ones by a stat fingerprint that does not change with the key:
(champion, team, kills, deaths, assists, gold, level). Each differing identifier yields
``old -> new``; the first occurrence wins. Identical fingerprints inside one match are
paired in participant order and not disambiguated further.

Phase 2 rewrites participants, crawl-queue entries and seeds. Phase 3 merges or re-keys
player profiles. Processed matches are stamped with the current key version in the same
transaction as phases 2 and 3, so an interrupted run leaves them eligible for the next one.
Dry-run stops after phase 1.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from core.database import DatabaseManager
from ingestion.live_io import RiotApiError, RiotAuthError, RiotConfigError
from ingestion.regions import platform_from_match_id
from ingestion.riot_client import RiotClient
from ingestion.schema import RiotParticipant
from models.participant import Participant
from ops.ops_events import log_migration_summary
from repositories.crawl_queue_repo import CrawlQueueRepository
from repositories.match_repo import MatchRepository
from repositories.participant_repo import ParticipantRepository
from repositories.player_repo import PlayerRepository
from repositories.seed_player_repo import SeedPlayerRepository

logger = logging.getLogger(__name__)

Fingerprint = Tuple[int, Optional[int], int, int, int, int, int]

ERROR_DETAIL_LIMIT = 5
SAMPLE_SIZE = 5


def fingerprint(p: Any) -> Fingerprint:
    """Works for stored ``Participant`` rows and fresh ``RiotParticipant`` payloads alike."""
    return (
        int(p.champion_id or 0),
        p.team_id,
        int(p.kills or 0),
        int(p.deaths or 0),
        int(p.assists or 0),
        int(p.gold_earned or 0),
        int(p.champ_level or 0),
    )


@dataclass
class MigrationReport:
    dry_run: bool
    key_version: str
    matches_processed: int = 0
    mappings: int = 0
    errors: int = 0
    unmatched: int = 0
    participants_updated: int = 0
    queue_entries_updated: int = 0
    seeds_updated: int = 0
    players_rekeyed: int = 0
    players_merged: int = 0
    matches_stamped: int = 0
    sample_mapping: Dict[str, str] = field(default_factory=dict)
    error_samples: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def map_participants(
    stored: List[Participant],
    fresh: List[RiotParticipant],
    mapping: Dict[str, str],
    names: Dict[str, str],
) -> int:
    """Add old->new pairs found in one match; returns stored participants left unmatched."""
    pool: Dict[Fingerprint, List[RiotParticipant]] = {}
    for p in fresh:
        pool.setdefault(fingerprint(p), []).append(p)
    unmatched = 0
    for row in stored:
        candidates = pool.get(fingerprint(row))
        if not candidates:
            unmatched += 1
            continue
        new = candidates.pop(0)
        if new.puuid == row.puuid or row.puuid in mapping:
            continue
        mapping[row.puuid] = new.puuid
        display = new.display_name()
        if display:
            names.setdefault(new.puuid, display)
    return unmatched


class PuuidMigration:
    def __init__(
        self,
        db: DatabaseManager,
        client: RiotClient,
        *,
        key_version: str = "prod",
        batch_size: int = 50,
    ) -> None:
        self._db = db
        self._client = client
        self._key_version = key_version
        self._batch_size = max(1, batch_size)

    async def build_mapping(
        self, report: MigrationReport, force: bool = False
    ) -> Tuple[Dict[str, str], Dict[str, str], List[int]]:
        mapping: Dict[str, str] = {}
        names: Dict[str, str] = {}
        processed: List[int] = []
        cursor = 0
        skip_version = None if force else self._key_version
        while True:
            async with self._db.session() as session:
                page = await MatchRepository(session).list_after_id(cursor, self._batch_size, skip_version)
                participants = ParticipantRepository(session)
                stored_by_match = {m.id: await participants.list_for_match(m.id) for m in page}
            if not page:
                break
            cursor = page[-1].id
            for match in page:
                try:
                    fresh = await self._client.get_match(
                        platform_from_match_id(match.match_id, match.platform_id or match.region), match.match_id
                    )
                except (RiotAuthError, RiotConfigError):
                    raise
                except RiotApiError as e:
                    report.errors += 1
                    if len(report.error_samples) < ERROR_DETAIL_LIMIT:
                        report.error_samples.append(f"{match.match_id}: {e}")
                        logger.warning("Migration re-fetch of %s failed: %s", match.match_id, e)
                    continue
                report.unmatched += map_participants(
                    stored_by_match.get(match.id, []), fresh.info.participants, mapping, names
                )
                processed.append(match.id)
                report.matches_processed += 1
            logger.info(
                "Migration phase 1: %d matches processed, %d mappings so far", report.matches_processed, len(mapping)
            )
        return mapping, names, processed

    async def apply(
        self,
        mapping: Dict[str, str],
        names: Dict[str, str],
        processed: List[int],
        report: MigrationReport,
    ) -> None:
        async with self._db.session() as session:
            participants = ParticipantRepository(session)
            queue = CrawlQueueRepository(session)
            seeds = SeedPlayerRepository(session)
            for old, new in mapping.items():
                report.participants_updated += await participants.rewrite_identifier(old, new)
                report.queue_entries_updated += await queue.rewrite_identifier(old, new)
                report.seeds_updated += await seeds.rewrite_identifier(old, new)

            players = PlayerRepository(session)
            for old, new in mapping.items():
                outcome = await players.merge_identifier(old, new, names.get(new))
                if outcome == "merged":
                    report.players_merged += 1
                elif outcome == "rekeyed":
                    report.players_rekeyed += 1

            report.matches_stamped = await MatchRepository(session).stamp_key_version(processed, self._key_version)

    async def run(self, dry_run: bool = False, force: bool = False) -> MigrationReport:
        report = MigrationReport(dry_run=dry_run, key_version=self._key_version)
        mapping, names, processed = await self.build_mapping(report, force=force)
        report.mappings = len(mapping)
        report.sample_mapping = {old[:12]: new[:12] for old, new in list(mapping.items())[:SAMPLE_SIZE]}
        if not dry_run:
            await self.apply(mapping, names, processed, report)
        log_migration_summary(report.to_dict())
        return report


async def run_puuid_migration(
    db: DatabaseManager,
    client: RiotClient,
    *,
    key_version: str = "prod",
    batch_size: int = 50,
    dry_run: bool = False,
    force: bool = False,
) -> MigrationReport:
    migration = PuuidMigration(db, client, key_version=key_version, batch_size=batch_size)
    return await migration.run(dry_run=dry_run, force=force)
