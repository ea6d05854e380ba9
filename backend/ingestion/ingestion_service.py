"""
Match ingestion: validate a match-v5 payload, insert it once, fan out participants.

The match row and its participants are written in one transaction. Player profiles
are refreshed afterwards on a best-effort basis, and the committed match is handed
to the aggregation feed without waiting for it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from core.database import DatabaseManager
from ingestion.ranks import RankEntry, compute_match_rank_label
from ingestion.schema import RANKED_SOLO_QUEUE_ID, RiotMatch, RiotParticipant
from matchups.aggregator import DuelParticipant, MatchAggregationInput
from matchups.feed import AggregationFeed
from models.participant import PARTICIPANT_COUNTERS, VALID_ROLES
from repositories.match_repo import MatchRepository
from repositories.participant_repo import ParticipantRepository
from repositories.player_repo import PlayerRepository

logger = logging.getLogger(__name__)

_ROLE_ALIASES = {"MID": "MIDDLE", "BOT": "BOTTOM", "SUPPORT": "UTILITY"}


class MatchIngestionError(ValueError):
    """Payload cannot be ingested (malformed or missing required fields)."""


class NotRankedSoloError(MatchIngestionError):
    """Payload belongs to another queue than ranked solo/duo."""


@dataclass
class IngestResult:
    match_id: str
    inserted: bool
    match_pk: Optional[int] = None
    participant_puuids: List[str] = field(default_factory=list)
    rank_label: Optional[str] = None


def normalize_role(team_position: Optional[str], individual_position: Optional[str] = None) -> Optional[str]:
    """Map a provider position onto TOP/JUNGLE/MIDDLE/BOTTOM/UTILITY, else None."""
    pos = (team_position or individual_position or "").strip().upper()
    if not pos or pos == "INVALID":
        return None
    pos = _ROLE_ALIASES.get(pos, pos)
    return pos if pos in VALID_ROLES else None


def participant_row(
    p: RiotParticipant,
    match_pk: int,
    rank: Optional[RankEntry] = None,
) -> Dict[str, Any]:
    raw_position = p.team_position if p.team_position is not None else p.individual_position
    row: Dict[str, Any] = {
        "match_id": match_pk,
        "puuid": p.puuid,
        "summoner_id": p.summoner_id,
        "riot_id_game_name": p.riot_id_game_name,
        "riot_id_tagline": p.riot_id_tagline,
        "champion_id": p.champion_id,
        "team_id": p.team_id,
        "role": normalize_role(p.team_position, p.individual_position),
        "team_position": raw_position,
        "win": bool(p.win),
        "items": p.items() or None,
        "summoner_spells": (
            [str(p.summoner1_id), str(p.summoner2_id)]
            if p.summoner1_id is not None and p.summoner2_id is not None
            else None
        ),
        "runes": p.perks,
        "rank_tier": rank.tier if rank is not None else None,
        "rank_division": rank.division if rank is not None else None,
        "rank_lp": rank.lp if rank is not None else None,
    }
    for name in PARTICIPANT_COUNTERS:
        row[name] = getattr(p, name)
    return row


def duel_participant(p: RiotParticipant) -> DuelParticipant:
    return DuelParticipant(
        champion_id=p.champion_id,
        team_id=p.team_id,
        role=normalize_role(p.team_position, p.individual_position),
        win=bool(p.win),
        kills=p.kills,
        deaths=p.deaths,
        assists=p.assists,
        champ_level=p.champ_level,
    )


def parse_match(payload: Union[RiotMatch, Mapping[str, Any]]) -> RiotMatch:
    if isinstance(payload, RiotMatch):
        return payload
    try:
        return RiotMatch.model_validate(payload)
    except ValidationError as e:
        raise MatchIngestionError(f"Invalid match payload: {e.error_count()} validation errors") from e


class MatchIngestionService:
    def __init__(self, db: DatabaseManager, feed: Optional[AggregationFeed] = None) -> None:
        self._db = db
        self._feed = feed

    async def ingest(
        self,
        region: str,
        payload: Union[RiotMatch, Mapping[str, Any]],
        rank_by_puuid: Optional[Mapping[str, Optional[RankEntry]]] = None,
    ) -> IngestResult:
        """Insert the match if unseen. A duplicate (even a concurrent one) returns inserted=False."""
        match = parse_match(payload)
        info = match.info
        if info.queue_id != RANKED_SOLO_QUEUE_ID:
            raise NotRankedSoloError(f"Not ranked solo/duo: queueId={info.queue_id}")

        match_id = match.match_id
        puuids = [p.puuid for p in info.participants]
        ranks = dict(rank_by_puuid or {})
        rank_label = compute_match_rank_label(ranks) if ranks else None

        async with self._db.session() as session:
            matches = MatchRepository(session)
            if await matches.exists(match_id):
                return IngestResult(match_id=match_id, inserted=False, participant_puuids=puuids)
            match_pk = await matches.insert_ignore_conflict(
                {
                    "match_id": match_id,
                    "region": region,
                    "platform_id": (info.platform_id or region).lower(),
                    "queue_id": RANKED_SOLO_QUEUE_ID,
                    "game_version": info.game_version,
                    "game_creation": info.game_creation,
                    "game_duration": info.game_duration,
                    "end_of_game_result": info.end_of_game_result,
                    "teams_json": info.teams or None,
                    "rank": rank_label,
                }
            )
            if match_pk is None:
                return IngestResult(match_id=match_id, inserted=False, participant_puuids=puuids)
            rows = [participant_row(p, match_pk, ranks.get(p.puuid)) for p in info.participants]
            await ParticipantRepository(session).bulk_insert(rows)

        logger.info("Inserted match %s (%d participants, rank=%s)", match_id, len(puuids), rank_label)
        await self._refresh_players(region, match)
        if self._feed is not None:
            self._feed.submit(
                MatchAggregationInput(
                    match_id=match_id,
                    game_version=info.game_version,
                    rank_label=rank_label,
                    end_of_game_result=info.end_of_game_result,
                    participants=[duel_participant(p) for p in info.participants],
                )
            )
        return IngestResult(
            match_id=match_id,
            inserted=True,
            match_pk=match_pk,
            participant_puuids=puuids,
            rank_label=rank_label,
        )

    async def _refresh_players(self, region: str, match: RiotMatch) -> None:
        seen_at = datetime.now(timezone.utc)
        try:
            async with self._db.session() as session:
                players = PlayerRepository(session)
                for p in match.info.participants:
                    await players.upsert_seen(
                        p.puuid, region, summoner_name=p.display_name(), last_seen=seen_at, win=p.win
                    )
        except Exception:
            logger.exception("Player refresh failed for %s", match.match_id)
