"""Repository layer for DB access only (queries, upserts, claims).

Repositories accept an AsyncSession explicitly and never commit; the caller
(ingestion service, runners) owns the transaction boundary.
"""

from .base import BaseRepository
from .collector_state_repo import CollectorStateRepository
from .crawl_queue_repo import CrawlQueueRepository
from .match_repo import MatchRepository
from .matchup_tier_repo import MatchupTierRepository
from .participant_repo import ParticipantRepository
from .player_repo import PlayerRepository
from .seed_player_repo import SeedPlayerRepository

__all__ = [
    "BaseRepository",
    "CollectorStateRepository",
    "CrawlQueueRepository",
    "MatchRepository",
    "MatchupTierRepository",
    "ParticipantRepository",
    "PlayerRepository",
    "SeedPlayerRepository",
]
