"""SQLAlchemy models for the match collector.

Importing this package registers every table on ``Base.metadata``.
"""

from .base import Base
from .collector_state import CollectorState
from .crawl_queue import CrawlQueueEntry
from .match import Match
from .matchup_tier_score import MatchupTierScore
from .participant import PARTICIPANT_COUNTERS, VALID_ROLES, Participant
from .player import Player
from .seed_player import SeedPlayer

__all__ = [
    "Base",
    "CollectorState",
    "CrawlQueueEntry",
    "Match",
    "MatchupTierScore",
    "PARTICIPANT_COUNTERS",
    "VALID_ROLES",
    "Participant",
    "Player",
    "SeedPlayer",
]
