"""Ingestion: Riot API client, rate limiting, crawl frontier and match persistence."""

from .schema import (
    LeagueEntry,
    RiotMatch,
    RiotParticipant,
)

__all__ = [
    "LeagueEntry",
    "RiotMatch",
    "RiotParticipant",
]
