"""Solo-queue rank helpers: numeric scores, labels like GOLD_II, lobby averages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

TIER_ORDER = (
    "IRON",
    "BRONZE",
    "SILVER",
    "GOLD",
    "PLATINUM",
    "EMERALD",
    "DIAMOND",
    "MASTER",
    "GRANDMASTER",
    "CHALLENGER",
)
DIVISION_ORDER = ("IV", "III", "II", "I")
APEX_TIERS = ("MASTER", "GRANDMASTER", "CHALLENGER")

# Players without a solo/duo entry; excluded from lobby averages.
UNRANKED_TIER = "UNRANKED"


@dataclass(frozen=True)
class RankEntry:
    tier: str
    division: Optional[str] = None
    lp: int = 0

    @property
    def is_ranked(self) -> bool:
        return self.tier.upper() in TIER_ORDER


UNRANKED = RankEntry(tier=UNRANKED_TIER)


def rank_to_score(tier: str, division: Optional[str], lp: int) -> float:
    """Four points per tier, one per division, LP as a fraction. Apex tiers ignore the division."""
    t = tier.upper()
    tier_idx = TIER_ORDER.index(t) if t in TIER_ORDER else 0
    d = (division or "").upper()
    div_idx = DIVISION_ORDER.index(d) if d in DIVISION_ORDER else 0
    if tier_idx >= TIER_ORDER.index("MASTER"):
        div_idx = 0
    return tier_idx * 4 + div_idx + lp / 100


def score_to_rank_label(score: float) -> str:
    if score <= 0:
        return "IRON_IV"
    tier_idx = min(int(score // 4), len(TIER_ORDER) - 1)
    tier = TIER_ORDER[max(0, tier_idx)]
    if tier in APEX_TIERS:
        return tier
    remainder = score - tier_idx * 4
    div_idx = min(int(remainder), len(DIVISION_ORDER) - 1)
    return f"{tier}_{DIVISION_ORDER[max(0, div_idx)]}"


def compute_match_rank_label(rank_by_puuid: Mapping[str, Optional[RankEntry]]) -> Optional[str]:
    """Average rank label of the ranked participants, or None if nobody is ranked."""
    scores = [
        rank_to_score(entry.tier, entry.division, entry.lp)
        for entry in rank_by_puuid.values()
        if entry is not None and entry.is_ranked
    ]
    if not scores:
        return None
    return score_to_rank_label(sum(scores) / len(scores))


def rank_tier_from_label(label: Optional[str]) -> Optional[str]:
    """GOLD_II -> GOLD; empty -> None."""
    raw = (label or "").strip()
    if not raw:
        return None
    tier = raw.split("_", 1)[0].strip().upper()
    return tier or None
