"""Matchup score formula and patch helpers."""

from __future__ import annotations

import math
import re
from typing import Optional, Tuple

SCORE_MIN = -10
SCORE_MAX = 10
CONFIDENCE_FULL_GAMES = 60

# Laplace smoothing: 10 virtual wins out of 20 virtual games.
PRIOR_WINS = 10
PRIOR_GAMES = 20

BASELINE_WINRATE = 50.0
BASELINE_KDA = 3.0
BASELINE_LEVEL = 14.0
LEVEL_SPAN = 4.0

WEIGHT_WINRATE = 0.8
WEIGHT_KDA = 0.1
WEIGHT_LEVEL = 0.1

_PATCH_RE = re.compile(r"^(\d+)\.(\d+)$")


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def kda(kills: Optional[int], deaths: Optional[int], assists: Optional[int]) -> float:
    return ((kills or 0) + (assists or 0)) / max(1, deaths or 0)


def compute_score(games: int, wins: int, avg_kda: float, avg_level: float) -> Tuple[int, float]:
    """Return (score in [-10, 10], confidence in [0, 1]) for accumulated duel totals."""
    safe_games = max(1, games)
    smoothed_winrate = (wins + PRIOR_WINS) / (safe_games + PRIOR_GAMES) * 100
    wr_component = clamp((smoothed_winrate - BASELINE_WINRATE) / BASELINE_WINRATE * 10, SCORE_MIN, SCORE_MAX)
    kda_component = clamp((avg_kda - BASELINE_KDA) / BASELINE_KDA * 10, SCORE_MIN, SCORE_MAX)
    level_component = clamp((avg_level - BASELINE_LEVEL) / LEVEL_SPAN * 10, SCORE_MIN, SCORE_MAX)
    raw = WEIGHT_WINRATE * wr_component + WEIGHT_KDA * kda_component + WEIGHT_LEVEL * level_component
    confidence = clamp(safe_games / CONFIDENCE_FULL_GAMES, 0.0, 1.0)
    score = int(clamp(round_half_up(raw * confidence), SCORE_MIN, SCORE_MAX))
    return score, round(confidence, 4)


def patch_from_game_version(game_version: Optional[str]) -> Optional[str]:
    """'14.3.558.1234' -> '14.3'; None when the version is missing or malformed."""
    raw = (game_version or "").strip()
    parts = raw.split(".")
    if len(parts) < 2:
        return None
    try:
        major, minor = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    return f"{major}.{minor}"


def previous_patch(patch: str) -> Optional[str]:
    """'14.3' -> '14.2'. Never crosses a major version: '14.0' -> None."""
    m = _PATCH_RE.match((patch or "").strip())
    if m is None:
        return None
    major, minor = int(m.group(1)), int(m.group(2))
    if minor <= 0:
        return None
    return f"{major}.{minor - 1}"
