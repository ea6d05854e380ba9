"""Matchup score formula: bounds, confidence ramp, monotonicity in wins; patch helpers."""

from __future__ import annotations

import sys
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

import pytest

from matchups.scoring import (
    compute_score,
    kda,
    patch_from_game_version,
    previous_patch,
    round_half_up,
)


def test_score_and_confidence_stay_in_bounds() -> None:
    extremes = [
        (1000, 1000, 100.0, 30.0),
        (1000, 0, 0.0, 0.0),
        (0, 0, 0.0, 0.0),
        (1, 1, 50.0, 18.0),
    ]
    for games, wins, avg_kda, avg_level in extremes:
        score, confidence = compute_score(games, wins, avg_kda, avg_level)
        assert -10 <= score <= 10
        assert 0.0 <= confidence <= 1.0


def test_saturated_duel_hits_the_rails() -> None:
    assert compute_score(1000, 1000, 100.0, 30.0)[0] == 10
    assert compute_score(1000, 0, 0.0, 0.0)[0] == -10


def test_confidence_ramps_to_sixty_games() -> None:
    assert compute_score(30, 15, 3.0, 14.0)[1] == pytest.approx(0.5)
    assert compute_score(60, 30, 3.0, 14.0)[1] == 1.0
    assert compute_score(600, 300, 3.0, 14.0)[1] == 1.0
    # zero games is treated as one
    assert compute_score(0, 0, 3.0, 14.0) == (0, round(1 / 60, 4))


def test_score_is_monotonic_in_wins() -> None:
    scores = [compute_score(60, wins, 3.0, 14.0)[0] for wins in range(61)]
    assert scores == sorted(scores)
    assert scores[0] < 0 < scores[-1]


def test_known_value_sixty_games() -> None:
    # wr (60+10)/(60+20) = 87.5 -> 7.5; kda 3.5 -> 1.67; level 14 -> 0
    assert compute_score(60, 60, 3.5, 14.0) == (6, 1.0)
    assert compute_score(60, 0, 3.5, 14.0) == (-6, 1.0)


def test_round_half_up() -> None:
    assert round_half_up(0.5) == 1
    assert round_half_up(1.5) == 2
    assert round_half_up(2.49) == 2
    assert round_half_up(-0.4) == 0


def test_kda_guards_zero_deaths() -> None:
    assert kda(3, 0, 4) == 7.0
    assert kda(None, None, None) == 0.0
    assert kda(2, 4, 2) == 1.0


def test_patch_from_game_version() -> None:
    assert patch_from_game_version("14.3.555.1234") == "14.3"
    assert patch_from_game_version("14.10") == "14.10"
    assert patch_from_game_version("14") is None
    assert patch_from_game_version("abc.def") is None
    assert patch_from_game_version(None) is None


def test_previous_patch_never_crosses_major() -> None:
    assert previous_patch("14.3") == "14.2"
    assert previous_patch("14.10") == "14.9"
    assert previous_patch("14.0") is None
    assert previous_patch("garbage") is None
