"""Platform routing and solo-queue rank helpers."""

from __future__ import annotations

import sys
from pathlib import Path

_backend = Path(__file__).resolve().parent.parent
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

from ingestion.ranks import (
    UNRANKED,
    RankEntry,
    compute_match_rank_label,
    rank_tier_from_label,
    rank_to_score,
    score_to_rank_label,
)
from ingestion.regions import normalize_platform, platform_from_match_id, regional_route


def test_regional_routes() -> None:
    assert regional_route("euw1") == "europe"
    assert regional_route("NA1") == "americas"
    assert regional_route("kr") == "asia"
    assert regional_route("oc1") == "sea"


def test_normalize_platform_falls_back() -> None:
    assert normalize_platform(" EUN1 ") == "eun1"
    assert normalize_platform("atlantis", "na1") == "na1"
    assert normalize_platform(None, "bogus") == "euw1"


def test_platform_from_match_id() -> None:
    assert platform_from_match_id("KR_7000000000") == "kr"
    assert platform_from_match_id("EUW1_1") == "euw1"
    assert platform_from_match_id("nonsense", "na1") == "na1"


def test_rank_scores_and_labels() -> None:
    assert rank_to_score("GOLD", "II", 40) == 14.4
    assert score_to_rank_label(14.4) == "GOLD_II"
    assert score_to_rank_label(0) == "IRON_IV"
    # apex tiers have no division
    assert rank_to_score("MASTER", "I", 0) == 28
    assert score_to_rank_label(28) == "MASTER"
    assert score_to_rank_label(1000) == "CHALLENGER"


def test_lobby_label_averages_ranked_players() -> None:
    ranks = {
        "a": RankEntry("GOLD", "II", 0),
        "b": RankEntry("PLATINUM", "IV", 0),
        "c": UNRANKED,
        "d": None,
    }
    assert compute_match_rank_label(ranks) == "GOLD_I"


def test_lobby_without_ranked_players_has_no_label() -> None:
    assert compute_match_rank_label({"a": UNRANKED, "b": None}) is None
    assert compute_match_rank_label({}) is None


def test_rank_tier_from_label() -> None:
    assert rank_tier_from_label("GOLD_II") == "GOLD"
    assert rank_tier_from_label("master") == "MASTER"
    assert rank_tier_from_label("") is None
    assert rank_tier_from_label(None) is None
