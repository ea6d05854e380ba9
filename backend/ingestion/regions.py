"""Platform (e.g. euw1) to regional routing host (e.g. europe) mapping."""

from __future__ import annotations

from typing import Dict, Optional

PLATFORM_TO_REGION: Dict[str, str] = {
    "euw1": "europe",
    "eun1": "europe",
    "tr1": "europe",
    "ru": "europe",
    "me1": "europe",
    "na1": "americas",
    "br1": "americas",
    "la1": "americas",
    "la2": "americas",
    "kr": "asia",
    "jp1": "asia",
    "oc1": "sea",
    "ph2": "sea",
    "sg2": "sea",
    "th2": "sea",
    "tw2": "sea",
    "vn2": "sea",
}

DEFAULT_PLATFORM = "euw1"


def normalize_platform(value: Optional[str], default: str = DEFAULT_PLATFORM) -> str:
    """Lowercase and validate a platform code; unknown values fall back to ``default``."""
    v = (value or "").strip().lower()
    if v in PLATFORM_TO_REGION:
        return v
    fallback = (default or DEFAULT_PLATFORM).strip().lower()
    return fallback if fallback in PLATFORM_TO_REGION else DEFAULT_PLATFORM


def regional_route(platform: str) -> str:
    return PLATFORM_TO_REGION.get(normalize_platform(platform), "europe")


def platform_from_match_id(match_id: str, default: str = DEFAULT_PLATFORM) -> str:
    """EUW1_7000000000 -> euw1."""
    prefix = (match_id or "").split("_", 1)[0]
    return normalize_platform(prefix, default)
