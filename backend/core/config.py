import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Tuple


def _default_database_url() -> str:
    return "sqlite+aiosqlite:///./collector.db"


def _env_int(name: str, default: int, minimum: Optional[int] = None, maximum: Optional[int] = None) -> int:
    """Read an int from env; invalid or missing values fall back to default, then clamp."""
    value = default
    raw = os.getenv(name)
    if raw is not None and raw.strip():
        try:
            value = int(raw.strip())
        except ValueError:
            value = default
    if minimum is not None:
        value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# Tier:division pairs below Master sampled for new players each pass.
DEFAULT_LEAGUE_EXP_DIVISIONS = ("EMERALD:I", "PLATINUM:I", "GOLD:I", "SILVER:I")


def _ladder_sample(raw: str) -> Tuple[int, int, int]:
    """Parse 'challenger,grandmaster,master' per-tier sample sizes (default 4,3,3)."""
    default = (4, 3, 3)
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 3:
        return default
    try:
        values = tuple(max(0, int(p)) for p in parts)
    except ValueError:
        return default
    return values  # type: ignore[return-value]


@dataclass
class Settings:
    """Collector settings loaded from environment variables with safe defaults."""

    app_name: str = "LoL Matchup Collector"
    env: str = "dev"
    database_url: str = ""  # set from from_env
    log_level: str = "INFO"

    riot_api_key: Optional[str] = None
    api_key_file: str = "data/admin/riot-apikey.json"
    prefer_env_key: bool = True
    api_host_template: str = "https://{host}.api.riotgames.com"

    platforms: List[str] = field(default_factory=lambda: ["euw1", "eun1"])
    primary_region: str = "euw1"
    seed_players: List[str] = field(default_factory=list)

    max_players_per_run: int = 50
    match_ids_per_player: int = 20
    queue_drain_limit: int = 100
    ladder_sample: Tuple[int, int, int] = (4, 3, 3)
    league_exp_divisions: List[str] = field(default_factory=lambda: list(DEFAULT_LEAGUE_EXP_DIVISIONS))
    league_exp_sample: int = 5
    league_exp_pages: int = 1
    fetch_participant_ranks: bool = True

    cron_schedule: str = "0 * * * *"
    backfill_rank_limit: int = 200
    backfill_role_match_limit: int = 50
    enrich_passes: int = 1
    enrich_per_pass: int = 50
    enrich_stale_days: int = 30

    migrate_dry_run: bool = False
    migrate_batch_size: int = 50
    migrate_force: bool = False
    puuid_key_version: str = "prod"

    cycle_delay_seconds: float = 60.0
    crawl_retries: int = 3
    crawl_backoff_seconds: float = 30.0
    rate_limit_fraction: float = 1.0
    http_timeout_seconds: float = 15.0
    http_fast_timeout_seconds: float = 5.0
    control_dir: str = "data/cron"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings from environment variables."""
        db_url = os.getenv("DATABASE_URL") or _default_database_url()
        api_key = (os.getenv("RIOT_API_KEY") or "").strip() or None
        fraction = _env_float("RIOT_RATE_LIMIT_FRACTION", 1.0)
        if not 0 < fraction <= 1:
            fraction = 1.0
        return cls(
            app_name=os.getenv("APP_NAME", cls.app_name),
            env=os.getenv("ENV", cls.env),
            database_url=db_url,
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
            riot_api_key=api_key,
            api_key_file=os.getenv("RIOT_API_KEY_FILE", cls.api_key_file),
            prefer_env_key=_env_bool("RIOT_PREFER_ENV_KEY", True),
            api_host_template=(os.getenv("RIOT_API_HOST_TEMPLATE") or "").strip() or cls.api_host_template,
            platforms=[p.lower() for p in _env_list("RIOT_PLATFORMS", "euw1,eun1")],
            primary_region=(os.getenv("RIOT_PRIMARY_REGION") or cls.primary_region).strip().lower(),
            seed_players=_env_list("RIOT_SEED_PLAYERS", ""),
            max_players_per_run=_env_int("RIOT_MATCH_MAX_PLAYERS", 50, minimum=20),
            match_ids_per_player=_env_int("RIOT_MATCH_IDS_PER_PLAYER", 20, minimum=1, maximum=100),
            queue_drain_limit=_env_int("RIOT_QUEUE_DRAIN_LIMIT", 100, minimum=0),
            ladder_sample=_ladder_sample(os.getenv("RIOT_LADDER_SAMPLE", "4,3,3")),
            league_exp_divisions=[
                d.upper() for d in _env_list("RIOT_LEAGUE_EXP_DIVISIONS", ",".join(DEFAULT_LEAGUE_EXP_DIVISIONS))
            ],
            league_exp_sample=_env_int("RIOT_LEAGUE_EXP_SAMPLE", 5, minimum=0, maximum=205),
            league_exp_pages=_env_int("RIOT_LEAGUE_EXP_PAGES", 1, minimum=1, maximum=50),
            fetch_participant_ranks=_env_bool("RIOT_FETCH_PARTICIPANT_RANKS", True),
            cron_schedule=os.getenv("RIOT_MATCH_CRON_SCHEDULE", cls.cron_schedule),
            backfill_rank_limit=_env_int("RIOT_BACKFILL_RANK_LIMIT", 200, minimum=1, maximum=500),
            backfill_role_match_limit=_env_int("RIOT_BACKFILL_ROLE_MATCH_LIMIT", 50, minimum=1, maximum=500),
            enrich_passes=_env_int("RIOT_MATCH_ENRICH_PASSES", 1, minimum=0),
            enrich_per_pass=_env_int("RIOT_MATCH_ENRICH_PER_PASS", 50, minimum=10),
            enrich_stale_days=_env_int("RIOT_ENRICH_STALE_DAYS", 30, minimum=1),
            migrate_dry_run=_env_bool("RIOT_MIGRATE_PUUID_DRY_RUN", False),
            migrate_batch_size=_env_int("RIOT_MIGRATE_PUUID_BATCH", 50, minimum=10),
            migrate_force=_env_bool("RIOT_MIGRATE_PUUID_FORCE", False),
            puuid_key_version=(os.getenv("RIOT_PUUID_KEY_VERSION") or "prod").strip() or "prod",
            cycle_delay_seconds=max(0.0, _env_float("RIOT_MATCH_CYCLE_DELAY_SECONDS", 60.0)),
            crawl_retries=_env_int("RIOT_MATCH_CRAWL_RETRIES", 3, minimum=1),
            crawl_backoff_seconds=max(5.0, _env_float("RIOT_MATCH_CRAWL_BACKOFF_SECONDS", 30.0)),
            rate_limit_fraction=fraction,
            http_timeout_seconds=max(1.0, _env_float("RIOT_HTTP_TIMEOUT_SECONDS", 15.0)),
            http_fast_timeout_seconds=max(0.5, _env_float("RIOT_HTTP_FAST_TIMEOUT_SECONDS", 5.0)),
            control_dir=os.getenv("RIOT_CONTROL_DIR", cls.control_dir),
        )


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings.from_env()
