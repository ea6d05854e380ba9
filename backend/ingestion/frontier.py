"""
Crawl frontier: which (platform, puuid) pairs get crawled in one collection pass.

Per run the frontier is seeded from operator handles, the persistent ``crawl_queue``, a
small slice of each platform's apex ladder and a sample of the paged league entries below
Master. Up to ``cap`` players are crawled. League-entry players and participants of newly
ingested matches are appended to the in-memory queue and buffered for the persistent
queue, which is written once at the end of the run.

All per-run state lives in ``RunContext`` and is passed explicitly.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional, Set, Tuple

from core.config import Settings
from core.database import DatabaseManager
from ingestion.ingestion_service import MatchIngestionError, MatchIngestionService, NotRankedSoloError
from ingestion.live_io import (
    RiotApiError,
    RiotAuthError,
    RiotConfigError,
    RiotNotFoundError,
    RiotRateLimitedError,
    RiotServerError,
)
from ingestion.ranks import RankEntry
from ingestion.regions import normalize_platform
from ingestion.riot_client import APEX_TIERS, LEAGUE_DIVISIONS, LEAGUE_EXP_TIERS, RiotClient
from ingestion.schema import RiotMatch
from repositories.crawl_queue_repo import CrawlQueueRepository
from repositories.match_repo import MatchRepository
from repositories.seed_player_repo import SeedPlayerRepository

logger = logging.getLogger(__name__)

Pair = Tuple[str, str]


@dataclass(frozen=True)
class SeedHandle:
    platform: str
    game_name: str
    tag_line: Optional[str] = None


def parse_seed_handle(raw: str, default_platform: str) -> Optional[SeedHandle]:
    """``Name#TAG@euw1`` or legacy ``Name@euw1``; the platform part is optional."""
    text = (raw or "").strip()
    if not text:
        return None
    platform = default_platform
    if "@" in text:
        text, _, plat = text.rpartition("@")
        platform = normalize_platform(plat, default_platform)
    name, sep, tag = text.partition("#")
    name = name.strip()
    if not name:
        return None
    return SeedHandle(platform=platform, game_name=name, tag_line=(tag.strip() or None) if sep else None)


def parse_league_division(raw: str) -> Optional[Tuple[str, str]]:
    """``GOLD:I`` -> ("GOLD", "I"); tiers without a paged entries list are rejected."""
    tier, sep, division = (raw or "").strip().upper().partition(":")
    if not sep or tier not in LEAGUE_EXP_TIERS or division not in LEAGUE_DIVISIONS:
        if raw:
            logger.warning("Ignoring league division %r", raw)
        return None
    return tier, division


@dataclass
class RunContext:
    cap: int
    since: Optional[datetime] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    seen: Set[str] = field(default_factory=set)
    queue: Deque[Pair] = field(default_factory=deque)
    discovered: List[Pair] = field(default_factory=list)
    seen_matches: Set[str] = field(default_factory=set)
    rank_cache: Dict[str, Optional[RankEntry]] = field(default_factory=dict)

    collected: int = 0
    errors: int = 0
    skipped_not_ranked: int = 0
    players_processed: int = 0
    discovered_persisted: int = 0
    rate_limit_hit: bool = False
    server_error_5xx: int = 0
    auth_error: bool = False

    def enqueue(self, platform: str, puuid: str) -> bool:
        """Queue puuid unless it was already seen this run (keyed by puuid only)."""
        if not puuid or puuid in self.seen:
            return False
        self.seen.add(puuid)
        self.queue.append((platform, puuid))
        return True

    def discover(self, platform: str, puuid: str) -> None:
        if self.enqueue(platform, puuid):
            self.discovered.append((platform, puuid))

    def record_error(self, exc: BaseException) -> None:
        self.errors += 1
        if isinstance(exc, RiotRateLimitedError):
            self.rate_limit_hit = True
        elif isinstance(exc, RiotServerError):
            self.server_error_5xx += 1

    def counters(self) -> Dict[str, int]:
        return {
            "collected": self.collected,
            "errors": self.errors,
            "players_processed": self.players_processed,
            "skipped_not_ranked": self.skipped_not_ranked,
            "discovered": len(self.discovered),
            "server_error_5xx": self.server_error_5xx,
        }


def _short(puuid: str) -> str:
    return puuid[:12]


class FrontierManager:
    def __init__(
        self,
        client: RiotClient,
        db: DatabaseManager,
        ingestion: MatchIngestionService,
        settings: Settings,
    ) -> None:
        self._client = client
        self._db = db
        self._ingestion = ingestion
        self._settings = settings

    @property
    def primary_platform(self) -> str:
        return normalize_platform(self._settings.primary_region)

    def new_context(self, since: Optional[datetime] = None) -> RunContext:
        return RunContext(cap=self._settings.max_players_per_run, since=since)

    # --- seeds ---

    async def _resolve_handle(self, handle: SeedHandle) -> str:
        if handle.tag_line:
            account = await self._client.get_account_by_riot_id(handle.platform, handle.game_name, handle.tag_line)
            return account.puuid
        summoner = await self._client.get_summoner_by_name(handle.platform, handle.game_name)
        return summoner.puuid

    async def resolve_seeds(self, ctx: RunContext) -> int:
        """Resolve configured and stored seed handles; auth errors abort, other failures skip the seed."""
        added = 0
        for raw in self._settings.seed_players:
            handle = parse_seed_handle(raw, self.primary_platform)
            if handle is None:
                logger.warning("Ignoring malformed seed handle %r", raw)
                continue
            try:
                puuid = await self._resolve_handle(handle)
            except (RiotAuthError, RiotConfigError):
                raise
            except RiotApiError as e:
                ctx.record_error(e)
                logger.warning("Seed %s@%s not resolved: %s", handle.game_name, handle.platform, e)
                continue
            added += int(ctx.enqueue(handle.platform, puuid))

        async with self._db.session() as session:
            stored = await SeedPlayerRepository(session).list_enabled()

        # Provider lookups happen with no session open; new identifiers are written afterwards.
        resolved: List[Tuple[int, str]] = []
        for seed in stored:
            platform = normalize_platform(seed.platform, self.primary_platform)
            puuid = seed.puuid
            if not puuid:
                try:
                    puuid = await self._resolve_handle(SeedHandle(platform, seed.game_name, seed.tag_line))
                except (RiotAuthError, RiotConfigError):
                    raise
                except RiotApiError as e:
                    ctx.record_error(e)
                    logger.warning("Stored seed %s not resolved: %s", seed.game_name, e)
                    continue
                resolved.append((seed.id, puuid))
            added += int(ctx.enqueue(platform, puuid))

        if resolved:
            async with self._db.session() as session:
                seeds = SeedPlayerRepository(session)
                for seed_id, puuid in resolved:
                    await seeds.set_puuid(seed_id, puuid)
        logger.info("Seeds resolved: %d queued", added)
        return added

    # --- persistent queue ---

    async def drain_persistent(self, ctx: RunContext, limit: Optional[int] = None) -> int:
        """Claim up to ``limit`` queue entries (deleted in the same statement) and queue them."""
        limit = self._settings.queue_drain_limit if limit is None else limit
        if limit <= 0:
            return 0
        async with self._db.session() as session:
            claimed = await CrawlQueueRepository(session).claim(limit)
        added = 0
        for platform, puuid in claimed:
            added += int(ctx.enqueue(normalize_platform(platform, self.primary_platform), puuid))
        logger.info("Drained %d queue entries (%d new this run)", len(claimed), added)
        return added

    async def persist_discovered(self, ctx: RunContext) -> int:
        if not ctx.discovered:
            return 0
        async with self._db.session() as session:
            inserted = await CrawlQueueRepository(session).insert_many_ignore_duplicates(ctx.discovered)
        ctx.discovered_persisted = inserted
        logger.info("Persisted %d of %d discovered players to crawl queue", inserted, len(ctx.discovered))
        return inserted

    # --- ladder ---

    async def sample_ladder(self, ctx: RunContext) -> int:
        added = 0
        for platform in self._settings.platforms:
            platform = normalize_platform(platform, self.primary_platform)
            for tier, size in zip(APEX_TIERS, self._settings.ladder_sample):
                if size <= 0:
                    continue
                try:
                    league = await self._client.get_apex_league(platform, tier)
                except (RiotAuthError, RiotConfigError):
                    raise
                except RiotApiError as e:
                    ctx.record_error(e)
                    logger.warning("Ladder %s/%s unavailable: %s", platform, tier, e)
                    continue
                top = sorted(league.entries, key=lambda e: e.league_points, reverse=True)[:size]
                for entry in top:
                    puuid = entry.puuid
                    if not puuid and entry.summoner_id:
                        try:
                            puuid = (await self._client.get_summoner_by_id(platform, entry.summoner_id)).puuid
                        except (RiotAuthError, RiotConfigError):
                            raise
                        except RiotApiError as e:
                            ctx.record_error(e)
                            continue
                    if puuid:
                        added += int(ctx.enqueue(platform, puuid))
        logger.info("Ladder sample queued %d players", added)
        return added

    # --- league entries below Master ---

    async def sample_league_exp(self, ctx: RunContext) -> int:
        """Discover up to ``league_exp_sample`` players per configured tier:division and platform."""
        sample = self._settings.league_exp_sample
        divisions = [d for d in (parse_league_division(raw) for raw in self._settings.league_exp_divisions) if d]
        if sample <= 0 or not divisions:
            return 0
        added = 0
        for platform in self._settings.platforms:
            platform = normalize_platform(platform, self.primary_platform)
            for tier, division in divisions:
                taken = 0
                for page in range(1, self._settings.league_exp_pages + 1):
                    try:
                        entries = await self._client.get_league_exp_entries(platform, tier, division, page)
                    except (RiotAuthError, RiotConfigError):
                        raise
                    except RiotApiError as e:
                        ctx.record_error(e)
                        logger.warning("League %s %s/%s page %d unavailable: %s", platform, tier, division, page, e)
                        break
                    for entry in entries:
                        if taken >= sample:
                            break
                        puuid = entry.puuid
                        if not puuid and entry.summoner_id:
                            try:
                                puuid = (await self._client.get_summoner_by_id(platform, entry.summoner_id)).puuid
                            except (RiotAuthError, RiotConfigError):
                                raise
                            except RiotApiError as e:
                                ctx.record_error(e)
                                continue
                        if puuid and puuid not in ctx.seen:
                            ctx.discover(platform, puuid)
                            taken += 1
                    if taken >= sample or not entries:
                        break
                added += taken
        logger.info("League entries sample discovered %d players", added)
        return added

    # --- crawl ---

    async def process(self, ctx: RunContext) -> None:
        """Crawl queued players until the queue is empty or ``ctx.cap`` players were processed."""
        while ctx.queue and ctx.players_processed < ctx.cap:
            platform, puuid = ctx.queue.popleft()
            ctx.players_processed += 1
            await self.process_player(ctx, platform, puuid)
        if ctx.queue:
            logger.info("Per-run cap %d reached, %d players left in memory", ctx.cap, len(ctx.queue))

    async def process_player(self, ctx: RunContext, platform: str, puuid: str) -> None:
        start_time = int(ctx.since.timestamp()) if ctx.since is not None else None
        try:
            match_ids = await self._client.get_match_ids(
                platform,
                puuid,
                count=self._settings.match_ids_per_player,
                start_time=start_time,
                end_time=int(ctx.started_at.timestamp()),
            )
        except (RiotAuthError, RiotConfigError):
            raise
        except RiotNotFoundError:
            logger.debug("No match history for %s", _short(puuid))
            return
        except RiotApiError as e:
            ctx.record_error(e)
            logger.warning("Match ids for %s failed: %s", _short(puuid), e)
            return

        for match_id in match_ids:
            if match_id in ctx.seen_matches:
                continue
            ctx.seen_matches.add(match_id)
            await self._collect_match(ctx, platform, match_id)

    async def _collect_match(self, ctx: RunContext, platform: str, match_id: str) -> None:
        async with self._db.session() as session:
            if await MatchRepository(session).exists(match_id):
                return
        try:
            match = await self._client.get_match(platform, match_id)
        except (RiotAuthError, RiotConfigError):
            raise
        except RiotNotFoundError:
            logger.debug("Match %s not found, skipped", match_id)
            return
        except RiotApiError as e:
            ctx.record_error(e)
            logger.warning("Match %s fetch failed: %s", match_id, e)
            return

        if not match.is_ranked_solo():
            ctx.skipped_not_ranked += 1
            logger.debug("Match %s is queue %s, skipped", match_id, match.info.queue_id)
            return

        ranks = await self._participant_ranks(ctx, platform, match) if self._settings.fetch_participant_ranks else None
        try:
            result = await self._ingestion.ingest(platform, match, ranks)
        except NotRankedSoloError:
            ctx.skipped_not_ranked += 1
            return
        except MatchIngestionError as e:
            ctx.errors += 1
            logger.warning("Match %s rejected: %s", match_id, e)
            return
        if not result.inserted:
            return
        ctx.collected += 1
        for p in match.info.participants:
            ctx.discover(platform, p.puuid)

    async def _participant_ranks(
        self, ctx: RunContext, platform: str, match: RiotMatch
    ) -> Dict[str, Optional[RankEntry]]:
        """Solo rank per participant; failed lookups leave that participant without a rank."""
        ranks: Dict[str, Optional[RankEntry]] = {}
        for p in match.info.participants:
            if p.puuid not in ctx.rank_cache:
                try:
                    ctx.rank_cache[p.puuid] = await self._client.get_solo_rank(platform, p.puuid)
                except (RiotAuthError, RiotConfigError):
                    raise
                except RiotApiError as e:
                    logger.debug("Rank lookup for %s failed: %s", _short(p.puuid), e)
                    if isinstance(e, RiotRateLimitedError):
                        ctx.rate_limit_hit = True
                    ranks[p.puuid] = None
                    continue
            ranks[p.puuid] = ctx.rank_cache[p.puuid]
        return ranks

    async def run(self, ctx: RunContext) -> RunContext:
        """One full frontier pass: seeds, drain, ladder, league entries, crawl, persist discoveries."""
        await self.resolve_seeds(ctx)
        await self.drain_persistent(ctx)
        await self.sample_ladder(ctx)
        await self.sample_league_exp(ctx)
        try:
            await self.process(ctx)
        finally:
            await self.persist_discovered(ctx)
        return ctx
