"""
Async Riot API client with per-route rate limiting and bounded retries.

Every call goes through ``RouteRateLimiter.acquire(route)`` first. Retry policy:

- 429: sleep ``Retry-After`` (default 60s), plus a 3s penalty once two or more 429s
  were seen in the last minute; at most 3 retries, then ``RiotRateLimitedError``.
- 5xx / timeouts / transport errors: exponential backoff 5, 10, 20, 40, 80s (``Retry-After``
  wins when present); at most 5 retries, then ``RiotServerError`` / ``RiotTimeoutError``.
- 401/403: ``RiotAuthError``, never retried. 404: ``RiotNotFoundError``.
- Any error whose provider message contains the decrypt-failure marker fires the
  ``on_identifier_rotation`` hook and raises ``RiotIdentifierRotationError``.

2xx bodies are validated through the models in ``ingestion.schema``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError

from ingestion.api_key import ApiKeyProvider
from ingestion.live_io import (
    LiveIOMetrics,
    RiotApiError,
    RiotAuthError,
    RiotConfigError,
    RiotIdentifierRotationError,
    RiotNotFoundError,
    RiotPayloadError,
    RiotRateLimitedError,
    RiotServerError,
    RiotTimeoutError,
    RollingCounter,
    default_metrics,
    is_decrypt_failure,
)
from ingestion.rate_limiter import RouteRateLimiter, get_rate_limiter
from ingestion.ranks import RankEntry, UNRANKED
from ingestion.regions import normalize_platform, regional_route
from ingestion.schema import (
    RANKED_SOLO_QUEUE_ID,
    RANKED_SOLO_QUEUE_TYPE,
    LeagueEntry,
    LeagueEntryList,
    LeagueList,
    MatchIdList,
    ProviderErrorEnvelope,
    RiotAccount,
    RiotMatch,
    RiotSummoner,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

MAX_RATE_LIMIT_RETRIES = 3
DEFAULT_RETRY_AFTER_SECONDS = 60.0
BURST_PENALTY_SECONDS = 3.0
MAX_SERVER_RETRIES = 5
SERVER_BACKOFF_BASE_SECONDS = 5.0

APEX_TIERS = ("challenger", "grandmaster", "master")
LEAGUE_EXP_TIERS = ("DIAMOND", "EMERALD", "PLATINUM", "GOLD", "SILVER", "BRONZE", "IRON")
LEAGUE_DIVISIONS = ("I", "II", "III", "IV")


def _retry_after(response: httpx.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


def _provider_message(response: httpx.Response) -> str:
    try:
        envelope = ProviderErrorEnvelope.model_validate(response.json())
        if envelope.status is not None and envelope.status.message:
            return envelope.status.message
    except (ValueError, ValidationError):
        pass
    return response.text[:300]


def _short(puuid: str) -> str:
    return puuid[:12]


class RiotClient:
    """Rate-limited, retrying client for the Riot endpoints the collector uses."""

    def __init__(
        self,
        key_provider: ApiKeyProvider,
        *,
        limiter: Optional[RouteRateLimiter] = None,
        metrics: Optional[LiveIOMetrics] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 15.0,
        fast_timeout_seconds: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_identifier_rotation: Optional[Callable[[str], None]] = None,
        recent_rate_limits: Optional[RollingCounter] = None,
        host_template: str = "https://{host}.api.riotgames.com",
    ) -> None:
        self._keys = key_provider
        self._limiter = limiter or get_rate_limiter()
        self.metrics = metrics or default_metrics()
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(transport=transport, timeout=timeout_seconds)
        self._timeout = timeout_seconds
        self._fast_timeout = fast_timeout_seconds
        self._sleep = sleep
        self._on_rotation = on_identifier_rotation
        self._recent_429 = recent_rate_limits or RollingCounter(60.0)
        self._host_template = host_template
        self._cached_key: Optional[str] = None

    @classmethod
    def from_settings(cls, settings, **kwargs: Any) -> "RiotClient":
        kwargs.setdefault("limiter", get_rate_limiter(settings.rate_limit_fraction))
        kwargs.setdefault("timeout_seconds", settings.http_timeout_seconds)
        kwargs.setdefault("fast_timeout_seconds", settings.http_fast_timeout_seconds)
        kwargs.setdefault("host_template", settings.api_host_template)
        return cls(ApiKeyProvider.from_settings(settings), **kwargs)

    async def __aenter__(self) -> "RiotClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # --- credentials ---

    def _api_key(self) -> str:
        if self._cached_key is None:
            self._cached_key = self._keys.current_api_key()
        if not self._cached_key:
            raise RiotConfigError("No Riot API key configured (RIOT_API_KEY or admin key file)")
        return self._cached_key

    def invalidate_key(self) -> None:
        """Drop the cached key; the next call resolves it again."""
        self._cached_key = None

    def use_fallback_source(self) -> None:
        self._keys.use_fallback_source()
        self.invalidate_key()

    def has_api_key(self) -> bool:
        try:
            self._api_key()
        except RiotConfigError:
            return False
        return True

    # --- transport ---

    def _url(self, host: str, path: str) -> str:
        return self._host_template.format(host=host) + path

    def _notify_rotation(self, route: str, message: str) -> None:
        logger.error("Identifier decryption failure on route=%s: %s", route, message)
        if self._on_rotation is None:
            return
        try:
            self._on_rotation(message)
        except Exception:
            logger.exception("Identifier rotation hook failed")

    async def request_json(
        self,
        route: str,
        host: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        fast: bool = False,
    ) -> Any:
        """GET host/path with rate limiting and the retry policy above; return decoded JSON."""
        key = self._api_key()
        url = self._url(host, path)
        timeout = self._fast_timeout if fast else self._timeout
        rate_limit_retries = 0
        server_retries = 0

        while True:
            await self._limiter.acquire(route)
            t0 = time.perf_counter()
            try:
                response = await self._http.get(
                    url, params=params, headers={"X-Riot-Token": key}, timeout=timeout
                )
            except httpx.TimeoutException as e:
                latency_ms = (time.perf_counter() - t0) * 1000
                self.metrics.record_request(success=False, latency_ms=latency_ms, timeout=True)
                if server_retries >= MAX_SERVER_RETRIES:
                    raise RiotTimeoutError(
                        f"Timed out after {server_retries + 1} attempts: {route}", route=route
                    ) from e
                delay = SERVER_BACKOFF_BASE_SECONDS * (2 ** server_retries)
                server_retries += 1
                self.metrics.record_retry()
                logger.warning("Timeout on route=%s, retry %d in %.0fs", route, server_retries, delay)
                await self._sleep(delay)
                continue
            except httpx.RequestError as e:
                latency_ms = (time.perf_counter() - t0) * 1000
                self.metrics.record_request(success=False, latency_ms=latency_ms, server_error=True)
                if server_retries >= MAX_SERVER_RETRIES:
                    raise RiotServerError(f"Transport error on {route}: {e!s}", route=route) from e
                delay = SERVER_BACKOFF_BASE_SECONDS * (2 ** server_retries)
                server_retries += 1
                self.metrics.record_retry()
                logger.warning("Transport error on route=%s (%s), retry %d in %.0fs", route, e, server_retries, delay)
                await self._sleep(delay)
                continue

            latency_ms = (time.perf_counter() - t0) * 1000
            status = response.status_code
            if 200 <= status < 300:
                self.metrics.record_request(success=True, latency_ms=latency_ms)
                try:
                    return response.json()
                except ValueError as e:
                    raise RiotPayloadError(
                        f"Invalid JSON from {route}", status_code=status, route=route
                    ) from e

            message = _provider_message(response)
            if is_decrypt_failure(message):
                self.metrics.record_request(success=False, latency_ms=latency_ms)
                self._notify_rotation(route, message)
                raise RiotIdentifierRotationError(
                    f"Identifier decryption failed on {route}",
                    status_code=status,
                    route=route,
                    provider_message=message,
                )

            if status == 429:
                self.metrics.record_request(success=False, latency_ms=latency_ms, rate_limited=True)
                recent = self._recent_429.record()
                if rate_limit_retries >= MAX_RATE_LIMIT_RETRIES:
                    raise RiotRateLimitedError(
                        f"Rate limited on {route} after {rate_limit_retries} retries",
                        status_code=status,
                        route=route,
                        provider_message=message,
                    )
                delay = _retry_after(response)
                if delay is None:
                    delay = DEFAULT_RETRY_AFTER_SECONDS
                if recent >= 2:
                    delay += BURST_PENALTY_SECONDS
                rate_limit_retries += 1
                self.metrics.record_retry()
                logger.warning(
                    "429 on route=%s, retry %d/%d in %.0fs", route, rate_limit_retries, MAX_RATE_LIMIT_RETRIES, delay
                )
                await self._sleep(delay)
                continue

            if status in (401, 403):
                self.metrics.record_request(success=False, latency_ms=latency_ms, auth_failure=True)
                raise RiotAuthError(
                    f"API key rejected ({status}) on {route}",
                    status_code=status,
                    route=route,
                    provider_message=message,
                )

            if status == 404:
                self.metrics.record_request(success=False, latency_ms=latency_ms, not_found=True)
                raise RiotNotFoundError(
                    f"Not found on {route}", status_code=status, route=route, provider_message=message
                )

            if status >= 500:
                self.metrics.record_request(success=False, latency_ms=latency_ms, server_error=True)
                if server_retries >= MAX_SERVER_RETRIES:
                    raise RiotServerError(
                        f"HTTP {status} on {route} after {server_retries} retries",
                        status_code=status,
                        route=route,
                        provider_message=message,
                    )
                delay = _retry_after(response)
                if delay is None:
                    delay = SERVER_BACKOFF_BASE_SECONDS * (2 ** server_retries)
                server_retries += 1
                self.metrics.record_retry()
                logger.warning("HTTP %d on route=%s, retry %d in %.0fs", status, route, server_retries, delay)
                await self._sleep(delay)
                continue

            self.metrics.record_request(success=False, latency_ms=latency_ms)
            raise RiotApiError(
                f"HTTP {status} on {route}: {message}", status_code=status, route=route, provider_message=message
            )

    async def _get_model(
        self,
        model: Type[M],
        route: str,
        host: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        fast: bool = False,
    ) -> M:
        data = await self.request_json(route, host, path, params=params, fast=fast)
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise RiotPayloadError(f"Unexpected payload from {route}: {e.error_count()} errors", route=route) from e

    # --- endpoints ---

    async def get_apex_league(self, platform: str, tier: str) -> LeagueList:
        tier = tier.lower()
        if tier not in APEX_TIERS:
            raise ValueError(f"Unsupported ladder tier: {tier}")
        return await self._get_model(
            LeagueList,
            "league-challenger-master-grandmaster",
            normalize_platform(platform),
            f"/lol/league/v4/{tier}leagues/by-queue/{RANKED_SOLO_QUEUE_TYPE}",
        )

    async def get_account_by_riot_id(self, platform: str, game_name: str, tag_line: str) -> RiotAccount:
        return await self._get_model(
            RiotAccount,
            "account",
            regional_route(platform),
            f"/riot/account/v1/accounts/by-riot-id/{quote(game_name, safe='')}/{quote(tag_line, safe='')}",
        )

    async def get_account_by_puuid(self, platform: str, puuid: str) -> RiotAccount:
        return await self._get_model(
            RiotAccount, "account", regional_route(platform), f"/riot/account/v1/accounts/by-puuid/{puuid}"
        )

    async def get_summoner_by_name(self, platform: str, name: str) -> RiotSummoner:
        return await self._get_model(
            RiotSummoner,
            "summoner-by-name",
            normalize_platform(platform),
            f"/lol/summoner/v4/summoners/by-name/{quote(name, safe='')}",
        )

    async def get_summoner_by_id(self, platform: str, summoner_id: str) -> RiotSummoner:
        return await self._get_model(
            RiotSummoner, "summoner-by-id", normalize_platform(platform), f"/lol/summoner/v4/summoners/{summoner_id}"
        )

    async def get_match_ids(
        self,
        platform: str,
        puuid: str,
        count: int = 20,
        queue: int = RANKED_SOLO_QUEUE_ID,
        start_time: Optional[int] = None,
        end_time: Optional[int] = None,
    ) -> List[str]:
        """Recent match ids (newest first) filtered by queue and optional epoch-second window."""
        params: Dict[str, Any] = {"queue": queue, "start": 0, "count": max(1, min(100, count))}
        if start_time is not None:
            params["startTime"] = int(start_time)
        if end_time is not None:
            params["endTime"] = int(end_time)
        data = await self.request_json(
            "match-ids", regional_route(platform), f"/lol/match/v5/matches/by-puuid/{puuid}/ids", params=params
        )
        try:
            return MatchIdList.validate_python(data)
        except ValidationError as e:
            raise RiotPayloadError("Unexpected payload from match-ids", route="match-ids") from e

    async def get_match(self, platform: str, match_id: str) -> RiotMatch:
        return await self._get_model(
            RiotMatch, "match", regional_route(platform), f"/lol/match/v5/matches/{match_id}"
        )

    async def get_league_entries_by_puuid(self, platform: str, puuid: str, fast: bool = True) -> List[LeagueEntry]:
        data = await self.request_json(
            "league-entries-by-puuid",
            normalize_platform(platform),
            f"/lol/league/v4/entries/by-puuid/{puuid}",
            fast=fast,
        )
        try:
            return LeagueEntryList.validate_python(data)
        except ValidationError as e:
            raise RiotPayloadError(
                "Unexpected payload from league-entries-by-puuid", route="league-entries-by-puuid"
            ) from e

    async def get_league_exp_entries(self, platform: str, tier: str, division: str, page: int = 1) -> List[LeagueEntry]:
        """One page of solo/duo entries for a tier and division below Master."""
        tier = tier.upper()
        division = division.upper()
        if tier not in LEAGUE_EXP_TIERS:
            raise ValueError(f"Unsupported league tier: {tier}")
        if division not in LEAGUE_DIVISIONS:
            raise ValueError(f"Unsupported league division: {division}")
        data = await self.request_json(
            "league-entries",
            normalize_platform(platform),
            f"/lol/league/v4/entries/{RANKED_SOLO_QUEUE_TYPE}/{tier}/{division}",
            params={"page": max(1, page)},
        )
        try:
            return LeagueEntryList.validate_python(data)
        except ValidationError as e:
            raise RiotPayloadError("Unexpected payload from league-entries", route="league-entries") from e

    async def get_solo_rank(self, platform: str, puuid: str) -> RankEntry:
        """Solo/duo rank of puuid; ``UNRANKED`` when the player has no solo entry."""
        entries = await self.get_league_entries_by_puuid(platform, puuid)
        for entry in entries:
            if entry.queue_type == RANKED_SOLO_QUEUE_TYPE and entry.tier:
                return RankEntry(tier=entry.tier.upper(), division=entry.rank, lp=entry.league_points)
        logger.debug("No solo/duo entry for %s", _short(puuid))
        return UNRANKED
