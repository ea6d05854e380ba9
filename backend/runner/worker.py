"""
Long-running collector worker.

Phases per cycle: (migrate-puuid)? -> backfill-ranks -> backfill-roles -> collect -> enrich -> sleep.
A collection pass that aborts on an unexpected error is retried with exponential backoff.
The control channel is polled between phases and once per second while sleeping; SIGINT and
SIGTERM request a stop. A rejected API key is retried once with the fallback key source, a
second rejection stops the worker.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from ingestion.live_io import RiotAuthError, RiotConfigError, live_io_metrics_snapshot
from ops.ops_events import log_guardrail_trigger, log_phase
from runner.backfill_runner import BackfillResult, backfill_ranks, backfill_roles, count_missing, enrich_players
from runner.collect_runner import CollectionSummary, run_collection_once
from runner.migration_runner import run_puuid_migration
from runner.services import CollectorServices

logger = logging.getLogger(__name__)

RATE_LIMIT_PAUSE_SECONDS = 60.0
SERVER_ERROR_PAUSE_SECONDS = 120.0
SERVER_ERROR_PAUSE_THRESHOLD = 3
ZERO_CYCLE_ALERT_THRESHOLD = 2
STOP_POLL_SECONDS = 1.0

STOP_REQUESTED = "stop_requested"
STOP_AUTH = "auth"
STOP_MAX_CYCLES = "max_cycles"


@dataclass
class WorkerResult:
    cycles: int
    stop_reason: str
    last_summary: Optional[CollectionSummary] = None


def next_sleep_seconds(summary: CollectionSummary, cycle_delay: float) -> float:
    if summary.rate_limit_hit:
        return RATE_LIMIT_PAUSE_SECONDS
    if summary.server_error_5xx >= SERVER_ERROR_PAUSE_THRESHOLD:
        return SERVER_ERROR_PAUSE_SECONDS
    return cycle_delay


class CollectorWorker:
    def __init__(
        self,
        services: CollectorServices,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        max_cycles: Optional[int] = None,
    ) -> None:
        self._s = services
        self._sleep = sleep
        self._max_cycles = max_cycles
        self.cycle = 0
        self.phase = "starting"
        self.consecutive_zero_cycles = 0
        self.last_summary: Optional[CollectionSummary] = None

    @property
    def control(self):
        return self._s.control

    def _enter(self, phase: str) -> None:
        self.phase = phase
        log_phase(phase, self.cycle)

    def _stop_requested(self) -> bool:
        if self.control.should_stop():
            logger.info("Stop requested during phase %s (cycle %d)", self.phase, self.cycle)
            return True
        return False

    def heartbeat(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "cycle": self.cycle,
            "phase": self.phase,
            "consecutive_zero_cycles": self.consecutive_zero_cycles,
            "live_io": live_io_metrics_snapshot(),
            "aggregation_pending": self._s.feed.pending(),
            "aggregation_errors": len(self._s.feed.errors),
        }
        if self.last_summary is not None:
            payload["last_summary"] = self.last_summary.to_dict()
        self.control.report_heartbeat(payload)
        return payload

    # --- phases ---

    async def _migrate_if_requested(self) -> None:
        request = self.control.migration_requested()
        if request is None:
            return
        self._enter("migrate-puuid")
        settings = self._s.settings
        logger.warning("Running requested identifier migration: %s", request.get("reason", ""))
        try:
            report = await run_puuid_migration(
                self._s.db,
                self._s.client,
                key_version=settings.puuid_key_version,
                batch_size=settings.migrate_batch_size,
                dry_run=settings.migrate_dry_run,
                force=settings.migrate_force,
            )
        except (RiotAuthError, RiotConfigError) as e:
            logger.error("Identifier migration aborted: %s", e)
            self._s.alerts.alert("Riot worker: migration aborted", "API key rejected during migration", error=e)
            return
        except Exception as e:
            logger.exception("Identifier migration failed")
            self._s.alerts.alert("Riot worker: migration failed", "Request kept for the next cycle", error=e)
            return
        self.control.clear_migration_request()
        self._s.alerts.alert(
            "Riot worker: identifier migration done",
            f"{report.mappings} identifiers remapped",
            context={"cycle": self.cycle, "dry_run": report.dry_run, "errors": report.errors},
        )

    async def _rebuild(self, result: BackfillResult) -> None:
        if not result.buckets:
            return
        await self._s.feed.join()
        await self._s.aggregator.rebuild_buckets(result.buckets)

    async def _backfill(self, phase: str) -> None:
        settings = self._s.settings
        self._enter(phase)
        try:
            if phase == "backfill-ranks":
                result = await backfill_ranks(self._s.db, self._s.client, settings.backfill_rank_limit)
            else:
                result = await backfill_roles(self._s.db, self._s.client, settings.backfill_role_match_limit)
            await self._rebuild(result)
        except (RiotAuthError, RiotConfigError) as e:
            # the collect phase decides whether the key is really dead
            logger.warning("%s skipped: %s", phase, e)
        except Exception:
            logger.exception("%s failed", phase)

    async def _collect(self) -> CollectionSummary:
        """Collection pass, retried with exponential backoff when it aborts on an unexpected error."""
        settings = self._s.settings
        self._enter("collect")
        attempts = max(1, settings.crawl_retries)
        fallback_used = False
        attempt = 1
        while True:
            summary = await run_collection_once(self._s)
            if summary.auth_error and not fallback_used:
                fallback_used = True
                logger.warning("API key rejected, retrying once with the fallback key source")
                self._s.client.use_fallback_source()
                summary = await run_collection_once(self._s)
            if not summary.pass_failed or attempt >= attempts:
                break
            backoff = settings.crawl_backoff_seconds * 2 ** (attempt - 1)
            logger.warning(
                "Collection pass %d/%d failed (%s), retrying in %.0fs", attempt, attempts, summary.error, backoff
            )
            if await self._sleep_chunked(backoff):
                return summary
            attempt += 1
        if summary.pass_failed and attempts > 1:
            self._s.alerts.alert(
                "Riot worker: collect failed after retries",
                f"Collection pass failed {attempts} times in a row",
                context={"cycle": self.cycle, "error": summary.error},
            )
        return summary

    async def _enrich(self) -> None:
        settings = self._s.settings
        if settings.enrich_passes <= 0:
            return
        self._enter("enrich")
        for _ in range(settings.enrich_passes):
            try:
                result = await enrich_players(
                    self._s.db, self._s.client, settings.enrich_per_pass, settings.enrich_stale_days
                )
            except (RiotAuthError, RiotConfigError) as e:
                logger.warning("enrich skipped: %s", e)
                return
            except Exception:
                logger.exception("enrich failed")
                return
            if result.updated == 0 or result.remaining == 0 or self._stop_requested():
                return

    async def _sleep_chunked(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if a stop was requested meanwhile."""
        remaining = seconds
        while remaining > 0:
            if self._stop_requested():
                return True
            chunk = min(STOP_POLL_SECONDS, remaining)
            await self._sleep(chunk)
            remaining -= chunk
        return self._stop_requested()

    async def run_cycle(self) -> Optional[str]:
        """One cycle; returns a stop reason or None to continue."""
        self.cycle += 1
        await self._migrate_if_requested()
        if self._stop_requested():
            return STOP_REQUESTED

        missing_rank, missing_role = await count_missing(self._s.db)
        if missing_rank:
            await self._backfill("backfill-ranks")
            if self._stop_requested():
                return STOP_REQUESTED
        if missing_role:
            await self._backfill("backfill-roles")
            if self._stop_requested():
                return STOP_REQUESTED

        summary = await self._collect()
        self.last_summary = summary
        if summary.auth_error:
            log_guardrail_trigger("auth_stop", summary.error or "API key rejected twice")
            self._s.alerts.alert(
                "Riot worker stopped: API key rejected",
                "Both key sources were rejected (401/403). Set a valid RIOT_API_KEY or admin key.",
                context={"cycle": self.cycle},
            )
            return STOP_AUTH
        if self._stop_requested():
            return STOP_REQUESTED

        await self._enrich()
        if self._stop_requested():
            return STOP_REQUESTED

        if summary.collected == 0:
            self.consecutive_zero_cycles += 1
            if self.consecutive_zero_cycles >= ZERO_CYCLE_ALERT_THRESHOLD:
                self._s.alerts.alert(
                    "Riot worker: no new matches",
                    f"No new match for {self.consecutive_zero_cycles} consecutive cycles",
                    context={
                        "cycle": self.cycle,
                        "consecutive_zero_cycles": self.consecutive_zero_cycles,
                        "errors": summary.errors,
                    },
                )
        else:
            self.consecutive_zero_cycles = 0

        self.heartbeat()
        if self._max_cycles is not None and self.cycle >= self._max_cycles:
            return STOP_MAX_CYCLES

        delay = next_sleep_seconds(summary, self._s.settings.cycle_delay_seconds)
        if delay != self._s.settings.cycle_delay_seconds:
            log_guardrail_trigger("cycle_pause", "rate limit" if summary.rate_limit_hit else "5xx", cap_value=delay)
        self._enter("sleep")
        if await self._sleep_chunked(delay):
            return STOP_REQUESTED
        return None

    async def run(self) -> WorkerResult:
        self._enter("starting")
        self.heartbeat()
        reason = STOP_REQUESTED
        while not self._stop_requested():
            outcome = await self.run_cycle()
            if outcome is not None:
                reason = outcome
                break
        self._enter("stopped")
        self.heartbeat()
        if reason != STOP_AUTH:
            self._s.alerts.alert(
                "Riot worker stopped",
                f"Collector worker stopped after {self.cycle} cycle(s)",
                context={"cycles": self.cycle, "reason": reason},
            )
        await self._s.alerts.flush()
        logger.info("Worker stopped after %d cycle(s): %s", self.cycle, reason)
        return WorkerResult(cycles=self.cycle, stop_reason=reason, last_summary=self.last_summary)


def install_signal_handlers(services: CollectorServices) -> None:
    """Route SIGINT/SIGTERM to ``control.request_stop``."""
    loop = asyncio.get_running_loop()

    def _on_signal(signame: str) -> None:
        logger.info("%s received, finishing current phase then exiting", signame)
        services.control.request_stop(signame)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig.name)
        except (NotImplementedError, RuntimeError):
            signal.signal(sig, lambda signum, frame: _on_signal(signal.Signals(signum).name))
