"""
One collection pass: seeds -> queue drain -> ladder sample -> crawl -> persist discoveries.

``run_collection_once`` is the entry point used by the scheduler, the CLI and the worker.
Item-level failures are counted in the summary; auth and setup failures end the pass,
raise an alert and are reported through ``CollectionSummary.error``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ingestion.frontier import RunContext
from ingestion.live_io import RiotAuthError, RiotConfigError
from ops.ops_events import log_guardrail_trigger, log_run_end, log_run_start
from repositories.collector_state_repo import CollectorStateRepository
from runner.services import CollectorServices

logger = logging.getLogger(__name__)

JOB_NAME = "riot_match_collect"


@dataclass
class CollectionSummary:
    collected: int = 0
    errors: int = 0
    auth_error: bool = False
    rate_limit_hit: bool = False
    server_error_5xx: int = 0
    players_processed: int = 0
    skipped_not_ranked: int = 0
    discovered: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None
    aggregation_errors: int = 0
    # the pass aborted on an unexpected error and may be retried
    pass_failed: bool = False

    @classmethod
    def from_context(cls, ctx: RunContext) -> "CollectionSummary":
        return cls(
            collected=ctx.collected,
            errors=ctx.errors,
            auth_error=ctx.auth_error,
            rate_limit_hit=ctx.rate_limit_hit,
            server_error_5xx=ctx.server_error_5xx,
            players_processed=ctx.players_processed,
            skipped_not_ranked=ctx.skipped_not_ranked,
            discovered=ctx.discovered_persisted,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


async def run_collection_once(services: CollectorServices) -> CollectionSummary:
    """Run one collection pass and record it in ``collector_state``."""
    settings = services.settings
    t0 = log_run_start(JOB_NAME, platforms=",".join(settings.platforms), cap=settings.max_players_per_run)
    started_at = datetime.now(timezone.utc)
    async with services.db.session() as session:
        state = CollectorStateRepository(session)
        since = await state.last_success_at(JOB_NAME)
        await state.mark_started(JOB_NAME, started_at)

    ctx = services.frontier.new_context(since=since)
    ctx.started_at = started_at
    error: Optional[str] = None
    pass_failed = False
    if not services.client.has_api_key():
        error = "RIOT_API_KEY not configured"
        logger.warning("Collection skipped: %s", error)
        services.alerts.alert("Riot collect: no API key", error, context={"phase": "setup"})
    else:
        try:
            await services.frontier.run(ctx)
        except RiotAuthError as e:
            ctx.auth_error = True
            error = f"auth: {e}"
            services.client.invalidate_key()
            log_guardrail_trigger("auth_stop", str(e))
            services.alerts.alert(
                "Riot collect: API key rejected",
                "Collection aborted; the key was invalidated",
                error=e,
                context={"phase": "collect", **ctx.counters()},
            )
        except RiotConfigError as e:
            error = str(e)
            services.alerts.alert("Riot collect: no API key", error, context={"phase": "collect"})
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            pass_failed = True
            logger.exception("Collection pass failed")
            services.alerts.alert(
                "Riot collect failed", "Collection pass aborted", error=e, context={"phase": "collect", **ctx.counters()}
            )

    await services.feed.join()
    summary = CollectionSummary.from_context(ctx)
    summary.error = error
    summary.aggregation_errors = len(services.feed.errors)
    summary.pass_failed = pass_failed
    if ctx.rate_limit_hit:
        log_guardrail_trigger("rate_limit", "429 retries exhausted during pass")

    finished_at = datetime.now(timezone.utc)
    summary.duration_seconds = round((finished_at - started_at).total_seconds(), 3)
    # the next window starts where this pass started
    async with services.db.session() as session:
        await CollectorStateRepository(session).mark_finished(JOB_NAME, started_at, summary.to_dict(), error)

    log_run_end(
        JOB_NAME,
        time.perf_counter() - t0,
        {
            "collected": summary.collected,
            "errors": summary.errors,
            "auth_error": summary.auth_error,
            "rate_limit_hit": summary.rate_limit_hit,
            "server_error_5xx": summary.server_error_5xx,
        },
        error=error,
    )
    return summary
