"""
Structured ops events for collector milestones and guardrails.
Log-level + structured event dict; no random ids.
Timestamps only in log output.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict

OPS_LOGGER_NAME = "ops_events"


def _logger() -> logging.Logger:
    return logging.getLogger(OPS_LOGGER_NAME)


def _event(event_type: str, **kwargs: Any) -> None:
    """Emit a structured ops event (sorted keys)."""
    msg = f"ops_event={event_type} " + " ".join(f"{k}={v!r}" for k, v in sorted(kwargs.items()))
    _logger().info(msg, extra={"ops_event_type": event_type, "ops_event": {**kwargs}})


def log_run_start(job: str, **context: Any) -> float:
    """Log run start; return start time for duration calculation."""
    _event("run_start", job=job, **context)
    return time.perf_counter()


def log_run_end(
    job: str,
    duration_seconds: float,
    counters: Dict[str, Any],
    error: str | None = None,
) -> None:
    """Log run end with duration and summary counters."""
    payload: Dict[str, Any] = {"job": job, "duration_seconds": round(duration_seconds, 4), **counters}
    if error:
        payload["error"] = error
    _event("run_end", **payload)


def log_phase(phase: str, cycle: int) -> None:
    """Worker phase transition (starting, migrate-puuid, backfill-ranks, backfill-roles, collect, sleep)."""
    _event("worker_phase", phase=phase, cycle=cycle)


def log_guardrail_trigger(
    trigger: str,
    detail: str,
    cap_value: int | float | None = None,
) -> None:
    """Log guardrail trigger (per-run cap hit, rate-limit pause, auth stop, etc.)."""
    payload: Dict[str, Any] = {"trigger": trigger, "detail": detail}
    if cap_value is not None:
        payload["cap_value"] = cap_value
    _event("guardrail_trigger", **payload)


def log_migration_summary(report: Dict[str, Any]) -> None:
    _event("puuid_migration", **report)


def log_backfill_summary(kind: str, **counters: Any) -> None:
    _event("backfill", kind=kind, **counters)


def log_matchup_rebuild(patch: str, rank_filter_key: str, rows: int, matches_scanned: int) -> None:
    _event(
        "matchup_rebuild",
        patch=patch,
        rank_filter_key=rank_filter_key,
        rows=rows,
        matches_scanned=matches_scanned,
    )
