"""Operational plumbing: ops events, alerts, worker control channel."""

from .ops_events import (
    log_backfill_summary,
    log_guardrail_trigger,
    log_matchup_rebuild,
    log_migration_summary,
    log_phase,
    log_run_end,
    log_run_start,
)

__all__ = [
    "log_backfill_summary",
    "log_guardrail_trigger",
    "log_matchup_rebuild",
    "log_migration_summary",
    "log_phase",
    "log_run_end",
    "log_run_start",
]
