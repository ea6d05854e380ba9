"""
Collector CLI: collection pass, worker loop, identifier migration, backfills, matchup rebuild, reads.
Usage: python tools/collector.py collect-once
        python tools/collector.py worker [--max-cycles N]
        python tools/collector.py migrate-puuid [--dry-run] [--force]
        python tools/collector.py rebuild-matchups --patch 14.3 [--rank-tier GOLD]
        python tools/collector.py backfill-ranks [--limit N] | backfill-roles [--limit N]
        python tools/collector.py tier-list --patch 14.3 [--lane TOP] [--rank-tier GOLD]
        python tools/collector.py queue-stats | show-config | stub-server [--port 8010]
Exit codes: 0 success, 1 run-level failure, 2 API key rejected.
Schedule ``collect-once`` from cron with RIOT_MATCH_CRON_SCHEDULE (see show-config).
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional

_backend = Path(__file__).resolve().parent.parent / "backend"
if str(_backend) not in sys.path:
    sys.path.insert(0, str(_backend))

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_AUTH = 2


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def _run_with_services(fn: Callable[[Any], Awaitable[int]]) -> int:
    """Init settings, logging and the database, build the collector, run fn(services), clean up."""
    from core.config import get_settings
    from core.database import dispose_database, get_database_manager, init_database
    from core.logging import setup_logging
    from runner.services import build_services

    async def _run() -> int:
        settings = get_settings()
        setup_logging(settings)
        await init_database(settings.database_url, create_tables=True)
        services = build_services(settings, get_database_manager())
        try:
            return await fn(services)
        finally:
            await services.aclose()
            await dispose_database()

    return asyncio.run(_run())


def _cmd_collect_once(_args: argparse.Namespace) -> int:
    from runner.collect_runner import run_collection_once

    async def _run(services) -> int:
        summary = await run_collection_once(services)
        _print_json(summary.to_dict())
        if summary.auth_error:
            return EXIT_AUTH
        return EXIT_FAILURE if summary.error else EXIT_OK

    return _run_with_services(_run)


def _cmd_worker(args: argparse.Namespace) -> int:
    from runner.worker import STOP_AUTH, CollectorWorker, install_signal_handlers

    async def _run(services) -> int:
        install_signal_handlers(services)
        result = await CollectorWorker(services, max_cycles=args.max_cycles).run()
        print(f"{result.cycles},{result.stop_reason}")
        return EXIT_AUTH if result.stop_reason == STOP_AUTH else EXIT_OK

    return _run_with_services(_run)


def _cmd_migrate_puuid(args: argparse.Namespace) -> int:
    from ingestion.live_io import RiotAuthError, RiotConfigError
    from runner.migration_runner import run_puuid_migration

    async def _run(services) -> int:
        settings = services.settings
        try:
            report = await run_puuid_migration(
                services.db,
                services.client,
                key_version=settings.puuid_key_version,
                batch_size=settings.migrate_batch_size,
                dry_run=args.dry_run or settings.migrate_dry_run,
                force=args.force or settings.migrate_force,
            )
        except RiotAuthError as e:
            print(f"API key rejected: {e}", file=sys.stderr)
            return EXIT_AUTH
        except RiotConfigError as e:
            print(str(e), file=sys.stderr)
            return EXIT_FAILURE
        if not report.dry_run:
            services.control.clear_migration_request()
        _print_json(report.to_dict())
        return EXIT_OK

    return _run_with_services(_run)


def _cmd_rebuild_matchups(args: argparse.Namespace) -> int:
    async def _run(services) -> int:
        result = await services.aggregator.rebuild(args.patch, args.rank_tier)
        print(f"{result.patch},{result.rank_filter_key},{result.rows},{result.matches_scanned}")
        return EXIT_OK

    return _run_with_services(_run)


def _backfill_command(kind: str) -> Callable[[argparse.Namespace], int]:
    def _cmd(args: argparse.Namespace) -> int:
        from ingestion.live_io import RiotAuthError, RiotConfigError
        from runner.backfill_runner import backfill_ranks, backfill_roles

        async def _run(services) -> int:
            settings = services.settings
            try:
                if kind == "ranks":
                    result = await backfill_ranks(
                        services.db, services.client, args.limit or settings.backfill_rank_limit
                    )
                else:
                    result = await backfill_roles(
                        services.db, services.client, args.limit or settings.backfill_role_match_limit
                    )
            except RiotAuthError as e:
                print(f"API key rejected: {e}", file=sys.stderr)
                return EXIT_AUTH
            except RiotConfigError as e:
                print(str(e), file=sys.stderr)
                return EXIT_FAILURE
            rebuilt = await services.aggregator.rebuild_buckets(result.buckets)
            _print_json({**result.counters(), "rebuilt": [f"{r.patch}/{r.rank_filter_key}" for r in rebuilt]})
            return EXIT_OK

        return _run_with_services(_run)

    return _cmd


def _cmd_tier_list(args: argparse.Namespace) -> int:
    from matchups.tier_list import get_tier_list_by_lane

    async def _run(services) -> int:
        async with services.db.session() as session:
            rows = await get_tier_list_by_lane(
                session, args.patch, lane=args.lane, rank_tier=args.rank_tier, limit=args.limit, min_games=args.min_games
            )
        for r in rows:
            print(
                f"{r['champion_id']}\t{r['avg_score']}\t{r['avg_winrate']}\t{r['total_games']}\t{r['matchups']}"
            )
        return EXIT_OK

    return _run_with_services(_run)


def _cmd_queue_stats(_args: argparse.Namespace) -> int:
    from repositories.crawl_queue_repo import CrawlQueueRepository
    from repositories.participant_repo import ParticipantRepository

    async def _run(services) -> int:
        async with services.db.session() as session:
            by_region = await CrawlQueueRepository(session).count_by_region()
            participants = ParticipantRepository(session)
            missing_rank = await participants.count_missing_rank()
            missing_role = await participants.count_missing_role()
        _print_json(
            {
                "crawl_queue": by_region,
                "crawl_queue_total": sum(by_region.values()),
                "participants_missing_rank": missing_rank,
                "participants_missing_role": missing_role,
            }
        )
        return EXIT_OK

    return _run_with_services(_run)


def _cmd_show_config(_args: argparse.Namespace) -> int:
    from dataclasses import asdict

    from core.config import get_settings
    from ingestion.api_key import ApiKeyProvider

    settings = get_settings()
    payload = asdict(settings)
    payload["riot_api_key"] = ApiKeyProvider.from_settings(settings).describe(settings.riot_api_key)
    _print_json(payload)
    return EXIT_OK


def _cmd_stub_server(args: argparse.Namespace) -> int:
    from dev.stub_server import serve

    serve(host=args.host, port=args.port, mode=args.mode)
    return EXIT_OK


def _read_version() -> str:
    from version import get_version

    return get_version()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="collector", description="Riot match collector")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("collect-once", help="Run one collection pass and print its summary.").set_defaults(
        func=_cmd_collect_once
    )

    worker = sub.add_parser("worker", help="Run the collector loop until stopped (SIGINT/SIGTERM or stop file).")
    worker.add_argument("--max-cycles", type=int, default=None, help="Stop after N cycles")
    worker.set_defaults(func=_cmd_worker)

    migrate = sub.add_parser("migrate-puuid", help="Remap stored puuids after a provider key rotation.")
    migrate.add_argument("--dry-run", action="store_true", help="Build the mapping only; write nothing")
    migrate.add_argument("--force", action="store_true", help="Also re-process matches stamped with the current key")
    migrate.set_defaults(func=_cmd_migrate_puuid)

    rebuild = sub.add_parser("rebuild-matchups", help="Recompute one patch/rank bucket from stored matches.")
    rebuild.add_argument("--patch", required=True, help="Patch, e.g. 14.3")
    rebuild.add_argument("--rank-tier", default=None, help="Rank tier bucket (default: GLOBAL)")
    rebuild.set_defaults(func=_cmd_rebuild_matchups)

    ranks = sub.add_parser("backfill-ranks", help="Fill missing participant ranks, then rebuild affected buckets.")
    ranks.add_argument("--limit", type=int, default=None, help="Identifiers per round")
    ranks.set_defaults(func=_backfill_command("ranks"))

    roles = sub.add_parser("backfill-roles", help="Fill missing participant roles, then rebuild affected buckets.")
    roles.add_argument("--limit", type=int, default=None, help="Matches per round")
    roles.set_defaults(func=_backfill_command("roles"))

    tier_list = sub.add_parser("tier-list", help="Print the champion tier list for a patch.")
    tier_list.add_argument("--patch", required=True)
    tier_list.add_argument("--lane", default=None)
    tier_list.add_argument("--rank-tier", default=None)
    tier_list.add_argument("--limit", type=int, default=None)
    tier_list.add_argument("--min-games", type=int, default=None)
    tier_list.set_defaults(func=_cmd_tier_list)

    sub.add_parser("queue-stats", help="Crawl queue size per region and backfill backlog.").set_defaults(
        func=_cmd_queue_stats
    )
    stub = sub.add_parser("stub-server", help="Serve the local Riot API stub (dev drills).")
    stub.add_argument("--host", default="127.0.0.1")
    stub.add_argument("--port", type=int, default=8010)
    stub.add_argument("--mode", default="ok", help="ok|rate_limit|500|unauthorized|decrypt")
    stub.set_defaults(func=_cmd_stub_server)

    sub.add_parser("show-config", help="Print effective settings (API key masked).").set_defaults(
        func=_cmd_show_config
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if "--version" in argv or "-V" in argv:
        print(_read_version())
        return EXIT_OK
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
