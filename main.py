"""
TrendCatch -- command-line entry point.

Commands:
  refresh           Scrape every region once (for cron), then send realtime alerts
  trending          Run one rotation step and print the ranked sounds
  dispatch-alerts   Send daily / weekly / realtime alert digests
  status            Show tracked sounds and per-region fetch freshness
  cleanup           Apply snapshot and alert retention
  serve             Run the HTTP API

Usage:
  python main.py refresh
  python main.py trending --limit 20 --force
  python main.py dispatch-alerts --frequency weekly
  python main.py serve --port 8080
"""

import argparse
import logging
import sys

import config
from database_migrations import run_migrations

logger = logging.getLogger("trendcatch")


def setup_logging():
    """Configure console logging with timestamps."""
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_args(argv=None):
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="TrendCatch -- trending sound tracker"
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("refresh", help="Scrape all regions now")

    trending = commands.add_parser("trending", help="Print ranked sounds")
    trending.add_argument("--limit", type=int, default=config.TRENDING_LIMIT)
    trending.add_argument(
        "--force", action="store_true",
        help="Scrape this hour's regions even if they are still fresh",
    )

    dispatch = commands.add_parser("dispatch-alerts", help="Send alert digests")
    dispatch.add_argument(
        "--frequency", choices=config.EMAIL_FREQUENCIES, default="daily",
    )

    commands.add_parser("status", help="Show tracked counts and region freshness")

    commands.add_parser("cleanup", help="Apply retention policy")

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)

    return parser.parse_args(argv)


def run_refresh() -> int:
    from alerts import AlertDispatcher
    from trend_radar.collector import TrendRadarCollector

    total = TrendRadarCollector().refresh_all_regions()
    summary = AlertDispatcher().dispatch("realtime")
    logger.info(
        f"Refresh complete: {total} sounds, {summary['alerts_sent']} realtime alerts"
    )
    return 0 if total else 1


def run_trending(limit: int, force: bool) -> int:
    from trend_radar.collector import TrendRadarCollector

    sounds = TrendRadarCollector().fetch_trending_sounds(force_refresh=force, limit=limit)
    if not sounds:
        print("No sounds tracked yet.")
        return 1

    for rank, sound in enumerate(sounds, 1):
        artist = f" - {sound['artist']}" if sound["artist"] else ""
        print(
            f"{rank:>3}. {sound['velocity']:>+6}%  {sound['latestUses']:>8,}  "
            f"{sound['name']}{artist}"
        )
    return 0


def run_status() -> int:
    from trend_radar.collector import TrendRadarCollector

    radar = TrendRadarCollector()
    print(
        f"{radar.store.count_sounds()} sounds, "
        f"{radar.store.count_snapshots()} snapshots"
    )

    cache = radar.fetch_cache.as_dict()
    for region in radar.regions:
        entry = cache.get(region)
        if entry:
            print(f"  {region}: {entry['state']} (last fetched {entry['last_fetched']})")
        else:
            print(f"  {region}: never-fetched")
    return 0


def run_dispatch(frequency: str) -> int:
    from alerts import AlertDispatcher

    summary = AlertDispatcher().dispatch(frequency)
    print(
        f"{summary['alerts_sent']} alerts sent to "
        f"{summary['users_alerted']}/{summary['users_checked']} {frequency} subscribers"
    )
    return 0


def run_cleanup() -> int:
    from data_lifecycle import DataLifecycleManager

    result = DataLifecycleManager().run_retention()
    print(
        f"Deleted {result['snapshots_deleted']} snapshots and "
        f"{result['alerts_deleted']} alerts"
    )
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()
    run_migrations()

    if args.command == "refresh":
        return run_refresh()
    if args.command == "trending":
        return run_trending(args.limit, args.force)
    if args.command == "dispatch-alerts":
        return run_dispatch(args.frequency)
    if args.command == "status":
        return run_status()
    if args.command == "cleanup":
        return run_cleanup()
    if args.command == "serve":
        from api import create_app
        create_app().run(host=args.host, port=args.port)
        return 0
    return 2


if __name__ == "__main__":
    sys.exit(main())
