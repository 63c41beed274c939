"""
CLI for the feed post fetcher.

Usage:
    # Fetch posts for every feed in the newest input file
    feedposts run --input-dir ./data/dids_and_paths

    # Fetch from an explicit file with a smaller pool
    feedposts run --input ./data/test_dids.csv --workers 4 --rate 5

    # Create the database tables
    feedposts init-db

    # Show row counts
    feedposts stats
"""

import argparse
import asyncio
import sys
from pathlib import Path

import structlog

from feedposts.config import Settings, load_settings
from feedposts.errors import ConfigurationError
from feedposts.jobs.fetch_posts import prepare_database, run_fetch_job
from feedposts.logging_setup import configure_logging
from feedposts.models.database import Database
from feedposts.services.store import FeedStore

logger = structlog.get_logger(__name__)


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Layer command line options over environment settings."""
    overrides = {
        "input_file": getattr(args, "input", None),
        "input_dir": getattr(args, "input_dir", None),
        "workers": getattr(args, "workers", None),
        "dispatch_rate_per_second": getattr(args, "rate", None),
        "page_limit": getattr(args, "limit", None),
        "log_file": getattr(args, "log_file", None),
    }
    return load_settings(**{k: v for k, v in overrides.items() if v is not None})


async def cmd_run(settings: Settings) -> int:
    """Fetch posts for all feeds."""
    summary = await run_fetch_job(settings)

    print(
        f"Feeds dispatched: {summary.dispatched}, "
        f"succeeded: {summary.succeeded}, failed: {summary.failed}, "
        f"interrupted: {summary.interrupted}"
        + (" (cancelled)" if summary.cancelled else "")
    )
    for error in summary.errors:
        print(f"  ✗ {error}")

    # Per-feed failures do not change the exit status
    return 0


async def cmd_init_db(settings: Settings) -> int:
    """Create database tables."""
    database = Database(settings.database_url, pool_size=settings.db_pool_size)
    try:
        await prepare_database(database)
    finally:
        await database.close()
    print("Tables created")
    return 0


async def cmd_stats(settings: Settings) -> int:
    """Show row counts."""
    database = Database(settings.database_url, pool_size=settings.db_pool_size)
    try:
        await prepare_database(database)
        store = FeedStore(database)
        feeds = await store.count_feeds()
        posts = await store.count_posts()
    finally:
        await database.close()

    print(f"Feeds tracked: {feeds}")
    print(f"Posts stored:  {posts}")
    return 0


COMMANDS = {
    "run": cmd_run,
    "init-db": cmd_init_db,
    "stats": cmd_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="feedposts",
        description="Fetch and deduplicate posts from Bluesky feed generators",
    )
    parser.add_argument("--log-file", type=Path, help="Also write logs to this file")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Fetch posts for all feeds")
    run_parser.add_argument("--input", "-i", type=Path, help="CSV of did,record rows")
    run_parser.add_argument(
        "--input-dir", "-d",
        type=Path,
        help="Directory holding dids_and_paths_<date>.csv files (newest is used)",
    )
    run_parser.add_argument("--workers", "-w", type=int, help="Worker count (default: 10)")
    run_parser.add_argument("--rate", "-r", type=float, help="Feeds dispatched per second (default: 10)")
    run_parser.add_argument("--limit", "-l", type=int, help="Posts per page (default: 100)")

    subparsers.add_parser("init-db", help="Create database tables")
    subparsers.add_parser("stats", help="Show row counts")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = settings_from_args(args)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level, settings.log_file, settings.log_format)

    try:
        return asyncio.run(COMMANDS[args.command](settings))
    except ConfigurationError as e:
        logger.error("Run aborted", error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
