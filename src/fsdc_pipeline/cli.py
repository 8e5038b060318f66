#!/usr/bin/env python3
"""
Command-line interface for the fixtures pipeline.

Usage:
    fsdc-pipeline                 # Same as "run"
    fsdc-pipeline run             # Reconcile fixtures and drain the stats queue once
    fsdc-pipeline run --json      # ...and print the run result as JSON
    fsdc-pipeline init            # Create tables if missing
    fsdc-pipeline status          # Ledger counts and recent runs
    fsdc-pipeline overview        # Dashboard payload as JSON
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .core.config import get_settings

logger = logging.getLogger("fsdc_pipeline.cli")


def get_db():
    """Open a database pool from settings."""
    from .pg_connection import PostgresDB

    settings = get_settings()
    db = PostgresDB(settings.database_url, max_pool_size=settings.database_pool_size)
    db.open()
    return db


def cmd_run(args: argparse.Namespace) -> int:
    """Run the pipeline once."""
    from .pipeline import run_pipeline

    try:
        result = asyncio.run(run_pipeline(get_settings()))
    except Exception as e:
        logger.error(f"Pipeline run failed: {e}")
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
        return 0

    reconcile, batch = result.reconcile, result.batch
    print(f"\nPipeline run {result.run_id}")
    print("=" * 50)
    if reconcile:
        print(f"Mode: {reconcile.mode.value}")
        print(f"Finished fetched: {reconcile.finished_fetched}")
        print(f"Upcoming fetched: {reconcile.upcoming_fetched}")
        print(f"Candidates checked: {reconcile.candidates}")
        print(f"Newly queued: {reconcile.queued}")
    if batch:
        print(f"Processed: {batch.succeeded} ok, {batch.failed} failed, {batch.skipped} skipped")
        if batch.budget_exhausted:
            print("Run budget exhausted; remaining matches wait for the next run")
    print(f"Duration: {result.duration_seconds:.1f}s")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize the database schema."""
    from .schema import init_schema

    try:
        db = get_db()
    except Exception as e:
        logger.error(f"Cannot connect to database: {e}")
        return 1

    try:
        init_schema(db)
        logger.info("Schema initialized")
        return 0
    except Exception as e:
        logger.error(f"Schema initialization failed: {e}")
        return 1
    finally:
        db.close()


def cmd_status(args: argparse.Namespace) -> int:
    """Show ledger counts and the most recent runs."""
    from .fixtures.ledger import FixtureLedger
    from .sync_log import recent_runs

    try:
        db = get_db()
    except Exception as e:
        logger.error(f"Cannot connect to database: {e}")
        return 1

    try:
        counts = FixtureLedger(db).counts()
        runs = recent_runs(db, limit=args.limit)
    except Exception as e:
        logger.error(f"Status query failed: {e}")
        return 1
    finally:
        db.close()

    print("\nFixtures Pipeline Status")
    print("=" * 50)
    for name, count in counts.items():
        print(f"  {name}: {count:,}")

    print()
    print("Recent Runs:")
    if not runs:
        print("  (none)")
    for run in runs:
        line = (
            f"  {run['run_id']}  {run['status']:<8} "
            f"queued={run['matches_queued']} processed={run['matches_processed']} "
            f"failed={run['matches_failed']}"
        )
        if run.get("error_message"):
            line += f"  error={run['error_message'][:80]}"
        print(line)
    return 0


def cmd_overview(args: argparse.Namespace) -> int:
    """Print the dashboard payload."""
    from .queries.fixtures import get_fixtures_overview

    try:
        db = get_db()
    except Exception as e:
        logger.error(f"Cannot connect to database: {e}")
        return 1

    try:
        overview = get_fixtures_overview(db)
    except Exception as e:
        logger.error(f"Overview query failed: {e}")
        return 1
    finally:
        db.close()

    print(json.dumps(overview, indent=2, default=str))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="FSDC fixtures pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser("run", help="Run the pipeline once (default)")
    run_parser.add_argument("--json", action="store_true", help="Print the run result as JSON")

    subparsers.add_parser("init", help="Create pipeline tables if missing")

    status_parser = subparsers.add_parser("status", help="Show ledger counts and recent runs")
    status_parser.add_argument("--limit", type=int, default=5, help="Runs to show (default: 5)")

    subparsers.add_parser("overview", help="Print finished and upcoming fixtures as JSON")

    args = parser.parse_args(argv)
    get_settings().setup_logging()

    if not args.command:
        args.command = "run"
        args.json = False

    commands = {
        "run": cmd_run,
        "init": cmd_init,
        "status": cmd_status,
        "overview": cmd_overview,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
