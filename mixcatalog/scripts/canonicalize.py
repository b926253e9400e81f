"""Canonicalization job CLI.

Usage:
    mixcatalog-canonicalize run [--batch-size N] [--mode backfill|rolling]
    mixcatalog-canonicalize retry [--max-age-hours H] [--batch-size N]
    mixcatalog-canonicalize stats [--json]
    mixcatalog-canonicalize init-db
"""

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from mixcatalog.core.config import get_settings
from mixcatalog.core.logging import IngestionLogSink, configure_logging
from mixcatalog.schemas.canonicalization import CanonicalizationOptions, RunSummary
from mixcatalog.services.job_runner import CanonicalizationJobRunner

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Canonicalize staged DJ mixes")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Process a batch of pending raw mixes")
    run.add_argument("--batch-size", type=int, help="Raw mixes to process")
    run.add_argument("--mode", choices=["backfill", "rolling"], help="Processing mode")
    run.add_argument("--auto-verify-threshold", type=float, help="Auto-verify threshold (0-1)")
    run.add_argument("--system-user-id", help="User id recorded on auto-verified rows")

    retry = commands.add_parser("retry", help="Retry recently failed raw mixes")
    retry.add_argument("--max-age-hours", type=float, help="Only retry failures this recent")
    retry.add_argument("--batch-size", type=int, help="Raw mixes to retry")

    stats = commands.add_parser("stats", help="Show raw mix counts by status")
    stats.add_argument("--json", action="store_true", help="Print stats as JSON")

    commands.add_parser("init-db", help="Create tables directly (local SQLite setups)")
    return parser


def build_options(args: argparse.Namespace) -> CanonicalizationOptions:
    """Settings defaults, overridden by whatever flags were given."""
    defaults = CanonicalizationOptions.from_settings(get_settings())
    overrides = {
        "mode": args.mode,
        "auto_verify_threshold": args.auto_verify_threshold,
        "system_user_id": args.system_user_id,
    }
    values = defaults.model_dump()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return CanonicalizationOptions(**values)


def print_summary(summary: RunSummary) -> None:
    print(
        f"Processed {summary.processed} mix(es): {summary.succeeded} succeeded, "
        f"{summary.failed} failed, {summary.skipped} skipped, {summary.duplicates} duplicate(s)"
    )
    print(
        f"Tracks: {summary.tracks_created} created, {summary.tracks_matched} matched; "
        f"artists created: {summary.artists_created}; aliases created: {summary.aliases_created}"
    )
    print(f"Success rate: {summary.success_rate}% in {summary.duration_seconds}s")
    for error in summary.errors:
        print(f"  - {error}")


def run_command(args: argparse.Namespace) -> int:
    from mixcatalog.db.session import SessionLocal, init_db

    if args.command == "init-db":
        init_db()
        print("Database tables created.")
        return 0

    try:
        options = build_options(args) if args.command == "run" else None
    except ValidationError as e:
        print(f"Invalid options: {e}", file=sys.stderr)
        return 1

    settings = get_settings()
    sink = IngestionLogSink(SessionLocal) if settings.ingestion_log_enabled else None
    if sink:
        sink.start()

    db = SessionLocal()
    try:
        runner = CanonicalizationJobRunner(db, settings=settings)
        if args.command == "stats":
            stats = runner.get_stats()
            if args.json:
                print(json.dumps(stats.model_dump()))
            else:
                print("Raw mix status:")
                print(f"  pending:       {stats.pending}")
                print(f"  processing:    {stats.processing}")
                print(f"  canonicalized: {stats.canonicalized}")
                print(f"  failed:        {stats.failed}")
                print(f"  total:         {stats.total}")
                print(f"  completion:    {stats.completion_rate}%")
            return 0

        if args.command == "retry":
            summary = runner.retry_failed_mixes(args.max_age_hours, args.batch_size)
        else:
            summary = runner.run_canonicalization(args.batch_size, options)
        print_summary(summary)
        return 0
    except Exception as e:
        logger.exception("Canonicalization job failed")
        print(f"Canonicalization job failed: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()
        if sink:
            sink.stop()


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(get_settings().log_level)
    sys.exit(run_command(args))


if __name__ == "__main__":
    main()
