"""Command-line entry point for schema setup, the daily run and retention."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

import msgspec

from commithabit.errors import CommitHabitError
from commithabit.jobs.runner import purge_audit, run_daily, run_with_services
from commithabit.logging import configure_logging, get_logger, log_error

logger = get_logger(__name__)

DATABASE_URL_ENV = "COMMITHABIT_DATABASE_URL"


async def _init_db(database_url: str) -> None:
    async def noop(_services: object) -> None:
        return None

    await run_with_services(database_url, noop, create_schema=True)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="commithabit", description=__doc__)
    parser.add_argument(
        "--database-url",
        default=os.environ.get(DATABASE_URL_ENV),
        help=f"SQLAlchemy async URL (default: ${DATABASE_URL_ENV})",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("COMMITHABIT_LOG_LEVEL", "INFO"),
        help="femtologging level (default: $COMMITHABIT_LOG_LEVEL or INFO)",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("init-db", help="Create any missing tables")
    commands.add_parser("run-daily", help="Run the daily keep-alive batch once")
    commands.add_parser(
        "purge-audit", help="Delete audit entries past the retention window"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run one maintenance command.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.

    Returns
    -------
    int
        Exit code: 0 on success, 1 when the command could not run, 2 on
        usage errors.

    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.database_url:
        parser.error(f"--database-url or {DATABASE_URL_ENV} is required")
    configure_logging(args.log_level)

    try:
        if args.command == "init-db":
            asyncio.run(_init_db(args.database_url))
            print("schema ready")
        elif args.command == "run-daily":
            summary = asyncio.run(run_with_services(args.database_url, run_daily))
            print(msgspec.json.encode(summary.to_dict()).decode())
        else:
            deleted = asyncio.run(run_with_services(args.database_url, purge_audit))
            print(f"deleted {deleted} audit entries")
    except CommitHabitError as exc:
        log_error(logger, "%s failed: %s (%s)", args.command, exc.message, exc.code)
        print(f"{args.command} failed: {exc.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
