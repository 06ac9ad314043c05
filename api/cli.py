#!/usr/bin/env python3
"""CLI for habit streaks API management tasks.

Usage:
    python -m cli <command>

Commands:
    migrate               Run database migrations (Alembic)
    migrate-completions   Move embedded completed-days maps into the completion log
    recompute-streaks     Re-derive cached streak state for every habit
"""

import argparse
import asyncio
import sys
from pathlib import Path

from core.logger import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)


def _get_alembic_config():
    from alembic.config import Config

    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    # Absolute script_location so the command works from any working directory
    cfg.set_main_option("script_location", str(api_dir / "alembic"))
    return cfg


def cmd_migrate(target: str) -> int:
    """Upgrade the schema to ``target`` (default head)."""
    from alembic import command

    logger.info("cli.migrate.started", target=target)
    command.upgrade(_get_alembic_config(), target)
    logger.info("cli.migrate.complete", target=target)
    return 0


def _resolve_today(value: str | None) -> str:
    """Validate --today, falling back to the current UTC day.

    Exits with status 2 (argparse usage error) on a malformed day.
    """
    from models import today
    from services.streaks_service import (
        InvalidCompletionDateError,
        format_day,
        parse_day,
    )

    if not value:
        return format_day(today())
    try:
        return format_day(parse_day(value))
    except InvalidCompletionDateError as e:
        print(f"error: --today: {e}", file=sys.stderr)
        sys.exit(2)


async def _with_session_maker(job):
    from core.database import create_engine, create_session_maker, dispose_engine

    engine = create_engine()
    try:
        return await job(create_session_maker(engine))
    finally:
        await dispose_engine(engine)


def cmd_migrate_completions(today: str | None) -> int:
    """Run the legacy completed-days migration over every unmigrated habit.

    Returns a non-zero exit code when any habit failed, so a deploy job
    notices; re-running only retries the failed habits.
    """
    from services.migration_service import migrate_all

    resolved = _resolve_today(today)
    report = asyncio.run(
        _with_session_maker(lambda sm: migrate_all(sm, today=resolved))
    )

    print(f"Habits found:              {report.habits_found}")
    print(f"Habits migrated:           {report.habits_processed}")
    print(f"Total completions migrated: {report.records_migrated}")
    print(f"Total errors:              {report.errors}")
    if report.failed_habit_ids:
        print(f"Failed habit ids:          {report.failed_habit_ids}")
    return 1 if report.errors else 0


def cmd_recompute_streaks(today: str | None) -> int:
    from services.migration_service import recompute_all_streaks

    resolved = _resolve_today(today)
    updated = asyncio.run(
        _with_session_maker(lambda sm: recompute_all_streaks(sm, today=resolved))
    )
    print(f"Habits updated: {updated}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Habit streaks API CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    migrate = subparsers.add_parser("migrate", help="Run database migrations")
    migrate.add_argument(
        "target", nargs="?", default="head", help="Target revision (default: head)"
    )

    for name, help_text in (
        ("migrate-completions", "Migrate embedded completed-days maps"),
        ("recompute-streaks", "Recompute cached streak state for all habits"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "--today",
            default=None,
            help="Current day as YYYY-MM-DD (default: today in UTC)",
        )

    args = parser.parse_args(argv)

    if args.command == "migrate":
        return cmd_migrate(args.target)
    elif args.command == "migrate-completions":
        return cmd_migrate_completions(args.today)
    elif args.command == "recompute-streaks":
        return cmd_recompute_streaks(args.today)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
