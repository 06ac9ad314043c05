"""One-time migration of the embedded completed-days map to the completion log.

Safe to re-run: existing log rows are never overwritten, the embedded map is
never cleared, and habits already flagged as migrated are skipped.
"""

from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core import get_logger
from models import Habit
from repositories import HabitCompletionRepository, HabitRepository
from services.completions_service import recalculate_streak_state
from services.streaks_service import InvalidCompletionDateError, format_day, parse_day

logger = get_logger(__name__)


class HabitMigrationError(Exception):
    """Raised when a habit's embedded map can't be migrated."""

    def __init__(self, habit_id: int, reason: str):
        self.habit_id = habit_id
        self.reason = reason
        super().__init__(f"Habit {habit_id} migration failed: {reason}")


@dataclass
class MigrationReport:
    habits_found: int = 0
    habits_processed: int = 0
    records_migrated: int = 0
    errors: int = 0
    failed_habit_ids: list[int] = field(default_factory=list)


def _completed_map_days(habit: Habit) -> list[str]:
    legacy = habit.completed_days or {}
    if not isinstance(legacy, dict):
        raise HabitMigrationError(
            habit.id, f"completed_days is a {type(legacy).__name__}, expected an object"
        )

    days = []
    for key, done in legacy.items():
        if not done:
            continue
        try:
            days.append(format_day(parse_day(key)))
        except InvalidCompletionDateError as e:
            raise HabitMigrationError(habit.id, str(e)) from e
    return sorted(days)


async def migrate_habit(db: AsyncSession, habit: Habit, *, today: str | date) -> int:
    """Copy the habit's completed days into the log and flag it as migrated.

    Returns:
        Number of completed days found in the embedded map. Days already in
        the log are counted but left untouched.

    Raises:
        HabitMigrationError: If the map holds a key that isn't a valid day
    """
    days = _completed_map_days(habit)
    count = await HabitCompletionRepository(db).insert_if_absent(
        habit.id, habit.user_id, days
    )
    await HabitRepository(db).mark_migrated(habit)
    await recalculate_streak_state(db, habit, today=today)
    return count


async def migrate_all(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    today: str | date,
) -> MigrationReport:
    """Migrate every unmigrated habit, soft-deleted ones included.

    Each habit runs in its own transaction. A failing habit is rolled back,
    logged and counted, and the batch moves on.
    """
    async with session_maker() as db:
        habit_ids = await HabitRepository(db).list_unmigrated_ids()

    report = MigrationReport(habits_found=len(habit_ids))
    logger.info("migration.started", habits_found=report.habits_found)

    for habit_id in habit_ids:
        try:
            async with session_maker() as db, db.begin():
                habit = await HabitRepository(db).get_by_id(habit_id)
                if habit is None or habit.completions_migrated:
                    continue
                count = await migrate_habit(db, habit, today=today)
        except (HabitMigrationError, SQLAlchemyError) as e:
            report.errors += 1
            report.failed_habit_ids.append(habit_id)
            logger.error(
                "migration.habit.failed",
                habit_id=habit_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            continue

        report.habits_processed += 1
        report.records_migrated += count
        logger.info("migration.habit.completed", habit_id=habit_id, records=count)

    logger.info(
        "migration.finished",
        habits_processed=report.habits_processed,
        records_migrated=report.records_migrated,
        errors=report.errors,
    )
    return report


async def recompute_all_streaks(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    today: str | date,
) -> int:
    """Re-derive cached streak state for every habit. Returns habits updated."""
    async with session_maker() as db:
        habit_ids = await HabitRepository(db).list_all_ids()

    updated = 0
    for habit_id in habit_ids:
        async with session_maker() as db, db.begin():
            habit = await HabitRepository(db).get_by_id(habit_id)
            if habit is None:
                continue
            await recalculate_streak_state(db, habit, today=today)
            updated += 1

    logger.info("streaks.recomputed", habits=updated)
    return updated
