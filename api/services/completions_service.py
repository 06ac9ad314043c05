"""Completion mutation and read service.

Every change to a habit's completion log goes through this module, which
re-derives the cached streak state on the habit in the same transaction.
Streak state has exactly one write path: ``recalculate_streak_state``.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from core import get_logger, set_wide_event_fields
from core.config import get_settings
from models import Habit, HabitCompletion, Mood, utcnow
from repositories import (
    CompletionConflictError,
    HabitCompletionRepository,
    HabitRepository,
)
from services.streaks_service import (
    InvalidCompletionDateError,
    StreakSummary,
    calculate_streaks,
    format_day,
    parse_day,
)

logger = get_logger(__name__)


class HabitNotFoundError(Exception):
    """Raised when a habit doesn't exist or isn't owned by the user."""

    def __init__(self, habit_id: int):
        self.habit_id = habit_id
        super().__init__(f"Habit {habit_id} not found")


@dataclass(frozen=True, slots=True)
class ToggleResult:
    record: HabitCompletion
    streak: StreakSummary


async def _get_habit_or_raise(
    db: AsyncSession,
    habit_id: int,
    user_id: str,
    *,
    include_deleted: bool = False,
    for_update: bool = False,
) -> Habit:
    habit = await HabitRepository(db).get_owned(
        habit_id, user_id, include_deleted=include_deleted, for_update=for_update
    )
    if habit is None:
        raise HabitNotFoundError(habit_id)
    return habit


def _legacy_completed_days(habit: Habit) -> dict[str, bool]:
    """Valid entries of the embedded map; malformed keys are logged and skipped."""
    legacy = habit.completed_days or {}
    if not isinstance(legacy, dict):
        logger.warning(
            "completion.legacy_map.invalid",
            habit_id=habit.id,
            map_type=type(legacy).__name__,
        )
        return {}

    days: dict[str, bool] = {}
    for key, done in legacy.items():
        try:
            days[format_day(parse_day(key))] = bool(done)
        except InvalidCompletionDateError:
            logger.warning("completion.legacy_key.invalid", habit_id=habit.id, key=key)
    return days


async def _load_day_states(db: AsyncSession, habit: Habit) -> dict[str, bool]:
    """Completion state per day, whichever representation the habit is on.

    Unmigrated habits merge the legacy map with log rows written since; a
    log row always wins over the map for the same day.
    """
    logged = await HabitCompletionRepository(db).get_day_states(habit.id)
    if habit.completions_migrated:
        return logged
    return {**_legacy_completed_days(habit), **logged}


async def _completed_dates(db: AsyncSession, habit: Habit) -> list[str]:
    if habit.completions_migrated:
        return await HabitCompletionRepository(db).list_completed_dates(habit.id)
    states = await _load_day_states(db, habit)
    return sorted(day for day, done in states.items() if done)


async def recalculate_streak_state(
    db: AsyncSession,
    habit: Habit,
    *,
    today: str | date,
) -> StreakSummary:
    """Recompute streaks from the full completion history and persist them.

    The stored longest streak is passed in as a floor, so it only grows.
    Does NOT commit. Caller owns the transaction.
    """
    summary = calculate_streaks(
        await _completed_dates(db, habit),
        today,
        previous_longest=habit.longest_streak or 0,
        top_limit=get_settings().streak_top_runs_limit,
    )
    last_completed = (
        format_day(summary.last_completed_date)
        if summary.last_completed_date is not None
        else None
    )
    await HabitRepository(db).update_streak_state(
        habit,
        current=summary.current,
        longest=summary.longest,
        last_completed_date=last_completed,
    )
    return summary


async def _flip_day(
    db: AsyncSession, habit: Habit, user_id: str, day: str
) -> HabitCompletion:
    repo = HabitCompletionRepository(db)
    existing = await repo.get_by_day(habit.id, day)
    if existing is not None:
        was_completed = existing.completed
    elif not habit.completions_migrated:
        was_completed = _legacy_completed_days(habit).get(day, False)
    else:
        was_completed = False

    completed = not was_completed
    return await repo.upsert_day(
        habit.id,
        user_id,
        day,
        completed,
        completed_at=utcnow() if completed else None,
    )


async def toggle_completion(
    db: AsyncSession,
    habit_id: int,
    user_id: str,
    day: str,
    *,
    today: str | date,
) -> ToggleResult:
    """Flip the completion state of one day and refresh the habit's streaks.

    Args:
        db: Database session
        habit_id: The habit to toggle
        user_id: Owner of the habit
        day: Calendar day as YYYY-MM-DD
        today: The caller's current day, used for the current streak

    Returns:
        ToggleResult with the stored record and the recomputed streaks

    Raises:
        InvalidCompletionDateError: If ``day`` or ``today`` is malformed
        HabitNotFoundError: If the habit is missing, deleted or not owned
        CompletionConflictError: If the day row conflicted twice in a row
    """
    day = format_day(parse_day(day))
    parse_day(today)

    habit = await _get_habit_or_raise(db, habit_id, user_id, for_update=True)

    try:
        record = await _flip_day(db, habit, user_id, day)
    except CompletionConflictError:
        logger.warning("completion.toggle.conflict_retry", habit_id=habit_id, date=day)
        record = await _flip_day(db, habit, user_id, day)

    summary = await recalculate_streak_state(db, habit, today=today)

    logger.info(
        "completion.toggled",
        habit_id=habit_id,
        date=day,
        completed=record.completed,
        current_streak=summary.current,
        longest_streak=summary.longest,
    )
    set_wide_event_fields(
        habit_id=habit_id,
        completion_date=day,
        completion_completed=record.completed,
    )
    return ToggleResult(record=record, streak=summary)


async def update_completion_details(
    db: AsyncSession,
    habit_id: int,
    user_id: str,
    day: str,
    *,
    today: str | date,
    notes: str | None = None,
    mood: Mood | None = None,
    value: float | None = None,
    target_value: float | None = None,
) -> HabitCompletion:
    """Attach notes, mood or progress values to a day.

    A day with no row yet is recorded as completed. An existing row keeps
    its completed flag. Fields left as None are not changed.
    """
    day = format_day(parse_day(day))
    parse_day(today)

    habit = await _get_habit_or_raise(db, habit_id, user_id, for_update=True)
    repo = HabitCompletionRepository(db)
    existing = await repo.get_by_day(habit.id, day)

    if existing is None:
        completed, completed_at = True, utcnow()
    else:
        completed, completed_at = existing.completed, existing.completed_at

    record = await repo.upsert_day(
        habit.id,
        user_id,
        day,
        completed,
        completed_at=completed_at,
        notes=notes,
        mood=mood,
        value=value,
        target_value=target_value,
    )
    await recalculate_streak_state(db, habit, today=today)

    logger.info("completion.details_updated", habit_id=habit_id, date=day)
    return record


async def get_completed_days(
    db: AsyncSession,
    habit_id: int,
    user_id: str,
    *,
    include_deleted: bool = False,
) -> dict[str, bool]:
    """Completed days of a habit as a {YYYY-MM-DD: True} map.

    Callers get the same shape before and after the habit is migrated.
    """
    habit = await _get_habit_or_raise(
        db, habit_id, user_id, include_deleted=include_deleted
    )
    return await completed_days_for(db, habit)


async def completed_days_for(db: AsyncSession, habit: Habit) -> dict[str, bool]:
    """Same as get_completed_days, for a habit the caller already loaded."""
    states = await _load_day_states(db, habit)
    return {day: True for day in sorted(states) if states[day]}


def _validate_range(start: str, end: str) -> tuple[str, str]:
    start_day, end_day = parse_day(start), parse_day(end)
    if start_day > end_day:
        raise InvalidCompletionDateError(start, f"start is after end {end!r}")
    return format_day(start_day), format_day(end_day)


async def get_completions_in_range(
    db: AsyncSession,
    habit_id: int,
    user_id: str,
    start: str,
    end: str,
    *,
    include_deleted: bool = False,
) -> Sequence[HabitCompletion]:
    """Completed rows of one habit in the inclusive range [start, end]."""
    start, end = _validate_range(start, end)
    habit = await _get_habit_or_raise(
        db, habit_id, user_id, include_deleted=include_deleted
    )
    return await HabitCompletionRepository(db).list_in_range(habit.id, start, end)


async def get_user_completions_in_range(
    db: AsyncSession,
    user_id: str,
    start: str,
    end: str,
    *,
    include_deleted: bool = False,
) -> dict[int, list[str]]:
    """Completed days per habit across all of a user's habits in [start, end]."""
    start, end = _validate_range(start, end)
    pairs = await HabitCompletionRepository(db).list_for_user(
        user_id, start, end, include_deleted=include_deleted
    )

    by_habit: dict[int, list[str]] = {}
    for habit_id, day in pairs:
        by_habit.setdefault(habit_id, []).append(day)
    return by_habit


async def get_streak_detail(
    db: AsyncSession,
    habit_id: int,
    user_id: str,
    *,
    today: str | date,
    include_deleted: bool = False,
) -> StreakSummary:
    """Full streak breakdown for a habit. Read-only: nothing is persisted."""
    parse_day(today)
    habit = await _get_habit_or_raise(
        db, habit_id, user_id, include_deleted=include_deleted
    )
    return calculate_streaks(
        await _completed_dates(db, habit),
        today,
        previous_longest=habit.longest_streak or 0,
        top_limit=get_settings().streak_top_runs_limit,
    )
