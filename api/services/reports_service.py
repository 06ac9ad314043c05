"""Read-only reporting over the completion log and cached streak state.

Reports never re-derive streaks; the leaderboard reads the cached columns
maintained by the completion service.
"""

import calendar
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from repositories import HabitCompletionRepository, HabitRepository
from services.streaks_service import InvalidCompletionDateError, format_day, parse_day


@dataclass(frozen=True)
class HabitMonthSummary:
    habit_id: int
    name: str
    completed_days: int
    completion_rate: float


@dataclass(frozen=True)
class MonthlySummary:
    year: int
    month: int
    days_in_month: int
    total_completions: int
    habits: list[HabitMonthSummary]


@dataclass(frozen=True)
class LeaderboardEntry:
    habit_id: int
    name: str
    current_streak: int
    longest_streak: int
    last_completed_date: str | None


def _month_bounds(year: int, month: int) -> tuple[str, str, int]:
    if not 1 <= month <= 12:
        raise InvalidCompletionDateError(f"{year}-{month}", "month must be 1-12")
    first = parse_day(f"{year:04d}-{month:02d}-01")
    days_in_month = calendar.monthrange(year, month)[1]
    last = first.replace(day=days_in_month)
    return format_day(first), format_day(last), days_in_month


async def get_monthly_summary(
    db: AsyncSession,
    user_id: str,
    year: int,
    month: int,
    *,
    include_deleted: bool = False,
) -> MonthlySummary:
    """Completed-day counts per habit for one calendar month.

    Habits with no completions in the month are included with a zero count.
    """
    start, end, days_in_month = _month_bounds(year, month)

    habits = await HabitRepository(db).list_for_user(
        user_id, include_deleted=include_deleted
    )
    counts = await HabitCompletionRepository(db).count_by_habit(user_id, start, end)

    summaries = [
        HabitMonthSummary(
            habit_id=habit.id,
            name=habit.name,
            completed_days=counts.get(habit.id, 0),
            completion_rate=round(counts.get(habit.id, 0) / days_in_month, 4),
        )
        for habit in habits
    ]
    return MonthlySummary(
        year=year,
        month=month,
        days_in_month=days_in_month,
        total_completions=sum(s.completed_days for s in summaries),
        habits=summaries,
    )


async def get_streak_leaderboard(
    db: AsyncSession,
    user_id: str,
    *,
    limit: int | None = None,
    include_deleted: bool = False,
) -> list[LeaderboardEntry]:
    """User's habits ranked by current streak, then longest, then name."""
    if limit is None:
        limit = get_settings().leaderboard_limit

    habits = await HabitRepository(db).list_for_user(
        user_id, include_deleted=include_deleted
    )
    ranked = sorted(
        habits,
        key=lambda h: (-h.current_streak, -h.longest_streak, h.name.lower()),
    )
    return [
        LeaderboardEntry(
            habit_id=h.id,
            name=h.name,
            current_streak=h.current_streak,
            longest_streak=h.longest_streak,
            last_completed_date=h.last_completed_date,
        )
        for h in ranked[:limit]
    ]
