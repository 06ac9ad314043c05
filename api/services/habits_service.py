"""Minimal habit operations needed to own completions.

Full habit CRUD (archive, pause, soft delete, reordering) lives with other
collaborators; only creation and listing are provided here.
"""

import math
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from core import get_logger
from models import Habit
from repositories import HabitRepository
from services.completions_service import completed_days_for

logger = get_logger(__name__)


@dataclass(frozen=True)
class HabitOverview:
    """A habit with its completion map, in the shape older clients expect."""

    id: int
    name: str
    goal_days: int
    completed_days: dict[str, bool]
    completed_count: int
    completion_percentage: int
    current_streak: int
    longest_streak: int
    last_completed_date: str | None
    completions_migrated: bool
    is_archived: bool
    is_deleted: bool


def completion_percentage(completed_count: int, goal_days: int) -> int:
    """Share of the goal reached, rounded half up and capped at 100."""
    if goal_days <= 0:
        return 0
    return min(100, math.floor(completed_count * 100 / goal_days + 0.5))


def build_overview(habit: Habit, completed_days: dict[str, bool]) -> HabitOverview:
    completed_count = sum(1 for done in completed_days.values() if done)
    return HabitOverview(
        id=habit.id,
        name=habit.name,
        goal_days=habit.goal_days,
        completed_days=completed_days,
        completed_count=completed_count,
        completion_percentage=completion_percentage(completed_count, habit.goal_days),
        current_streak=habit.current_streak,
        longest_streak=habit.longest_streak,
        last_completed_date=habit.last_completed_date,
        completions_migrated=habit.completions_migrated,
        is_archived=habit.is_archived,
        is_deleted=habit.is_deleted,
    )


async def create_habit(
    db: AsyncSession, user_id: str, name: str, goal_days: int = 30
) -> HabitOverview:
    habit = await HabitRepository(db).create(user_id, name.strip(), goal_days=goal_days)
    logger.info("habit.created", habit_id=habit.id, user_id=user_id)
    return build_overview(habit, {})


async def list_habits(
    db: AsyncSession,
    user_id: str,
    *,
    include_deleted: bool = False,
) -> list[HabitOverview]:
    habits = await HabitRepository(db).list_for_user(
        user_id, include_deleted=include_deleted
    )
    return [
        build_overview(habit, await completed_days_for(db, habit)) for habit in habits
    ]
