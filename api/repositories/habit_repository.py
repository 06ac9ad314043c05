"""Repository for the habit aggregate.

Soft-deleted habits are never filtered implicitly: every read takes an
explicit ``include_deleted`` flag.
"""

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Habit, utcnow
from repositories.utils import get_dialect_name, log_slow_query


class HabitRepository:
    """Repository for Habit rows owned by a user."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("get_owned_habit")
    async def get_owned(
        self,
        habit_id: int,
        user_id: str,
        *,
        include_deleted: bool = False,
        for_update: bool = False,
    ) -> Habit | None:
        """Get a habit if it belongs to the user.

        ``for_update`` locks the row on PostgreSQL so concurrent writers of the
        same habit serialise; other dialects ignore it.
        """
        query = select(Habit).where(Habit.id == habit_id, Habit.user_id == user_id)
        if not include_deleted:
            query = query.where(Habit.is_deleted.is_(False))
        if for_update and get_dialect_name(self.db) == "postgresql":
            query = query.with_for_update()

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_for_user(
        self,
        user_id: str,
        *,
        include_deleted: bool = False,
        include_archived: bool = True,
    ) -> Sequence[Habit]:
        query = select(Habit).where(Habit.user_id == user_id)
        if not include_deleted:
            query = query.where(Habit.is_deleted.is_(False))
        if not include_archived:
            query = query.where(Habit.is_archived.is_(False))

        result = await self.db.execute(query.order_by(Habit.created_at, Habit.id))
        return result.scalars().all()

    async def create(
        self,
        user_id: str,
        name: str,
        *,
        goal_days: int = 30,
        completed_days: dict[str, bool] | None = None,
        completions_migrated: bool = True,
    ) -> Habit:
        """Create a habit.

        New habits start on the completion log, so they are born migrated
        unless a legacy map is being imported.
        """
        habit = Habit(
            user_id=user_id,
            name=name,
            goal_days=goal_days,
            completed_days=completed_days or {},
            completions_migrated=completions_migrated,
        )
        self.db.add(habit)
        await self.db.flush()
        return habit

    async def update_streak_state(
        self,
        habit: Habit,
        *,
        current: int,
        longest: int,
        last_completed_date: str | None,
    ) -> Habit:
        habit.current_streak = current
        habit.longest_streak = longest
        habit.last_completed_date = last_completed_date
        habit.updated_at = utcnow()
        await self.db.flush()
        return habit

    async def mark_migrated(self, habit: Habit) -> Habit:
        habit.completions_migrated = True
        habit.updated_at = utcnow()
        await self.db.flush()
        return habit

    @log_slow_query("list_unmigrated_habits")
    async def list_unmigrated_ids(self) -> list[int]:
        """IDs of every habit still on the embedded map, soft-deleted included."""
        result = await self.db.execute(
            select(Habit.id)
            .where(Habit.completions_migrated.is_(False))
            .order_by(Habit.id)
        )
        return [row[0] for row in result.all()]

    async def list_all_ids(self) -> list[int]:
        result = await self.db.execute(select(Habit.id).order_by(Habit.id))
        return [row[0] for row in result.all()]

    async def get_by_id(self, habit_id: int) -> Habit | None:
        """Get a habit regardless of owner or soft-delete state (batch jobs)."""
        result = await self.db.execute(select(Habit).where(Habit.id == habit_id))
        return result.scalar_one_or_none()
