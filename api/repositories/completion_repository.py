"""Repository for the per-day completion log."""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Habit, HabitCompletion, Mood, utcnow
from repositories.utils import (
    insert_on_conflict_do_nothing,
    log_slow_query,
    supports_upsert,
    upsert_on_conflict,
)

_DAY_KEY = ["habit_id", "date"]


class CompletionConflictError(Exception):
    """Raised when a concurrent write already created the (habit, day) row."""

    def __init__(self, habit_id: int, day: str):
        self.habit_id = habit_id
        self.day = day
        super().__init__(f"Completion for habit {habit_id} on {day} already exists")


class HabitCompletionRepository:
    """Repository for HabitCompletion rows.

    At most one row exists per (habit_id, date). Days are canonical
    ``YYYY-MM-DD`` strings, so range filters compare them lexicographically.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @log_slow_query("get_completion_by_day")
    async def get_by_day(self, habit_id: int, day: str) -> HabitCompletion | None:
        result = await self.db.execute(
            select(HabitCompletion)
            .where(
                HabitCompletion.habit_id == habit_id,
                HabitCompletion.date == day,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @log_slow_query("upsert_completion_day")
    async def upsert_day(
        self,
        habit_id: int,
        user_id: str,
        day: str,
        completed: bool,
        *,
        completed_at: datetime | None = None,
        notes: str | None = None,
        mood: Mood | None = None,
        value: float | None = None,
        target_value: float | None = None,
    ) -> HabitCompletion:
        """Create or update the row for one day in a single statement.

        ``completed`` and ``completed_at`` are always written. Metadata fields
        left as None keep their stored value.

        Raises:
            CompletionConflictError: if a racing insert wins on a dialect
                without ON CONFLICT support.
        """
        now = utcnow()
        values: dict[str, Any] = {
            "habit_id": habit_id,
            "user_id": user_id,
            "date": day,
            "completed": completed,
            "completed_at": completed_at,
            "created_at": now,
            "updated_at": now,
        }
        metadata = {
            "notes": notes,
            "mood": mood,
            "value": value,
            "target_value": target_value,
        }
        values.update({k: v for k, v in metadata.items() if v is not None})
        values.setdefault("value", 1)
        values.setdefault("target_value", 1)

        update_fields = ["completed", "completed_at", "updated_at"]
        update_fields += [k for k, v in metadata.items() if v is not None]

        if supports_upsert(self.db):
            await upsert_on_conflict(
                self.db,
                HabitCompletion,
                values,
                index_elements=_DAY_KEY,
                update_fields=update_fields,
            )
        else:
            await self._upsert_fallback(values, update_fields)

        record = await self.get_by_day(habit_id, day)
        if record is None:
            raise CompletionConflictError(habit_id, day)
        return record

    async def _upsert_fallback(
        self, values: dict[str, Any], update_fields: list[str]
    ) -> None:
        existing = await self.get_by_day(values["habit_id"], values["date"])
        if existing is not None:
            for field in update_fields:
                setattr(existing, field, values[field])
            await self.db.flush()
            return

        try:
            async with self.db.begin_nested():
                self.db.add(HabitCompletion(**values))
                await self.db.flush()
        except IntegrityError as e:
            raise CompletionConflictError(values["habit_id"], values["date"]) from e

    @log_slow_query("insert_completions_if_absent")
    async def insert_if_absent(
        self, habit_id: int, user_id: str, days: Iterable[str]
    ) -> int:
        """Insert a completed row for each day that has none yet.

        Existing rows (completed or not) are never overwritten. Returns the
        number of days offered, not the number actually inserted.
        """
        now = utcnow()
        rows = [
            {
                "habit_id": habit_id,
                "user_id": user_id,
                "date": day,
                "completed": True,
                "completed_at": now,
                "value": 1,
                "target_value": 1,
                "created_at": now,
                "updated_at": now,
            }
            for day in days
        ]

        if supports_upsert(self.db):
            await insert_on_conflict_do_nothing(
                self.db, HabitCompletion, rows, index_elements=_DAY_KEY
            )
        else:
            for row in rows:
                if await self.get_by_day(habit_id, row["date"]) is None:
                    self.db.add(HabitCompletion(**row))
            await self.db.flush()

        return len(rows)

    @log_slow_query("list_completed_dates")
    async def list_completed_dates(
        self,
        habit_id: int,
        start: str | None = None,
        end: str | None = None,
    ) -> list[str]:
        """Completed days of one habit, ascending, optional inclusive bounds."""
        query = select(HabitCompletion.date).where(
            HabitCompletion.habit_id == habit_id,
            HabitCompletion.completed.is_(True),
        )
        if start is not None:
            query = query.where(HabitCompletion.date >= start)
        if end is not None:
            query = query.where(HabitCompletion.date <= end)

        result = await self.db.execute(query.order_by(HabitCompletion.date))
        return [row[0] for row in result.all()]

    async def list_in_range(
        self, habit_id: int, start: str, end: str
    ) -> Sequence[HabitCompletion]:
        """Completed rows (with metadata) of one habit in [start, end]."""
        result = await self.db.execute(
            select(HabitCompletion)
            .where(
                HabitCompletion.habit_id == habit_id,
                HabitCompletion.completed.is_(True),
                HabitCompletion.date >= start,
                HabitCompletion.date <= end,
            )
            .order_by(HabitCompletion.date)
        )
        return result.scalars().all()

    @log_slow_query("list_completions_for_user")
    async def list_for_user(
        self,
        user_id: str,
        start: str,
        end: str,
        *,
        include_deleted: bool = False,
    ) -> list[tuple[int, str]]:
        """(habit_id, date) pairs of every completed day of a user in range.

        Days of soft-deleted habits are left out unless include_deleted is set.
        """
        query = (
            select(HabitCompletion.habit_id, HabitCompletion.date)
            .join(Habit, Habit.id == HabitCompletion.habit_id)
            .where(
                HabitCompletion.user_id == user_id,
                HabitCompletion.completed.is_(True),
                HabitCompletion.date >= start,
                HabitCompletion.date <= end,
            )
            .order_by(HabitCompletion.date, HabitCompletion.habit_id)
        )
        if not include_deleted:
            query = query.where(Habit.is_deleted.is_(False))
        result = await self.db.execute(query)
        return [(row.habit_id, row.date) for row in result.all()]

    @log_slow_query("count_completions_by_habit")
    async def count_by_habit(
        self, user_id: str, start: str, end: str
    ) -> dict[int, int]:
        result = await self.db.execute(
            select(HabitCompletion.habit_id, func.count(HabitCompletion.id))
            .where(
                HabitCompletion.user_id == user_id,
                HabitCompletion.completed.is_(True),
                HabitCompletion.date >= start,
                HabitCompletion.date <= end,
            )
            .group_by(HabitCompletion.habit_id)
        )
        return {row[0]: row[1] for row in result.all()}

    async def get_day_states(self, habit_id: int) -> dict[str, bool]:
        """Every logged day of a habit (tombstones included) -> completed flag."""
        result = await self.db.execute(
            select(HabitCompletion.date, HabitCompletion.completed).where(
                HabitCompletion.habit_id == habit_id
            )
        )
        return {row.date: row.completed for row in result.all()}
