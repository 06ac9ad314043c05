"""SQLAlchemy models for habit completion tracking."""

from datetime import UTC, date, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, relationship

from core.database import Base


def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


def today() -> date:
    """Return current UTC date."""
    return datetime.now(UTC).date()


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow)

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Mood(str, PyEnum):
    """Optional mood attached to a day's completion."""

    GREAT = "great"
    GOOD = "good"
    OKAY = "okay"
    BAD = "bad"
    TERRIBLE = "terrible"


class Habit(TimestampMixin, Base):
    """A user-defined recurring habit.

    Metadata (name, goal) is owned by the habit CRUD collaborators; the
    completion engine owns the cached streak columns and the migration flag.
    """

    __tablename__ = "habits"
    __table_args__ = (
        Index("ix_habits_user_deleted_archived", "user_id", "is_deleted", "is_archived"),
        Index(
            "ix_habits_unmigrated",
            "completions_migrated",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    goal_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)

    # Legacy embedded {"YYYY-MM-DD": bool} map. Superseded by habit_completions
    # once completions_migrated is set; kept until a manual cleanup.
    completed_days: Mapped[dict[str, bool]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    completions_migrated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    # Cached streak state - written only by the streak recompute path
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_completed_date: Mapped[str | None] = mapped_column(String(10), nullable=True)

    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    completions: Mapped[list["HabitCompletion"]] = relationship(
        back_populates="habit",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class HabitCompletion(TimestampMixin, Base):
    """One row per (habit, calendar day).

    Note: rows with completed=False are kept as explicit "not done" markers;
    they are excluded from streaks and completion maps.
    """

    __tablename__ = "habit_completions"
    __table_args__ = (
        UniqueConstraint("habit_id", "date", name="uq_habit_completion_day"),
        Index("ix_habit_completions_user_date", "user_id", "date"),
        Index(
            "ix_habit_completions_user_date_completed",
            "user_id",
            "date",
            "completed",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    habit_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("habits.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    # YYYY-MM-DD; fixed width so string comparison orders by day
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=utcnow,
    )
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    mood: Mapped[Mood | None] = mapped_column(
        Enum(
            Mood,
            name="completion_mood",
            native_enum=False,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=True,
    )
    # Partial progress, e.g. 3 of 8 glasses of water
    value: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    target_value: Mapped[float] = mapped_column(Float, nullable=False, default=1)

    habit: Mapped["Habit"] = relationship(back_populates="completions")
