"""Repository utility functions for common database operations."""

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.logger import get_logger
from core.wide_event import set_wide_event_fields

logger = get_logger(__name__)

# Threshold for logging slow queries (milliseconds)
SLOW_QUERY_THRESHOLD_MS = 500

# Dialects with INSERT ... ON CONFLICT support
UPSERT_DIALECTS = ("postgresql", "sqlite")

P = ParamSpec("P")
R = TypeVar("R")


def log_slow_query(
    operation_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator to record slow repository operations and errors.

    Slow calls (over SLOW_QUERY_THRESHOLD_MS) and failures are recorded on the
    request's wide event. Exceptions are re-raised unchanged.

    Usage:
        @log_slow_query("get_completion_by_day")
        async def get_by_day(self, habit_id: int, day: str) -> HabitCompletion | None:
            ...
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start_time = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
                duration_ms = (time.perf_counter() - start_time) * 1000
                if duration_ms > SLOW_QUERY_THRESHOLD_MS:
                    logger.debug(
                        "db.query.slow",
                        operation=operation_name,
                        duration_ms=round(duration_ms, 2),
                    )
                    set_wide_event_fields(
                        db_slow_query=True,
                        db_operation=operation_name,
                        db_duration_ms=round(duration_ms, 2),
                    )
                return result
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                set_wide_event_fields(
                    db_query_error=True,
                    db_operation=operation_name,
                    db_duration_ms=round(duration_ms, 2),
                    db_error=str(e),
                    db_error_type=type(e).__name__,
                )
                raise

        return wrapper

    return decorator


def get_dialect_name(db: AsyncSession) -> str:
    bind = db.get_bind()
    return bind.dialect.name if bind else ""


def supports_upsert(db: AsyncSession) -> bool:
    return get_dialect_name(db) in UPSERT_DIALECTS


def _dialect_insert(db: AsyncSession, model: type[Any]):
    if get_dialect_name(db) == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


async def upsert_on_conflict[T](
    db: AsyncSession,
    model: type[T],
    values: dict[str, Any],
    index_elements: list[str],
    update_fields: list[str],
) -> None:
    """
    Perform an upsert (INSERT ... ON CONFLICT DO UPDATE).

    Works on PostgreSQL and SQLite; check ``supports_upsert`` first.

    Args:
        values: Column name -> value mapping for insert.
        index_elements: Columns forming the unique constraint to match on.
        update_fields: Columns to update when conflict occurs.

    Note:
        Does NOT commit. Caller owns the transaction.

    Warning:
        Column.onupdate triggers are NOT applied during ON CONFLICT DO UPDATE.
        You MUST manually include 'updated_at' in both `values` and `update_fields`.
    """
    update_set = {field: values[field] for field in update_fields if field in values}

    if not update_set:
        raise ValueError(
            f"No valid update fields: update_fields={update_fields} "
            f"but values only contains keys {list(values.keys())}"
        )

    stmt = _dialect_insert(db, model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=index_elements,
        set_=update_set,
    )
    await db.execute(stmt)


async def insert_on_conflict_do_nothing[T](
    db: AsyncSession,
    model: type[T],
    rows: list[dict[str, Any]],
    index_elements: list[str],
) -> None:
    """INSERT ... ON CONFLICT DO NOTHING for a batch of rows.

    Existing rows are left untouched. Does NOT commit.
    """
    if not rows:
        return
    stmt = (
        _dialect_insert(db, model)
        .values(rows)
        .on_conflict_do_nothing(index_elements=index_elements)
    )
    await db.execute(stmt)
