"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping services free of SQL
and routes focused on HTTP handling.
"""

from repositories.completion_repository import (
    CompletionConflictError,
    HabitCompletionRepository,
)
from repositories.habit_repository import HabitRepository
from repositories.utils import log_slow_query

__all__ = [
    "CompletionConflictError",
    "HabitCompletionRepository",
    "HabitRepository",
    "log_slow_query",
]
