"""Pydantic schemas for API request/response validation.

Habit payloads use camelCase field names so clients written against the
embedded-map API keep working. Day strings are validated by the services
(YYYY-MM-DD, sane year range) rather than here, so malformed days map to 400.
"""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from models import Mood

# Canonical YYYY-MM-DD
DayStr = Annotated[str, Field(max_length=10)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class HabitCreateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    goal_days: int = Field(default=30, ge=1, le=3650)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Habit name cannot be empty")
        return v


class StreakStateResponse(CamelModel):
    current: int
    longest: int
    last_completed_date: DayStr | None = None


class HabitResponse(CamelModel):
    """Habit in the shape returned by the original list endpoint."""

    id: int
    name: str
    goal_days: int
    completed_days: dict[DayStr, bool]
    completed_count: int = 0
    # Percent of goal_days reached, capped at 100
    completion_percentage: int = 0
    streaks: StreakStateResponse
    completions_migrated: bool
    is_archived: bool = False
    is_deleted: bool = False


class ToggleRequest(CamelModel):
    date: DayStr
    # Caller's local calendar day; server UTC date when omitted
    today: DayStr | None = None


class CompletionResponse(CamelModel):
    habit_id: int
    date: DayStr
    completed: bool
    completed_at: datetime | None = None
    notes: str | None = None
    mood: Mood | None = None
    value: float = 1
    target_value: float = 1


class ToggleResponse(CamelModel):
    completion: CompletionResponse
    streaks: StreakStateResponse


class CompletionDetailsRequest(CamelModel):
    notes: str | None = Field(default=None, max_length=500)
    mood: Mood | None = None
    value: float | None = Field(default=None, ge=0)
    target_value: float | None = Field(default=None, gt=0)
    today: DayStr | None = None


class CompletedDaysResponse(CamelModel):
    habit_id: int
    completed_days: dict[DayStr, bool]


class CompletionRangeResponse(CamelModel):
    habit_id: int
    start: DayStr
    end: DayStr
    completions: list[CompletionResponse]


class UserCompletionRangeResponse(CamelModel):
    start: DayStr
    end: DayStr
    completions: dict[int, list[DayStr]]


class StreakRunResponse(CamelModel):
    start_date: DayStr
    end_date: DayStr
    length: int


class StreakDetailResponse(CamelModel):
    habit_id: int
    today: DayStr
    current: int
    longest: int
    last_completed_date: DayStr | None = None
    all_runs: list[StreakRunResponse]
    top_runs: list[StreakRunResponse]


class HabitMonthSummaryResponse(CamelModel):
    habit_id: int
    name: str
    completed_days: int
    completion_rate: float


class MonthlySummaryResponse(CamelModel):
    year: int
    month: int
    days_in_month: int
    total_completions: int
    habits: list[HabitMonthSummaryResponse]


class LeaderboardEntryResponse(CamelModel):
    habit_id: int
    name: str
    current_streak: int
    longest_streak: int
    last_completed_date: DayStr | None = None


class HealthResponse(BaseModel):
    status: str
    service: str


class PoolStatusResponse(BaseModel):
    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class DetailedHealthResponse(BaseModel):
    """Component health; always returned with 200."""

    status: str
    service: str
    database: bool
    pool: PoolStatusResponse | None = None
