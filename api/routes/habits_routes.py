"""Habit and per-habit completion endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, Request

from core import get_logger
from core.auth import UserId
from core.database import DbSession
from core.ratelimit import CREATE_LIMIT, READ_LIMIT, WRITE_LIMIT, limiter
from models import HabitCompletion
from models import today as utc_today
from repositories import CompletionConflictError
from schemas import (
    CompletedDaysResponse,
    CompletionDetailsRequest,
    CompletionRangeResponse,
    CompletionResponse,
    HabitCreateRequest,
    HabitResponse,
    StreakDetailResponse,
    StreakRunResponse,
    StreakStateResponse,
    ToggleRequest,
    ToggleResponse,
)
from services.completions_service import (
    HabitNotFoundError,
    get_completed_days,
    get_completions_in_range,
    get_streak_detail,
    toggle_completion,
    update_completion_details,
)
from services.habits_service import HabitOverview, create_habit, list_habits
from services.streaks_service import InvalidCompletionDateError, format_day

logger = get_logger(__name__)

router = APIRouter(prefix="/api/habits", tags=["habits"])

HabitIdPath = Annotated[int, Path(ge=1)]
DayPath = Annotated[str, Path(max_length=32)]

_ERROR_RESPONSES = {
    400: {"description": "Invalid date"},
    404: {"description": "Habit not found"},
}


def _resolve_today(today: str | None) -> str:
    return today if today is not None else format_day(utc_today())


def _to_habit_response(habit: HabitOverview) -> HabitResponse:
    return HabitResponse(
        id=habit.id,
        name=habit.name,
        goal_days=habit.goal_days,
        completed_days=habit.completed_days,
        completed_count=habit.completed_count,
        completion_percentage=habit.completion_percentage,
        streaks=StreakStateResponse(
            current=habit.current_streak,
            longest=habit.longest_streak,
            last_completed_date=habit.last_completed_date,
        ),
        completions_migrated=habit.completions_migrated,
        is_archived=habit.is_archived,
        is_deleted=habit.is_deleted,
    )


def _to_completion_response(record: HabitCompletion) -> CompletionResponse:
    return CompletionResponse.model_validate(record)


@router.get("", response_model=list[HabitResponse])
@limiter.limit(READ_LIMIT)
async def list_habits_endpoint(
    request: Request,
    user_id: UserId,
    db: DbSession,
    include_deleted: bool = False,
) -> list[HabitResponse]:
    """List the user's habits with their completed-days map."""
    habits = await list_habits(db, user_id, include_deleted=include_deleted)
    return [_to_habit_response(h) for h in habits]


@router.post("", response_model=HabitResponse, status_code=201)
@limiter.limit(CREATE_LIMIT)
async def create_habit_endpoint(
    request: Request,
    body: HabitCreateRequest,
    user_id: UserId,
    db: DbSession,
) -> HabitResponse:
    habit = await create_habit(db, user_id, body.name, body.goal_days)
    return _to_habit_response(habit)


@router.post(
    "/{habit_id}/toggle",
    response_model=ToggleResponse,
    responses={**_ERROR_RESPONSES, 409: {"description": "Concurrent update"}},
)
@limiter.limit(WRITE_LIMIT)
async def toggle_completion_endpoint(
    request: Request,
    habit_id: HabitIdPath,
    body: ToggleRequest,
    user_id: UserId,
    db: DbSession,
) -> ToggleResponse:
    """Flip a day between completed and not completed."""
    try:
        result = await toggle_completion(
            db,
            habit_id,
            user_id,
            body.date,
            today=_resolve_today(body.today),
        )
    except InvalidCompletionDateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    except CompletionConflictError:
        raise HTTPException(
            status_code=409, detail="Completion was modified concurrently, retry"
        )

    streak = result.streak
    return ToggleResponse(
        completion=_to_completion_response(result.record),
        streaks=StreakStateResponse(
            current=streak.current,
            longest=streak.longest,
            last_completed_date=(
                format_day(streak.last_completed_date)
                if streak.last_completed_date
                else None
            ),
        ),
    )


@router.put(
    "/{habit_id}/completions/{day}",
    response_model=CompletionResponse,
    responses={**_ERROR_RESPONSES, 409: {"description": "Concurrent update"}},
)
@limiter.limit(WRITE_LIMIT)
async def update_completion_details_endpoint(
    request: Request,
    habit_id: HabitIdPath,
    day: DayPath,
    body: CompletionDetailsRequest,
    user_id: UserId,
    db: DbSession,
) -> CompletionResponse:
    """Attach notes, mood or progress to a day."""
    try:
        record = await update_completion_details(
            db,
            habit_id,
            user_id,
            day,
            today=_resolve_today(body.today),
            notes=body.notes,
            mood=body.mood,
            value=body.value,
            target_value=body.target_value,
        )
    except InvalidCompletionDateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    except CompletionConflictError:
        raise HTTPException(
            status_code=409, detail="Completion was modified concurrently, retry"
        )

    return _to_completion_response(record)


@router.get(
    "/{habit_id}/completed-days",
    response_model=CompletedDaysResponse,
    responses={404: {"description": "Habit not found"}},
)
@limiter.limit(READ_LIMIT)
async def get_completed_days_endpoint(
    request: Request,
    habit_id: HabitIdPath,
    user_id: UserId,
    db: DbSession,
    include_deleted: bool = False,
) -> CompletedDaysResponse:
    try:
        days = await get_completed_days(
            db, habit_id, user_id, include_deleted=include_deleted
        )
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")
    return CompletedDaysResponse(habit_id=habit_id, completed_days=days)


@router.get(
    "/{habit_id}/completions",
    response_model=CompletionRangeResponse,
    responses=_ERROR_RESPONSES,
)
@limiter.limit(READ_LIMIT)
async def get_completions_in_range_endpoint(
    request: Request,
    habit_id: HabitIdPath,
    user_id: UserId,
    db: DbSession,
    start: Annotated[str, Query(max_length=32)],
    end: Annotated[str, Query(max_length=32)],
    include_deleted: bool = False,
) -> CompletionRangeResponse:
    """Completed days of one habit between start and end, inclusive."""
    try:
        records = await get_completions_in_range(
            db, habit_id, user_id, start, end, include_deleted=include_deleted
        )
    except InvalidCompletionDateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")

    return CompletionRangeResponse(
        habit_id=habit_id,
        start=start,
        end=end,
        completions=[_to_completion_response(r) for r in records],
    )


@router.get(
    "/{habit_id}/streak",
    response_model=StreakDetailResponse,
    responses=_ERROR_RESPONSES,
)
@limiter.limit(READ_LIMIT)
async def get_streak_detail_endpoint(
    request: Request,
    habit_id: HabitIdPath,
    user_id: UserId,
    db: DbSession,
    today: Annotated[str | None, Query(max_length=32)] = None,
    include_deleted: bool = False,
) -> StreakDetailResponse:
    """Current and longest streak plus every streak run of the habit."""
    resolved_today = _resolve_today(today)
    try:
        summary = await get_streak_detail(
            db,
            habit_id,
            user_id,
            today=resolved_today,
            include_deleted=include_deleted,
        )
    except InvalidCompletionDateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except HabitNotFoundError:
        raise HTTPException(status_code=404, detail="Habit not found")

    def _run(run) -> StreakRunResponse:
        return StreakRunResponse(
            start_date=format_day(run.start_date),
            end_date=format_day(run.end_date),
            length=run.length,
        )

    return StreakDetailResponse(
        habit_id=habit_id,
        today=resolved_today,
        current=summary.current,
        longest=summary.longest,
        last_completed_date=(
            format_day(summary.last_completed_date)
            if summary.last_completed_date
            else None
        ),
        all_runs=[_run(r) for r in summary.all_runs],
        top_runs=[_run(r) for r in summary.top_runs],
    )
