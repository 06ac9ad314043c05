"""Cross-habit completion and reporting endpoints."""

from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, Request

from core.auth import UserId
from core.database import DbSession
from core.ratelimit import READ_LIMIT, REPORT_LIMIT, limiter
from schemas import (
    HabitMonthSummaryResponse,
    LeaderboardEntryResponse,
    MonthlySummaryResponse,
    UserCompletionRangeResponse,
)
from services.completions_service import get_user_completions_in_range
from services.reports_service import get_monthly_summary, get_streak_leaderboard
from services.streaks_service import InvalidCompletionDateError

router = APIRouter(prefix="/api", tags=["reports"])


@router.get(
    "/completions",
    response_model=UserCompletionRangeResponse,
    responses={400: {"description": "Invalid date range"}},
)
@limiter.limit(READ_LIMIT)
async def get_user_completions_endpoint(
    request: Request,
    user_id: UserId,
    db: DbSession,
    start: Annotated[str, Query(max_length=32)],
    end: Annotated[str, Query(max_length=32)],
    include_deleted: bool = False,
) -> UserCompletionRangeResponse:
    """Completed days of every habit of the user, keyed by habit id."""
    try:
        by_habit = await get_user_completions_in_range(
            db, user_id, start, end, include_deleted=include_deleted
        )
    except InvalidCompletionDateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return UserCompletionRangeResponse(start=start, end=end, completions=by_habit)


@router.get(
    "/reports/monthly",
    response_model=MonthlySummaryResponse,
    responses={400: {"description": "Invalid year or month"}},
)
@limiter.limit(REPORT_LIMIT)
async def get_monthly_summary_endpoint(
    request: Request,
    user_id: UserId,
    db: DbSession,
    year: Annotated[int, Query()],
    month: Annotated[int, Query()],
    include_deleted: bool = False,
) -> MonthlySummaryResponse:
    try:
        summary = await get_monthly_summary(
            db, user_id, year, month, include_deleted=include_deleted
        )
    except InvalidCompletionDateError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return MonthlySummaryResponse(
        year=summary.year,
        month=summary.month,
        days_in_month=summary.days_in_month,
        total_completions=summary.total_completions,
        habits=[HabitMonthSummaryResponse(**asdict(h)) for h in summary.habits],
    )


@router.get("/reports/leaderboard", response_model=list[LeaderboardEntryResponse])
@limiter.limit(REPORT_LIMIT)
async def get_leaderboard_endpoint(
    request: Request,
    user_id: UserId,
    db: DbSession,
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
    include_deleted: bool = False,
) -> list[LeaderboardEntryResponse]:
    """Habits ranked by current streak, then longest streak."""
    entries = await get_streak_leaderboard(
        db, user_id, limit=limit, include_deleted=include_deleted
    )
    return [LeaderboardEntryResponse(**asdict(e)) for e in entries]
