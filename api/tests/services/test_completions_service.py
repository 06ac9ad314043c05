"""Unit tests for completions_service.

Repositories are patched, so these tests cover orchestration only:
- toggle flips the stored state and retries once on a conflict
- legacy (unmigrated) habits read their prior state from the embedded map
- ownership failures and invalid days raise domain errors
- read paths never persist streak state
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from repositories import CompletionConflictError
from services.completions_service import (
    HabitNotFoundError,
    get_completions_in_range,
    get_streak_detail,
    toggle_completion,
)
from services.streaks_service import InvalidCompletionDateError
from tests.factories import HabitFactory, LegacyHabitFactory

# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


def _patch_repos():
    return (
        patch("services.completions_service.HabitRepository", autospec=True),
        patch(
            "services.completions_service.HabitCompletionRepository", autospec=True
        ),
    )


def _record(day: str, completed: bool) -> MagicMock:
    return MagicMock(date=day, completed=completed)


# ---------------------------------------------------------------------------
# toggle_completion
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestToggleCompletion:
    async def test_missing_habit_raises_not_found(self):
        habit_patch, completion_patch = _patch_repos()
        with habit_patch as MockHabitRepo, completion_patch:
            MockHabitRepo.return_value.get_owned = AsyncMock(return_value=None)

            with pytest.raises(HabitNotFoundError) as exc_info:
                await toggle_completion(
                    AsyncMock(), 42, "user_1", "2024-06-01", today="2024-06-01"
                )

        assert exc_info.value.habit_id == 42

    async def test_invalid_day_raises_before_any_query(self):
        habit_patch, completion_patch = _patch_repos()
        with habit_patch as MockHabitRepo, completion_patch:
            with pytest.raises(InvalidCompletionDateError):
                await toggle_completion(
                    AsyncMock(), 1, "user_1", "06/01/2024", today="2024-06-01"
                )

        MockHabitRepo.assert_not_called()

    async def test_invalid_today_raises(self):
        with pytest.raises(InvalidCompletionDateError):
            await toggle_completion(
                AsyncMock(), 1, "user_1", "2024-06-01", today="not-a-day"
            )

    async def test_absent_day_becomes_completed(self):
        habit = HabitFactory.build(id=1, user_id="user_1")
        habit_patch, completion_patch = _patch_repos()
        with habit_patch as MockHabitRepo, completion_patch as MockCompletionRepo:
            MockHabitRepo.return_value.get_owned = AsyncMock(return_value=habit)
            MockHabitRepo.return_value.update_streak_state = AsyncMock()
            repo = MockCompletionRepo.return_value
            repo.get_by_day = AsyncMock(return_value=None)
            repo.upsert_day = AsyncMock(return_value=_record("2024-06-01", True))
            repo.list_completed_dates = AsyncMock(return_value=["2024-06-01"])

            result = await toggle_completion(
                AsyncMock(), 1, "user_1", "2024-06-01", today="2024-06-01"
            )

        args, kwargs = repo.upsert_day.call_args
        assert args == (1, "user_1", "2024-06-01", True)
        assert kwargs["completed_at"] is not None
        assert result.streak.current == 1
        assert result.streak.longest == 1
        MockHabitRepo.return_value.update_streak_state.assert_awaited_once_with(
            habit, current=1, longest=1, last_completed_date="2024-06-01"
        )

    async def test_completed_day_becomes_uncompleted(self):
        habit = HabitFactory.build(id=1, user_id="user_1")
        habit_patch, completion_patch = _patch_repos()
        with habit_patch as MockHabitRepo, completion_patch as MockCompletionRepo:
            MockHabitRepo.return_value.get_owned = AsyncMock(return_value=habit)
            MockHabitRepo.return_value.update_streak_state = AsyncMock()
            repo = MockCompletionRepo.return_value
            repo.get_by_day = AsyncMock(return_value=_record("2024-06-01", True))
            repo.upsert_day = AsyncMock(return_value=_record("2024-06-01", False))
            repo.list_completed_dates = AsyncMock(return_value=[])

            await toggle_completion(
                AsyncMock(), 1, "user_1", "2024-06-01", today="2024-06-01"
            )

        args, kwargs = repo.upsert_day.call_args
        assert args[3] is False
        assert kwargs["completed_at"] is None

    async def test_conflict_is_retried_once(self):
        habit = HabitFactory.build(id=1, user_id="user_1")
        habit_patch, completion_patch = _patch_repos()
        with habit_patch as MockHabitRepo, completion_patch as MockCompletionRepo:
            MockHabitRepo.return_value.get_owned = AsyncMock(return_value=habit)
            MockHabitRepo.return_value.update_streak_state = AsyncMock()
            repo = MockCompletionRepo.return_value
            repo.get_by_day = AsyncMock(return_value=None)
            repo.upsert_day = AsyncMock(
                side_effect=[
                    CompletionConflictError(1, "2024-06-01"),
                    _record("2024-06-01", True),
                ]
            )
            repo.list_completed_dates = AsyncMock(return_value=["2024-06-01"])

            result = await toggle_completion(
                AsyncMock(), 1, "user_1", "2024-06-01", today="2024-06-01"
            )

        assert repo.upsert_day.await_count == 2
        assert result.record.completed is True

    async def test_second_conflict_propagates(self):
        habit = HabitFactory.build(id=1, user_id="user_1")
        habit_patch, completion_patch = _patch_repos()
        with habit_patch as MockHabitRepo, completion_patch as MockCompletionRepo:
            MockHabitRepo.return_value.get_owned = AsyncMock(return_value=habit)
            repo = MockCompletionRepo.return_value
            repo.get_by_day = AsyncMock(return_value=None)
            repo.upsert_day = AsyncMock(
                side_effect=CompletionConflictError(1, "2024-06-01")
            )

            with pytest.raises(CompletionConflictError):
                await toggle_completion(
                    AsyncMock(), 1, "user_1", "2024-06-01", today="2024-06-01"
                )

        assert repo.upsert_day.await_count == 2

    async def test_legacy_habit_uses_embedded_map_for_prior_state(self):
        habit = LegacyHabitFactory.build(
            id=1, user_id="user_1", completed_days={"2024-01-01": True}
        )
        habit_patch, completion_patch = _patch_repos()
        with habit_patch as MockHabitRepo, completion_patch as MockCompletionRepo:
            MockHabitRepo.return_value.get_owned = AsyncMock(return_value=habit)
            MockHabitRepo.return_value.update_streak_state = AsyncMock()
            repo = MockCompletionRepo.return_value
            repo.get_by_day = AsyncMock(return_value=None)
            repo.upsert_day = AsyncMock(return_value=_record("2024-01-01", False))
            repo.get_day_states = AsyncMock(return_value={"2024-01-01": False})

            result = await toggle_completion(
                AsyncMock(), 1, "user_1", "2024-01-01", today="2024-01-01"
            )

        assert repo.upsert_day.call_args.args[3] is False
        assert result.streak.current == 0


# ---------------------------------------------------------------------------
# Read paths
# ---------------------------------------------------------------------------


@pytest.mark.unit
class TestReadPaths:
    async def test_range_with_start_after_end_raises(self):
        with pytest.raises(InvalidCompletionDateError):
            await get_completions_in_range(
                AsyncMock(), 1, "user_1", "2024-02-01", "2024-01-01"
            )

    async def test_streak_detail_does_not_persist(self):
        habit = HabitFactory.build(id=1, user_id="user_1", longest_streak=9)
        habit_patch, completion_patch = _patch_repos()
        with habit_patch as MockHabitRepo, completion_patch as MockCompletionRepo:
            MockHabitRepo.return_value.get_owned = AsyncMock(return_value=habit)
            MockHabitRepo.return_value.update_streak_state = AsyncMock()
            MockCompletionRepo.return_value.list_completed_dates = AsyncMock(
                return_value=["2024-03-10", "2024-03-11"]
            )

            summary = await get_streak_detail(
                AsyncMock(), 1, "user_1", today="2024-03-12"
            )

        assert summary.current == 2
        assert summary.longest == 9
        MockHabitRepo.return_value.update_streak_state.assert_not_awaited()
