"""Streak calculation utilities.

Pure functions: no database access and no clock. Callers pass ``today``
explicitly so results are reproducible.

Rules:
- A streak run is a maximal sequence of completed days where each day is
  exactly one calendar day after the previous one.
- current streak = length of the run ending today or yesterday (one-day
  grace window, so an unlogged "today" doesn't break the streak), else 0
- longest streak = max(longest run in the data, previously stored longest);
  it is a high-water mark and never goes down
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from core.config import get_settings

DATE_FORMAT_LENGTH = len("YYYY-MM-DD")

# Days after a run's end that still count it as "current"
GRACE_DAYS = 1


class InvalidCompletionDateError(ValueError):
    """Raised when a completion date is malformed or outside the sane range."""

    def __init__(self, value: object, reason: str = "expected YYYY-MM-DD"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid date {value!r}: {reason}")


@dataclass(frozen=True, slots=True)
class StreakRun:
    """A maximal run of consecutive completed days."""

    start_date: date
    end_date: date
    length: int


@dataclass(frozen=True, slots=True)
class StreakSummary:
    current: int
    longest: int
    last_completed_date: date | None
    all_runs: list[StreakRun] = field(default_factory=list)
    top_runs: list[StreakRun] = field(default_factory=list)


def parse_day(value: str | date) -> date:
    """Parse a canonical ``YYYY-MM-DD`` day.

    Raises:
        InvalidCompletionDateError: if the value is not a fixed-width ISO day
            or its year falls outside the configured sane range.
    """
    if isinstance(value, date):
        parsed = value
    else:
        if not isinstance(value, str) or len(value) != DATE_FORMAT_LENGTH:
            raise InvalidCompletionDateError(value)
        try:
            parsed = date.fromisoformat(value)
        except ValueError:
            raise InvalidCompletionDateError(value) from None

    settings = get_settings()
    if not settings.min_completion_year <= parsed.year <= settings.max_completion_year:
        raise InvalidCompletionDateError(
            value,
            f"year must be between {settings.min_completion_year} "
            f"and {settings.max_completion_year}",
        )
    return parsed


def format_day(value: date) -> str:
    return value.isoformat()


def segment_runs(completed_dates: Iterable[str | date]) -> list[StreakRun]:
    """Split completed dates into chronological runs of consecutive days.

    Duplicates are collapsed first. Day gaps are measured with ordinals
    (whole days), never with datetime subtraction.
    """
    ordinals = sorted({parse_day(d).toordinal() for d in completed_dates})
    if not ordinals:
        return []

    runs: list[StreakRun] = []
    run_start = ordinals[0]
    previous = ordinals[0]

    for ordinal in ordinals[1:]:
        if ordinal - previous == 1:
            previous = ordinal
            continue
        runs.append(_make_run(run_start, previous))
        run_start = previous = ordinal

    runs.append(_make_run(run_start, previous))
    return runs


def _make_run(start_ordinal: int, end_ordinal: int) -> StreakRun:
    return StreakRun(
        start_date=date.fromordinal(start_ordinal),
        end_date=date.fromordinal(end_ordinal),
        length=end_ordinal - start_ordinal + 1,
    )


def expand_runs(runs: Iterable[StreakRun]) -> list[date]:
    """Inverse of segment_runs: every day covered by the runs, ascending."""
    days: list[date] = []
    for run in sorted(runs, key=lambda r: r.start_date):
        start = run.start_date.toordinal()
        days.extend(date.fromordinal(start + i) for i in range(run.length))
    return days


def rank_runs(runs: Iterable[StreakRun], limit: int | None = None) -> list[StreakRun]:
    """Longest runs first; equal lengths ordered by most recent end date."""
    ranked = sorted(
        runs,
        key=lambda r: (r.length, r.end_date.toordinal()),
        reverse=True,
    )
    return ranked[:limit] if limit is not None else ranked


def calculate_streaks(
    completed_dates: Iterable[str | date],
    today: str | date,
    previous_longest: int = 0,
    top_limit: int | None = None,
) -> StreakSummary:
    """Derive streak state from the full set of completed days of one habit.

    Args:
        completed_dates: Every completed day of the habit, in any order,
            duplicates allowed.
        today: The caller's current calendar day.
        previous_longest: The longest streak stored so far; the result never
            reports a lower value.
        top_limit: Optional cap on the number of ranked runs returned.

    Returns:
        StreakSummary with current/longest streak, last completed day,
        chronological runs and runs ranked by length.
    """
    today_ordinal = parse_day(today).toordinal()
    all_runs = segment_runs(completed_dates)

    if not all_runs:
        return StreakSummary(
            current=0,
            longest=max(previous_longest, 0),
            last_completed_date=None,
        )

    latest = all_runs[-1]
    current = next(
        (
            run.length
            for run in reversed(all_runs)
            if 0 <= today_ordinal - run.end_date.toordinal() <= GRACE_DAYS
        ),
        0,
    )

    longest = max(max(run.length for run in all_runs), previous_longest)

    return StreakSummary(
        current=current,
        longest=longest,
        last_completed_date=latest.end_date,
        all_runs=all_runs,
        top_runs=rank_runs(all_runs, top_limit),
    )

