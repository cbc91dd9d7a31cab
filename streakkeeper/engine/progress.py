"""
Progress aggregator

Turns a user's habits and completion ledger into a daily completion-rate
series and perfect-day streaks.

The calculation window is always the full window (earliest habit start, or
the lookback limit, through today). A caller's display range only filters
the returned history; it never narrows the data the streaks are computed
from.

Days on which no habit is due are skipped entirely: they appear in neither
the history nor the streak sequence, so they cannot break a streak.
"""

import logging
from datetime import date, timedelta
from typing import Iterable, Optional

from streakkeeper.engine.frequency import is_due
from streakkeeper.engine.streaks import scan_streaks
from streakkeeper.models.habit import Habit
from streakkeeper.models.progress import ProgressDay, ProgressOverview
from streakkeeper.utils.datetime_helpers import daterange

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 366


def calculation_window(
    habits: Iterable[Habit],
    today: date,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
) -> Optional[tuple[date, date]]:
    """
    Full window the overview is computed over

    Returns:
        (start, today), or None when the user has no habit started by today
    """
    starts = [habit.start_date for habit in habits if habit.start_date <= today]
    if not starts:
        return None

    lookback_start = today - timedelta(days=lookback_days - 1)
    return max(min(starts), lookback_start), today


def daily_completion(
    habits: list[Habit],
    completions: set[tuple[int, date]],
    start: date,
    end: date
) -> list[ProgressDay]:
    """
    Completion rate of every date in [start, end] that has at least one due habit

    Args:
        habits: The user's habits
        completions: (habit_id, date_tracked) pairs from the ledger
        start: First date of the window
        end: Last date of the window
    """
    days = []
    for day in daterange(start, end):
        due = [habit for habit in habits if is_due(habit, day)]
        if not due:
            continue

        completed = sum(1 for habit in due if (habit.id, day) in completions)
        days.append(ProgressDay(
            date=day,
            completion_rate=completed / len(due),
            due_count=len(due),
            completed_count=completed,
        ))
    return days


def filter_history(
    history: list[ProgressDay],
    display_start: Optional[date] = None,
    display_end: Optional[date] = None
) -> list[ProgressDay]:
    """Restrict an already computed history to a display range"""
    return [
        day for day in history
        if (display_start is None or day.date >= display_start)
        and (display_end is None or day.date <= display_end)
    ]


def compute_overview(
    habits: Iterable[Habit],
    completions: Iterable[tuple[int, date]],
    today: date,
    display_range: Optional[tuple[Optional[date], Optional[date]]] = None,
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
) -> ProgressOverview:
    """
    Daily completion history and perfect-day streaks for one user

    Args:
        habits: The user's habits (deleted habits excluded by the caller)
        completions: (habit_id, date_tracked) pairs covering the window
        today: Current date in the user's timezone
        display_range: Optional (start, end) filter applied to the returned history only
        lookback_days: Upper bound on the window length

    Returns:
        ProgressOverview(history, current_streak, longest_streak)
    """
    habits = list(habits)
    window = calculation_window(habits, today, lookback_days)
    if window is None:
        return ProgressOverview()

    start, end = window
    history = daily_completion(habits, set(completions), start, end)
    current, longest = scan_streaks(
        [(day.date, day.is_perfect_day) for day in history],
        today,
    )

    logger.debug(
        f"Progress window {start}..{end}: {len(history)} scheduled days, "
        f"perfect-day streak {current} (longest {longest})"
    )

    if display_range is not None:
        history = filter_history(history, *display_range)

    return ProgressOverview(
        history=history,
        current_streak=current,
        longest_streak=longest,
    )
