"""
Per-habit streak calculator

Streaks are counted in due occurrences, not calendar days: a Mon/Wed/Fri
habit completed on five consecutive scheduled days has a streak of 5
regardless of the days in between.

Recomputation always works from the stored `date_tracked` of each tracker.
Those dates were fixed in the timezone active when the completion was
logged, so a later timezone change cannot shift history.
"""

import logging
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

from streakkeeper.engine.frequency import iter_due_dates
from streakkeeper.models.habit import Habit, StreakStats

logger = logging.getLogger(__name__)


def scan_streaks(occurrences: Sequence[tuple[date, bool]], today: date) -> tuple[int, int]:
    """
    Current and longest run of successful occurrences

    Args:
        occurrences: (date, succeeded) pairs in chronological order
        today: Reference date; an unsuccessful occurrence dated today is still
               pending, so it neither counts nor breaks the current run

    Returns:
        (current, longest)
    """
    longest = 0
    running = 0
    for _, succeeded in occurrences:
        if succeeded:
            running += 1
            longest = max(longest, running)
        else:
            running = 0

    current = 0
    for index in range(len(occurrences) - 1, -1, -1):
        day, succeeded = occurrences[index]
        if succeeded:
            current += 1
            continue
        if day == today and index == len(occurrences) - 1:
            continue
        break

    return current, longest


def recompute_streak(
    habit: Habit,
    tracker_dates: Iterable[date],
    today: date,
    last_completed: Optional[datetime] = None
) -> StreakStats:
    """
    Derive a habit's streak fields from its completion ledger

    Args:
        habit: Habit whose frequency and window define the due dates
        tracker_dates: Stored date_tracked of every tracker of the habit
        today: Current date in the caller's timezone
        last_completed: Latest completion instant among the trackers

    Returns:
        StreakStats with current, longest, total_completions, last_completed
    """
    completed = set(tracker_dates)

    end = today if habit.end_date is None else min(today, habit.end_date)
    occurrences = [
        (due_date, due_date in completed)
        for due_date in iter_due_dates(habit, habit.start_date, end)
    ]
    current, longest = scan_streaks(occurrences, today)

    logger.debug(
        f"Habit {habit.id}: {len(occurrences)} due occurrences through {end}, "
        f"{len(completed)} trackers, streak {current} (longest {longest})"
    )

    return StreakStats(
        current=current,
        longest=longest,
        total_completions=len(completed),
        last_completed=last_completed if completed else None,
    )
