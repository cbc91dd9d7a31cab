"""
Frequency evaluator

Decides whether a calendar date is "due" for a habit. Pure functions only:
no I/O, no clock, no shared state.

Frequency variants:
- daily:   every date of the active window
- weekly:  dates whose weekday is in `days` (0=Monday)
- monthly: dates whose day-of-month is in `dates`; a day that does not exist
           in a month (31 in April, 30 in February) yields no occurrence
           that month
- custom:  every `interval_days` days counted from the habit's start date
"""

from datetime import date, timedelta
from typing import Iterator

from streakkeeper.exceptions import ValidationError
from streakkeeper.models.habit import (
    Habit,
    DailyFrequency,
    WeeklyFrequency,
    MonthlyFrequency,
    CustomFrequency,
)


def is_due(habit: Habit, day: date) -> bool:
    """Whether `day` is a scheduled occurrence of `habit`"""
    if not habit.in_window(day):
        return False

    frequency = habit.frequency
    if isinstance(frequency, DailyFrequency):
        return True
    if isinstance(frequency, WeeklyFrequency):
        return day.weekday() in frequency.days
    if isinstance(frequency, MonthlyFrequency):
        return day.day in frequency.dates
    if isinstance(frequency, CustomFrequency):
        return (day - habit.start_date).days % frequency.interval_days == 0

    raise ValidationError(
        message=f"Unsupported frequency descriptor: {frequency!r}",
        field="frequency",
        value=str(frequency)
    )


def iter_due_dates(habit: Habit, start: date, end: date) -> Iterator[date]:
    """
    Yield the habit's due dates in [start, end], oldest first

    The range is clipped to the habit's active window.
    """
    first = max(start, habit.start_date)
    last = end if habit.end_date is None else min(end, habit.end_date)

    frequency = habit.frequency
    if isinstance(frequency, CustomFrequency):
        # Jump straight to the first aligned occurrence
        offset = (first - habit.start_date).days % frequency.interval_days
        if offset:
            first += timedelta(days=frequency.interval_days - offset)
        step = timedelta(days=frequency.interval_days)
        current = first
        while current <= last:
            yield current
            current += step
        return

    current = first
    one_day = timedelta(days=1)
    while current <= last:
        if is_due(habit, current):
            yield current
        current += one_day
