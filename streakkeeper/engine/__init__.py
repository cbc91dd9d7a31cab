"""
Habit frequency & streak analytics engine

Pure computation: frequency evaluation, per-habit streaks and user-level
progress. Nothing in this package performs I/O.
"""

from streakkeeper.engine.frequency import is_due, iter_due_dates
from streakkeeper.engine.streaks import recompute_streak, scan_streaks
from streakkeeper.engine.progress import compute_overview, calculation_window

__all__ = [
    "is_due",
    "iter_due_dates",
    "recompute_streak",
    "scan_streaks",
    "compute_overview",
    "calculation_window",
]
