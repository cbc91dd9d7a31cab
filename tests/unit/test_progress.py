"""Unit tests for the progress aggregator (streakkeeper/engine/progress.py)"""
import pytest
from datetime import date

from streakkeeper.engine.progress import calculation_window, compute_overview, daily_completion
from streakkeeper.models.habit import Habit


def make_habit(habit_id, frequency, start=date(2024, 1, 1), end=None):
    return Habit(
        id=habit_id,
        user_id="123456789",
        name=f"Habit {habit_id}",
        frequency=frequency,
        start_date=start,
        end_date=end,
    )


DAILY = {"type": "daily"}


class TestDailyCompletion:

    def test_half_completed_day(self):
        """Two habits due, one completed"""
        habits = [make_habit(1, DAILY), make_habit(2, DAILY)]
        day = date(2024, 1, 5)

        history = daily_completion(habits, {(1, day)}, day, day)

        assert len(history) == 1
        assert history[0].completion_rate == pytest.approx(0.5)
        assert history[0].is_perfect_day is False

    def test_perfect_day(self):
        habits = [make_habit(1, DAILY), make_habit(2, DAILY)]
        day = date(2024, 1, 5)

        history = daily_completion(habits, {(1, day), (2, day)}, day, day)

        assert history[0].completion_rate == 1.0
        assert history[0].is_perfect_day is True

    def test_zero_due_days_excluded(self):
        """A Monday-only habit contributes only Mondays"""
        habits = [make_habit(1, {"type": "weekly", "days": [0]})]

        history = daily_completion(habits, set(), date(2024, 1, 1), date(2024, 1, 14))

        assert [d.date for d in history] == [date(2024, 1, 1), date(2024, 1, 8)]


class TestCalculationWindow:

    def test_starts_at_earliest_habit(self):
        habits = [make_habit(1, DAILY, start=date(2024, 1, 10)), make_habit(2, DAILY, start=date(2024, 1, 3))]
        assert calculation_window(habits, date(2024, 1, 20)) == (date(2024, 1, 3), date(2024, 1, 20))

    def test_bounded_by_lookback(self):
        habits = [make_habit(1, DAILY, start=date(2020, 1, 1))]
        start, end = calculation_window(habits, date(2024, 1, 10), lookback_days=10)
        assert start == date(2024, 1, 1)
        assert end == date(2024, 1, 10)

    def test_no_started_habits(self):
        habits = [make_habit(1, DAILY, start=date(2024, 2, 1))]
        assert calculation_window(habits, date(2024, 1, 10)) is None


class TestComputeOverview:

    def test_no_habits(self):
        overview = compute_overview([], [], date(2024, 1, 10))
        assert overview.history == []
        assert overview.current_streak == 0
        assert overview.longest_streak == 0

    def test_perfect_day_streaks(self):
        habits = [make_habit(1, DAILY), make_habit(2, DAILY)]
        completions = set()
        for day in range(1, 11):
            completions.add((1, date(2024, 1, day)))
            if day != 4:
                completions.add((2, date(2024, 1, day)))

        overview = compute_overview(habits, completions, today=date(2024, 1, 10))

        assert overview.current_streak == 6   # Jan 5..10
        assert overview.longest_streak == 6
        assert len(overview.history) == 10

    def test_zero_due_days_do_not_break_streak(self):
        """Mon/Wed habit: the days in between are skipped, not missed"""
        habits = [make_habit(1, {"type": "weekly", "days": [0, 2]})]
        completions = {(1, date(2024, 1, 1)), (1, date(2024, 1, 3)), (1, date(2024, 1, 8))}

        overview = compute_overview(habits, completions, today=date(2024, 1, 9))

        assert overview.current_streak == 3
        assert overview.longest_streak == 3

    def test_not_yet_perfect_today_is_pending(self):
        habits = [make_habit(1, DAILY)]
        completions = {(1, date(2024, 1, 1)), (1, date(2024, 1, 2))}

        overview = compute_overview(habits, completions, today=date(2024, 1, 3))

        assert overview.current_streak == 2
        assert overview.history[-1].date == date(2024, 1, 3)
        assert overview.history[-1].completion_rate == 0.0

    def test_display_range_filters_history_only(self):
        habits = [make_habit(1, DAILY)]
        completions = {(1, date(2024, 1, day)) for day in range(1, 11)}
        today = date(2024, 1, 10)

        full = compute_overview(habits, completions, today)
        narrowed = compute_overview(
            habits, completions, today,
            display_range=(date(2024, 1, 8), date(2024, 1, 9))
        )

        assert [d.date for d in narrowed.history] == [date(2024, 1, 8), date(2024, 1, 9)]
        assert narrowed.current_streak == full.current_streak == 10
        assert narrowed.longest_streak == full.longest_streak == 10

    def test_habit_outside_window_not_counted(self):
        """An ended habit stops contributing to the due set"""
        habits = [make_habit(1, DAILY), make_habit(2, DAILY, end=date(2024, 1, 2))]
        completions = {(1, date(2024, 1, day)) for day in range(1, 6)}

        overview = compute_overview(habits, completions, today=date(2024, 1, 5))

        rates = {d.date: d.completion_rate for d in overview.history}
        assert rates[date(2024, 1, 1)] == pytest.approx(0.5)
        assert rates[date(2024, 1, 3)] == 1.0
        assert overview.current_streak == 3
