"""
HabitService - Habit and Completion Business Logic

Owns habit lifecycle, completion toggling and per-habit streak statistics.
Every mutation runs as one unit of work: the ledger change and the streak
write-back commit together or not at all.
"""

import logging
import datetime as dt
from typing import Callable, Optional

from streakkeeper.db.ledger import HabitLedger
from streakkeeper.engine.frequency import is_due
from streakkeeper.engine.streaks import recompute_streak
from streakkeeper.exceptions import ValidationError
from streakkeeper.models.habit import (
    Habit,
    HabitDayStatus,
    HabitStats,
    StreakStats,
    Tracker,
    ToggleResult,
)
from streakkeeper.observability.metrics import completion_toggles_total, streak_recomputations_total
from streakkeeper.utils.cache import CacheConfig, ResultCache, make_key
from streakkeeper.utils.datetime_helpers import (
    date_in_timezone,
    get_timezone,
    now_utc,
    parse_date,
    to_utc,
    today_in_timezone,
)
from streakkeeper.validators import HabitCreate, HabitUpdate, validate_date_range

logger = logging.getLogger(__name__)


class HabitService:
    """
    Service for habits, completions and streaks.

    Responsibilities:
    - Habit lifecycle (create, update, soft delete, restore, permanent delete)
    - Completion toggling with atomic streak write-back
    - Read-only streak statistics and habit listings (cached)
    """

    def __init__(
        self,
        db,
        cache: ResultCache,
        ledger_factory: Callable[..., HabitLedger] = HabitLedger
    ):
        """
        Initialize HabitService.

        Args:
            db: Database instance providing connection() and transaction()
            cache: Shared ResultCache
            ledger_factory: Builds a ledger bound to a connection
        """
        self.db = db
        self.cache = cache
        self.ledger_factory = ledger_factory

    async def _recompute_and_store(
        self,
        ledger: HabitLedger,
        habit: Habit,
        today: dt.date,
        trigger: str
    ) -> StreakStats:
        """Recompute a habit's streak fields from the ledger and write them back"""
        tracker_dates = await ledger.list_tracker_dates(habit.user_id, habit.id)
        last_completed = await ledger.latest_completion(habit.user_id, habit.id)
        stats = recompute_streak(habit, tracker_dates, today, last_completed)
        await ledger.write_streak_fields(habit.user_id, habit.id, stats)
        streak_recomputations_total.labels(trigger=trigger).inc()
        return stats

    def _invalidate(self, user_id: str) -> None:
        self.cache.invalidate_all_for_user(user_id)

    # ==========================================
    # Completions
    # ==========================================

    async def toggle_completion(
        self,
        user_id: str,
        habit_id: int,
        timezone: str,
        date: Optional[dt.date] = None,
        completed_at: Optional[dt.datetime] = None,
        notes: Optional[str] = None
    ) -> ToggleResult:
        """
        Flip the completion state of a habit on a calendar date.

        A tracker is created if none exists for (habit, date), otherwise the
        existing one is deleted. Toggling twice restores the ledger and the
        streak fields to their prior values.

        Args:
            user_id: Owner of the habit
            habit_id: Habit to toggle
            timezone: IANA timezone used to derive the date and "today"
            date: Calendar date to toggle (defaults to the date of completed_at)
            completed_at: Completion instant (defaults to now)
            notes: Optional note stored on a created tracker

        Returns:
            ToggleResult with the action taken, the new tracker and fresh streak stats

        Raises:
            ValidationError: Invalid timezone, future date, or date outside the habit window
            NotFoundError: Habit does not exist for this user
            DatabaseError: Ledger failure; nothing is written
        """
        get_timezone(timezone)
        today = today_in_timezone(timezone)

        completed_at = now_utc() if completed_at is None else to_utc(completed_at)
        if date is None:
            day = date_in_timezone(completed_at, timezone)
        else:
            day = parse_date(date, field="date")

        if day > today:
            raise ValidationError(
                message=f"Cannot track a completion in the future. Provided: {day}, Today: {today}",
                field="date",
                value=day.isoformat(),
                user_id=user_id,
                operation="toggle_completion"
            )
        if notes is not None and len(notes) > 500:
            raise ValidationError(
                message=f"Notes too long ({len(notes)} characters). Maximum is 500 characters.",
                field="notes",
                user_id=user_id,
                operation="toggle_completion"
            )

        async with self.db.transaction() as conn:
            ledger = self.ledger_factory(conn)
            habit = await ledger.get_habit(user_id, habit_id, for_update=True)

            if not habit.in_window(day):
                raise ValidationError(
                    message=f"{day} is outside the habit's active window "
                            f"({habit.start_date} to {habit.end_date or 'open-ended'})",
                    field="date",
                    value=day.isoformat(),
                    user_id=user_id,
                    operation="toggle_completion"
                )

            existing = await ledger.find_tracker(user_id, habit_id, day)
            tracker: Optional[Tracker] = None
            if existing is not None:
                await ledger.delete_tracker(user_id, habit_id, day)
                action = "deleted"
            else:
                tracker = await ledger.insert_tracker(user_id, habit_id, completed_at, day, notes)
                action = "created"

            stats = await self._recompute_and_store(ledger, habit, today, trigger="toggle")

        completion_toggles_total.labels(action=action).inc()
        self._invalidate(user_id)
        logger.info(
            f"Toggle {action} for habit {habit_id} of user {user_id} on {day}: "
            f"streak {stats.current} (longest {stats.longest})"
        )

        return ToggleResult(action=action, tracker=tracker, streak=stats)

    async def get_trackers(
        self,
        user_id: str,
        habit_id: int,
        start_date: Optional[dt.date] = None,
        end_date: Optional[dt.date] = None
    ) -> list[Tracker]:
        """Trackers of a habit, newest first, optionally within a date range"""
        start_date, end_date = validate_date_range(start_date, end_date)
        async with self.db.connection() as conn:
            ledger = self.ledger_factory(conn)
            await ledger.get_habit(user_id, habit_id)
            return await ledger.list_trackers(user_id, habit_id, start_date, end_date)

    # ==========================================
    # Statistics
    # ==========================================

    async def get_habit_stats(self, user_id: str, habit_id: int, timezone: str = "UTC") -> HabitStats:
        """
        Streak statistics of a habit as of today in `timezone`.

        Recomputed from the ledger without writing anything back, and cached
        per (user, habit, today).

        Raises:
            ValidationError: Invalid timezone
            NotFoundError: Habit does not exist for this user
        """
        get_timezone(timezone)
        today = today_in_timezone(timezone)

        async def compute() -> HabitStats:
            async with self.db.connection() as conn:
                ledger = self.ledger_factory(conn)
                habit = await ledger.get_habit(user_id, habit_id)
                tracker_dates = await ledger.list_tracker_dates(user_id, habit_id)
                last_completed = await ledger.latest_completion(user_id, habit_id)

            stats = recompute_streak(habit, tracker_dates, today, last_completed)
            streak_recomputations_total.labels(trigger="stats").inc()
            return HabitStats(
                habit_id=habit_id,
                streak=stats.current,
                longest_streak=stats.longest,
                total_completions=stats.total_completions,
                last_completed=stats.last_completed,
                as_of=today,
            )

        key = make_key("stats", user_id, habit_id, today.isoformat())
        stats = await self.cache.get_or_compute(key, CacheConfig.STATS_TTL, compute)
        return stats.model_copy()

    # ==========================================
    # Habit lifecycle
    # ==========================================

    async def get_habit(self, user_id: str, habit_id: int) -> Habit:
        """Get a live habit of the user"""
        async with self.db.connection() as conn:
            return await self.ledger_factory(conn).get_habit(user_id, habit_id)

    async def list_habits(self, user_id: str) -> list[Habit]:
        """All live habits of the user (cached)"""
        async def compute() -> list[Habit]:
            async with self.db.connection() as conn:
                return await self.ledger_factory(conn).list_habits(user_id)

        key = make_key("habits", user_id, "all")
        habits = await self.cache.get_or_compute(key, CacheConfig.HABITS_TTL, compute)
        return [habit.model_copy(deep=True) for habit in habits]

    async def get_habits_for_date(
        self,
        user_id: str,
        date: Optional[dt.date] = None,
        timezone: str = "UTC"
    ) -> list[HabitDayStatus]:
        """
        Habits due on a date, each flagged with whether it was completed.

        Args:
            date: Calendar date (defaults to today in `timezone`)
            timezone: IANA timezone used to resolve "today"
        """
        get_timezone(timezone)
        day = parse_date(date) if date is not None else today_in_timezone(timezone)

        async def compute() -> list[HabitDayStatus]:
            async with self.db.connection() as conn:
                ledger = self.ledger_factory(conn)
                habits = await ledger.list_habits(user_id, as_of_date=day)
                completions = await ledger.list_trackers_for_user(user_id, day, day)

            return [
                HabitDayStatus(
                    **habit.model_dump(),
                    completed=(habit.id, day) in completions
                )
                for habit in habits
                if is_due(habit, day)
            ]

        key = make_key("habits", user_id, day.isoformat())
        habits = await self.cache.get_or_compute(key, CacheConfig.HABITS_TTL, compute)
        return [habit.model_copy(deep=True) for habit in habits]

    async def create_habit(self, user_id: str, data: HabitCreate, timezone: str = "UTC") -> Habit:
        """
        Create a habit

        start_date defaults to today in `timezone`.
        """
        get_timezone(timezone)
        start_date = data.start_date or today_in_timezone(timezone)
        if data.end_date is not None and data.end_date < start_date:
            raise ValidationError(
                message=f"End date cannot be before start date. Start: {start_date}, End: {data.end_date}",
                field="end_date",
                value=data.end_date.isoformat(),
                user_id=user_id,
                operation="create_habit"
            )

        async with self.db.transaction() as conn:
            habit = await self.ledger_factory(conn).create_habit(
                user_id=user_id,
                name=data.name,
                frequency=data.frequency.model_dump(mode="json"),
                start_date=start_date,
                end_date=data.end_date,
                icon=data.icon
            )

        self._invalidate(user_id)
        return habit

    async def update_habit(
        self,
        user_id: str,
        habit_id: int,
        data: HabitUpdate,
        timezone: str = "UTC"
    ) -> Habit:
        """
        Update a habit and recompute its streak fields in the same unit of work

        Raises:
            ValidationError: end_date before start_date, or start_date moved
                past the habit's earliest completion
            NotFoundError: Habit does not exist for this user
        """
        get_timezone(timezone)
        today = today_in_timezone(timezone)
        changes = data.changes()

        async with self.db.transaction() as conn:
            ledger = self.ledger_factory(conn)
            habit = await ledger.get_habit(user_id, habit_id, for_update=True)

            start_date = changes.get("start_date", habit.start_date)
            end_date = changes["end_date"] if "end_date" in changes else habit.end_date
            if start_date is None:
                raise ValidationError(
                    message="start_date cannot be cleared",
                    field="start_date",
                    user_id=user_id,
                    operation="update_habit"
                )
            if end_date is not None and end_date < start_date:
                raise ValidationError(
                    message=f"End date cannot be before start date. Start: {start_date}, End: {end_date}",
                    field="end_date",
                    value=end_date.isoformat(),
                    user_id=user_id,
                    operation="update_habit"
                )

            if start_date > habit.start_date:
                earliest = await ledger.earliest_tracker_date(user_id, habit_id)
                if earliest is not None and start_date > earliest:
                    raise ValidationError(
                        message=f"Start date cannot move after the first completion ({earliest})",
                        field="start_date",
                        value=start_date.isoformat(),
                        user_id=user_id,
                        operation="update_habit"
                    )

            updated = await ledger.update_habit(user_id, habit_id, changes)
            stats = await self._recompute_and_store(ledger, updated, today, trigger="update")

        self._invalidate(user_id)
        logger.info(f"Updated habit {habit_id} for user {user_id}: {sorted(changes)}")
        return updated.model_copy(update={
            "current_streak": stats.current,
            "longest_streak": stats.longest,
            "total_completions": stats.total_completions,
            "last_completed": stats.last_completed,
        })

    async def delete_habit(self, user_id: str, habit_id: int) -> None:
        """Soft delete a habit; it can be restored later"""
        async with self.db.transaction() as conn:
            await self.ledger_factory(conn).soft_delete_habit(user_id, habit_id)
        self._invalidate(user_id)
        logger.info(f"Soft deleted habit {habit_id} for user {user_id}")

    async def restore_habit(self, user_id: str, habit_id: int) -> Habit:
        """Undo a soft delete"""
        async with self.db.transaction() as conn:
            habit = await self.ledger_factory(conn).restore_habit(user_id, habit_id)
        self._invalidate(user_id)
        logger.info(f"Restored habit {habit_id} for user {user_id}")
        return habit

    async def permanently_delete_habit(self, user_id: str, habit_id: int) -> None:
        """Delete a habit and its trackers for good"""
        async with self.db.transaction() as conn:
            await self.ledger_factory(conn).permanently_delete_habit(user_id, habit_id)
        self._invalidate(user_id)
        logger.info(f"Permanently deleted habit {habit_id} for user {user_id}")
