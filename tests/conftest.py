"""Global test fixtures and utilities for streakkeeper tests"""
import copy
import pytest
from contextlib import asynccontextmanager
from datetime import datetime, date, timezone
from typing import Optional
from unittest.mock import AsyncMock, MagicMock, patch
from zoneinfo import ZoneInfo

from streakkeeper.exceptions import NotFoundError, QueryError
from streakkeeper.models.achievement import UserAchievement, UserTotals
from streakkeeper.models.habit import Habit, StreakStats, Tracker
from streakkeeper.services.achievement_service import AchievementService
from streakkeeper.services.habit_service import HabitService
from streakkeeper.services.progress_service import ProgressService
from streakkeeper.utils.cache import ResultCache


# ============================================================================
# In-memory ledger
# ============================================================================

class LedgerStore:
    """
    Habits and trackers held in memory.

    Plays the role of the database: FakeDatabase hands it out as the
    "connection", and InMemoryLedger reads and writes it.
    """

    def __init__(self):
        self.habits: dict[int, Habit] = {}
        self.trackers: dict[int, Tracker] = {}
        self.next_habit_id = 1
        self.next_tracker_id = 1
        self.achievements: dict[tuple[str, str], UserAchievement] = {}
        # Ledger method names that raise QueryError when called
        self.fail_on: set[str] = set()
        self.calls: list[str] = []

    def snapshot(self) -> tuple:
        return (
            copy.deepcopy(self.habits),
            copy.deepcopy(self.trackers),
            self.next_habit_id,
            self.next_tracker_id,
            copy.deepcopy(self.achievements),
        )

    def restore(self, snapshot: tuple) -> None:
        (
            self.habits,
            self.trackers,
            self.next_habit_id,
            self.next_tracker_id,
            self.achievements,
        ) = snapshot

    def add_habit(
        self,
        user_id: str,
        frequency: dict,
        start_date: date,
        end_date: Optional[date] = None,
        name: str = "Habit",
        deleted: bool = False
    ) -> Habit:
        habit = Habit(
            id=self.next_habit_id,
            user_id=user_id,
            name=name,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            deleted_at=datetime(2024, 1, 2, tzinfo=timezone.utc) if deleted else None,
        )
        self.habits[habit.id] = habit
        self.next_habit_id += 1
        return habit

    def add_tracker(
        self,
        user_id: str,
        habit_id: int,
        day: date,
        completed_at: Optional[datetime] = None
    ) -> Tracker:
        tracker = Tracker(
            id=self.next_tracker_id,
            habit_id=habit_id,
            user_id=user_id,
            completed_at=completed_at or datetime(day.year, day.month, day.day, 12, 0, tzinfo=timezone.utc),
            date_tracked=day,
        )
        self.trackers[tracker.id] = tracker
        self.next_tracker_id += 1
        return tracker

    def add_award(self, user_id: str, achievement_id: str, earned_at: datetime) -> UserAchievement:
        award = UserAchievement(user_id=user_id, achievement_id=achievement_id, earned_at=earned_at)
        self.achievements[(user_id, achievement_id)] = award
        return award

    def tracker_dates(self, habit_id: int) -> set[date]:
        return {t.date_tracked for t in self.trackers.values() if t.habit_id == habit_id}

    def cursor(self):
        return _HealthCursor()


class _HealthCursor:
    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def execute(self, query, params=None):
        self.query = query

    async def fetchone(self):
        return {"?column?": 1}


class FakeDatabase:
    """Database double whose transactions snapshot and roll back the store"""

    def __init__(self, store: LedgerStore):
        self.store = store
        self.transactions = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def connection(self):
        yield self.store

    @asynccontextmanager
    async def transaction(self):
        snapshot = self.store.snapshot()
        self.transactions += 1
        try:
            yield self.store
        except BaseException:
            self.store.restore(snapshot)
            self.rollbacks += 1
            raise


class InMemoryLedger:
    """HabitLedger counterpart operating on a LedgerStore"""

    def __init__(self, store: LedgerStore):
        self.store = store

    def _enter(self, operation: str) -> None:
        self.store.calls.append(operation)
        if operation in self.store.fail_on:
            raise QueryError(f"Simulated failure in {operation}", operation=operation)

    def _not_found(self, user_id, habit_id):
        return NotFoundError(
            message=f"Habit {habit_id} not found or has been deleted",
            record_type="Habit",
            record_id=habit_id,
            user_id=user_id
        )

    def _owned(self, user_id, habit_id, include_deleted=False) -> Habit:
        habit = self.store.habits.get(habit_id)
        if habit is None or habit.user_id != user_id:
            raise self._not_found(user_id, habit_id)
        if habit.deleted_at is not None and not include_deleted:
            raise self._not_found(user_id, habit_id)
        return habit

    async def get_habit(self, user_id, habit_id, for_update=False, include_deleted=False):
        self._enter("get_habit")
        return self._owned(user_id, habit_id, include_deleted)

    async def list_habits(self, user_id, as_of_date=None):
        self._enter("list_habits")
        habits = [
            h for h in self.store.habits.values()
            if h.user_id == user_id and h.deleted_at is None
            and (as_of_date is None or h.in_window(as_of_date))
        ]
        return sorted(habits, key=lambda h: h.id, reverse=True)

    async def create_habit(self, user_id, name, frequency, start_date, end_date=None, icon=None):
        self._enter("create_habit")
        habit = Habit(
            id=self.store.next_habit_id,
            user_id=user_id,
            name=name,
            icon=icon,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            created_at=datetime.now(timezone.utc),
        )
        self.store.habits[habit.id] = habit
        self.store.next_habit_id += 1
        return habit

    async def update_habit(self, user_id, habit_id, changes):
        self._enter("update_habit")
        habit = self._owned(user_id, habit_id)
        data = habit.model_dump()
        data.update(changes)
        updated = Habit(**data)
        self.store.habits[habit_id] = updated
        return updated

    async def soft_delete_habit(self, user_id, habit_id):
        self._enter("soft_delete_habit")
        habit = self._owned(user_id, habit_id)
        self.store.habits[habit_id] = habit.model_copy(
            update={"deleted_at": datetime.now(timezone.utc)}
        )

    async def restore_habit(self, user_id, habit_id):
        self._enter("restore_habit")
        habit = self._owned(user_id, habit_id, include_deleted=True)
        if habit.deleted_at is None:
            raise self._not_found(user_id, habit_id)
        restored = habit.model_copy(update={"deleted_at": None})
        self.store.habits[habit_id] = restored
        return restored

    async def permanently_delete_habit(self, user_id, habit_id):
        self._enter("permanently_delete_habit")
        self._owned(user_id, habit_id, include_deleted=True)
        del self.store.habits[habit_id]
        self.store.trackers = {
            tid: t for tid, t in self.store.trackers.items() if t.habit_id != habit_id
        }

    async def write_streak_fields(self, user_id, habit_id, stats: StreakStats):
        self._enter("write_streak_fields")
        habit = self._owned(user_id, habit_id, include_deleted=True)
        self.store.habits[habit_id] = habit.model_copy(update={
            "current_streak": stats.current,
            "longest_streak": stats.longest,
            "total_completions": stats.total_completions,
            "last_completed": stats.last_completed,
        })

    def _trackers(self, user_id, habit_id):
        return [
            t for t in self.store.trackers.values()
            if t.habit_id == habit_id and t.user_id == user_id
        ]

    async def list_tracker_dates(self, user_id, habit_id):
        self._enter("list_tracker_dates")
        return {t.date_tracked for t in self._trackers(user_id, habit_id)}

    async def latest_completion(self, user_id, habit_id):
        self._enter("latest_completion")
        instants = [t.completed_at for t in self._trackers(user_id, habit_id)]
        return max(instants) if instants else None

    async def earliest_tracker_date(self, user_id, habit_id):
        self._enter("earliest_tracker_date")
        days = [t.date_tracked for t in self._trackers(user_id, habit_id)]
        return min(days) if days else None

    async def list_trackers(self, user_id, habit_id, start_date=None, end_date=None):
        self._enter("list_trackers")
        trackers = [
            t for t in self._trackers(user_id, habit_id)
            if (start_date is None or t.date_tracked >= start_date)
            and (end_date is None or t.date_tracked <= end_date)
        ]
        return sorted(trackers, key=lambda t: t.date_tracked, reverse=True)

    async def list_trackers_for_user(self, user_id, start_date, end_date):
        self._enter("list_trackers_for_user")
        live = {
            h.id for h in self.store.habits.values()
            if h.user_id == user_id and h.deleted_at is None
        }
        return {
            (t.habit_id, t.date_tracked) for t in self.store.trackers.values()
            if t.user_id == user_id and t.habit_id in live
            and start_date <= t.date_tracked <= end_date
        }

    async def find_tracker(self, user_id, habit_id, day):
        self._enter("find_tracker")
        for tracker in self._trackers(user_id, habit_id):
            if tracker.date_tracked == day:
                return tracker
        return None

    async def insert_tracker(self, user_id, habit_id, completed_at, date_tracked, notes=None):
        self._enter("insert_tracker")
        if date_tracked in {t.date_tracked for t in self._trackers(user_id, habit_id)}:
            raise QueryError("duplicate key value violates unique constraint", operation="insert_tracker")
        tracker = Tracker(
            id=self.store.next_tracker_id,
            habit_id=habit_id,
            user_id=user_id,
            completed_at=completed_at,
            date_tracked=date_tracked,
            notes=notes,
        )
        self.store.trackers[tracker.id] = tracker
        self.store.next_tracker_id += 1
        return tracker

    async def delete_tracker(self, user_id, habit_id, day):
        self._enter("delete_tracker")
        for tid, tracker in list(self.store.trackers.items()):
            if tracker.habit_id == habit_id and tracker.user_id == user_id and tracker.date_tracked == day:
                del self.store.trackers[tid]
                return True
        return False

    async def user_totals(self, user_id):
        self._enter("user_totals")
        live = [h for h in self.store.habits.values() if h.user_id == user_id and h.deleted_at is None]
        live_ids = {h.id for h in live}
        trackers = [
            t for t in self.store.trackers.values()
            if t.user_id == user_id and t.habit_id in live_ids
        ]
        return UserTotals(
            habits=len(live),
            completions=len(trackers),
            longest_streak=max((h.longest_streak for h in live), default=0),
            active_days=len({t.date_tracked for t in trackers}),
        )

    async def list_user_achievements(self, user_id):
        self._enter("list_user_achievements")
        awards = [a for a in self.store.achievements.values() if a.user_id == user_id]
        return sorted(awards, key=lambda a: (-a.earned_at.timestamp(), a.achievement_id))

    async def award_achievement(self, user_id, achievement_id):
        self._enter("award_achievement")
        if (user_id, achievement_id) in self.store.achievements:
            return None
        award = UserAchievement(
            user_id=user_id,
            achievement_id=achievement_id,
            earned_at=datetime.now(timezone.utc),
        )
        self.store.achievements[(user_id, achievement_id)] = award
        return award


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_db_cursor():
    """Mock psycopg cursor with standard query results"""
    cursor = AsyncMock()
    cursor.fetchone = AsyncMock(return_value=None)
    cursor.fetchall = AsyncMock(return_value=[])
    cursor.execute = AsyncMock()
    cursor.rowcount = 1
    return cursor


@pytest.fixture
def mock_db_connection(mock_db_cursor):
    """Mock psycopg connection whose cursor() is an async context manager"""
    conn = MagicMock()
    conn.cursor.return_value.__aenter__.return_value = mock_db_cursor
    conn.cursor.return_value.__aexit__.return_value = False
    return conn


@pytest.fixture
def ledger_store():
    """Empty in-memory ledger"""
    return LedgerStore()


@pytest.fixture
def fake_db(ledger_store):
    """Database double over the in-memory ledger"""
    return FakeDatabase(ledger_store)


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def result_cache():
    """Fresh enabled result cache"""
    return ResultCache(enabled=True)


@pytest.fixture
def habit_service(fake_db, result_cache):
    return HabitService(fake_db, result_cache, ledger_factory=InMemoryLedger)


@pytest.fixture
def progress_service(fake_db, result_cache):
    return ProgressService(fake_db, result_cache, ledger_factory=InMemoryLedger)


@pytest.fixture
def achievement_service(fake_db, progress_service):
    return AchievementService(fake_db, progress_service, ledger_factory=InMemoryLedger)


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture
def test_user_id():
    """Standard test user ID"""
    return "123456789"


@pytest.fixture
def test_api_key():
    """Standard test API key"""
    return "test_api_key_12345"


# ============================================================================
# Time & Timezone Fixtures
# ============================================================================

@pytest.fixture
def freeze_now():
    """
    Freeze "now" for the service layer

    Usage: freeze_now(datetime(2024, 1, 11, 12, 0, tzinfo=timezone.utc))
    """
    patches = []

    def _freeze(instant: datetime) -> datetime:
        for target in (
            "streakkeeper.utils.datetime_helpers.now_utc",
            "streakkeeper.services.habit_service.now_utc",
        ):
            patcher = patch(target, return_value=instant)
            patcher.start()
            patches.append(patcher)
        return instant

    yield _freeze

    for patcher in reversed(patches):
        patcher.stop()


@pytest.fixture
def frozen_time(freeze_now):
    """Freeze time to 2024-01-11 12:00 UTC (a Thursday)"""
    return freeze_now(datetime(2024, 1, 11, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def test_timezone():
    """Standard test timezone (US/Eastern)"""
    return ZoneInfo("America/New_York")


# ============================================================================
# Habit Fixtures
# ============================================================================

@pytest.fixture
def exercise_habit(ledger_store, test_user_id):
    """Mon/Wed/Fri habit from 2024-01-01 completed on 01-01, 01-03, 01-05, 01-08"""
    habit = ledger_store.add_habit(
        test_user_id,
        {"type": "weekly", "days": [0, 2, 4]},
        date(2024, 1, 1),
        name="Exercise",
    )
    for day in (1, 3, 5, 8):
        ledger_store.add_tracker(test_user_id, habit.id, date(2024, 1, day))
    return habit
