"""
Habit ledger accessor

Reads and writes habits and their completion trackers. A HabitLedger is
bound to one connection, so every call made through it during a
`db.transaction()` block belongs to the same unit of work.

Every query is scoped by user_id; no call can touch another user's rows.
"""
import logging
from datetime import date, datetime
from typing import Any, Optional

import psycopg
from psycopg.types.json import Jsonb

from streakkeeper.exceptions import NotFoundError, wrap_external_exception
from streakkeeper.models.achievement import UserAchievement, UserTotals
from streakkeeper.models.habit import Habit, StreakStats, Tracker

logger = logging.getLogger(__name__)

HABIT_COLUMNS = """
    id, user_id, name, icon, frequency, start_date, end_date,
    current_streak, longest_streak, total_completions, last_completed,
    created_at, updated_at, deleted_at
"""

TRACKER_COLUMNS = "id, habit_id, user_id, completed_at, date_tracked, notes, created_at"

# Columns an owner may change through update_habit
UPDATABLE_HABIT_COLUMNS = ("name", "icon", "frequency", "start_date", "end_date")


class HabitLedger:
    """Habit and tracker persistence on a single connection"""

    def __init__(self, conn: psycopg.AsyncConnection):
        self.conn = conn

    async def _fetchone(self, operation: str, query: str, params: tuple, user_id: Optional[str] = None) -> Optional[dict]:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=operation, user_id=user_id)

    async def _fetchall(self, operation: str, query: str, params: tuple, user_id: Optional[str] = None) -> list[dict]:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=operation, user_id=user_id)

    async def _execute(self, operation: str, query: str, params: tuple, user_id: Optional[str] = None) -> int:
        try:
            async with self.conn.cursor() as cur:
                await cur.execute(query, params)
                return cur.rowcount
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=operation, user_id=user_id)

    # ==========================================
    # Habits
    # ==========================================

    async def get_habit(
        self,
        user_id: str,
        habit_id: int,
        for_update: bool = False,
        include_deleted: bool = False
    ) -> Habit:
        """
        Get a habit owned by user_id

        Args:
            for_update: Lock the habit row until the transaction ends
            include_deleted: Also return soft-deleted habits

        Raises:
            NotFoundError: If the habit does not exist for this user
        """
        query = f"SELECT {HABIT_COLUMNS} FROM habits WHERE id = %s AND user_id = %s"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        if for_update:
            query += " FOR UPDATE"

        row = await self._fetchone("get_habit", query, (habit_id, user_id), user_id)
        if not row:
            raise NotFoundError(
                message=f"Habit {habit_id} not found or has been deleted",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id
            )
        return Habit(**row)

    async def list_habits(self, user_id: str, as_of_date: Optional[date] = None) -> list[Habit]:
        """
        List the user's habits (soft-deleted excluded)

        Args:
            as_of_date: Only habits whose active window contains this date
        """
        query = f"SELECT {HABIT_COLUMNS} FROM habits WHERE user_id = %s AND deleted_at IS NULL"
        params: tuple = (user_id,)
        if as_of_date is not None:
            query += " AND start_date <= %s AND (end_date IS NULL OR end_date >= %s)"
            params += (as_of_date, as_of_date)
        query += " ORDER BY created_at DESC, id DESC"

        rows = await self._fetchall("list_habits", query, params, user_id)
        return [Habit(**row) for row in rows]

    async def create_habit(
        self,
        user_id: str,
        name: str,
        frequency: dict,
        start_date: date,
        end_date: Optional[date] = None,
        icon: Optional[str] = None
    ) -> Habit:
        """Insert a habit with zeroed streak fields"""
        row = await self._fetchone(
            "create_habit",
            f"""
            INSERT INTO habits (user_id, name, icon, frequency, start_date, end_date)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {HABIT_COLUMNS}
            """,
            (user_id, name, icon, Jsonb(frequency), start_date, end_date),
            user_id
        )
        logger.info(f"Created habit {row['id']} for user {user_id}")
        return Habit(**row)

    async def update_habit(self, user_id: str, habit_id: int, changes: dict[str, Any]) -> Habit:
        """
        Update owner-editable columns

        Args:
            changes: Subset of name, icon, frequency, start_date, end_date

        Raises:
            NotFoundError: If the habit does not exist for this user
        """
        assignments = []
        values: list[Any] = []
        for column in UPDATABLE_HABIT_COLUMNS:
            if column not in changes:
                continue
            value = changes[column]
            if column == "frequency":
                value = Jsonb(value)
            assignments.append(f"{column} = %s")
            values.append(value)

        if not assignments:
            return await self.get_habit(user_id, habit_id)

        assignments.append("updated_at = CURRENT_TIMESTAMP")
        row = await self._fetchone(
            "update_habit",
            f"""
            UPDATE habits SET {', '.join(assignments)}
            WHERE id = %s AND user_id = %s AND deleted_at IS NULL
            RETURNING {HABIT_COLUMNS}
            """,
            (*values, habit_id, user_id),
            user_id
        )
        if not row:
            raise NotFoundError(
                message=f"Habit {habit_id} not found or has been deleted",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id
            )
        return Habit(**row)

    async def soft_delete_habit(self, user_id: str, habit_id: int) -> None:
        """Mark a habit deleted; its trackers are kept for restore"""
        changed = await self._execute(
            "soft_delete_habit",
            """
            UPDATE habits SET deleted_at = CURRENT_TIMESTAMP, updated_at = CURRENT_TIMESTAMP
            WHERE id = %s AND user_id = %s AND deleted_at IS NULL
            """,
            (habit_id, user_id),
            user_id
        )
        if changed == 0:
            raise NotFoundError(
                message=f"Habit {habit_id} not found or already deleted",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id
            )

    async def restore_habit(self, user_id: str, habit_id: int) -> Habit:
        """Undo a soft delete"""
        row = await self._fetchone(
            "restore_habit",
            f"""
            UPDATE habits SET deleted_at = NULL, updated_at = CURRENT_TIMESTAMP
            WHERE id = %s AND user_id = %s AND deleted_at IS NOT NULL
            RETURNING {HABIT_COLUMNS}
            """,
            (habit_id, user_id),
            user_id
        )
        if not row:
            raise NotFoundError(
                message=f"Habit {habit_id} is not deleted or does not exist",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id
            )
        return Habit(**row)

    async def permanently_delete_habit(self, user_id: str, habit_id: int) -> None:
        """Delete a habit (deleted or not) and all of its trackers"""
        await self._execute(
            "permanently_delete_habit",
            "DELETE FROM trackers WHERE habit_id = %s AND user_id = %s",
            (habit_id, user_id),
            user_id
        )
        changed = await self._execute(
            "permanently_delete_habit",
            "DELETE FROM habits WHERE id = %s AND user_id = %s",
            (habit_id, user_id),
            user_id
        )
        if changed == 0:
            raise NotFoundError(
                message=f"Habit {habit_id} not found",
                record_type="Habit",
                record_id=habit_id,
                user_id=user_id
            )

    async def write_streak_fields(self, user_id: str, habit_id: int, stats: StreakStats) -> None:
        """Persist the derived streak fields of a habit"""
        await self._execute(
            "write_streak_fields",
            """
            UPDATE habits
            SET current_streak = %s,
                longest_streak = %s,
                total_completions = %s,
                last_completed = %s,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = %s AND user_id = %s
            """,
            (
                stats.current,
                stats.longest,
                stats.total_completions,
                stats.last_completed,
                habit_id,
                user_id
            ),
            user_id
        )

    # ==========================================
    # Trackers
    # ==========================================

    async def list_tracker_dates(self, user_id: str, habit_id: int) -> set[date]:
        """Stored date_tracked of every tracker of a habit"""
        rows = await self._fetchall(
            "list_tracker_dates",
            "SELECT date_tracked FROM trackers WHERE habit_id = %s AND user_id = %s",
            (habit_id, user_id),
            user_id
        )
        return {row["date_tracked"] for row in rows}

    async def latest_completion(self, user_id: str, habit_id: int) -> Optional[datetime]:
        """Most recent completion instant of a habit"""
        row = await self._fetchone(
            "latest_completion",
            "SELECT MAX(completed_at) AS last_completed FROM trackers WHERE habit_id = %s AND user_id = %s",
            (habit_id, user_id),
            user_id
        )
        return row["last_completed"] if row else None

    async def earliest_tracker_date(self, user_id: str, habit_id: int) -> Optional[date]:
        """Oldest date_tracked of a habit"""
        row = await self._fetchone(
            "earliest_tracker_date",
            "SELECT MIN(date_tracked) AS earliest FROM trackers WHERE habit_id = %s AND user_id = %s",
            (habit_id, user_id),
            user_id
        )
        return row["earliest"] if row else None

    async def list_trackers(
        self,
        user_id: str,
        habit_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None
    ) -> list[Tracker]:
        """Trackers of one habit, newest first, optionally within a date range"""
        query = f"SELECT {TRACKER_COLUMNS} FROM trackers WHERE habit_id = %s AND user_id = %s"
        params: tuple = (habit_id, user_id)
        if start_date is not None:
            query += " AND date_tracked >= %s"
            params += (start_date,)
        if end_date is not None:
            query += " AND date_tracked <= %s"
            params += (end_date,)
        query += " ORDER BY date_tracked DESC"

        rows = await self._fetchall("list_trackers", query, params, user_id)
        return [Tracker(**row) for row in rows]

    async def list_trackers_for_user(self, user_id: str, start_date: date, end_date: date) -> set[tuple[int, date]]:
        """(habit_id, date_tracked) of the user's live habits within a date range"""
        rows = await self._fetchall(
            "list_trackers_for_user",
            """
            SELECT t.habit_id, t.date_tracked
            FROM trackers t
            JOIN habits h ON h.id = t.habit_id AND h.user_id = t.user_id
            WHERE t.user_id = %s
              AND h.deleted_at IS NULL
              AND t.date_tracked BETWEEN %s AND %s
            """,
            (user_id, start_date, end_date),
            user_id
        )
        return {(row["habit_id"], row["date_tracked"]) for row in rows}

    async def find_tracker(self, user_id: str, habit_id: int, day: date) -> Optional[Tracker]:
        """The tracker of a habit on a calendar date, if any"""
        row = await self._fetchone(
            "find_tracker",
            f"SELECT {TRACKER_COLUMNS} FROM trackers WHERE habit_id = %s AND user_id = %s AND date_tracked = %s",
            (habit_id, user_id, day),
            user_id
        )
        return Tracker(**row) if row else None

    async def insert_tracker(
        self,
        user_id: str,
        habit_id: int,
        completed_at: datetime,
        date_tracked: date,
        notes: Optional[str] = None
    ) -> Tracker:
        """Insert a completion; (habit_id, date_tracked) must be free"""
        row = await self._fetchone(
            "insert_tracker",
            f"""
            INSERT INTO trackers (habit_id, user_id, completed_at, date_tracked, notes)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {TRACKER_COLUMNS}
            """,
            (habit_id, user_id, completed_at, date_tracked, notes),
            user_id
        )
        return Tracker(**row)

    async def delete_tracker(self, user_id: str, habit_id: int, day: date) -> bool:
        """Delete the tracker of a habit on a calendar date"""
        changed = await self._execute(
            "delete_tracker",
            "DELETE FROM trackers WHERE habit_id = %s AND user_id = %s AND date_tracked = %s",
            (habit_id, user_id, day),
            user_id
        )
        return changed > 0

    # ==========================================
    # Achievements
    # ==========================================

    async def user_totals(self, user_id: str) -> UserTotals:
        """
        Counts over the user's live habits and their trackers

        perfect_days is left at 0; it comes from the progress overview.
        """
        row = await self._fetchone(
            "user_totals",
            """
            SELECT
                COUNT(DISTINCT h.id) AS habits,
                COUNT(t.id) AS completions,
                COALESCE(MAX(h.longest_streak), 0) AS longest_streak,
                COUNT(DISTINCT t.date_tracked) AS active_days
            FROM habits h
            LEFT JOIN trackers t ON t.habit_id = h.id AND t.user_id = h.user_id
            WHERE h.user_id = %s AND h.deleted_at IS NULL
            """,
            (user_id,),
            user_id
        )
        return UserTotals(**row) if row else UserTotals()

    async def list_user_achievements(self, user_id: str) -> list[UserAchievement]:
        """Achievements awarded to the user, newest first"""
        rows = await self._fetchall(
            "list_user_achievements",
            """
            SELECT user_id, achievement_id, earned_at
            FROM user_achievements
            WHERE user_id = %s
            ORDER BY earned_at DESC, achievement_id
            """,
            (user_id,),
            user_id
        )
        return [UserAchievement(**row) for row in rows]

    async def award_achievement(self, user_id: str, achievement_id: str) -> Optional[UserAchievement]:
        """
        Record an award

        Returns:
            The new award, or None when the user already held it
        """
        row = await self._fetchone(
            "award_achievement",
            """
            INSERT INTO user_achievements (user_id, achievement_id)
            VALUES (%s, %s)
            ON CONFLICT (user_id, achievement_id) DO NOTHING
            RETURNING user_id, achievement_id, earned_at
            """,
            (user_id, achievement_id),
            user_id
        )
        return UserAchievement(**row) if row else None
