"""
ProgressService - User-level progress overview

Daily completion rates across all of a user's habits plus perfect-day
streaks. The overview is always computed over the full calculation window
and cached per (user, today); a display range only filters the returned
history.
"""

import logging
import datetime as dt
from typing import Callable, Optional

from streakkeeper.db.ledger import HabitLedger
from streakkeeper.engine.progress import (
    DEFAULT_LOOKBACK_DAYS,
    calculation_window,
    compute_overview,
    filter_history,
)
from streakkeeper.models.progress import ProgressOverview
from streakkeeper.observability.metrics import progress_computation_seconds
from streakkeeper.utils.cache import CacheConfig, ResultCache, make_key
from streakkeeper.utils.datetime_helpers import get_timezone, parse_date, today_in_timezone
from streakkeeper.validators import validate_date_range

logger = logging.getLogger(__name__)


class ProgressService:
    """Service for cross-habit completion history and perfect-day streaks"""

    def __init__(
        self,
        db,
        cache: ResultCache,
        ledger_factory: Callable[..., HabitLedger] = HabitLedger,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS
    ):
        self.db = db
        self.cache = cache
        self.ledger_factory = ledger_factory
        self.lookback_days = lookback_days

    async def _compute(self, user_id: str, today: dt.date) -> ProgressOverview:
        async with self.db.connection() as conn:
            ledger = self.ledger_factory(conn)
            habits = await ledger.list_habits(user_id)
            window = calculation_window(habits, today, self.lookback_days)
            if window is None:
                return ProgressOverview()
            completions = await ledger.list_trackers_for_user(user_id, *window)

        with progress_computation_seconds.time():
            return compute_overview(habits, completions, today, lookback_days=self.lookback_days)

    async def get_progress_overview(
        self,
        user_id: str,
        timezone: str = "UTC",
        start_date: Optional[dt.date] = None,
        end_date: Optional[dt.date] = None
    ) -> ProgressOverview:
        """
        Completion history and perfect-day streaks of a user.

        Args:
            user_id: User whose habits are aggregated
            timezone: IANA timezone resolving "today"
            start_date: Optional first date of the returned history
            end_date: Optional last date of the returned history

        Returns:
            ProgressOverview; current and longest streak do not depend on the
            display range

        Raises:
            ValidationError: Invalid timezone or date range, before any computation
        """
        get_timezone(timezone)
        start_date, end_date = validate_date_range(
            parse_date(start_date, field="start_date"),
            parse_date(end_date, field="end_date")
        )
        today = today_in_timezone(timezone)

        key = make_key("progress", user_id, today.isoformat())
        overview = await self.cache.get_or_compute(
            key,
            CacheConfig.PROGRESS_TTL,
            lambda: self._compute(user_id, today)
        )

        logger.debug(
            f"Progress for user {user_id} as of {today}: "
            f"streak {overview.current_streak} (longest {overview.longest_streak})"
        )

        # Callers get their own copy; the cached overview is shared
        overview = overview.model_copy(deep=True)
        if start_date is not None or end_date is not None:
            overview.history = filter_history(overview.history, start_date, end_date)
        return overview
