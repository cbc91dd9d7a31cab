"""
AchievementService - Achievement progress and awarding

Achievements are checked on request: `check_and_award` evaluates the
catalog against the user's current totals and records every newly reached
achievement. Listing calls never award anything.
"""

import logging
from collections import Counter
from typing import Callable

from streakkeeper.db.ledger import HabitLedger
from streakkeeper.engine.achievements import (
    ACHIEVEMENTS,
    ACHIEVEMENTS_BY_ID,
    achievement_progress,
    newly_earned,
)
from streakkeeper.models.achievement import (
    AchievementCategory,
    AchievementStatus,
    AchievementSummary,
    CategoryCount,
    EarnedAchievement,
    UserAchievement,
    UserTotals,
)
from streakkeeper.observability.metrics import achievements_awarded_total
from streakkeeper.services.progress_service import ProgressService
from streakkeeper.utils.datetime_helpers import get_timezone

logger = logging.getLogger(__name__)

RECENT_LIMIT = 10


def _earned(award: UserAchievement) -> EarnedAchievement:
    achievement = ACHIEVEMENTS_BY_ID[award.achievement_id]
    return EarnedAchievement(**achievement.model_dump(), earned_at=award.earned_at)


class AchievementService:
    """Service for achievement progress, listings and awards"""

    def __init__(
        self,
        db,
        progress_service: ProgressService,
        ledger_factory: Callable[..., HabitLedger] = HabitLedger
    ):
        self.db = db
        self.progress_service = progress_service
        self.ledger_factory = ledger_factory

    async def _awards(self, ledger: HabitLedger, user_id: str) -> list[UserAchievement]:
        # Awards of achievements no longer in the catalog are ignored
        return [
            award for award in await ledger.list_user_achievements(user_id)
            if award.achievement_id in ACHIEVEMENTS_BY_ID
        ]

    async def get_user_totals(self, user_id: str, timezone: str = "UTC") -> UserTotals:
        """
        Totals achievements are measured against

        Perfect days are counted over the progress calculation window as of
        today in `timezone`.

        Raises:
            ValidationError: Invalid timezone
        """
        get_timezone(timezone)
        overview = await self.progress_service.get_progress_overview(user_id, timezone)
        async with self.db.connection() as conn:
            totals = await self.ledger_factory(conn).user_totals(user_id)

        perfect_days = sum(1 for day in overview.history if day.is_perfect_day)
        return totals.model_copy(update={"perfect_days": perfect_days})

    async def list_achievements(self, user_id: str, timezone: str = "UTC") -> list[AchievementStatus]:
        """Every achievement with the user's earned state, or progress while locked"""
        totals = await self.get_user_totals(user_id, timezone)
        async with self.db.connection() as conn:
            awards = await self._awards(self.ledger_factory(conn), user_id)

        earned_at = {award.achievement_id: award.earned_at for award in awards}
        return [
            AchievementStatus(
                **achievement.model_dump(),
                is_earned=achievement.id in earned_at,
                earned_at=earned_at.get(achievement.id),
                progress=None if achievement.id in earned_at else achievement_progress(achievement, totals),
            )
            for achievement in ACHIEVEMENTS
        ]

    async def list_earned(self, user_id: str) -> list[EarnedAchievement]:
        """Achievements the user holds, newest first"""
        async with self.db.connection() as conn:
            awards = await self._awards(self.ledger_factory(conn), user_id)
        return [_earned(award) for award in awards]

    async def get_summary(self, user_id: str) -> AchievementSummary:
        """Earned counts overall and per category, with the latest awards"""
        earned = await self.list_earned(user_id)

        totals_by_category = Counter(a.category for a in ACHIEVEMENTS)
        earned_by_category = Counter(a.category for a in earned)
        categories = {
            category: CategoryCount(
                total=totals_by_category[category],
                earned=earned_by_category[category],
            )
            for category in AchievementCategory
        }

        return AchievementSummary(
            total=len(ACHIEVEMENTS),
            earned=len(earned),
            completion_percentage=round(len(earned) / len(ACHIEVEMENTS) * 100),
            categories=categories,
            recent=earned[:RECENT_LIMIT],
        )

    async def check_and_award(self, user_id: str, timezone: str = "UTC") -> list[EarnedAchievement]:
        """
        Award every achievement the user's totals now reach

        Returns:
            The achievements awarded by this call, in catalog order. An
            achievement awarded concurrently by another call is not repeated.

        Raises:
            ValidationError: Invalid timezone
        """
        totals = await self.get_user_totals(user_id, timezone)

        awarded = []
        async with self.db.transaction() as conn:
            ledger = self.ledger_factory(conn)
            held = [award.achievement_id for award in await ledger.list_user_achievements(user_id)]
            for achievement in newly_earned(totals, held):
                award = await ledger.award_achievement(user_id, achievement.id)
                if award is None:
                    continue
                awarded.append(_earned(award))

        for achievement in awarded:
            achievements_awarded_total.labels(category=achievement.category.value).inc()
            logger.info(f"User {user_id} earned achievement {achievement.id} ({achievement.name})")

        return awarded
