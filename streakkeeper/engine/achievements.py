"""
Achievement evaluation

Every achievement is a threshold on one user total (live habits,
completions, longest habit streak, active days or perfect days). An
achievement is earned once the total reaches its target; awards are never
revoked, even if the total later drops.
"""

import logging
from typing import Iterable

from streakkeeper.models.achievement import (
    Achievement,
    AchievementCategory,
    AchievementMetric,
    AchievementProgress,
    UserTotals,
)

logger = logging.getLogger(__name__)

_GS = AchievementCategory.GETTING_STARTED
_CON = AchievementCategory.CONSISTENCY
_DED = AchievementCategory.DEDICATION
_MIL = AchievementCategory.MILESTONES

_CATALOG = (
    # id, name, description, icon, category, metric, target
    ("first_habit", "First Step", "Create your very first habit", "Sprout", _GS, AchievementMetric.HABITS, 1),
    ("first_completion", "Getting Started", "Complete your first habit", "CheckCircle", _GS, AchievementMetric.COMPLETIONS, 1),
    ("three_habits", "Building Momentum", "Create 3 habits", "Target", _GS, AchievementMetric.HABITS, 3),
    ("five_habits", "Habit Collector", "Create 5 habits", "BookOpen", _GS, AchievementMetric.HABITS, 5),
    ("first_week", "Week Warrior", "Complete habits on 7 different days", "Calendar", _GS, AchievementMetric.ACTIVE_DAYS, 7),

    ("streak_3", "On a Roll", "Maintain a 3-occurrence streak", "Flame", _CON, AchievementMetric.LONGEST_STREAK, 3),
    ("streak_7", "Week Streak", "Maintain a 7-occurrence streak", "Zap", _CON, AchievementMetric.LONGEST_STREAK, 7),
    ("streak_14", "Two Weeks Strong", "Maintain a 14-occurrence streak", "Shield", _CON, AchievementMetric.LONGEST_STREAK, 14),
    ("streak_21", "Habit Former", "Maintain a 21-occurrence streak", "Medal", _CON, AchievementMetric.LONGEST_STREAK, 21),
    ("streak_30", "Month Master", "Maintain a 30-occurrence streak", "Crown", _CON, AchievementMetric.LONGEST_STREAK, 30),
    ("streak_50", "Fifty Days", "Maintain a 50-occurrence streak", "Star", _CON, AchievementMetric.LONGEST_STREAK, 50),
    ("streak_66", "Habit Scientist", "Maintain a 66-occurrence streak", "Activity", _CON, AchievementMetric.LONGEST_STREAK, 66),
    ("streak_100", "Centurion", "Maintain a 100-occurrence streak", "Building", _CON, AchievementMetric.LONGEST_STREAK, 100),
    ("perfect_week", "Perfect Week", "Have 7 perfect days", "Star", _CON, AchievementMetric.PERFECT_DAYS, 7),
    ("perfect_month", "Perfect Month", "Have 30 perfect days", "Moon", _CON, AchievementMetric.PERFECT_DAYS, 30),

    ("completions_10", "Getting Active", "Complete habits 10 times", "Activity", _DED, AchievementMetric.COMPLETIONS, 10),
    ("completions_25", "Quarter Century", "Complete habits 25 times", "Star", _DED, AchievementMetric.COMPLETIONS, 25),
    ("completions_50", "Half Century", "Complete habits 50 times", "Target", _DED, AchievementMetric.COMPLETIONS, 50),
    ("completions_100", "Century Club", "Complete habits 100 times", "Trophy", _DED, AchievementMetric.COMPLETIONS, 100),
    ("completions_250", "Dedicated", "Complete habits 250 times", "Award", _DED, AchievementMetric.COMPLETIONS, 250),
    ("completions_500", "Habit Master", "Complete habits 500 times", "Medal", _DED, AchievementMetric.COMPLETIONS, 500),
    ("completions_1000", "Legendary", "Complete habits 1000 times", "Crown", _DED, AchievementMetric.COMPLETIONS, 1000),
    ("active_30_days", "Monthly Active", "Complete habits on 30 different days", "TrendingUp", _DED, AchievementMetric.ACTIVE_DAYS, 30),
    ("active_60_days", "Bi-Monthly Active", "Complete habits on 60 different days", "TrendingUp", _DED, AchievementMetric.ACTIVE_DAYS, 60),
    ("active_100_days", "Hundred Day Hero", "Complete habits on 100 different days", "Shield", _DED, AchievementMetric.ACTIVE_DAYS, 100),

    ("ten_habits", "Habit Enthusiast", "Create 10 habits", "Target", _MIL, AchievementMetric.HABITS, 10),
    ("twenty_habits", "Habit Architect", "Create 20 habits", "Building", _MIL, AchievementMetric.HABITS, 20),
    ("streak_365", "Year Long", "Maintain a 365-occurrence streak", "Star", _MIL, AchievementMetric.LONGEST_STREAK, 365),
    ("streak_500", "Unstoppable", "Maintain a 500-occurrence streak", "Rocket", _MIL, AchievementMetric.LONGEST_STREAK, 500),
    ("streak_1000", "Millennium", "Maintain a 1000-occurrence streak", "Zap", _MIL, AchievementMetric.LONGEST_STREAK, 1000),
    ("time_traveler", "Time Traveler", "Complete habits on 180 different days", "Timer", _MIL, AchievementMetric.ACTIVE_DAYS, 180),
)

ACHIEVEMENTS: tuple[Achievement, ...] = tuple(
    Achievement(
        id=achievement_id,
        name=name,
        description=description,
        icon=icon,
        category=category,
        metric=metric,
        target=target,
    )
    for achievement_id, name, description, icon, category, metric, target in _CATALOG
)

ACHIEVEMENTS_BY_ID: dict[str, Achievement] = {a.id: a for a in ACHIEVEMENTS}


def metric_value(totals: UserTotals, metric: AchievementMetric) -> int:
    """The user total an achievement metric reads"""
    return getattr(totals, metric.value)


def is_earned(achievement: Achievement, totals: UserTotals) -> bool:
    return metric_value(totals, achievement.metric) >= achievement.target


def achievement_progress(achievement: Achievement, totals: UserTotals) -> AchievementProgress:
    """
    Progress towards an achievement

    Returns:
        AchievementProgress with the percentage capped at 100 and rounded
        to two decimals
    """
    current = metric_value(totals, achievement.metric)
    percentage = min(100.0, current / achievement.target * 100)
    return AchievementProgress(
        current=current,
        target=achievement.target,
        percentage=round(percentage, 2),
    )


def newly_earned(
    totals: UserTotals,
    earned_ids: Iterable[str],
    catalog: Iterable[Achievement] = ACHIEVEMENTS
) -> list[Achievement]:
    """
    Achievements whose target the totals reach but which were not yet awarded

    Args:
        totals: Current user totals
        earned_ids: Ids of achievements the user already holds
        catalog: Achievements to check, in award order
    """
    held = set(earned_ids)
    unlocked = [a for a in catalog if a.id not in held and is_earned(a, totals)]
    logger.debug(f"{len(unlocked)} achievements newly reached with totals {totals.model_dump()}")
    return unlocked
