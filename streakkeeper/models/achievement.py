"""Achievement models"""
from enum import Enum
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class AchievementCategory(str, Enum):
    """Achievement categories"""
    GETTING_STARTED = "getting_started"
    CONSISTENCY = "consistency"
    DEDICATION = "dedication"
    MILESTONES = "milestones"


class AchievementMetric(str, Enum):
    """User total an achievement is measured against"""
    HABITS = "habits"
    COMPLETIONS = "completions"
    LONGEST_STREAK = "longest_streak"
    ACTIVE_DAYS = "active_days"
    PERFECT_DAYS = "perfect_days"


class Achievement(BaseModel):
    """Achievement definition: earned once `metric` reaches `target`"""
    id: str
    name: str
    description: str
    icon: str
    category: AchievementCategory
    metric: AchievementMetric
    target: int = Field(..., gt=0)


class UserTotals(BaseModel):
    """Aggregates over a user's live habits that achievements are checked against"""
    habits: int = Field(default=0, ge=0)
    completions: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    active_days: int = Field(default=0, ge=0)
    perfect_days: int = Field(default=0, ge=0)


class AchievementProgress(BaseModel):
    """How far a user is towards an achievement"""
    current: int
    target: int
    percentage: float = Field(..., ge=0.0, le=100.0)


class UserAchievement(BaseModel):
    """Stored award of an achievement to a user"""
    user_id: str
    achievement_id: str
    earned_at: datetime


class EarnedAchievement(Achievement):
    """An achievement together with when the user earned it"""
    earned_at: datetime


class AchievementStatus(Achievement):
    """An achievement with the user's earned state, or progress while locked"""
    is_earned: bool = False
    earned_at: Optional[datetime] = None
    progress: Optional[AchievementProgress] = None


class CategoryCount(BaseModel):
    total: int = 0
    earned: int = 0


class AchievementSummary(BaseModel):
    """Earned counts overall and per category, plus the latest awards"""
    total: int
    earned: int
    completion_percentage: int = Field(..., ge=0, le=100)
    categories: dict[AchievementCategory, CategoryCount]
    recent: list[EarnedAchievement]
