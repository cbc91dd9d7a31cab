"""Pydantic models for API request/response validation"""
import datetime as dt
from typing import Any, Dict, List
from pydantic import BaseModel, Field

from streakkeeper.models.achievement import AchievementStatus, EarnedAchievement
from streakkeeper.models.habit import Habit, HabitDayStatus, Tracker
from streakkeeper.models.progress import ProgressDay


class HabitListResponse(BaseModel):
    """Live habits of a user"""
    user_id: str
    habits: List[Habit]


class HabitDayListResponse(BaseModel):
    """Habits due on a date, each with its completion flag"""
    user_id: str
    date: dt.date = Field(..., description="Date the listing is scoped to")
    habits: List[HabitDayStatus]


class TrackerListResponse(BaseModel):
    """Completion trackers of a habit, newest first"""
    user_id: str
    habit_id: int
    trackers: List[Tracker]


class ProgressResponse(BaseModel):
    """Daily completion history and perfect-day streaks"""
    user_id: str
    timezone: str
    history: List[ProgressDay]
    current_streak: int
    longest_streak: int


class AchievementListResponse(BaseModel):
    """Every achievement with the user's earned state or progress"""
    user_id: str
    achievements: List[AchievementStatus]


class EarnedAchievementListResponse(BaseModel):
    """Achievements a user holds, newest first"""
    user_id: str
    achievements: List[EarnedAchievement]


class AchievementCheckResponse(BaseModel):
    """Achievements awarded by a check"""
    user_id: str
    awarded: List[EarnedAchievement]
    count: int


class HealthCheckResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    database: str = Field(..., description="Database connection status")
    cache: Dict[str, Any] = Field(default_factory=dict, description="Result cache statistics")
    timestamp: dt.datetime = Field(..., description="Check timestamp")

