"""User-level progress models"""
import datetime as dt
from pydantic import BaseModel, Field, computed_field


class ProgressDay(BaseModel):
    """Completion rate of one calendar day across the user's due habits"""
    date: dt.date
    completion_rate: float = Field(..., ge=0.0, le=1.0)
    due_count: int = Field(..., gt=0)
    completed_count: int = Field(..., ge=0)

    @computed_field
    @property
    def is_perfect_day(self) -> bool:
        return self.completed_count == self.due_count


class ProgressOverview(BaseModel):
    """Daily completion history plus perfect-day streaks"""
    history: list[ProgressDay] = Field(default_factory=list)
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
