"""Habit, frequency and tracker models"""
from typing import Optional, Literal, Union, Annotated
from datetime import date, datetime
from pydantic import BaseModel, Field, field_validator, field_serializer, model_validator

WEEKDAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]  # index == date.weekday()


class DailyFrequency(BaseModel):
    """Due every calendar day of the active window"""
    type: Literal["daily"] = "daily"


class WeeklyFrequency(BaseModel):
    """Due on matching weekdays (0=Monday … 6=Sunday)"""
    type: Literal["weekly"] = "weekly"
    days: frozenset[int] = Field(..., min_length=1)

    @field_validator("days", mode="before")
    @classmethod
    def parse_day_names(cls, v):
        """Accept 'Mon'..'Sun' as well as 0..6"""
        if isinstance(v, str):
            v = [part.strip() for part in v.split(",") if part.strip()]
        days = []
        for day in v:
            if isinstance(day, str) and not day.isdigit():
                name = day.strip()[:3].capitalize()
                if name not in WEEKDAY_NAMES:
                    raise ValueError(
                        f"Invalid weekday '{day}'. Use one of: {', '.join(WEEKDAY_NAMES)}"
                    )
                days.append(WEEKDAY_NAMES.index(name))
            else:
                days.append(int(day))
        return days

    @field_validator("days")
    @classmethod
    def validate_range(cls, v: frozenset[int]) -> frozenset[int]:
        for day in v:
            if day < 0 or day > 6:
                raise ValueError(f"Invalid day: {day}. Days must be 0-6 (Monday=0, Sunday=6)")
        return v

    @field_serializer("days")
    def serialize_days(self, days: frozenset[int]) -> list[int]:
        return sorted(days)


class MonthlyFrequency(BaseModel):
    """Due on matching days of the month (1-31)"""
    type: Literal["monthly"] = "monthly"
    dates: frozenset[int] = Field(..., min_length=1)

    @field_validator("dates")
    @classmethod
    def validate_range(cls, v: frozenset[int]) -> frozenset[int]:
        for day in v:
            if day < 1 or day > 31:
                raise ValueError(f"Invalid day of month: {day}. Must be 1-31")
        return v

    @field_serializer("dates")
    def serialize_dates(self, dates: frozenset[int]) -> list[int]:
        return sorted(dates)


class CustomFrequency(BaseModel):
    """Due every `interval_days` days counted from the habit's start date"""
    type: Literal["custom"] = "custom"
    interval_days: int = Field(..., gt=0)


Frequency = Annotated[
    Union[DailyFrequency, WeeklyFrequency, MonthlyFrequency, CustomFrequency],
    Field(discriminator="type"),
]


class Habit(BaseModel):
    """
    A recurring habit

    current_streak, longest_streak, total_completions and last_completed are
    derived from the tracker ledger and rewritten after every mutation.
    """
    id: int
    user_id: str
    name: str = Field(..., min_length=1, max_length=100)
    icon: Optional[str] = None
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None

    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    total_completions: int = Field(default=0, ge=0)
    last_completed: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def in_window(self, day: date) -> bool:
        """Whether day falls inside [start_date, end_date]"""
        if day < self.start_date:
            return False
        return self.end_date is None or day <= self.end_date


class Tracker(BaseModel):
    """A single completion record; at most one per (habit, date_tracked)"""
    id: int
    habit_id: int
    user_id: str
    completed_at: datetime
    date_tracked: date
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: Optional[datetime] = None


class StreakStats(BaseModel):
    """Derived streak fields of a habit"""
    current: int = Field(default=0, ge=0)
    longest: int = Field(default=0, ge=0)
    total_completions: int = Field(default=0, ge=0)
    last_completed: Optional[datetime] = None

    @model_validator(mode="after")
    def longest_covers_current(self) -> "StreakStats":
        if self.longest < self.current:
            raise ValueError(
                f"longest streak ({self.longest}) cannot be below current streak ({self.current})"
            )
        return self


class ToggleResult(BaseModel):
    """Outcome of toggling a completion: exactly one tracker created or deleted"""
    action: Literal["created", "deleted"]
    tracker: Optional[Tracker] = None
    streak: StreakStats

    @model_validator(mode="after")
    def tracker_matches_action(self) -> "ToggleResult":
        if self.action == "created" and self.tracker is None:
            raise ValueError("A created toggle must carry the new tracker")
        if self.action == "deleted" and self.tracker is not None:
            raise ValueError("A deleted toggle carries no tracker")
        return self


class HabitDayStatus(Habit):
    """A habit due on a given date, with whether it was completed that date"""
    completed: bool = False


class HabitStats(BaseModel):
    """Read-only streak statistics of a habit as of today"""
    habit_id: int
    streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    total_completions: int = Field(default=0, ge=0)
    last_completed: Optional[datetime] = None
    as_of: date
