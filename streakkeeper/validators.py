"""
Centralized Pydantic Input Validation Layer

Validates every caller-supplied value before it reaches the engine or the
ledger, so invalid input is rejected before any computation runs.

Validation Categories:
1. Habit definitions - name, icon, frequency descriptor, active window
2. Completion toggles - calendar date, completion instant, notes
3. Timezones and date ranges - IANA identifiers, ordered YYYY-MM-DD ranges
"""

import logging
import datetime as dt
from typing import Any, Optional

import pytz
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from streakkeeper.exceptions import ValidationError
from streakkeeper.models.habit import Frequency

logger = logging.getLogger(__name__)


# ============================================================================
# FREQUENCY DESCRIPTORS
# ============================================================================

def normalize_frequency(value: Any) -> Any:
    """
    Bring legacy frequency inputs into the tagged form

    Legacy clients send either the string "daily", a list of weekday names
    (["Mon", "Wed"]) or a comma separated string of them ("Mon,Wed").
    Tagged dicts and Frequency models pass through unchanged.
    """
    if isinstance(value, str):
        if value.strip().lower() == "daily":
            return {"type": "daily"}
        return {"type": "weekly", "days": value}
    if isinstance(value, (list, tuple, set, frozenset)):
        return {"type": "weekly", "days": list(value)}
    return value


# ============================================================================
# HABIT DEFINITIONS
# ============================================================================

class HabitCreate(BaseModel):
    """
    Validate a new habit

    Constraints:
    - Name: 1-100 characters, whitespace trimmed
    - Frequency: tagged descriptor or legacy weekday list
    - end_date on or after start_date
    - start_date defaults to today in the caller's timezone (set by the service)
    """
    name: str = Field(..., min_length=1, max_length=100, description="Habit name")
    icon: Optional[str] = Field(default=None, max_length=255)
    frequency: Frequency
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    @field_validator("name")
    @classmethod
    def trim_name(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Name cannot be only whitespace")
        return trimmed

    @field_validator("frequency", mode="before")
    @classmethod
    def accept_legacy_frequency(cls, v: Any) -> Any:
        return normalize_frequency(v)

    @model_validator(mode="after")
    def window_ordered(self) -> "HabitCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError(
                f"End date cannot be before start date. "
                f"Start: {self.start_date}, End: {self.end_date}"
            )
        return self


class HabitUpdate(BaseModel):
    """Validate a partial habit update; only supplied fields change"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=255)
    frequency: Optional[Frequency] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    @field_validator("name", "frequency", mode="before")
    @classmethod
    def not_cleared(cls, v: Any, info: ValidationInfo) -> Any:
        # Omit a field to keep it; null would violate the stored NOT NULL columns
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v

    @field_validator("name")
    @classmethod
    def trim_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Name cannot be only whitespace")
        return trimmed

    @field_validator("frequency", mode="before")
    @classmethod
    def accept_legacy_frequency(cls, v: Any) -> Any:
        return normalize_frequency(v)

    @model_validator(mode="after")
    def window_ordered(self) -> "HabitUpdate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError(
                f"End date cannot be before start date. "
                f"Start: {self.start_date}, End: {self.end_date}"
            )
        return self

    def changes(self) -> dict[str, Any]:
        """Supplied fields in storage form"""
        data = self.model_dump(mode="json", exclude_unset=True)
        for field in ("start_date", "end_date"):
            if field in data and data[field] is not None:
                data[field] = getattr(self, field)
        return data


# ============================================================================
# COMPLETION TOGGLES
# ============================================================================

class ToggleRequest(BaseModel):
    """
    Validate a completion toggle

    Constraints:
    - date: calendar date (YYYY-MM-DD) to toggle; defaults to the date of
      completed_at in the given timezone
    - completed_at: completion instant; defaults to now
    - notes: at most 500 characters
    - timezone: valid IANA timezone
    """
    date: Optional[dt.date] = None
    completed_at: Optional[dt.datetime] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    timezone: str = Field(default="UTC", description="IANA timezone")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        return _check_timezone(v)


# ============================================================================
# TIMEZONES AND DATE RANGES
# ============================================================================

def _check_timezone(v: str) -> str:
    try:
        pytz.timezone(v)
    except pytz.exceptions.UnknownTimeZoneError:
        raise ValueError(
            f"Invalid timezone: '{v}'. "
            f"Please use IANA timezone (e.g., 'Europe/Stockholm', 'America/New_York')"
        )
    return v


class DateRangeInput(BaseModel):
    """Validate an optional inclusive date range"""
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    @model_validator(mode="after")
    def range_ordered(self) -> "DateRangeInput":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError(
                f"end_date cannot be before start_date. "
                f"Provided: {self.start_date} to {self.end_date}"
            )
        return self


def validate_date_range(
    start_date: Optional[dt.date],
    end_date: Optional[dt.date]
) -> tuple[Optional[dt.date], Optional[dt.date]]:
    """
    Check that a date range is ordered

    Raises:
        ValidationError: If end_date is before start_date
    """
    validated = validate_input(DateRangeInput, start_date=start_date, end_date=end_date)
    return validated.start_date, validated.end_date


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================

def format_validation_error(e: Exception) -> str:
    """
    Format a Pydantic validation error as a single readable message

    Args:
        e: ValidationError from Pydantic

    Returns:
        Message naming the first offending field
    """
    if not isinstance(e, PydanticValidationError):
        return str(e)

    errors = e.errors()
    if not errors:
        return "Validation failed"

    first_error = errors[0]
    loc = first_error.get("loc") or ("input",)
    msg = first_error.get("msg", "Invalid value")
    field = ".".join(str(part) for part in loc)

    return f"{field}: {msg}"


def validate_input(model_class: type[BaseModel], **data) -> BaseModel:
    """
    Validate data against a model, raising our ValidationError on failure

    Args:
        model_class: Pydantic model class
        **data: Data to validate

    Raises:
        ValidationError: With the first offending field
    """
    try:
        return model_class(**data)
    except PydanticValidationError as e:
        errors = e.errors()
        field = None
        if errors and errors[0].get("loc"):
            field = str(errors[0]["loc"][0])
        raise ValidationError(
            message=format_validation_error(e),
            field=field,
            value=None
        )
