"""Tests for the Pydantic input validation layer"""
import pytest
from datetime import date
from pydantic import ValidationError as PydanticValidationError

from streakkeeper.exceptions import ValidationError
from streakkeeper.models.habit import DailyFrequency, WeeklyFrequency
from streakkeeper.validators import (
    HabitCreate,
    HabitUpdate,
    ToggleRequest,
    DateRangeInput,
    format_validation_error,
    validate_date_range,
    validate_input,
)


def _frequency(value):
    return validate_input(HabitCreate, name="Habit", frequency=value).frequency


class TestFrequencyInput:

    def test_tagged_descriptor(self):
        frequency = _frequency({"type": "monthly", "dates": [1, 31]})
        assert frequency.dates == frozenset({1, 31})

    def test_legacy_weekday_list(self):
        frequency = _frequency(["Mon", "Thu"])
        assert isinstance(frequency, WeeklyFrequency)
        assert frequency.days == frozenset({0, 3})

    def test_legacy_comma_string(self):
        frequency = _frequency("Tue, Sat")
        assert frequency.days == frozenset({1, 5})

    def test_legacy_daily_string(self):
        assert isinstance(_frequency("daily"), DailyFrequency)

    @pytest.mark.parametrize("value", [
        {"type": "yearly"},
        {"type": "weekly", "days": []},
        {"type": "weekly", "days": [7]},
        {"type": "monthly", "dates": [0]},
        {"type": "custom", "interval_days": -2},
        ["Funday"],
    ])
    def test_malformed_descriptor(self, value):
        with pytest.raises(ValidationError) as exc_info:
            _frequency(value)
        assert exc_info.value.field == "frequency"

    def test_weekly_serializes_sorted(self):
        frequency = _frequency({"type": "weekly", "days": [4, 0, 2]})
        assert frequency.model_dump(mode="json") == {"type": "weekly", "days": [0, 2, 4]}


class TestHabitCreate:

    def test_valid_habit(self):
        habit = HabitCreate(
            name="  Read  ",
            frequency={"type": "daily"},
            start_date=date(2024, 1, 1),
        )
        assert habit.name == "Read"
        assert habit.end_date is None

    def test_legacy_frequency_accepted(self):
        habit = HabitCreate(name="Gym", frequency=["Mon", "Wed", "Fri"])
        assert habit.frequency.days == frozenset({0, 2, 4})

    def test_end_before_start_rejected(self):
        with pytest.raises(PydanticValidationError):
            HabitCreate(
                name="Read",
                frequency={"type": "daily"},
                start_date=date(2024, 2, 1),
                end_date=date(2024, 1, 1),
            )

    def test_name_limits(self):
        with pytest.raises(PydanticValidationError):
            HabitCreate(name="", frequency={"type": "daily"})
        with pytest.raises(PydanticValidationError):
            HabitCreate(name="x" * 101, frequency={"type": "daily"})
        with pytest.raises(PydanticValidationError):
            HabitCreate(name="   ", frequency={"type": "daily"})


class TestHabitUpdate:

    def test_only_supplied_fields_change(self):
        update = HabitUpdate(name="Walk")
        assert update.changes() == {"name": "Walk"}

    def test_changes_storage_form(self):
        update = HabitUpdate(frequency=["Fri", "Mon"], start_date=date(2024, 3, 1))
        changes = update.changes()
        assert changes["frequency"] == {"type": "weekly", "days": [0, 4]}
        assert changes["start_date"] == date(2024, 3, 1)

    def test_clearing_end_date(self):
        update = HabitUpdate(end_date=None)
        assert update.changes() == {"end_date": None}

    def test_clearing_icon(self):
        assert HabitUpdate(icon=None).changes() == {"icon": None}

    @pytest.mark.parametrize("field", ["name", "frequency"])
    def test_required_columns_cannot_be_nulled(self, field):
        with pytest.raises(ValidationError) as exc_info:
            validate_input(HabitUpdate, **{field: None})
        assert exc_info.value.field == field
        assert "cannot be null" in exc_info.value.message


class TestToggleRequest:

    def test_defaults(self):
        request = ToggleRequest()
        assert request.timezone == "UTC"
        assert request.date is None

    def test_invalid_timezone(self):
        with pytest.raises(PydanticValidationError) as exc_info:
            ToggleRequest(timezone="Mars/Olympus")
        assert "Invalid timezone" in str(exc_info.value)

    def test_notes_limit(self):
        with pytest.raises(PydanticValidationError):
            ToggleRequest(notes="x" * 501)


class TestDateRanges:

    def test_ordered_range(self):
        assert validate_date_range(date(2024, 1, 1), date(2024, 1, 31)) == (date(2024, 1, 1), date(2024, 1, 31))

    def test_open_range(self):
        assert validate_date_range(None, None) == (None, None)

    def test_reversed_range(self):
        with pytest.raises(ValidationError):
            validate_date_range(date(2024, 2, 1), date(2024, 1, 1))


class TestUtilities:

    def test_format_validation_error_names_field(self):
        with pytest.raises(PydanticValidationError) as exc_info:
            HabitCreate(name="", frequency={"type": "daily"})
        assert format_validation_error(exc_info.value).startswith("name:")

    def test_validate_input_raises_our_error(self):
        with pytest.raises(ValidationError):
            validate_input(DateRangeInput, start_date="not-a-date")
