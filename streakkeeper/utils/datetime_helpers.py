"""
Standardized Date/Time Handling Utilities

CRITICAL RULES:
- Completion instants are stored in UTC (use now_utc())
- A tracker's calendar date is derived once, in the timezone supplied at
  tracking time (date_in_timezone()), and never re-derived afterwards
- "Today" is always evaluated in the caller's timezone (today_in_timezone())
- Never mix naive and aware datetimes
"""

import logging
from datetime import datetime, date, timedelta
from typing import Iterator, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import pytz

from streakkeeper.exceptions import ValidationError

logger = logging.getLogger(__name__)


def is_valid_timezone(tz_name: str) -> bool:
    """Check an IANA timezone identifier against the tz database"""
    if not tz_name or not isinstance(tz_name, str):
        return False
    try:
        pytz.timezone(tz_name)
    except pytz.exceptions.UnknownTimeZoneError:
        return False
    return True


def get_timezone(tz_name: str) -> ZoneInfo:
    """
    Resolve a timezone identifier

    Raises:
        ValidationError: If the identifier is not in the tz database
    """
    if is_valid_timezone(tz_name):
        try:
            return ZoneInfo(tz_name)
        except ZoneInfoNotFoundError:
            logger.warning(f"Timezone '{tz_name}' known to pytz but missing from zoneinfo")

    raise ValidationError(
        message=f"Invalid timezone: '{tz_name}'. "
                f"Please use IANA timezone (e.g., 'Europe/Stockholm', 'America/New_York')",
        field="timezone",
        value=tz_name
    )


def now_utc() -> datetime:
    """Current datetime in UTC with timezone info"""
    return datetime.now(ZoneInfo("UTC"))


def today_in_timezone(tz_name: str) -> date:
    """Current calendar date in the given timezone"""
    return now_utc().astimezone(get_timezone(tz_name)).date()


def to_utc(dt: datetime) -> datetime:
    """
    Convert datetime to UTC

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo("UTC"))
    return dt.astimezone(ZoneInfo("UTC"))


def date_in_timezone(instant: datetime, tz_name: str) -> date:
    """
    Calendar date of an instant as seen in a timezone

    >>> date_in_timezone(datetime(2024, 1, 1, 2, 0, tzinfo=ZoneInfo("UTC")), "America/New_York")
    datetime.date(2023, 12, 31)
    """
    return to_utc(instant).astimezone(get_timezone(tz_name)).date()


def parse_date(value: Union[str, date, None], field: str = "date") -> Optional[date]:
    """
    Parse a YYYY-MM-DD calendar date

    Raises:
        ValidationError: If the value is not a valid calendar date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        raise ValidationError(
            message="Expected a calendar date without a time component",
            field=field,
            value=str(value)
        )
    if isinstance(value, date):
        return value

    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except (ValueError, AttributeError):
        raise ValidationError(
            message=f"Invalid date '{value}'. Expected YYYY-MM-DD",
            field=field,
            value=value
        )


def daterange(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date from start through end (inclusive)"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
