"""
Date utility functions for sprint scheduling
"""
import re
from datetime import date, datetime, timedelta
from typing import Optional, Tuple
import pandas as pd
from utils.constants import (
    CALENDAR_TIMEZONE,
    CALENDAR_WEEK_START_WEEKDAY,
    DATE_KEY_FORMAT,
)

_PLAN_LENGTH_UNITS = {
    'd': 1,
    'day': 1,
    'days': 1,
    'w': 7,
    'week': 7,
    'weeks': 7,
}


def start_of_local_day(value, tz: Optional[str] = None) -> Optional[pd.Timestamp]:
    """
    Normalize a date-like value to midnight of its local calendar day

    Timezone-aware values are converted to `tz` (falling back to the configured
    calendar timezone, then to the machine's local zone) before the time part
    is dropped, so the result is always a naive day-local timestamp.

    Args:
        value: datetime, date, string or Timestamp (None/NaT allowed)
        tz: Optional IANA timezone name

    Returns:
        Naive pandas Timestamp at 00:00, or None if value is empty
    """
    if value is None:
        return None
    if isinstance(value, str) and value.strip() == '':
        return None

    stamp = pd.Timestamp(value)
    if pd.isna(stamp):
        return None

    if stamp.tzinfo is not None:
        zone = tz or CALENDAR_TIMEZONE
        if zone:
            stamp = stamp.tz_convert(zone)
        else:
            stamp = pd.Timestamp(stamp.to_pydatetime().astimezone())
        stamp = stamp.tz_localize(None)

    return stamp.normalize()


def to_date_key(day) -> str:
    """Format a day as the schedule key (YYYY-MM-DD)"""
    if isinstance(day, (datetime, date, pd.Timestamp)):
        return day.strftime(DATE_KEY_FORMAT)
    return pd.Timestamp(day).strftime(DATE_KEY_FORMAT)


def parse_plan_length_days(value: Optional[str]) -> Optional[int]:
    """
    Parse a sprint plan length such as "2w", "10d", "3 weeks" or "5 days"

    Args:
        value: Plan length string

    Returns:
        Number of days (fractional lengths are floored, minimum 1),
        or None if the value is empty or unrecognized
    """
    if not value:
        return None

    normalized = str(value).strip().lower()
    if not normalized:
        return None

    match = re.fullmatch(r'(\d+(?:\.\d+)?)\s*([a-z]+)', normalized)
    if not match:
        return None

    amount = float(match.group(1))
    unit = match.group(2)
    multiplier = _PLAN_LENGTH_UNITS.get(unit)
    if multiplier is None:
        if unit.startswith('day'):
            multiplier = 1
        elif unit.startswith('week'):
            multiplier = 7
        else:
            return None

    if amount <= 0:
        return None

    return max(1, int(amount * multiplier))


def get_week_bounds(
    day: pd.Timestamp,
    week_start: int = None
) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """
    Get the first and last day of the calendar week containing `day`

    Args:
        day: Day-local timestamp
        week_start: Weekday the week starts on (0 = Monday), defaults to config

    Returns:
        Tuple of (week_first_day, week_last_day)
    """
    if week_start is None:
        week_start = CALENDAR_WEEK_START_WEEKDAY

    offset = (day.weekday() - week_start) % 7
    first = day - timedelta(days=offset)
    return first, first + timedelta(days=6)
