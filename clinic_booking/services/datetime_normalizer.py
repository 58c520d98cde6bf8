"""Normalisation of booking dates and times.

Dates and times reach the API from the customer picker (12-hour labels such
as ``"10:15 am"``), the admin form (ISO values) and spreadsheet imports
(locale formatted strings such as ``"Mon, 3rd June 2025"``). Everything is
converted to ``YYYY-MM-DD`` and ``HH:MM:SS`` before it is compared or stored.
"""

import re
from datetime import date, datetime, time, timedelta

from dateutil import parser as date_parser

from clinic_booking.core.config import settings

CANONICAL_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
WEEKDAY_PREFIX_RE = re.compile(r"^\s*(mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?,\s*", re.IGNORECASE)
ORDINAL_SUFFIX_RE = re.compile(r"(\d+)(st|nd|rd|th)\b", re.IGNORECASE)
TWELVE_HOUR_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(am|pm)", re.IGNORECASE)
TWENTY_FOUR_HOUR_RE = re.compile(r"(\d{1,2}):(\d{2})(?::(\d{2}))?")

# free-form input is parsed against both; a date part missing from the input
# takes different values from each, so incomplete dates are detected
_PARSE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))


def parse_date(raw, dayfirst: bool | None = None) -> str | None:
    """Return ``raw`` as a canonical ``YYYY-MM-DD`` string, or ``None``."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    if isinstance(raw, date):
        return raw.isoformat()

    value = str(raw).strip()
    if CANONICAL_DATE_RE.match(value):
        # returned as-is; validity is still checked so "2025-02-30" is rejected
        try:
            date.fromisoformat(value)
        except ValueError:
            return None
        return value

    value = WEEKDAY_PREFIX_RE.sub("", value)
    value = ORDINAL_SUFFIX_RE.sub(r"\1", value)
    if dayfirst is None:
        dayfirst = settings.date_parse_dayfirst
    try:
        first, second = (
            date_parser.parse(value, dayfirst=dayfirst, default=default).date() for default in _PARSE_DEFAULTS
        )
    except (ValueError, OverflowError):
        return None
    if first != second:
        return None
    return first.isoformat()


def parse_time(raw) -> str | None:
    """Return ``raw`` as a canonical ``HH:MM:00`` string, or ``None``.

    Accepts 12-hour values (``"5:15 pm"``, ``"5:15PM"``) and 24-hour values
    (``"17:15"``, ``"17:15:00"``).
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, time):
        return f"{raw.hour:02d}:{raw.minute:02d}:00"

    value = str(raw).strip().lower()
    match = TWELVE_HOUR_RE.search(value)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)
        if not 1 <= hour <= 12 or minute > 59:
            return None
        if meridiem == "pm" and hour != 12:
            hour += 12
        if meridiem == "am" and hour == 12:
            hour = 0
        return f"{hour:02d}:{minute:02d}:00"

    match = TWENTY_FOUR_HOUR_RE.search(value)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return None
        return f"{hour:02d}:{minute:02d}:00"
    return None


def to_date(canonical: str) -> date:
    return date.fromisoformat(canonical)


def to_time(canonical: str) -> time:
    return time.fromisoformat(canonical)


def time_to_seconds(value: time) -> int:
    return value.hour * 3600 + value.minute * 60 + value.second


def seconds_to_time(seconds: int) -> time:
    return time(seconds // 3600, seconds % 3600 // 60, seconds % 60)


def add_minutes(canonical_time: str, minutes: int) -> str | None:
    """Shift a canonical time forward; ``None`` if the result leaves the day."""
    start = datetime.combine(date.min, to_time(canonical_time))
    end = start + timedelta(minutes=minutes)
    if end.date() != start.date():
        return None
    return end.time().isoformat()


def format_clock_label(value: time) -> str:
    hour = value.hour % 12 or 12
    meridiem = "pm" if value.hour >= 12 else "am"
    return f"{hour}:{value.minute:02d} {meridiem}"
