"""Timestamp normalization — pure functions, no DB or network dependency.

Every timestamp the engine compares is a canonical ``YYYY-MM-DDTHH:MM:SS`` string
holding local wall-clock time. Lead-ledger timestamps are kept exactly as received
(a trailing zone token such as "EST" is recognised but never used to shift the
clock). Routing-ledger timestamps arrive in UTC and are shifted into the same
local convention with ``utc_to_local``.
"""

import re
from datetime import date, datetime, timedelta

CANONICAL_FORMAT = "%Y-%m-%dT%H:%M:%S"

_ISO_DATETIME = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})")
_US_DATETIME = re.compile(
    r"^(\d{1,2})/(\d{1,2})/(\d{2,4})\s+(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)?"
    r"\s*(EST|EDT|PST|PDT|CST|CDT|MST|MDT|UTC|GMT)?\s*$",
    re.IGNORECASE,
)
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2,4})$")
_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_ROUTING_DATETIME = re.compile(
    r"^(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2}):(\d{2}):(\d{2})\s+(AM|PM)$",
    re.IGNORECASE,
)

# Daylight time starts/ends at 02:00 local standard time, i.e. 07:00 UTC.
_DST_TRANSITION_UTC_HOUR = 7


def expand_two_digit_year(year: int) -> int:
    """Resolve a two-digit year: 00-50 -> 2000s, 51-99 -> 1900s."""
    if year >= 100:
        return year
    return 2000 + year if year <= 50 else 1900 + year


def to_24_hour(hour: int, meridiem: str | None) -> int:
    meridiem = (meridiem or "").upper()
    if meridiem == "PM" and hour != 12:
        return hour + 12
    if meridiem == "AM" and hour == 12:
        return 0
    return hour


def _build(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> str | None:
    try:
        return datetime(year, month, day, hour, minute, second).strftime(CANONICAL_FORMAT)
    except ValueError:
        return None


def normalize_timestamp(value: str | datetime | date | None) -> str | None:
    """Normalize a timestamp from either ledger to the canonical local format.

    Accepted shapes:
    - ``datetime``/``date`` values (wall clock kept, tzinfo ignored)
    - ISO with time: ``2025-11-18T12:30:00.000Z`` -> ``2025-11-18T12:30:00``
    - ``MM/DD/YYYY hh:mm:ss AM/PM [TZ]`` and ``MM/DD/YY hh:mm AM/PM [TZ]``
    - date-only ``YYYY-MM-DD``, ``MM/DD/YY[YY]`` and ``DD-MM-YYYY`` (midnight)

    Returns None for anything else. Callers exclude None timestamps from
    matching rather than substituting a default.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.replace(tzinfo=None, microsecond=0).strftime(CANONICAL_FORMAT)
    if isinstance(value, date):
        return _build(value.year, value.month, value.day)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    match = _ISO_DATETIME.match(text)
    if match:
        result = _build(*(int(part) for part in match.groups()))
        if result:
            return result

    match = _US_DATETIME.match(text)
    if match:
        month, day, year, hour, minute, second, meridiem, _zone = match.groups()
        result = _build(
            expand_two_digit_year(int(year)),
            int(month),
            int(day),
            to_24_hour(int(hour), meridiem),
            int(minute),
            int(second or 0),
        )
        if result:
            return result

    match = _ISO_DATE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        result = _build(year, month, day)
        if result:
            return result

    match = _US_DATE.match(text)
    if match:
        month, day, year = (int(part) for part in match.groups())
        result = _build(expand_two_digit_year(year), month, day)
        if result:
            return result

    match = _DAY_FIRST_DATE.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        result = _build(year, month, day)
        if result:
            return result

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None, microsecond=0).strftime(CANONICAL_FORMAT)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a canonical timestamp string. Returns None when it is not canonical."""
    if not value:
        return None
    try:
        return datetime.strptime(value[:19], CANONICAL_FORMAT)
    except ValueError:
        return None


def _nth_sunday(year: int, month: int, n: int) -> date:
    first = date(year, month, 1)
    # date.weekday(): Monday=0 .. Sunday=6
    days_to_sunday = (6 - first.weekday()) % 7
    return first + timedelta(days=days_to_sunday + 7 * (n - 1))


def is_daylight_time(moment_utc: datetime) -> bool:
    """Whether a naive UTC moment falls inside the daylight-saving window.

    The window runs from the second Sunday of March to the first Sunday of
    November, switching at 2 AM local standard time on both ends.
    """
    start = datetime.combine(_nth_sunday(moment_utc.year, 3, 2), datetime.min.time()).replace(
        hour=_DST_TRANSITION_UTC_HOUR
    )
    end = datetime.combine(_nth_sunday(moment_utc.year, 11, 1), datetime.min.time()).replace(
        hour=_DST_TRANSITION_UTC_HOUR
    )
    return start <= moment_utc < end


def utc_to_local(
    raw: str | None,
    standard_offset_hours: int = 5,
    daylight_offset_hours: int = 4,
) -> str | None:
    """Convert a routing-ledger UTC timestamp (``MM/DD/YYYY hh:mm:ss AM/PM``) to local time.

    Input in any other shape is normalized without shifting.
    """
    if not raw:
        return None

    match = _ROUTING_DATETIME.match(raw.strip())
    if not match:
        return normalize_timestamp(raw)

    month, day, year, hour, minute, second, meridiem = match.groups()
    try:
        moment = datetime(
            int(year), int(month), int(day), to_24_hour(int(hour), meridiem), int(minute), int(second)
        )
    except ValueError:
        return None

    offset = daylight_offset_hours if is_daylight_time(moment) else standard_offset_hours
    return (moment - timedelta(hours=offset)).strftime(CANONICAL_FORMAT)


def day_difference(a: datetime, b: datetime) -> int:
    """Absolute difference in calendar days, ignoring the time of day."""
    return abs((a.date() - b.date()).days)


def minutes_between(a: datetime, b: datetime, ignore_seconds: bool = False) -> float:
    """Absolute difference in minutes, optionally at hour:minute granularity."""
    if ignore_seconds:
        a = a.replace(second=0, microsecond=0)
        b = b.replace(second=0, microsecond=0)
    return abs((a - b).total_seconds()) / 60.0
