"""
Wall-clock helpers for the booking grid.

Slots are laid out in minutes since local midnight of the business time
zone. These helpers convert between "HH:MM" strings, time objects, minute
offsets and aware datetimes.
"""

import re
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

_CLOCK_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def time_to_minutes(value) -> int:
    """Convert "HH:MM" or a datetime.time into minutes since midnight."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    match = _CLOCK_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Invalid clock time: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight into a zero-padded "HH:MM" string."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minutes_of_day(moment: datetime, tz: ZoneInfo) -> int:
    """Wall-clock minutes since midnight of an aware datetime in tz."""
    local = moment.astimezone(tz)
    return local.hour * 60 + local.minute


def local_today(now: datetime, tz: ZoneInfo) -> date:
    return now.astimezone(tz).date()


def day_bounds(target_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Aware [start, end) of a local calendar day."""
    start = datetime.combine(target_date, time.min, tzinfo=tz)
    end = datetime.combine(target_date + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def ranges_overlap(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap: [start_a, end_a) and [start_b, end_b)."""
    return start_a < end_b and end_a > start_b
