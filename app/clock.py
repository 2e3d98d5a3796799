"""Day-boundary and night-count arithmetic shared by bookings, payments,
attendance and reporting.

Every instant handled here is timezone-aware UTC. A "local day" is a
calendar day relative to a fixed UTC offset; its window is the half-open
UTC interval ``[day_start, day_end)``.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from typing import NamedTuple

from app.errors import InvalidInput

DAY = timedelta(days=1)


class DayWindow(NamedTuple):
    day_key: str
    day_start: datetime
    day_end: datetime


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _offset_tz(utc_offset_minutes: int) -> timezone:
    return timezone(timedelta(minutes=utc_offset_minutes))


def day_window_for(local_date: date, utc_offset_minutes: int) -> DayWindow:
    tz = _offset_tz(utc_offset_minutes)
    day_start = datetime.combine(local_date, time(0, 0), tzinfo=tz).astimezone(timezone.utc)
    return DayWindow(local_date.isoformat(), day_start, day_start + DAY)


def local_date(instant: datetime, utc_offset_minutes: int) -> date:
    return as_utc(instant).astimezone(_offset_tz(utc_offset_minutes)).date()


def local_day_window(instant: datetime, utc_offset_minutes: int) -> DayWindow:
    return day_window_for(local_date(instant, utc_offset_minutes), utc_offset_minutes)


def night_count(check_in: datetime, check_out: datetime) -> int:
    """Whole nights between two instants, rounded up, never less than one.

    Rows written before check-in/check-out ordering was validated can have
    ``check_out <= check_in``; they still bill a single night.
    """
    seconds = (as_utc(check_out) - as_utc(check_in)).total_seconds()
    nights = math.ceil(seconds / DAY.total_seconds())
    return nights if nights > 0 else 1


def parse_instant(value: str | datetime | None, field: str) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    if not value or not isinstance(value, str):
        raise InvalidInput(f"Invalid {field}")
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        raise InvalidInput(f"Invalid {field}") from None
    return as_utc(parsed)


def parse_local_date(value: str, field: str, utc_offset_minutes: int) -> date:
    text = (value or "").strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    return local_date(parse_instant(text, field), utc_offset_minutes)
