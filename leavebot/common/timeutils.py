"""Clock helpers — duration parsing/formatting and date arithmetic in the office timezone.

Everything here is pure: callers pass ``now`` explicitly when they need a
deterministic clock, otherwise the current UTC time is used.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from leavebot.common.constants import DATE_FORMAT, TIME_FORMAT
from leavebot.config import settings

_HOURS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*h")
_MINUTES_RE = re.compile(r"(\d+(?:\.\d+)?)\s*m")
_TIME_FORMATS = ("%H:%M", "%I:%M %p", "%I:%M%p", "%I %p", "%I%p")


# ── Clock ───────────────────────────────────────────────────────────

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite returns them naive)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def office_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def to_local(dt: datetime) -> datetime:
    return as_utc(dt).astimezone(office_tz())


def local_date_of(dt: datetime) -> date:
    """Calendar date of an instant in the office timezone."""
    return to_local(dt).date()


def local_today(now: Optional[datetime] = None) -> date:
    return local_date_of(now or utc_now())


def local_datetime(day: date, at: time) -> datetime:
    """Build an aware UTC instant from an office-local date and wall time."""
    return datetime.combine(day, at, tzinfo=office_tz()).astimezone(timezone.utc)


# ── Durations ───────────────────────────────────────────────────────

def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def elapsed_minutes(start: datetime, now: Optional[datetime] = None) -> int:
    """Whole minutes between ``start`` and ``now``, rounded to nearest."""
    seconds = ((now or utc_now()) - as_utc(start)).total_seconds()
    return round_half_up(seconds / 60)


def parse_duration(text: str) -> int:
    """Parse "1.5h", "30m", "1h30m" or a bare number of hours into minutes.

    Unparseable input yields 0; callers treat 0 as invalid.
    """
    if not text:
        return 0
    value = text.lower().strip()
    total = 0.0

    hours = _HOURS_RE.search(value)
    minutes = _MINUTES_RE.search(value)
    if hours:
        total += float(hours.group(1)) * 60
    if minutes:
        total += float(minutes.group(1))

    if not hours and not minutes:
        try:
            total = float(value) * 60
        except ValueError:
            return 0
        if not math.isfinite(total) or total < 0:
            return 0

    return round_half_up(total)


def is_valid_duration(text: str) -> bool:
    return parse_duration(text) > 0


def format_duration(minutes: int) -> str:
    """45 → "45m", 120 → "2h", 90 → "1h 30m"."""
    if minutes < 60:
        return f"{minutes}m"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"{hours}h"
    return f"{hours}h {rest}m"


def exceeds_threshold(minutes: int, threshold_hours: float) -> bool:
    return minutes > threshold_hours * 60


def calculate_return_time(duration_minutes: int, now: Optional[datetime] = None) -> datetime:
    """Expected return instant in office-local time."""
    return to_local(now or utc_now()) + timedelta(minutes=duration_minutes)


def format_time(dt: datetime) -> str:
    return to_local(dt).strftime(TIME_FORMAT)


def format_date(day: date) -> str:
    return day.strftime(DATE_FORMAT)


# ── Time of day ─────────────────────────────────────────────────────

def parse_time_of_day(text: str) -> Optional[time]:
    """Parse "10:00", "7:30 PM", "9am" into a ``time``; None when invalid."""
    value = (text or "").strip().upper()
    for fmt in _TIME_FORMATS:
        try:
            return datetime.strptime(value, fmt).time()
        except ValueError:
            continue
    return None


def minutes_of_day(at: time) -> int:
    return at.hour * 60 + at.minute


# ── Calendar ────────────────────────────────────────────────────────

def working_days_between(start: date, end: date) -> int:
    """Mon–Fri days in [start, end], inclusive."""
    if end < start:
        return 0
    weeks, rest = divmod((end - start).days + 1, 7)
    first = start.weekday()
    return weeks * 5 + sum(1 for offset in range(rest) if (first + offset) % 7 < 5)
