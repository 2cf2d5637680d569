"""
Time parsing and interval arithmetic for scheduling.

All dates live in one fixed civil calendar anchored at UTC: a calendar day is
the span [00:00, 24:00) UTC and instants are stored as naive UTC datetimes.
Intervals are half-open [start_min, end_min) in minutes since midnight.
"""

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from ...config import SLOT_STEP_MIN
from .errors import InvalidDate, InvalidTime, NotQuarterHour

STEP_MIN = SLOT_STEP_MIN
MINUTES_PER_DAY = 24 * 60

DATE_PATTERN = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
CLOCK_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class Interval:
    start_min: int
    end_min: int


# ============================================================================
# PARSING
# ============================================================================


def parse_civil_date(value: str) -> datetime:
    """
    Parse YYYY-MM-DD into the instant at UTC midnight of that day.

    Raises:
        InvalidDate: wrong format or a calendar value out of range (e.g. month 13)
    """
    match = DATE_PATTERN.match(value or "")
    if not match:
        raise InvalidDate("Invalid date format. Use YYYY-MM-DD")
    year, month, day = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day)
    except ValueError:
        raise InvalidDate(f"Invalid date: {value}") from None


def parse_clock(value: str) -> int:
    """
    Parse HH:MM (00:00-23:59) into minutes since midnight.

    Raises:
        InvalidTime: anything that is not a 24h HH:MM string
    """
    match = CLOCK_PATTERN.match(value or "")
    if not match:
        raise InvalidTime("Time must be HH:MM")
    hours, minutes = match.groups()
    return int(hours) * 60 + int(minutes)


def require_step15(minutes: int, what: str = "Time") -> None:
    if minutes % STEP_MIN != 0:
        raise NotQuarterHour(f"{what} must be multiple of {STEP_MIN} minutes")


# ============================================================================
# FORMATTING / CONVERSION
# ============================================================================


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_civil_date(instant: datetime) -> str:
    return instant.strftime("%Y-%m-%d")


def add_minutes(instant: datetime, minutes: int) -> datetime:
    return instant + timedelta(minutes=minutes)


def minute_of_day(instant: datetime) -> int:
    return instant.hour * 60 + instant.minute


def day_of_week_mon0(day: datetime) -> int:
    """Monday=0 ... Sunday=6"""
    return day.isoweekday() - 1


def minutes_between(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() // 60)


def to_day_interval(day_start: datetime, start_at: datetime, end_at: datetime) -> Interval:
    """Express an absolute span as minutes relative to day_start (may exceed the day)"""
    start = (start_at - day_start).total_seconds() / 60
    end = (end_at - day_start).total_seconds() / 60
    # Round outward so sub-minute remainders still count as busy
    return Interval(math.floor(start), math.ceil(end))


# ============================================================================
# INTERVAL ALGEBRA
# ============================================================================


def clip_interval(interval: Interval, lower: int, upper: int) -> Optional[Interval]:
    start = max(interval.start_min, lower)
    end = min(interval.end_min, upper)
    return Interval(start, end) if end > start else None


def merge_intervals(items: Iterable[Interval]) -> list[Interval]:
    """Sort by start and coalesce overlapping or touching intervals"""
    merged: list[Interval] = []
    for item in sorted(items, key=lambda i: (i.start_min, i.end_min)):
        if merged and item.start_min <= merged[-1].end_min:
            last = merged[-1]
            merged[-1] = Interval(last.start_min, max(last.end_min, item.end_min))
        else:
            merged.append(item)
    return merged


def subtract_intervals(base: Interval, busy: Iterable[Interval]) -> list[Interval]:
    """base minus the union of busy: the free gaps, left to right"""
    free: list[Interval] = []
    cursor = base.start_min

    for item in merge_intervals(busy):
        if item.end_min <= cursor:
            continue
        if item.start_min >= base.end_min:
            break
        start = max(item.start_min, base.start_min)
        end = min(item.end_min, base.end_min)
        if start > cursor:
            free.append(Interval(cursor, start))
        cursor = max(cursor, end)

    if cursor < base.end_min:
        free.append(Interval(cursor, base.end_min))
    return free


def enumerate_slots(free: Iterable[Interval], duration_min: int, step: int = STEP_MIN) -> list[int]:
    """
    Start minutes on the step grid where a duration_min span fits entirely
    inside one free interval. Slots never straddle a busy gap.
    """
    slots: list[int] = []
    for interval in free:
        t = math.ceil(interval.start_min / step) * step
        while t + duration_min <= interval.end_min:
            slots.append(t)
            t += step
    return slots
