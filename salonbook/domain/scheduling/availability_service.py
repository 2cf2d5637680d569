"""Availability service - free slot computation for a master's day"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_SLOT_DURATION_MIN
from .errors import EmployeeNotFound, InvalidDuration
from .repository import AppointmentRepository, ScheduleRepository
from .time_calculator import (
    MINUTES_PER_DAY,
    STEP_MIN,
    Interval,
    add_minutes,
    clip_interval,
    day_of_week_mon0,
    enumerate_slots,
    format_clock,
    parse_civil_date,
    parse_clock,
    require_step15,
    subtract_intervals,
    to_day_interval,
)

logger = logging.getLogger(__name__)


@dataclass
class Availability:
    employee_id: str
    date: str
    duration_min: int
    work: Optional[Interval] = None
    slots: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "employeeId": self.employee_id,
            "date": self.date,
            "durationMin": self.duration_min,
            "work": (
                {"start": format_clock(self.work.start_min), "end": format_clock(self.work.end_min)}
                if self.work
                else None
            ),
            "slots": self.slots,
        }


def resolve_work_window(rule, exception) -> Optional[Interval]:
    """
    Working window for one day, or None for a day off.

    The weekday rule decides whether the master works at all: no rule, or a
    rule marked as a day off, is a day off whatever the exception says. On a
    working weekday a date exception replaces the hours, or cancels the day.
    """
    if rule is None or not rule.is_working_day:
        return None
    if not rule.start_time or not rule.end_time:
        return None
    source = rule

    if exception is not None:
        if not exception.is_working_day:
            return None
        if not exception.start_time or not exception.end_time:
            return None
        source = exception

    start = parse_clock(source.start_time)
    end = parse_clock(source.end_time)
    require_step15(start, "Working hours")
    require_step15(end, "Working hours")
    if end <= start:
        return None
    return Interval(start, end)


def compute_slots(
    work: Interval,
    busy: list[Interval],
    breaks: list[Interval],
    duration_min: int,
) -> list[int]:
    """Slot start minutes for duration_min inside work, avoiding busy spans and breaks"""
    blocked = []
    for interval in [*busy, *breaks]:
        clipped = clip_interval(interval, work.start_min, work.end_min)
        if clipped:
            blocked.append(clipped)
    free = subtract_intervals(work, blocked)
    return enumerate_slots(free, duration_min)


class AvailabilityService:
    """Service layer for slot availability"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()
        self.schedule_repo = ScheduleRepository()

    @staticmethod
    def normalize_duration(duration_min: Optional[int]) -> int:
        duration = DEFAULT_SLOT_DURATION_MIN if duration_min is None else duration_min
        if duration < STEP_MIN:
            raise InvalidDuration(f"durationMin must be >= {STEP_MIN}")
        require_step15(duration, "durationMin")
        return duration

    def get_availability(
        self,
        company_id: str,
        employee_id: str,
        date: str,
        duration_min: Optional[int] = None,
    ) -> Availability:
        """Bookable start times (HH:MM) for the master on the date"""
        day_start = parse_civil_date(date)
        duration = self.normalize_duration(duration_min)

        if not self.repo.get_employee(self.db, company_id, employee_id):
            raise EmployeeNotFound("Employee does not belong to your company")

        result = Availability(employee_id=employee_id, date=date, duration_min=duration)

        rule = self.schedule_repo.get_rule(self.db, employee_id, day_of_week_mon0(day_start))
        exception = self.schedule_repo.get_exception(self.db, employee_id, day_start)
        work = resolve_work_window(rule, exception)
        if work is None:
            return result

        day_end = add_minutes(day_start, MINUTES_PER_DAY)
        busy = [
            to_day_interval(day_start, start_at, end_at)
            for start_at, end_at in self.repo.get_busy_spans(
                self.db, company_id, employee_id, day_start, day_end
            )
        ]
        breaks = [
            Interval(parse_clock(b.start_time), parse_clock(b.end_time))
            for b in self.schedule_repo.list_blocks(self.db, employee_id, day_start, day_start)
        ]

        result.work = work
        result.slots = [format_clock(t) for t in compute_slots(work, busy, breaks, duration)]

        logger.debug(
            f"Availability for {employee_id} on {date}: {len(result.slots)} slots of {duration} min"
        )
        return result
