"""Schedule service - Working rules, date exceptions and breaks of a master"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...database import transaction
from ...models import WorkScheduleBlock, WorkScheduleException, WorkScheduleRule
from .errors import EmployeeNotFound, InvalidTime, MissingField, ScheduleEntryNotFound
from .repository import AppointmentRepository, ScheduleRepository
from .schemas import BreakCreateRequest, ExceptionUpsertRequest, RulesUpsertRequest
from .time_calculator import parse_civil_date, parse_clock, require_step15

logger = logging.getLogger(__name__)


def validate_working_hours(start_time: Optional[str], end_time: Optional[str]) -> None:
    """HH:MM on the 15 minute grid with end strictly after start"""
    if not start_time or not end_time:
        raise MissingField("startTime and endTime are required for a working day")
    start = parse_clock(start_time)
    end = parse_clock(end_time)
    require_step15(start, "startTime")
    require_step15(end, "endTime")
    if end <= start:
        raise InvalidTime("endTime must be after startTime")


class ScheduleService:
    """Service layer for the inputs the availability calculator reads"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ScheduleRepository()
        self.appointments = AppointmentRepository()

    def _assert_employee(self, company_id: str, employee_id: str) -> None:
        if not self.appointments.get_employee(self.db, company_id, employee_id):
            raise EmployeeNotFound("Employee does not belong to your company")

    # ========================================================================
    # WEEKLY RULES
    # ========================================================================

    def get_rules(self, company_id: str, employee_id: str) -> list[WorkScheduleRule]:
        self._assert_employee(company_id, employee_id)
        return self.repo.get_rules(self.db, employee_id)

    def upsert_rules(
        self, company_id: str, employee_id: str, data: RulesUpsertRequest
    ) -> list[WorkScheduleRule]:
        """
        Replace the whole week. Days missing from the request become days off,
        a later entry for the same weekday wins.
        """
        self._assert_employee(company_id, employee_id)

        by_day = {day.dayOfWeek: day for day in data.days}
        rows = []
        for day_of_week in range(7):
            day = by_day.get(day_of_week)
            if day is not None and day.isWorkingDay:
                validate_working_hours(day.startTime, day.endTime)
                rows.append(
                    {
                        "day_of_week": day_of_week,
                        "is_working_day": True,
                        "start_time": day.startTime,
                        "end_time": day.endTime,
                    }
                )
            else:
                rows.append(
                    {"day_of_week": day_of_week, "is_working_day": False, "start_time": None, "end_time": None}
                )

        with transaction(self.db):
            self.repo.replace_rules(self.db, company_id, employee_id, rows)

        working = sum(1 for row in rows if row["is_working_day"])
        logger.info(f"✅ Work rules saved for employee {employee_id}: {working} working days")
        return self.repo.get_rules(self.db, employee_id)

    # ========================================================================
    # DATE EXCEPTIONS
    # ========================================================================

    def list_exceptions(
        self, company_id: str, employee_id: str, date_from: str, date_to: str
    ) -> list[WorkScheduleException]:
        self._assert_employee(company_id, employee_id)
        return self.repo.list_exceptions(
            self.db, employee_id, parse_civil_date(date_from), parse_civil_date(date_to)
        )

    def upsert_exception(self, company_id: str, data: ExceptionUpsertRequest) -> WorkScheduleException:
        """Create or overwrite the single exception of a master for one date"""
        self._assert_employee(company_id, data.employeeId)
        day = parse_civil_date(data.date)

        if data.isWorkingDay:
            validate_working_hours(data.startTime, data.endTime)
            fields = {"is_working_day": True, "start_time": data.startTime, "end_time": data.endTime}
        else:
            fields = {"is_working_day": False, "start_time": None, "end_time": None}

        with transaction(self.db):
            exception = self.repo.upsert_exception(self.db, company_id, data.employeeId, day, **fields)
            exception_id = exception.id

        logger.info(f"📅 Schedule exception saved for employee {data.employeeId} on {data.date}")
        return self._get_exception(company_id, exception_id)

    def remove_exception(self, company_id: str, exception_id: str) -> dict:
        exception = self._get_exception(company_id, exception_id)
        with transaction(self.db):
            self.db.delete(exception)
        logger.info(f"🗑️ Schedule exception {exception_id} deleted")
        return {"message": "Exception deleted"}

    def _get_exception(self, company_id: str, exception_id: str) -> WorkScheduleException:
        exception = self.repo.get_exception_by_id(self.db, company_id, exception_id)
        if not exception:
            raise ScheduleEntryNotFound("Schedule exception not found")
        return exception

    # ========================================================================
    # BREAKS
    # ========================================================================

    def list_blocks(
        self, company_id: str, employee_id: str, date_from: str, date_to: str
    ) -> list[WorkScheduleBlock]:
        self._assert_employee(company_id, employee_id)
        return self.repo.list_blocks(
            self.db, employee_id, parse_civil_date(date_from), parse_civil_date(date_to)
        )

    def create_block(self, company_id: str, data: BreakCreateRequest) -> WorkScheduleBlock:
        self._assert_employee(company_id, data.employeeId)
        day = parse_civil_date(data.date)
        validate_working_hours(data.startTime, data.endTime)

        with transaction(self.db):
            block = self.repo.add_block(
                self.db,
                company_id=company_id,
                employee_id=data.employeeId,
                date=day,
                start_time=data.startTime,
                end_time=data.endTime,
                reason=(data.reason or "").strip() or None,
            )
            block_id = block.id

        logger.info(f"☕ Break {block_id} added for employee {data.employeeId} on {data.date}")
        return self.repo.get_block(self.db, company_id, block_id)

    def delete_block(self, company_id: str, block_id: str) -> dict:
        block = self.repo.get_block(self.db, company_id, block_id)
        if not block:
            raise ScheduleEntryNotFound("Break not found")
        with transaction(self.db):
            self.db.delete(block)
        logger.info(f"🗑️ Break {block_id} deleted")
        return {"message": "Break deleted"}
