"""Scheduling router - FastAPI endpoints for appointments, availability and work schedules"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Header, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .appointment_service import AppointmentService
from .availability_service import AvailabilityService
from .schedule_service import ScheduleService
from .schemas import (
    AddProductsRequest,
    AddProductsResponse,
    AppointmentResponse,
    AppointmentUpdateRequest,
    AvailabilityResponse,
    BlockRescheduleRequest,
    BookAppointmentRequest,
    BookingRequest,
    BreakCreateRequest,
    BreakResponse,
    ExceptionResponse,
    ExceptionUpsertRequest,
    RescheduleRequest,
    RuleResponse,
    RulesUpsertRequest,
    StatusUpdateRequest,
    TotalsResponse,
)
from .time_calculator import format_civil_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])
availability_router = APIRouter(prefix="/availability", tags=["Availability"])
schedule_router = APIRouter(prefix="/schedule", tags=["Work Schedule"])


def get_company_id(x_company_id: str = Header(..., alias="X-Company-Id")) -> str:
    """Tenant scope; authentication happens upstream"""
    return x_company_id


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    """Dependency injection for AvailabilityService"""
    return AvailabilityService(db)


def get_schedule_service(db: Session = Depends(get_db)) -> ScheduleService:
    """Dependency injection for ScheduleService"""
    return ScheduleService(db)


# ============================================================================
# APPOINTMENTS - CREATE / READ
# ============================================================================


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: Annotated[BookingRequest, Body(discriminator="type")],
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Create a service appointment or a time block"""
    appointment = service.create_appointment(company_id, data)
    return AppointmentResponse.from_model(appointment)


@router.post("/book", response_model=AppointmentResponse, status_code=201)
async def book_appointment(
    data: BookAppointmentRequest,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book a service appointment from a flat list of service ids"""
    appointment = service.book_appointment(company_id, data)
    return AppointmentResponse.from_model(appointment)


@router.get("/day", response_model=list[AppointmentResponse])
async def list_appointments_for_day(
    branchId: str = Query(...),
    date: str = Query(...),
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    """All appointments of a branch on a date, canceled included"""
    appointments = service.list_appointments_for_day(company_id, branchId, date)
    return [AppointmentResponse.from_model(a) for a in appointments]


@router.get("/client/{client_id}", response_model=list[AppointmentResponse])
async def list_appointments_for_client(
    client_id: str,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Visit history of a client, newest first"""
    appointments = service.list_appointments_for_client(company_id, client_id)
    return [AppointmentResponse.from_model(a) for a in appointments]


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.get_appointment(company_id, appointment_id)
    return AppointmentResponse.from_model(appointment)


# ============================================================================
# APPOINTMENTS - MUTATIONS
# ============================================================================


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdateRequest,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Manual edit of client, master, time, comment or services"""
    appointment = service.update_appointment(company_id, appointment_id, data)
    return AppointmentResponse.from_model(appointment)


@router.patch("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.cancel_appointment(company_id, appointment_id)
    return AppointmentResponse.from_model(appointment)


@router.patch("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: str,
    data: RescheduleRequest,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.reschedule_appointment(company_id, appointment_id, data)
    return AppointmentResponse.from_model(appointment)


@router.patch("/{appointment_id}/reschedule-block", response_model=AppointmentResponse)
async def reschedule_block(
    appointment_id: str,
    data: BlockRescheduleRequest,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.reschedule_block(company_id, appointment_id, data)
    return AppointmentResponse.from_model(appointment)


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_status(
    appointment_id: str,
    data: StatusUpdateRequest,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.update_status(company_id, appointment_id, data)
    return AppointmentResponse.from_model(appointment)


@router.post("/{appointment_id}/products", response_model=AddProductsResponse)
async def add_products(
    appointment_id: str,
    data: AddProductsRequest,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Sell products within the appointment and return the new totals"""
    appointment, totals = service.add_products(company_id, appointment_id, data)
    return AddProductsResponse(
        appointment=AppointmentResponse.from_model(appointment),
        totals=TotalsResponse(
            totalServices=totals.total_services,
            totalProducts=totals.total_products,
            total=totals.total,
        ),
    )


@router.delete("/{appointment_id}")
async def remove_appointment(
    appointment_id: str,
    company_id: str = Depends(get_company_id),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Hard delete (admin cleanup)"""
    return service.remove_appointment(company_id, appointment_id)


# ============================================================================
# AVAILABILITY
# ============================================================================


@availability_router.get("", response_model=AvailabilityResponse)
async def get_availability(
    employeeId: str = Query(...),
    date: str = Query(...),
    durationMin: Optional[int] = Query(None),
    company_id: str = Depends(get_company_id),
    service: AvailabilityService = Depends(get_availability_service),
):
    """Bookable start times for a master on a date"""
    return service.get_availability(company_id, employeeId, date, durationMin).to_dict()


# ============================================================================
# WORK SCHEDULE
# ============================================================================


def _rule_response(rule) -> RuleResponse:
    return RuleResponse(
        id=rule.id,
        dayOfWeek=rule.day_of_week,
        isWorkingDay=rule.is_working_day,
        startTime=rule.start_time,
        endTime=rule.end_time,
    )


def _exception_response(exception) -> ExceptionResponse:
    return ExceptionResponse(
        id=exception.id,
        date=format_civil_date(exception.date),
        isWorkingDay=exception.is_working_day,
        startTime=exception.start_time,
        endTime=exception.end_time,
    )


def _break_response(block) -> BreakResponse:
    return BreakResponse(
        id=block.id,
        date=format_civil_date(block.date),
        startTime=block.start_time,
        endTime=block.end_time,
        reason=block.reason,
    )


@schedule_router.get("/rules/{employee_id}", response_model=list[RuleResponse])
async def get_rules(
    employee_id: str,
    company_id: str = Depends(get_company_id),
    service: ScheduleService = Depends(get_schedule_service),
):
    return [_rule_response(r) for r in service.get_rules(company_id, employee_id)]


@schedule_router.put("/rules/{employee_id}", response_model=list[RuleResponse])
async def upsert_rules(
    employee_id: str,
    data: RulesUpsertRequest,
    company_id: str = Depends(get_company_id),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Replace the weekly working rules of a master"""
    return [_rule_response(r) for r in service.upsert_rules(company_id, employee_id, data)]


@schedule_router.get("/exceptions", response_model=list[ExceptionResponse])
async def list_exceptions(
    employeeId: str = Query(...),
    date_from: str = Query(..., alias="from"),
    date_to: str = Query(..., alias="to"),
    company_id: str = Depends(get_company_id),
    service: ScheduleService = Depends(get_schedule_service),
):
    return [
        _exception_response(e)
        for e in service.list_exceptions(company_id, employeeId, date_from, date_to)
    ]


@schedule_router.put("/exceptions", response_model=ExceptionResponse)
async def upsert_exception(
    data: ExceptionUpsertRequest,
    company_id: str = Depends(get_company_id),
    service: ScheduleService = Depends(get_schedule_service),
):
    """Create or overwrite the exception of a master for one date"""
    return _exception_response(service.upsert_exception(company_id, data))


@schedule_router.delete("/exceptions/{exception_id}")
async def remove_exception(
    exception_id: str,
    company_id: str = Depends(get_company_id),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.remove_exception(company_id, exception_id)


@schedule_router.get("/breaks", response_model=list[BreakResponse])
async def list_breaks(
    employeeId: str = Query(...),
    date_from: str = Query(..., alias="from"),
    date_to: str = Query(..., alias="to"),
    company_id: str = Depends(get_company_id),
    service: ScheduleService = Depends(get_schedule_service),
):
    return [_break_response(b) for b in service.list_blocks(company_id, employeeId, date_from, date_to)]


@schedule_router.post("/breaks", response_model=BreakResponse, status_code=201)
async def create_break(
    data: BreakCreateRequest,
    company_id: str = Depends(get_company_id),
    service: ScheduleService = Depends(get_schedule_service),
):
    return _break_response(service.create_block(company_id, data))


@schedule_router.delete("/breaks/{block_id}")
async def delete_break(
    block_id: str,
    company_id: str = Depends(get_company_id),
    service: ScheduleService = Depends(get_schedule_service),
):
    return service.delete_block(company_id, block_id)
