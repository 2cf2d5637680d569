"""Scheduling domain schemas - Pydantic models for validation"""

from typing import Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ...models import Appointment
from .time_calculator import format_civil_date, format_clock, minute_of_day

AppointmentStatus = Literal["new", "confirmed", "waiting", "done", "no_show", "canceled"]


# ============================================================================
# BOOKING REQUESTS
# ============================================================================


class ServiceItem(BaseModel):
    """One requested service; list order is booking order unless sortOrder is given"""

    serviceId: str
    sortOrder: Optional[int] = Field(default=None, ge=0)


class ServiceBooking(BaseModel):
    """Schema for booking a client visit with one or more services"""

    type: Literal["service"] = "service"
    branchId: str
    masterEmployeeId: str
    date: str  # YYYY-MM-DD
    startTime: str  # HH:MM on the 15 minute grid
    clientId: Optional[str] = None
    comment: Optional[str] = None
    isPaid: bool = False
    services: list[ServiceItem] = Field(default_factory=list)


class BlockBooking(BaseModel):
    """Schema for reserving master time without a client (no billing)"""

    type: Literal["block"]
    branchId: str
    masterEmployeeId: str
    date: str
    startTime: str
    title: Optional[str] = None
    comment: Optional[str] = None
    blockDurationMin: Optional[int] = None


# Tagged by `type`; the router declares the discriminator on the request body
BookingRequest = Union[ServiceBooking, BlockBooking]


class BookAppointmentRequest(BaseModel):
    """Schema for the service-only booking shortcut"""

    branchId: str
    masterEmployeeId: str
    date: str
    startTime: str
    serviceIds: list[str]
    clientId: Optional[str] = None
    comment: Optional[str] = None
    isPaid: bool = False


# ============================================================================
# MUTATION REQUESTS
# ============================================================================


class RescheduleRequest(BaseModel):
    """Omitted fields keep their current value; serviceIds replaces the whole list"""

    date: Optional[str] = None
    startTime: Optional[str] = None
    serviceIds: Optional[list[str]] = None
    comment: Optional[str] = None


class BlockRescheduleRequest(BaseModel):
    date: Optional[str] = None
    startTime: Optional[str] = None
    durationMin: Optional[int] = None


class StatusUpdateRequest(BaseModel):
    status: AppointmentStatus
    comment: Optional[str] = None


class AppointmentUpdateRequest(BaseModel):
    """Manual edit; an empty clientId detaches the client"""

    masterEmployeeId: Optional[str] = None
    date: Optional[str] = None
    startTime: Optional[str] = None
    comment: Optional[str] = None
    clientId: Optional[str] = None
    services: Optional[list[ServiceItem]] = None


class ProductItem(BaseModel):
    productId: str
    qty: int

    @field_validator("qty")
    @classmethod
    def validate_qty(cls, v):
        if v < 1:
            raise ValueError("qty must be >= 1")
        return v


class AddProductsRequest(BaseModel):
    items: list[ProductItem]
    createdByEmployeeId: Optional[str] = None
    note: Optional[str] = None


# ============================================================================
# WORK SCHEDULE REQUESTS
# ============================================================================


class RuleDay(BaseModel):
    dayOfWeek: int = Field(ge=0, le=6)  # Monday=0
    isWorkingDay: bool
    startTime: Optional[str] = None
    endTime: Optional[str] = None


class RulesUpsertRequest(BaseModel):
    days: list[RuleDay]


class ExceptionUpsertRequest(BaseModel):
    employeeId: str
    date: str
    isWorkingDay: bool
    startTime: Optional[str] = None
    endTime: Optional[str] = None


class BreakCreateRequest(BaseModel):
    employeeId: str
    date: str
    startTime: str
    endTime: str
    reason: Optional[str] = None


# ============================================================================
# RESPONSES
# ============================================================================


class NamedRef(BaseModel):
    id: str
    name: str


class ServiceLineResponse(BaseModel):
    id: str
    serviceId: str
    durationMin: int
    price: int
    sortOrder: int
    service: Optional[NamedRef] = None


class ProductLineResponse(BaseModel):
    id: str
    productId: str
    qty: int
    price: int
    total: int
    product: Optional[NamedRef] = None


class AppointmentResponse(BaseModel):
    id: str
    branchId: str
    type: str
    status: str
    masterEmployeeId: str
    master: Optional[NamedRef] = None
    clientId: Optional[str] = None
    client: Optional[NamedRef] = None
    title: Optional[str] = None
    comment: Optional[str] = None
    date: str
    startTime: str
    endTime: str
    startAt: str
    endAt: str
    totalServices: int
    totalProducts: int
    total: int
    isPaid: bool
    paidTotal: int
    paymentStatus: str
    services: list[ServiceLineResponse] = Field(default_factory=list)
    products: list[ProductLineResponse] = Field(default_factory=list)

    @classmethod
    def from_model(cls, appt: Appointment) -> "AppointmentResponse":
        return cls(
            id=appt.id,
            branchId=appt.branch_id,
            type=appt.type,
            status=appt.status,
            masterEmployeeId=appt.master_employee_id,
            master=(
                NamedRef(id=appt.master_employee.id, name=appt.master_employee.full_name)
                if appt.master_employee
                else None
            ),
            clientId=appt.client_id,
            client=NamedRef(id=appt.client.id, name=appt.client.full_name) if appt.client else None,
            title=appt.title,
            comment=appt.comment,
            date=format_civil_date(appt.start_at),
            startTime=format_clock(minute_of_day(appt.start_at)),
            endTime=format_clock(minute_of_day(appt.end_at)),
            startAt=appt.start_at.isoformat() + "Z",
            endAt=appt.end_at.isoformat() + "Z",
            totalServices=appt.total_services,
            totalProducts=appt.total_products,
            total=appt.total,
            isPaid=appt.is_paid,
            paidTotal=appt.paid_total,
            paymentStatus=appt.payment_status,
            services=[
                ServiceLineResponse(
                    id=line.id,
                    serviceId=line.service_id,
                    durationMin=line.duration_min,
                    price=line.price,
                    sortOrder=line.sort_order,
                    service=NamedRef(id=line.service.id, name=line.service.name) if line.service else None,
                )
                for line in appt.services
            ],
            products=[
                ProductLineResponse(
                    id=line.id,
                    productId=line.product_id,
                    qty=line.qty,
                    price=line.price,
                    total=line.total,
                    product=NamedRef(id=line.product.id, name=line.product.name) if line.product else None,
                )
                for line in appt.products
            ],
        )


class TotalsResponse(BaseModel):
    totalServices: int
    totalProducts: int
    total: int


class AddProductsResponse(BaseModel):
    appointment: AppointmentResponse
    totals: TotalsResponse


class WorkWindow(BaseModel):
    start: str
    end: str


class AvailabilityResponse(BaseModel):
    employeeId: str
    date: str
    durationMin: int
    work: Optional[WorkWindow] = None
    slots: list[str]


class RuleResponse(BaseModel):
    id: str
    dayOfWeek: int
    isWorkingDay: bool
    startTime: Optional[str] = None
    endTime: Optional[str] = None


class ExceptionResponse(BaseModel):
    id: str
    date: str
    isWorkingDay: bool
    startTime: Optional[str] = None
    endTime: Optional[str] = None


class BreakResponse(BaseModel):
    id: str
    date: str
    startTime: str
    endTime: str
    reason: Optional[str] = None
