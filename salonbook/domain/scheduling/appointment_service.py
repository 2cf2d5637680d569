"""Appointment service - Business logic for booking, rescheduling and line items"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from ...config import DEFAULT_BLOCK_DURATION_MIN, DEFAULT_BLOCK_TITLE, SERVICE_SORT_ORDER_BASE
from ...database import transaction
from ...models import Appointment, Employee
from .errors import (
    AppointmentCanceled,
    AppointmentNotFound,
    BlockImmutable,
    BranchNotFound,
    ClientNotFound,
    DurationNotQuarterHour,
    EmployeeNotFound,
    InsufficientStock,
    InvalidDuration,
    MissingField,
    MissingMasterRank,
    MissingPriceForRank,
    NothingToUpdate,
    ProductUnavailable,
    ServiceUnavailable,
    TimeSlotTaken,
    WrongAppointmentType,
)
from .repository import FREE_STATUSES, AppointmentRepository
from .schemas import (
    AddProductsRequest,
    AppointmentUpdateRequest,
    BlockBooking,
    BlockRescheduleRequest,
    BookAppointmentRequest,
    BookingRequest,
    RescheduleRequest,
    ServiceBooking,
    StatusUpdateRequest,
)
from .state_machine import assert_transition
from .time_calculator import (
    MINUTES_PER_DAY,
    STEP_MIN,
    add_minutes,
    format_civil_date,
    format_clock,
    minute_of_day,
    minutes_between,
    parse_civil_date,
    parse_clock,
    require_step15,
)
from .totals import Totals, recalc_totals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceLineItem:
    """Priced service snapshot ready to be persisted as an appointment line"""

    service_id: str
    duration_min: int
    price: int
    sort_order: int

    def to_row(self) -> dict:
        return {
            "service_id": self.service_id,
            "duration_min": self.duration_min,
            "price": self.price,
            "sort_order": self.sort_order,
        }


def total_duration(items: Sequence[ServiceLineItem]) -> int:
    total = sum(item.duration_min for item in items)
    if total % STEP_MIN != 0:
        raise DurationNotQuarterHour(f"Total duration must be multiple of {STEP_MIN} minutes")
    return total


def clean_comment(comment: Optional[str]) -> Optional[str]:
    if comment is None:
        return None
    return comment.strip() or None


def normalize_product_items(items) -> list[tuple[str, int]]:
    """Merge duplicate product ids into one quantity-summed entry, keeping first-seen order"""
    qty_by_id: dict[str, int] = {}
    for item in items:
        qty_by_id[item.productId] = qty_by_id.get(item.productId, 0) + item.qty
    return list(qty_by_id.items())


class AppointmentService:
    """Service layer for appointment business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    # ========================================================================
    # LOOKUPS / VALIDATION
    # ========================================================================

    def _assert_branch(self, company_id: str, branch_id: str) -> None:
        if not self.repo.get_branch(self.db, company_id, branch_id):
            raise BranchNotFound("Branch does not belong to your company")

    def _get_master(self, company_id: str, employee_id: str) -> Employee:
        employee = self.repo.get_employee(self.db, company_id, employee_id)
        if not employee:
            raise EmployeeNotFound("Employee does not belong to your company")
        return employee

    def _assert_client(self, company_id: str, client_id: str) -> None:
        if not self.repo.get_client(self.db, company_id, client_id):
            raise ClientNotFound("Client does not belong to your company")

    def _load(self, company_id: str, appointment_id: str) -> Appointment:
        appointment = self.repo.get_appointment(self.db, company_id, appointment_id)
        if not appointment:
            raise AppointmentNotFound("Appointment not found")
        return appointment

    @staticmethod
    def _resolve_start(date: str, start_time: str) -> datetime:
        day_start = parse_civil_date(date)
        start_min = parse_clock(start_time)
        require_step15(start_min)
        return add_minutes(day_start, start_min)

    def build_service_items(
        self,
        company_id: str,
        master: Employee,
        service_ids: Sequence[str],
        sort_orders: Optional[Sequence[Optional[int]]] = None,
    ) -> list[ServiceLineItem]:
        """
        Resolve duration and the master-rank price of each service, in the
        caller's order. Repeated ids produce repeated lines.
        """
        if not master.master_rank_id:
            raise MissingMasterRank("Master employee must have masterRankId to book services")

        services = {s.id: s for s in self.repo.get_active_services(self.db, company_id, service_ids)}
        missing = [sid for sid in service_ids if sid not in services]
        if missing:
            raise ServiceUnavailable(f"Some services not found or inactive: {', '.join(missing)}")

        prices = self.repo.get_prices_for_rank(self.db, service_ids, master.master_rank_id)

        items = []
        for idx, service_id in enumerate(service_ids):
            price = prices.get(service_id)
            if price is None:
                raise MissingPriceForRank(f"No price for service {service_id} at this master rank")
            sort_order = sort_orders[idx] if sort_orders and sort_orders[idx] is not None else None
            items.append(
                ServiceLineItem(
                    service_id=service_id,
                    duration_min=services[service_id].duration_min,
                    price=price,
                    sort_order=SERVICE_SORT_ORDER_BASE + idx if sort_order is None else sort_order,
                )
            )
        return items

    def _ensure_no_overlap(
        self,
        company_id: str,
        master_employee_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_appointment_id: Optional[str] = None,
    ) -> None:
        """
        Overlap guard. Call inside the write transaction: the master row lock is
        held until commit, so the check and the following write are atomic.
        """
        self.repo.lock_master(self.db, master_employee_id)
        if self.repo.has_conflict(
            self.db, company_id, master_employee_id, start_at, end_at, exclude_appointment_id
        ):
            logger.warning(
                f"⚠️ Time slot taken for master {master_employee_id}: {start_at.isoformat()} - {end_at.isoformat()}"
            )
            raise TimeSlotTaken("Time slot is already taken")

    # ========================================================================
    # CREATE / BOOK
    # ========================================================================

    def create_appointment(self, company_id: str, data: BookingRequest) -> Appointment:
        """Create a service visit or a time block, depending on data.type"""
        self._assert_branch(company_id, data.branchId)
        master = self._get_master(company_id, data.masterEmployeeId)

        if isinstance(data, BlockBooking):
            return self._create_block(company_id, master, data)
        if isinstance(data, ServiceBooking):
            if data.clientId:
                self._assert_client(company_id, data.clientId)
            return self._create_service_appointment(
                company_id,
                branch_id=data.branchId,
                master=master,
                date=data.date,
                start_time=data.startTime,
                service_ids=[s.serviceId for s in data.services],
                sort_orders=[s.sortOrder for s in data.services],
                client_id=data.clientId,
                comment=data.comment,
                is_paid=data.isPaid,
            )
        raise MissingField(f"Unsupported appointment type: {getattr(data, 'type', None)}")

    def book_appointment(self, company_id: str, data: BookAppointmentRequest) -> Appointment:
        """Service-only booking shortcut"""
        self._assert_branch(company_id, data.branchId)
        master = self._get_master(company_id, data.masterEmployeeId)
        if data.clientId:
            self._assert_client(company_id, data.clientId)

        return self._create_service_appointment(
            company_id,
            branch_id=data.branchId,
            master=master,
            date=data.date,
            start_time=data.startTime,
            service_ids=data.serviceIds,
            sort_orders=None,
            client_id=data.clientId,
            comment=data.comment,
            is_paid=data.isPaid,
        )

    def _create_block(self, company_id: str, master: Employee, data: BlockBooking) -> Appointment:
        start_at = self._resolve_start(data.date, data.startTime)

        duration = DEFAULT_BLOCK_DURATION_MIN if data.blockDurationMin is None else data.blockDurationMin
        if duration < STEP_MIN:
            raise InvalidDuration(f"blockDurationMin must be >= {STEP_MIN}")
        require_step15(duration, "blockDurationMin")
        end_at = add_minutes(start_at, duration)

        with transaction(self.db):
            self._ensure_no_overlap(company_id, master.id, start_at, end_at)
            appointment = self.repo.add_appointment(
                self.db,
                company_id=company_id,
                branch_id=data.branchId,
                type="block",
                status="confirmed",
                master_employee_id=master.id,
                client_id=None,
                title=data.title or DEFAULT_BLOCK_TITLE,
                comment=clean_comment(data.comment),
                start_at=start_at,
                end_at=end_at,
                is_paid=False,
                total_services=0,
                total_products=0,
                total=0,
            )
            appointment_id = appointment.id

        logger.info(f"✅ Block {appointment_id} created for master {master.id} at {start_at.isoformat()}")
        return self.get_appointment(company_id, appointment_id)

    def _create_service_appointment(
        self,
        company_id: str,
        branch_id: str,
        master: Employee,
        date: str,
        start_time: str,
        service_ids: Sequence[str],
        sort_orders: Optional[Sequence[Optional[int]]],
        client_id: Optional[str],
        comment: Optional[str],
        is_paid: bool,
    ) -> Appointment:
        start_at = self._resolve_start(date, start_time)

        if not service_ids:
            raise MissingField("services is required for type=service")

        items = self.build_service_items(company_id, master, service_ids, sort_orders)
        end_at = add_minutes(start_at, total_duration(items))
        total_services = sum(item.price for item in items)

        with transaction(self.db):
            self._ensure_no_overlap(company_id, master.id, start_at, end_at)
            appointment = self.repo.add_appointment(
                self.db,
                company_id=company_id,
                branch_id=branch_id,
                type="service",
                status="new",
                master_employee_id=master.id,
                client_id=client_id or None,
                title=None,
                comment=clean_comment(comment),
                start_at=start_at,
                end_at=end_at,
                is_paid=is_paid,
                total_services=total_services,
                total_products=0,
                total=total_services,
            )
            appointment_id = appointment.id
            self.repo.add_service_lines(self.db, appointment_id, [item.to_row() for item in items])
            recalc_totals(self.db, appointment_id)

        logger.info(
            f"✅ Appointment {appointment_id} booked for master {master.id} "
            f"{start_at.isoformat()} - {end_at.isoformat()} ({len(items)} services)"
        )
        return self.get_appointment(company_id, appointment_id)

    # ========================================================================
    # READS
    # ========================================================================

    def get_appointment(self, company_id: str, appointment_id: str) -> Appointment:
        appointment = self.repo.get_appointment_full(self.db, company_id, appointment_id)
        if not appointment:
            raise AppointmentNotFound("Appointment not found")
        return appointment

    def list_appointments_for_day(self, company_id: str, branch_id: str, date: str) -> list[Appointment]:
        """All appointments of the branch intersecting the day, canceled included"""
        self._assert_branch(company_id, branch_id)
        day_start = parse_civil_date(date)
        day_end = add_minutes(day_start, MINUTES_PER_DAY)
        return self.repo.list_for_branch_day(self.db, company_id, branch_id, day_start, day_end)

    def list_appointments_for_client(self, company_id: str, client_id: str) -> list[Appointment]:
        self._assert_client(company_id, client_id)
        return self.repo.list_for_client(self.db, company_id, client_id)

    # ========================================================================
    # STATUS
    # ========================================================================

    def update_status(self, company_id: str, appointment_id: str, data: StatusUpdateRequest) -> Appointment:
        appointment = self._load(company_id, appointment_id)
        current = appointment.status
        assert_transition(current, data.status, appointment.type)

        with transaction(self.db):
            # Reopening a canceled appointment takes its time back
            if current in FREE_STATUSES and data.status not in FREE_STATUSES:
                self._ensure_no_overlap(
                    company_id,
                    appointment.master_employee_id,
                    appointment.start_at,
                    appointment.end_at,
                    exclude_appointment_id=appointment.id,
                )
            updates = {"status": data.status}
            if data.comment is not None:
                updates["comment"] = clean_comment(data.comment)
            self.repo.update_appointment(self.db, appointment, **updates)

        logger.info(f"🔄 Appointment {appointment_id} status {current} -> {data.status}")
        return self.get_appointment(company_id, appointment_id)

    def cancel_appointment(self, company_id: str, appointment_id: str) -> Appointment:
        """Cancel through the status workflow; canceled time is free again"""
        return self.update_status(company_id, appointment_id, StatusUpdateRequest(status="canceled"))

    # ========================================================================
    # RESCHEDULE
    # ========================================================================

    def reschedule_appointment(self, company_id: str, appointment_id: str, data: RescheduleRequest) -> Appointment:
        """
        Move a service appointment and/or replace its services.

        Date and start time are resolved independently, so a time-only change
        keeps the current date and vice versa. A supplied service list replaces
        the current lines entirely and is re-priced at the master's rank.
        """
        appointment = self._load(company_id, appointment_id)
        if appointment.status == "canceled":
            raise AppointmentCanceled("Appointment is canceled")
        if appointment.type == "block":
            raise BlockImmutable("Cannot reschedule block appointment via this endpoint")

        wants_time = data.date is not None or data.startTime is not None
        wants_services = data.serviceIds is not None
        if not wants_time and not wants_services and data.comment is None:
            raise NothingToUpdate("Nothing to update")

        date = data.date if data.date is not None else format_civil_date(appointment.start_at)
        start_time = (
            data.startTime
            if data.startTime is not None
            else format_clock(minute_of_day(appointment.start_at))
        )
        start_at = self._resolve_start(date, start_time)

        if wants_services:
            if not data.serviceIds:
                raise MissingField("serviceIds cannot be empty")
            master = self._get_master(company_id, appointment.master_employee_id)
            items = self.build_service_items(company_id, master, data.serviceIds)
        else:
            lines = self.repo.get_service_lines(self.db, appointment.id)
            if not lines:
                raise MissingField("Appointment has no services")
            items = [
                ServiceLineItem(line.service_id, line.duration_min, line.price, line.sort_order)
                for line in lines
            ]

        end_at = add_minutes(start_at, total_duration(items))

        with transaction(self.db):
            self._ensure_no_overlap(
                company_id,
                appointment.master_employee_id,
                start_at,
                end_at,
                exclude_appointment_id=appointment.id,
            )
            if wants_services:
                self.repo.delete_service_lines(self.db, appointment.id)
                self.repo.add_service_lines(self.db, appointment.id, [item.to_row() for item in items])

            updates = {"start_at": start_at, "end_at": end_at}
            if data.comment is not None:
                updates["comment"] = clean_comment(data.comment)
            self.repo.update_appointment(self.db, appointment, **updates)
            recalc_totals(self.db, appointment.id)

        logger.info(f"📅 Appointment {appointment_id} rescheduled to {start_at.isoformat()} - {end_at.isoformat()}")
        return self.get_appointment(company_id, appointment_id)

    def reschedule_block(self, company_id: str, appointment_id: str, data: BlockRescheduleRequest) -> Appointment:
        """Time-only move (and optional resize) of a block"""
        appointment = self._load(company_id, appointment_id)
        if appointment.type != "block":
            raise WrongAppointmentType("Only block appointments can be moved via this endpoint")
        if appointment.status == "canceled":
            raise AppointmentCanceled("Appointment is canceled")
        if data.date is None and data.startTime is None and data.durationMin is None:
            raise NothingToUpdate("Nothing to update")

        date = data.date if data.date is not None else format_civil_date(appointment.start_at)
        start_time = (
            data.startTime
            if data.startTime is not None
            else format_clock(minute_of_day(appointment.start_at))
        )
        start_at = self._resolve_start(date, start_time)

        duration = (
            data.durationMin
            if data.durationMin is not None
            else minutes_between(appointment.start_at, appointment.end_at)
        )
        if duration < STEP_MIN:
            raise InvalidDuration(f"durationMin must be >= {STEP_MIN}")
        require_step15(duration, "durationMin")
        end_at = add_minutes(start_at, duration)

        with transaction(self.db):
            self._ensure_no_overlap(
                company_id,
                appointment.master_employee_id,
                start_at,
                end_at,
                exclude_appointment_id=appointment.id,
            )
            self.repo.update_appointment(self.db, appointment, start_at=start_at, end_at=end_at)

        logger.info(f"📅 Block {appointment_id} moved to {start_at.isoformat()} - {end_at.isoformat()}")
        return self.get_appointment(company_id, appointment_id)

    # ========================================================================
    # MANUAL EDIT
    # ========================================================================

    def update_appointment(
        self, company_id: str, appointment_id: str, data: AppointmentUpdateRequest
    ) -> Appointment:
        """
        Edit client, master, time, comment and/or services of a service appointment.

        Changing the master re-prices the lines at the new master's rank. Any
        change of master, time or services re-runs the overlap guard.
        """
        appointment = self._load(company_id, appointment_id)
        if appointment.type == "block":
            raise BlockImmutable("Cannot edit block appointment")
        if appointment.status == "canceled":
            raise AppointmentCanceled("Appointment is canceled")

        fields_set = data.model_fields_set
        if not fields_set:
            raise NothingToUpdate("Nothing to update")

        updates: dict = {}

        if data.comment is not None:
            updates["comment"] = clean_comment(data.comment)

        if "clientId" in fields_set:
            if data.clientId:
                self._assert_client(company_id, data.clientId)
                updates["client_id"] = data.clientId
            else:
                updates["client_id"] = None

        master_changed = bool(data.masterEmployeeId) and data.masterEmployeeId != appointment.master_employee_id
        master_id = data.masterEmployeeId if master_changed else appointment.master_employee_id
        master = self._get_master(company_id, master_id)
        if master_changed:
            updates["master_employee_id"] = master.id

        items: Optional[list[ServiceLineItem]] = None
        if data.services is not None:
            if not data.services:
                raise MissingField("services cannot be empty")
            items = self.build_service_items(
                company_id,
                master,
                [s.serviceId for s in data.services],
                [s.sortOrder for s in data.services],
            )
        elif master_changed:
            lines = self.repo.get_service_lines(self.db, appointment.id)
            items = self.build_service_items(
                company_id,
                master,
                [line.service_id for line in lines],
                [line.sort_order for line in lines],
            )

        wants_time = data.date is not None or data.startTime is not None
        if wants_time or items is not None:
            date = data.date if data.date is not None else format_civil_date(appointment.start_at)
            start_time = (
                data.startTime
                if data.startTime is not None
                else format_clock(minute_of_day(appointment.start_at))
            )
            start_at = self._resolve_start(date, start_time)
            if items is not None:
                duration = total_duration(items)
            else:
                duration = minutes_between(appointment.start_at, appointment.end_at)
            updates["start_at"] = start_at
            updates["end_at"] = add_minutes(start_at, duration)

        if not updates and items is None:
            raise NothingToUpdate("Nothing to update")

        with transaction(self.db):
            if "start_at" in updates:
                self._ensure_no_overlap(
                    company_id,
                    master.id,
                    updates["start_at"],
                    updates["end_at"],
                    exclude_appointment_id=appointment.id,
                )
            if items is not None:
                self.repo.delete_service_lines(self.db, appointment.id)
                self.repo.add_service_lines(self.db, appointment.id, [item.to_row() for item in items])
            self.repo.update_appointment(self.db, appointment, **updates)
            if items is not None:
                recalc_totals(self.db, appointment.id)

        logger.info(f"✏️ Appointment {appointment_id} updated: {sorted(updates)}")
        return self.get_appointment(company_id, appointment_id)

    # ========================================================================
    # PRODUCTS
    # ========================================================================

    def add_products(
        self, company_id: str, appointment_id: str, data: AddProductsRequest
    ) -> tuple[Appointment, Totals]:
        """
        Sell products within an appointment.

        Stock is re-read under row lock inside the transaction; if any item is
        short nothing is written.
        """
        if not data.items:
            raise MissingField("items is required")

        if data.createdByEmployeeId:
            self._get_master(company_id, data.createdByEmployeeId)

        appointment = self._load(company_id, appointment_id)
        if appointment.status == "canceled":
            raise AppointmentCanceled("Appointment is canceled")
        if appointment.type == "block":
            raise BlockImmutable("Cannot add products to block appointment")

        items = normalize_product_items(data.items)
        product_ids = [product_id for product_id, _ in items]

        products = {p.id: p for p in self.repo.get_active_products(self.db, company_id, product_ids)}
        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            raise ProductUnavailable(f"Some products not found or inactive: {', '.join(missing)}")
        for product in products.values():
            if product.branch_id != appointment.branch_id:
                raise ProductUnavailable("All products must belong to the same branch as appointment")

        note = clean_comment(data.note)

        with transaction(self.db):
            stock = self.repo.lock_product_stock(self.db, product_ids)
            for product_id, qty in items:
                if stock.get(product_id, 0) < qty:
                    logger.warning(
                        f"⚠️ Not enough stock for product {product_id}: requested {qty}, available {stock.get(product_id, 0)}"
                    )
                    raise InsufficientStock(f'Not enough stock for "{products[product_id].name}"')

            for product_id, qty in items:
                self.repo.add_product_line(
                    self.db, appointment.id, product_id, qty, products[product_id].price
                )
                self.repo.record_sale(
                    self.db, appointment, product_id, qty, note, data.createdByEmployeeId
                )

            totals = recalc_totals(self.db, appointment.id)

        logger.info(f"🛒 Added {len(items)} product(s) to appointment {appointment_id}, total={totals.total}")
        return self.get_appointment(company_id, appointment_id), totals

    # ========================================================================
    # ADMIN
    # ========================================================================

    def remove_appointment(self, company_id: str, appointment_id: str) -> dict:
        """Hard delete with its lines; regular flows cancel instead"""
        appointment = self._load(company_id, appointment_id)
        with transaction(self.db):
            self.repo.delete_appointment(self.db, appointment)
        logger.info(f"🗑️ Appointment {appointment_id} deleted")
        return {"message": "Appointment deleted"}
