"""Scheduling repository - Database operations for appointments and work schedules"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session, joinedload, selectinload

from ...models import (
    Appointment,
    AppointmentProductLine,
    AppointmentServiceLine,
    Branch,
    Client,
    Employee,
    Product,
    Service,
    ServicePriceByRank,
    StockMovement,
    WorkScheduleBlock,
    WorkScheduleException,
    WorkScheduleRule,
)

# Statuses that do not occupy the master's time
FREE_STATUSES = ("canceled",)


class AppointmentRepository:
    """Repository for appointment database operations"""

    # Collaborator lookups (tenant scoped)
    @staticmethod
    def get_branch(db: Session, company_id: str, branch_id: str) -> Optional[Branch]:
        return (
            db.query(Branch)
            .filter(Branch.id == branch_id, Branch.company_id == company_id)
            .first()
        )

    @staticmethod
    def get_employee(db: Session, company_id: str, employee_id: str) -> Optional[Employee]:
        return (
            db.query(Employee)
            .filter(Employee.id == employee_id, Employee.company_id == company_id)
            .first()
        )

    @staticmethod
    def get_client(db: Session, company_id: str, client_id: str) -> Optional[Client]:
        return (
            db.query(Client)
            .filter(Client.id == client_id, Client.company_id == company_id)
            .first()
        )

    @staticmethod
    def get_active_services(db: Session, company_id: str, service_ids: Iterable[str]) -> list[Service]:
        return (
            db.query(Service)
            .filter(
                Service.company_id == company_id,
                Service.id.in_(list(service_ids)),
                Service.is_active.is_(True),
            )
            .all()
        )

    @staticmethod
    def get_prices_for_rank(db: Session, service_ids: Iterable[str], rank_id: str) -> dict[str, int]:
        """service_id -> price at the given master rank (absent when not priced)"""
        rows = (
            db.query(ServicePriceByRank.service_id, ServicePriceByRank.price)
            .filter(
                ServicePriceByRank.service_id.in_(list(service_ids)),
                ServicePriceByRank.master_rank_id == rank_id,
            )
            .all()
        )
        return {service_id: price for service_id, price in rows}

    @staticmethod
    def get_active_products(db: Session, company_id: str, product_ids: Iterable[str]) -> list[Product]:
        return (
            db.query(Product)
            .filter(
                Product.company_id == company_id,
                Product.id.in_(list(product_ids)),
                Product.is_active.is_(True),
            )
            .all()
        )

    # Locks
    @staticmethod
    def lock_master(db: Session, employee_id: str) -> None:
        """
        Row-lock the master for the rest of the transaction.

        Every booking write for a master takes this lock before its overlap check,
        so concurrent check-then-insert sequences for one master run one at a time.
        """
        db.query(Employee.id).filter(Employee.id == employee_id).with_for_update().first()

    @staticmethod
    def lock_product_stock(db: Session, product_ids: Iterable[str]) -> dict[str, int]:
        """Current stock of each product, row-locked until the transaction ends"""
        rows = (
            db.query(Product.id, Product.stock_qty)
            .filter(Product.id.in_(list(product_ids)))
            .with_for_update()
            .all()
        )
        return {product_id: stock_qty for product_id, stock_qty in rows}

    # Overlap guard
    @staticmethod
    def has_conflict(
        db: Session,
        company_id: str,
        master_employee_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_appointment_id: Optional[str] = None,
    ) -> bool:
        """True iff a non-canceled appointment of the master intersects [start_at, end_at)"""
        query = db.query(Appointment.id).filter(
            Appointment.company_id == company_id,
            Appointment.master_employee_id == master_employee_id,
            Appointment.start_at < end_at,
            Appointment.end_at > start_at,
            Appointment.status.notin_(FREE_STATUSES),
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.first() is not None

    @staticmethod
    def get_busy_spans(
        db: Session, company_id: str, master_employee_id: str, day_start: datetime, day_end: datetime
    ) -> list[tuple[datetime, datetime]]:
        """(start_at, end_at) of the master's non-canceled appointments touching the day"""
        rows = (
            db.query(Appointment.start_at, Appointment.end_at)
            .filter(
                Appointment.company_id == company_id,
                Appointment.master_employee_id == master_employee_id,
                Appointment.start_at < day_end,
                Appointment.end_at > day_start,
                Appointment.status.notin_(FREE_STATUSES),
            )
            .order_by(Appointment.start_at)
            .all()
        )
        return [(start_at, end_at) for start_at, end_at in rows]

    # Appointment reads
    @staticmethod
    def get_appointment(db: Session, company_id: str, appointment_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.id == appointment_id, Appointment.company_id == company_id)
            .first()
        )

    @staticmethod
    def get_appointment_full(db: Session, company_id: str, appointment_id: str) -> Optional[Appointment]:
        """Appointment with lines, service/product names, master and client loaded"""
        return (
            db.query(Appointment)
            .options(*_full_load_options())
            .filter(Appointment.id == appointment_id, Appointment.company_id == company_id)
            .populate_existing()
            .first()
        )

    @staticmethod
    def list_for_branch_day(
        db: Session, company_id: str, branch_id: str, day_start: datetime, day_end: datetime
    ) -> list[Appointment]:
        return (
            db.query(Appointment)
            .options(*_full_load_options())
            .filter(
                Appointment.company_id == company_id,
                Appointment.branch_id == branch_id,
                Appointment.start_at < day_end,
                Appointment.end_at > day_start,
            )
            .order_by(Appointment.start_at.asc())
            .all()
        )

    @staticmethod
    def list_for_client(db: Session, company_id: str, client_id: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .options(*_full_load_options())
            .filter(Appointment.company_id == company_id, Appointment.client_id == client_id)
            .order_by(Appointment.start_at.desc())
            .all()
        )

    @staticmethod
    def get_service_lines(db: Session, appointment_id: str) -> list[AppointmentServiceLine]:
        return (
            db.query(AppointmentServiceLine)
            .filter(AppointmentServiceLine.appointment_id == appointment_id)
            .order_by(AppointmentServiceLine.sort_order.asc())
            .all()
        )

    # Appointment writes (caller owns the transaction)
    @staticmethod
    def add_appointment(db: Session, **fields) -> Appointment:
        appointment = Appointment(**fields)
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def add_service_lines(db: Session, appointment_id: str, lines: Iterable[dict]) -> None:
        for line in lines:
            db.add(AppointmentServiceLine(appointment_id=appointment_id, **line))
        db.flush()

    @staticmethod
    def delete_service_lines(db: Session, appointment_id: str) -> None:
        db.query(AppointmentServiceLine).filter(
            AppointmentServiceLine.appointment_id == appointment_id
        ).delete(synchronize_session="fetch")

    @staticmethod
    def add_product_line(db: Session, appointment_id: str, product_id: str, qty: int, price: int) -> None:
        db.add(
            AppointmentProductLine(
                appointment_id=appointment_id,
                product_id=product_id,
                qty=qty,
                price=price,
                total=price * qty,
            )
        )

    @staticmethod
    def record_sale(
        db: Session,
        appointment: Appointment,
        product_id: str,
        qty: int,
        note: Optional[str],
        created_by_employee_id: Optional[str],
    ) -> None:
        """Write the stock ledger entry and decrement stock for one sold product"""
        db.add(
            StockMovement(
                company_id=appointment.company_id,
                branch_id=appointment.branch_id,
                product_id=product_id,
                type="sale",
                qty=qty,
                note=note,
                appointment_id=appointment.id,
                created_by_employee_id=created_by_employee_id,
            )
        )
        db.query(Product).filter(Product.id == product_id).update(
            {Product.stock_qty: Product.stock_qty - qty}, synchronize_session="fetch"
        )

    @staticmethod
    def update_appointment(db: Session, appointment: Appointment, **updates) -> Appointment:
        for key, value in updates.items():
            setattr(appointment, key, value)
        db.flush()
        return appointment

    @staticmethod
    def delete_appointment(db: Session, appointment: Appointment) -> None:
        db.delete(appointment)
        db.flush()


class ScheduleRepository:
    """Repository for work schedule rules, date exceptions and breaks"""

    @staticmethod
    def get_rule(db: Session, employee_id: str, day_of_week: int) -> Optional[WorkScheduleRule]:
        return (
            db.query(WorkScheduleRule)
            .filter(WorkScheduleRule.employee_id == employee_id, WorkScheduleRule.day_of_week == day_of_week)
            .first()
        )

    @staticmethod
    def get_rules(db: Session, employee_id: str) -> list[WorkScheduleRule]:
        return (
            db.query(WorkScheduleRule)
            .filter(WorkScheduleRule.employee_id == employee_id)
            .order_by(WorkScheduleRule.day_of_week.asc())
            .all()
        )

    @staticmethod
    def replace_rules(db: Session, company_id: str, employee_id: str, days: Iterable[dict]) -> None:
        db.query(WorkScheduleRule).filter(WorkScheduleRule.employee_id == employee_id).delete(
            synchronize_session="fetch"
        )
        for day in days:
            db.add(WorkScheduleRule(company_id=company_id, employee_id=employee_id, **day))
        db.flush()

    @staticmethod
    def get_exception(db: Session, employee_id: str, date: datetime) -> Optional[WorkScheduleException]:
        return (
            db.query(WorkScheduleException)
            .filter(WorkScheduleException.employee_id == employee_id, WorkScheduleException.date == date)
            .first()
        )

    @staticmethod
    def get_exception_by_id(db: Session, company_id: str, exception_id: str) -> Optional[WorkScheduleException]:
        return (
            db.query(WorkScheduleException)
            .filter(WorkScheduleException.id == exception_id, WorkScheduleException.company_id == company_id)
            .first()
        )

    @staticmethod
    def list_exceptions(
        db: Session, employee_id: str, date_from: datetime, date_to: datetime
    ) -> list[WorkScheduleException]:
        return (
            db.query(WorkScheduleException)
            .filter(
                WorkScheduleException.employee_id == employee_id,
                WorkScheduleException.date >= date_from,
                WorkScheduleException.date <= date_to,
            )
            .order_by(WorkScheduleException.date.asc())
            .all()
        )

    @staticmethod
    def upsert_exception(db: Session, company_id: str, employee_id: str, date: datetime, **fields) -> WorkScheduleException:
        exception = ScheduleRepository.get_exception(db, employee_id, date)
        if exception is None:
            exception = WorkScheduleException(company_id=company_id, employee_id=employee_id, date=date)
            db.add(exception)
        for key, value in fields.items():
            setattr(exception, key, value)
        db.flush()
        return exception

    @staticmethod
    def list_blocks(
        db: Session, employee_id: str, date_from: datetime, date_to: datetime
    ) -> list[WorkScheduleBlock]:
        return (
            db.query(WorkScheduleBlock)
            .filter(
                WorkScheduleBlock.employee_id == employee_id,
                WorkScheduleBlock.date >= date_from,
                WorkScheduleBlock.date <= date_to,
            )
            .order_by(WorkScheduleBlock.date.asc(), WorkScheduleBlock.start_time.asc())
            .all()
        )

    @staticmethod
    def get_block(db: Session, company_id: str, block_id: str) -> Optional[WorkScheduleBlock]:
        return (
            db.query(WorkScheduleBlock)
            .filter(WorkScheduleBlock.id == block_id, WorkScheduleBlock.company_id == company_id)
            .first()
        )

    @staticmethod
    def add_block(db: Session, **fields) -> WorkScheduleBlock:
        block = WorkScheduleBlock(**fields)
        db.add(block)
        db.flush()
        return block


def _full_load_options():
    return (
        joinedload(Appointment.master_employee),
        joinedload(Appointment.client),
        selectinload(Appointment.services).joinedload(AppointmentServiceLine.service),
        selectinload(Appointment.products).joinedload(AppointmentProductLine.product),
    )
