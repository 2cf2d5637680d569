import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate an opaque string primary key"""
    return str(uuid.uuid4())


# ============================================================================
# COLLABORATOR TABLES (read-only from the scheduling engine)
# ============================================================================


class Company(Base):
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Branch(Base):
    __tablename__ = "branches"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class MasterRank(Base):
    __tablename__ = "master_ranks"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)


class Employee(Base):
    __tablename__ = "employees"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=True)
    full_name = Column(String(255), nullable=False)
    # Pricing tier; required to book services with this master
    master_rank_id = Column(String(36), ForeignKey("master_ranks.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration_min = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class ServicePriceByRank(Base):
    __tablename__ = "service_prices_by_rank"
    __table_args__ = (UniqueConstraint("service_id", "master_rank_id", name="uq_service_rank_price"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    master_rank_id = Column(String(36), ForeignKey("master_ranks.id"), nullable=False)
    price = Column(Integer, nullable=False)  # minor units


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=False)
    name = Column(String(255), nullable=False)
    price = Column(Integer, nullable=False)  # minor units
    stock_qty = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class StockMovement(Base):
    """Stock ledger entry; the engine only writes `sale` movements"""

    __tablename__ = "stock_movements"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False)
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=False)
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)  # sale, purchase, adjust
    qty = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
    appointment_id = Column(String(36), ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True)
    created_by_employee_id = Column(String(36), ForeignKey("employees.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


# ============================================================================
# WORK SCHEDULE (owned by the employee, read by availability)
# ============================================================================


class WorkScheduleRule(Base):
    __tablename__ = "work_schedule_rules"
    __table_args__ = (UniqueConstraint("employee_id", "day_of_week", name="uq_rule_employee_day"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # Monday=0 ... Sunday=6
    is_working_day = Column(Boolean, default=False, nullable=False)
    start_time = Column(String(5), nullable=True)  # HH:MM, required iff working
    end_time = Column(String(5), nullable=True)


class WorkScheduleException(Base):
    __tablename__ = "work_schedule_exceptions"
    __table_args__ = (UniqueConstraint("employee_id", "date", name="uq_exception_employee_date"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False)
    date = Column(DateTime, nullable=False)  # UTC midnight
    is_working_day = Column(Boolean, default=False, nullable=False)
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)


class WorkScheduleBlock(Base):
    """Break inside a working day; hides availability slots, never blocks bookings"""

    __tablename__ = "work_schedule_blocks"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False)
    employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False)  # UTC midnight
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    reason = Column(String(255), nullable=True)


# ============================================================================
# APPOINTMENTS
# ============================================================================


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (Index("ix_appointments_master_span", "master_employee_id", "start_at", "end_at"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(36), ForeignKey("companies.id"), nullable=False, index=True)
    branch_id = Column(String(36), ForeignKey("branches.id"), nullable=False, index=True)

    # service or block (block: no client, auto-confirmed, not billed)
    type = Column(String(20), default="service", nullable=False)
    # new -> confirmed -> waiting -> done/no_show, or -> canceled
    status = Column(String(20), default="new", nullable=False, index=True)

    master_employee_id = Column(String(36), ForeignKey("employees.id"), nullable=False)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=True, index=True)

    title = Column(String(255), nullable=True)
    comment = Column(Text, nullable=True)

    # Naive UTC instants; duration is always a multiple of 15 minutes
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)

    # Recomputed from line items, never edited by hand
    total_services = Column(Integer, default=0, nullable=False)
    total_products = Column(Integer, default=0, nullable=False)
    total = Column(Integer, default=0, nullable=False)

    # Maintained by the payments ledger
    is_paid = Column(Boolean, default=False, nullable=False)
    paid_total = Column(Integer, default=0, nullable=False)
    payment_status = Column(String(20), default="unpaid", nullable=False)  # unpaid, partial, paid

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    master_employee = relationship("Employee")
    client = relationship("Client")
    services = relationship(
        "AppointmentServiceLine",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentServiceLine.sort_order",
    )
    products = relationship(
        "AppointmentProductLine",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentProductLine.created_at",
    )


class AppointmentServiceLine(Base):
    __tablename__ = "appointment_services"

    id = Column(String(36), primary_key=True, default=generate_id)
    appointment_id = Column(
        String(36), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id = Column(String(36), ForeignKey("services.id"), nullable=False)
    duration_min = Column(Integer, nullable=False)  # snapshot at booking time
    price = Column(Integer, nullable=False)  # snapshot of the rank price
    sort_order = Column(Integer, default=0, nullable=False)

    appointment = relationship("Appointment", back_populates="services")
    service = relationship("Service")


class AppointmentProductLine(Base):
    __tablename__ = "appointment_products"

    id = Column(String(36), primary_key=True, default=generate_id)
    appointment_id = Column(
        String(36), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    qty = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)  # unit price snapshot
    total = Column(Integer, nullable=False)  # price * qty
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="products")
    product = relationship("Product")
