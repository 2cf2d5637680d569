"""Derived money totals of an appointment"""

import logging
from dataclasses import asdict, dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import Appointment, AppointmentProductLine, AppointmentServiceLine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Totals:
    total_services: int
    total_products: int
    total: int

    def to_dict(self) -> dict:
        return asdict(self)


def recalc_totals(db: Session, appointment_id: str) -> Totals:
    """
    Re-sum the persisted service and product lines into the appointment row.

    Must run on the same session (transaction) as the line-item mutation that
    triggered it. Pending lines are flushed first so the sums see them.
    Idempotent: a second call with no intervening change writes the same values.
    """
    db.flush()

    total_services = (
        db.query(func.coalesce(func.sum(AppointmentServiceLine.price), 0))
        .filter(AppointmentServiceLine.appointment_id == appointment_id)
        .scalar()
    )
    total_products = (
        db.query(func.coalesce(func.sum(AppointmentProductLine.total), 0))
        .filter(AppointmentProductLine.appointment_id == appointment_id)
        .scalar()
    )
    totals = Totals(
        total_services=int(total_services),
        total_products=int(total_products),
        total=int(total_services) + int(total_products),
    )

    db.query(Appointment).filter(Appointment.id == appointment_id).update(
        {
            Appointment.total_services: totals.total_services,
            Appointment.total_products: totals.total_products,
            Appointment.total: totals.total,
        },
        synchronize_session="fetch",
    )
    logger.debug(f"Recalculated totals for appointment {appointment_id}: {totals}")
    return totals
