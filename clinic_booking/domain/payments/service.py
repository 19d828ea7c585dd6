"""Payment service - maya payment rows and gateway callback transitions"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...models import Appointment, Payment, Service
from ...services.audit_log import AuditLog
from ...shared.errors import NotFoundError, StateConflictError, ValidationError

logger = logging.getLogger(__name__)

OUTSTANDING_STATUSES = ("unpaid", "awaiting_payment")


class PaymentService:
    """Service layer for appointment payments"""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def amount_due_for(service: Service, teeth_count: Optional[int] = None) -> float:
        price = float(service.price or 0)
        if service.per_teeth_service and teeth_count:
            price *= int(teeth_count)
        return round(price, 2)

    def create_for_appointment(self, appointment: Appointment, service: Service) -> Payment:
        """Add the awaiting maya payment for a new booking (caller commits)"""
        payment = Payment(
            appointment_id=appointment.id,
            method="maya",
            status="awaiting_payment",
            amount_due=self.amount_due_for(service, appointment.teeth_count),
            amount_paid=0,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def get(self, payment_id: int, for_update: bool = False) -> Payment:
        query = self.db.query(Payment).filter(Payment.id == payment_id)
        if for_update:
            query = query.with_for_update()
        payment = query.first()
        if not payment:
            raise NotFoundError("Payment not found.")
        return payment

    def find_paid_maya(self, appointment: Appointment) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(
                Payment.appointment_id == appointment.id,
                Payment.method == "maya",
                Payment.status == "paid",
            )
            .first()
        )

    def cancel_outstanding(self, appointment: Appointment, now: Optional[datetime] = None) -> int:
        """Cancel unpaid/awaiting maya rows of an appointment (caller commits)"""
        now = now or datetime.now()
        payments = (
            self.db.query(Payment)
            .filter(
                Payment.appointment_id == appointment.id,
                Payment.method == "maya",
                Payment.status.in_(OUTSTANDING_STATUSES),
            )
            .all()
        )
        for payment in payments:
            payment.status = "cancelled"
            payment.cancelled_at = now
        if payments:
            logger.info(f"🚫 Cancelled {len(payments)} outstanding maya payment(s) for appointment {appointment.id}")
        return len(payments)

    @staticmethod
    def mark_refunded(payment: Payment, now: Optional[datetime] = None) -> None:
        if payment.status != "refunded":
            payment.status = "refunded"
            payment.refunded_at = now or datetime.now()

    def mark_paid(self, payment_id: int, amount_paid: Optional[float] = None) -> Payment:
        """Gateway success callback: awaiting_payment/unpaid -> paid"""
        with unit_of_work(self.db):
            payment = self.get(payment_id, for_update=True)
            if payment.status not in OUTSTANDING_STATUSES:
                raise StateConflictError(f"Payment is already {payment.status}.", status=payment.status)
            if amount_paid is not None and amount_paid < 0:
                raise ValidationError("Amount paid cannot be negative.", field="amount_paid")

            payment.status = "paid"
            payment.amount_paid = payment.amount_due if amount_paid is None else amount_paid
            payment.paid_at = datetime.now()
            if payment.appointment:
                payment.appointment.payment_status = "paid"

        logger.info(f"💰 Payment {payment.id} marked paid ({payment.amount_paid:.2f})")
        AuditLog(self.db).record(
            "payment",
            "paid",
            f"Payment #{payment.id} confirmed by gateway",
            {"payment_id": payment.id, "appointment_id": payment.appointment_id, "amount_paid": payment.amount_paid},
        )
        return payment

    def mark_failed(self, payment_id: int) -> Payment:
        """Gateway failure callback: awaiting_payment/unpaid -> failed"""
        with unit_of_work(self.db):
            payment = self.get(payment_id, for_update=True)
            if payment.status not in OUTSTANDING_STATUSES:
                raise StateConflictError(f"Payment is already {payment.status}.", status=payment.status)

            payment.status = "failed"
            if payment.appointment and payment.appointment.payment_status == "awaiting_payment":
                payment.appointment.payment_status = "unpaid"

        logger.warning(f"⚠️ Payment {payment.id} failed at the gateway")
        AuditLog(self.db).record(
            "payment",
            "failed",
            f"Payment #{payment.id} failed at the gateway",
            {"payment_id": payment.id, "appointment_id": payment.appointment_id},
        )
        return payment
