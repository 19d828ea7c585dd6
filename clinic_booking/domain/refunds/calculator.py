"""
Refund calculation for cancelled maya appointments

Cancelling no later than `cancellation_deadline_hours` before the appointment
starts is free. Later cancellations are charged by the configured fee policy,
unless the clinic itself cancelled or a medical contraindication applies.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import FEE_WAIVED_CANCELLATION_REASONS, Appointment, Payment, RefundRequest, RefundSetting
from ...shared.validators import parse_time_slot
from .fee_policies import FeePolicy, build_fee_policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundQuote:
    original_amount: float
    cancellation_fee: float
    refund_amount: float
    late_cancellation: bool = False
    fee_waived: bool = False

    def to_dict(self) -> dict:
        return {
            "original_amount": self.original_amount,
            "cancellation_fee": self.cancellation_fee,
            "refund_amount": self.refund_amount,
        }


def appointment_start(appointment: Appointment) -> datetime:
    """Scheduled start of an appointment as a naive clinic-local datetime"""
    start_minutes, _ = parse_time_slot(appointment.time_slot)
    return datetime.combine(appointment.date, datetime.min.time()) + timedelta(minutes=start_minutes)


class RefundCalculator:
    def __init__(self, db: Session, settings: RefundSetting, policy: Optional[FeePolicy] = None):
        self.db = db
        self.settings = settings
        self.policy = policy or build_fee_policy()

    def quote(self, appointment: Appointment, payment: Payment, now: Optional[datetime] = None) -> RefundQuote:
        now = now or datetime.now()
        original_amount = round(float(payment.amount_paid or 0) or float(payment.amount_due or 0), 2)

        start = appointment_start(appointment)
        deadline = start - timedelta(hours=self.settings.cancellation_deadline_hours)
        late = now > deadline
        waived = appointment.cancellation_reason in FEE_WAIVED_CANCELLATION_REASONS

        fee = 0.0
        if late and not waived:
            hours_before_start = (start - now).total_seconds() / 3600
            fee = self.policy(original_amount, hours_before_start, appointment.service)

        return RefundQuote(
            original_amount=original_amount,
            cancellation_fee=fee,
            refund_amount=round(max(0.0, original_amount - fee), 2),
            late_cancellation=late,
            fee_waived=waived,
        )

    def create_refund_request(
        self,
        appointment: Appointment,
        payment: Payment,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[RefundRequest]:
        """
        Spawn a pending RefundRequest inside the caller's transaction.

        Returns:
            The new request, or None when the refund is zero and zero-amount
            requests are switched off.
        """
        now = now or datetime.now()
        quote = self.quote(appointment, payment, now)

        if quote.refund_amount <= 0 and not self.settings.create_zero_refund_request:
            logger.info(f"ℹ️ No refund request for appointment {appointment.id}: nothing to refund")
            return None

        refund_request = RefundRequest(
            patient_id=appointment.patient_id,
            appointment_id=appointment.id,
            payment_id=payment.id,
            original_amount=quote.original_amount,
            cancellation_fee=quote.cancellation_fee,
            refund_amount=quote.refund_amount,
            reason=reason,
            status="pending",
            requested_at=now,
            deadline_at=now + timedelta(days=self.settings.reminder_days),
        )
        self.db.add(refund_request)
        self.db.flush()

        logger.info(
            f"💸 Refund request {refund_request.id} created for appointment {appointment.id}: "
            f"{quote.original_amount:.2f} - fee {quote.cancellation_fee:.2f} = {quote.refund_amount:.2f}"
        )
        return refund_request
