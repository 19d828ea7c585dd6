"""
Appointment lifecycle - approve, reject, cancel, reschedule

Every transition locks the appointment row, re-checks the current status as
its precondition and commits once. Notifications and audit entries are written
after the commit and never undo it.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...models import CANCELLATION_REASONS, Appointment, RefundRequest
from ...services.audit_log import AuditLog
from ...services.notification_service import NotificationDispatcher
from ...services.patient_directory import PatientDirectory
from ...shared.errors import (
    AuthorizationError,
    CapacityError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from ..payments.service import PaymentService
from ..refunds.calculator import RefundCalculator
from ..refunds.repository import RefundRepository
from ..scheduling.resolver import ScheduleResolver
from ..scheduling.slot_grid import expand_time_slot
from .actors import SYSTEM_ACTOR, Actor
from .booking_service import appointment_state, check_not_blocked
from .capacity_ledger import CapacityLedger
from .overlap import OverlapChecker
from .pipeline import place_slot
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)

CANCELLABLE_PAYMENT_STATUSES = ("unpaid", "awaiting_payment", "paid")
RESCHEDULABLE_STATUSES = ("approved", "pending")


@dataclass
class CancellationResult:
    appointment: Appointment
    refund_request_created: bool = False
    refund_request: Optional[RefundRequest] = None


def month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    start = moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start, start + relativedelta(months=1)


class AppointmentLifecycle:
    """State machine for existing appointments"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()
        self.directory = PatientDirectory(db)
        self.payments = PaymentService(db)
        self.notifications = NotificationDispatcher(db)
        self.audit = AuditLog(db)

    def _load_for_update(self, appointment_id: int, actor: Optional[Actor] = None) -> Appointment:
        """Lock the row; patients only ever see their own appointments"""
        appointment = self.repo.get_by_id(self.db, appointment_id, for_update=True)
        if not appointment:
            raise NotFoundError("Appointment not found.")
        if actor is not None and actor.is_patient:
            patient = self.directory.resolve_by_user(actor.user_id)
            if not patient or patient.id != appointment.patient_id:
                raise NotFoundError("Appointment not found.")
        return appointment

    # ------------------------------------------------------------------
    # approve / reject
    # ------------------------------------------------------------------

    def approve(self, appointment_id: int, actor: Actor = SYSTEM_ACTOR) -> Appointment:
        """pending -> approved, re-checking capacity without counting itself"""
        with unit_of_work(self.db):
            appointment = self._load_for_update(appointment_id)
            if appointment.status != "pending":
                raise StateConflictError("Appointment already processed.", status=appointment.status)

            snapshot = ScheduleResolver(self.db).resolve(appointment.date)
            try:
                blocks = expand_time_slot(appointment.time_slot)
            except ValueError as e:
                raise ValidationError(str(e), field="time_slot")
            fit = CapacityLedger(self.db, snapshot).can_fit(
                blocks[0], len(blocks), exclude_appointment_id=appointment.id
            )
            if not fit.ok:
                full_at = fit.full_at
            else:
                full_at = None
                before = appointment_state(appointment)
                appointment.status = "approved"

        if full_at is not None:
            logger.warning(f"⚠️ Cannot approve appointment {appointment_id}: {full_at} is fully booked")
            self.audit.record(
                "appointment",
                "approve_failed_capacity",
                f"{actor.display_name} attempted to approve appointment #{appointment_id} but slot is full",
                {
                    "appointment_id": appointment_id,
                    "date": appointment.date.isoformat(),
                    "time_slot": appointment.time_slot,
                    "full_at": full_at,
                },
                user_id=actor.user_id,
            )
            raise CapacityError("Cannot approve: slot is fully booked.", full_at=full_at)

        logger.info(f"✅ Appointment {appointment.id} approved by {actor.display_name}")
        self.notifications.notify_appointment_status_change(appointment, "approved")
        self.audit.record(
            "appointment",
            "approved",
            f"{actor.display_name} approved appointment #{appointment.id}",
            {"appointment_id": appointment.id, "before": before, "after": appointment_state(appointment)},
            user_id=actor.user_id,
        )
        return appointment

    def reject(self, appointment_id: int, note: str, actor: Actor = SYSTEM_ACTOR) -> Appointment:
        """pending -> rejected; a note is required and outstanding maya payments are cancelled"""
        with unit_of_work(self.db):
            appointment = self._load_for_update(appointment_id)
            if appointment.status != "pending":
                raise StateConflictError("Appointment already processed.", status=appointment.status)
            if not note or not note.strip():
                raise ValidationError("A note is required to reject an appointment.", field="note")

            before = appointment_state(appointment)
            appointment.status = "rejected"
            appointment.notes = note.strip()
            appointment.payment_status = "unpaid"
            if appointment.payment_method == "maya":
                self.payments.cancel_outstanding(appointment)
            CapacityLedger.release(self.db, appointment)

        logger.info(f"🚫 Appointment {appointment.id} rejected by {actor.display_name}")
        self.notifications.notify_appointment_status_change(appointment, "rejected")
        self.audit.record(
            "appointment",
            "rejected",
            f"{actor.display_name} rejected appointment #{appointment.id}",
            {
                "appointment_id": appointment.id,
                "note": appointment.notes,
                "before": before,
                "after": appointment_state(appointment),
            },
            user_id=actor.user_id,
        )
        return appointment

    # ------------------------------------------------------------------
    # cancel
    # ------------------------------------------------------------------

    def cancel(
        self,
        appointment_id: int,
        actor: Actor,
        reason: Optional[str] = None,
        cancellation_reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CancellationResult:
        now = now or datetime.now()
        if cancellation_reason is not None and cancellation_reason not in CANCELLATION_REASONS:
            raise ValidationError(
                f"Invalid cancellation reason: {cancellation_reason}", field="cancellation_reason"
            )

        with unit_of_work(self.db):
            appointment = self._load_for_update(appointment_id, actor)
            self._check_cancellable(appointment, actor)

            settings = RefundRepository.get_settings(self.db)
            if actor.is_patient:
                self._check_monthly_limit(appointment.patient_id, settings.monthly_cancellation_limit, now)

            before = appointment_state(appointment)
            was_paid = appointment.payment_status == "paid"

            appointment.status = "cancelled"
            appointment.canceled_at = now
            appointment.cancelled_by_role = actor.role
            appointment.cancellation_reason = cancellation_reason or (
                "patient_request" if actor.is_patient else "other"
            )
            appointment.notes = reason or f"Cancelled by {actor.role}."
            if not was_paid and appointment.payment_status != "refunded":
                appointment.payment_status = "unpaid"

            CapacityLedger.release(self.db, appointment)

            refund_request = None
            if appointment.payment_method == "maya":
                if was_paid:
                    payment = self.payments.find_paid_maya(appointment)
                    if payment:
                        refund_request = RefundCalculator(self.db, settings).create_refund_request(
                            appointment, payment, reason=appointment.notes, now=now
                        )
                else:
                    self.payments.cancel_outstanding(appointment, now)

        result = CancellationResult(
            appointment=appointment,
            refund_request_created=refund_request is not None,
            refund_request=refund_request,
        )

        logger.info(
            f"🗑️ Appointment {appointment.id} cancelled by {actor.role}"
            + (f" (refund request {refund_request.id})" if refund_request else "")
        )
        self.notifications.notify_appointment_status_change(appointment, "cancelled")
        if refund_request is not None:
            self.notifications.notify_refund_request_created(refund_request)
            self.audit.record(
                "refund",
                "created",
                f"Refund request created for appointment #{appointment.id}",
                {
                    "refund_request_id": refund_request.id,
                    "appointment_id": appointment.id,
                    "original_amount": refund_request.original_amount,
                    "cancellation_fee": refund_request.cancellation_fee,
                    "refund_amount": refund_request.refund_amount,
                    "cancelled_by": actor.role,
                },
                user_id=actor.user_id,
            )
        self.audit.record(
            "appointment",
            f"canceled_by_{actor.role}",
            f"{actor.display_name} canceled appointment #{appointment.id}",
            {
                "appointment_id": appointment.id,
                "patient_id": appointment.patient_id,
                "cancellation_reason": appointment.cancellation_reason,
                "before": before,
                "after": appointment_state(appointment),
            },
            user_id=actor.user_id,
        )
        return result

    @staticmethod
    def _check_cancellable(appointment: Appointment, actor: Actor) -> None:
        if appointment.status == "pending":
            return
        if appointment.status == "approved" and (
            appointment.payment_status in CANCELLABLE_PAYMENT_STATUSES or actor.is_admin
        ):
            return
        if appointment.status == "approved":
            raise AuthorizationError(
                "Only an admin can cancel this appointment.", block_type="forbidden_transition"
            )
        raise StateConflictError(
            f"A {appointment.status} appointment cannot be cancelled.", status=appointment.status
        )

    def _check_monthly_limit(self, patient_id: int, limit: int, now: datetime) -> None:
        if not limit:
            return
        since, until = month_bounds(now)
        used = self.repo.count_patient_cancellations(self.db, patient_id, since, until)
        if used >= limit:
            logger.warning(f"⚠️ Patient {patient_id} reached the monthly cancellation limit ({limit})")
            raise AuthorizationError(
                f"You have reached the limit of {limit} cancellations this month.",
                block_type="cancellation_limit",
                block_reason=f"{used} cancellations since {since.date().isoformat()}",
            )

    # ------------------------------------------------------------------
    # reschedule
    # ------------------------------------------------------------------

    def reschedule(
        self,
        appointment_id: int,
        new_date: Union[str, date],
        start_time: str,
        actor: Actor,
        client_ip: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Appointment:
        """Move a paid maya appointment to a new slot; it goes back to pending for re-approval"""
        with unit_of_work(self.db):
            appointment = self._load_for_update(appointment_id, actor)

            if appointment.payment_method != "maya" or appointment.payment_status != "paid":
                raise StateConflictError(
                    "Only paid Maya appointments can be rescheduled.",
                    payment_method=appointment.payment_method,
                    payment_status=appointment.payment_status,
                )
            if appointment.status not in RESCHEDULABLE_STATUSES:
                raise StateConflictError("This appointment cannot be rescheduled.", status=appointment.status)

            # Steps 1-5 against the new slot, ignoring this appointment's own usage
            placement = place_slot(
                self.db,
                new_date,
                start_time,
                appointment.service,
                teeth_count=appointment.teeth_count,
                staff_assisted=actor.is_staff,
                exclude_appointment_id=appointment.id,
                today=today,
            )

            # 7. Account / IP holds; staff requests carry no patient IP
            check_not_blocked(self.directory, appointment.patient, client_ip if actor.is_patient else None)

            # 9. Overlap with the patient's other appointments
            if OverlapChecker(self.db).has_overlap(
                appointment.patient_id,
                placement.date,
                placement.time_slot,
                exclude_appointment_id=appointment.id,
            ):
                raise ValidationError(
                    "You already have an appointment at this time. Please choose a different time slot.",
                    field="start_time",
                )

            before = appointment_state(appointment)
            CapacityLedger.release(self.db, appointment)
            appointment.date = placement.date
            appointment.time_slot = placement.time_slot
            appointment.status = "pending"
            appointment.reminded_at = None
            self.db.flush()
            placement.ledger.admit(appointment)

        logger.info(
            f"📅 Appointment {appointment.id} rescheduled from {before['date']} {before['time_slot']} "
            f"to {appointment.date} {appointment.time_slot}"
        )
        self.notifications.notify_new_appointment(appointment)
        self.audit.record(
            "appointment",
            "rescheduled",
            f"{actor.display_name} rescheduled appointment #{appointment.id} from "
            f"{before['date']} {before['time_slot']} to {appointment.date} {appointment.time_slot}",
            {"appointment_id": appointment.id, "before": before, "after": appointment_state(appointment)},
            user_id=actor.user_id,
        )
        return appointment

