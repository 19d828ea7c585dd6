"""Refund service - refund request lifecycle and refund settings"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import REFUND_DEADLINE_ALERT_DAYS
from ...database import unit_of_work
from ...models import REFUND_STATUSES, RefundRequest, RefundSetting
from ...services.audit_log import AuditLog
from ...services.notification_service import NotificationDispatcher
from ...services.patient_directory import PatientDirectory
from ...shared.errors import NotFoundError, StateConflictError, ValidationError
from ..appointments.actors import Actor
from ..payments.service import PaymentService
from .repository import RefundRepository

logger = logging.getLogger(__name__)

EXTENDABLE_STATUSES = ("pending", "approved", "processed")

SETTINGS_LIMITS = {
    "cancellation_deadline_hours": (0, 168),
    "monthly_cancellation_limit": (0, 50),
    "reminder_days": (1, 30),
}


class RefundService:
    """Service layer for refund request business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = RefundRepository()
        self.audit = AuditLog(db)
        self.notifications = NotificationDispatcher(db)

    def _get_for_update(self, refund_id: int) -> RefundRequest:
        refund_request = self.repo.get_by_id(self.db, refund_id, for_update=True)
        if not refund_request:
            raise NotFoundError("Refund request not found.")
        return refund_request

    def _log(self, action: str, refund_request: RefundRequest, actor: Actor, message: str, **extra) -> None:
        self.audit.record(
            "refund",
            action,
            message,
            {
                "refund_request_id": refund_request.id,
                "appointment_id": refund_request.appointment_id,
                "payment_id": refund_request.payment_id,
                "patient_id": refund_request.patient_id,
                "refund_amount": refund_request.refund_amount,
                f"{action}_by_role": actor.role,
                **extra,
            },
            user_id=actor.user_id,
        )

    def list_requests(self, status: Optional[str] = None) -> list[RefundRequest]:
        if status and status != "all" and status not in REFUND_STATUSES:
            raise ValidationError(f"Invalid refund status: {status}", field="status")
        return self.repo.list_requests(self.db, status)

    def approve(self, refund_id: int, actor: Actor, admin_notes: Optional[str] = None) -> RefundRequest:
        with unit_of_work(self.db):
            refund_request = self._get_for_update(refund_id)
            if refund_request.status != "pending":
                raise StateConflictError("Only pending refund requests can be approved.", status=refund_request.status)
            refund_request.status = "approved"
            refund_request.approved_at = datetime.now()
            if admin_notes:
                refund_request.admin_notes = admin_notes

        logger.info(f"✅ Refund request {refund_request.id} approved by {actor.display_name}")
        self._log("approved", refund_request, actor, f"Refund request #{refund_request.id} approved by {actor.display_name}")
        return refund_request

    def reject(self, refund_id: int, actor: Actor, admin_notes: Optional[str] = None) -> RefundRequest:
        with unit_of_work(self.db):
            refund_request = self._get_for_update(refund_id)
            if refund_request.status != "pending":
                raise StateConflictError("Only pending refund requests can be rejected.", status=refund_request.status)
            refund_request.status = "rejected"
            if admin_notes:
                refund_request.admin_notes = admin_notes

        logger.info(f"🚫 Refund request {refund_request.id} rejected by {actor.display_name}")
        self._log("rejected", refund_request, actor, f"Refund request #{refund_request.id} rejected by {actor.display_name}")
        return refund_request

    def process(self, refund_id: int, actor: Actor, admin_notes: Optional[str] = None) -> RefundRequest:
        """approved -> processed: the money is ready for the patient to pick up"""
        with unit_of_work(self.db):
            refund_request = self._get_for_update(refund_id)
            if refund_request.status != "approved":
                raise StateConflictError(
                    "Only approved refund requests can be marked as processed.", status=refund_request.status
                )
            refund_request.status = "processed"
            refund_request.processed_at = datetime.now()
            refund_request.processed_by = actor.user_id
            if admin_notes:
                refund_request.admin_notes = admin_notes

        logger.info(f"💵 Refund request {refund_request.id} processed by {actor.display_name}")
        self._log("processed", refund_request, actor, f"Refund request #{refund_request.id} marked as processed")
        self.notifications.notify_refund_ready(refund_request)
        return refund_request

    def confirm(self, refund_id: int, actor: Actor, now: Optional[datetime] = None) -> RefundRequest:
        """
        Patient acknowledges pickup of a processed refund. Marks the payment and
        the appointment as refunded.
        """
        now = now or datetime.now()
        with unit_of_work(self.db):
            refund_request = self._get_for_update(refund_id)
            if actor.is_patient:
                patient = PatientDirectory(self.db).resolve_by_user(actor.user_id)
                if not patient or patient.id != refund_request.patient_id:
                    raise NotFoundError("Refund request not found.")
            if refund_request.status != "processed":
                raise StateConflictError(
                    "Only processed refund requests can be confirmed.", status=refund_request.status
                )
            if refund_request.patient_confirmed_at is not None:
                raise StateConflictError("Refund already confirmed.")

            refund_request.patient_confirmed_at = now
            if refund_request.payment:
                PaymentService.mark_refunded(refund_request.payment, now)
            if refund_request.appointment:
                refund_request.appointment.payment_status = "refunded"

        logger.info(f"🤝 Refund request {refund_request.id} confirmed")
        self._log("patient_confirmed", refund_request, actor, f"Patient confirmed refund #{refund_request.id}")
        return refund_request

    def extend_deadline(
        self, refund_id: int, new_deadline: date, reason: str, actor: Actor
    ) -> RefundRequest:
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to extend the deadline.", field="reason")

        # A deadline covers the whole day
        deadline_at = datetime.combine(new_deadline, time(23, 59, 59))

        with unit_of_work(self.db):
            refund_request = self._get_for_update(refund_id)
            if refund_request.status not in EXTENDABLE_STATUSES:
                raise StateConflictError(
                    "Only pending, approved, or processed refunds can have their deadlines extended.",
                    status=refund_request.status,
                )
            if refund_request.deadline_at and deadline_at <= refund_request.deadline_at:
                raise ValidationError("New deadline must be after the current deadline.", field="new_deadline")

            old_deadline = refund_request.deadline_at
            refund_request.deadline_at = deadline_at
            refund_request.deadline_extended_at = datetime.now()
            refund_request.deadline_extension_reason = reason.strip()

        logger.info(f"⏳ Refund request {refund_request.id} deadline extended to {new_deadline}")
        self._log(
            "deadline_extended",
            refund_request,
            actor,
            f"Refund request #{refund_request.id} deadline extended to {new_deadline.isoformat()}",
            old_deadline=old_deadline.isoformat() if old_deadline else None,
            new_deadline=deadline_at.isoformat(),
            reason=refund_request.deadline_extension_reason,
        )
        return refund_request

    def deadline_alerts(self, now: Optional[datetime] = None) -> dict:
        """Unconfirmed refunds whose deadline is near or already past"""
        now = now or datetime.now()
        threshold = now + timedelta(days=REFUND_DEADLINE_ALERT_DAYS)
        approaching, overdue = [], []
        for refund_request in self.repo.get_unconfirmed_with_deadline(self.db):
            if refund_request.deadline_at < now:
                overdue.append(refund_request)
            elif refund_request.deadline_at <= threshold:
                approaching.append(refund_request)
        if overdue:
            logger.warning(f"⚠️ {len(overdue)} refund request(s) past their deadline")
        return {"approaching": approaching, "overdue": overdue}

    def pending_claims(self, actor: Actor, patient_id: Optional[int] = None) -> list[RefundRequest]:
        if actor.is_patient:
            patient = PatientDirectory(self.db).resolve_by_user(actor.user_id)
            if not patient:
                return []
            patient_id = patient.id
        if patient_id is None:
            raise ValidationError("patient_id is required.", field="patient_id")
        return self.repo.get_pending_claims(self.db, patient_id)

    def get_settings(self) -> RefundSetting:
        with unit_of_work(self.db):
            settings = self.repo.get_settings(self.db)
        return settings

    def update_settings(self, actor: Actor, **values) -> RefundSetting:
        for field, (low, high) in SETTINGS_LIMITS.items():
            value = values.get(field)
            if value is not None and not low <= value <= high:
                raise ValidationError(f"{field} must be between {low} and {high}.", field=field)

        with unit_of_work(self.db):
            settings = self.repo.get_settings(self.db)
            for field, value in values.items():
                if value is not None and hasattr(settings, field):
                    setattr(settings, field, value)

        logger.info(f"⚙️ Refund settings updated by {actor.display_name}")
        self.audit.record(
            "refund",
            "settings_updated",
            f"Refund settings updated by {actor.display_name}",
            {field: value for field, value in values.items() if value is not None},
            user_id=actor.user_id,
        )
        return settings
