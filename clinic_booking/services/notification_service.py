"""
Notification Dispatcher
Queues staff and patient notifications for every appointment/refund workflow event.
Delivery (SMS/email) happens downstream from the outbox; dispatch here is best-effort:
a failure is logged and reported in the result, never raised to the caller.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Appointment, RefundRequest, StaffNotification

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Writes notifications to the outbox after the primary transaction has committed"""

    def __init__(self, db: Session):
        self.db = db

    def send_notification(
        self,
        notification_type: str,
        title: str,
        body: str,
        data: Optional[dict] = None,
    ) -> dict:
        """
        Queue a single notification.

        Returns:
            Dict with sent status and error message (if any)
        """
        result = {"sent": False, "error": None}
        try:
            logger.info(f"📣 Queueing {notification_type} notification")
            self.db.add(StaffNotification(type=notification_type, title=title, body=body, data=data))
            self.db.commit()
            result["sent"] = True
        except Exception as e:
            self.db.rollback()
            result["error"] = str(e)
            logger.error(f"❌ Failed to queue {notification_type} notification: {e}")
        return result

    def notify_new_appointment(self, appointment: Appointment) -> dict:
        return self.send_notification(
            notification_type="new_appointment",
            title="New appointment booked",
            body=(
                f"Appointment {appointment.reference_code} on {appointment.date.isoformat()} "
                f"{appointment.time_slot} is {appointment.status}."
            ),
            data={
                "appointment_id": appointment.id,
                "patient_id": appointment.patient_id,
                "status": appointment.status,
            },
        )

    def notify_appointment_status_change(self, appointment: Appointment, status: str) -> dict:
        return self.send_notification(
            notification_type=f"appointment_{status}",
            title=f"Appointment {status}",
            body=f"Your appointment {appointment.reference_code} has been {status}.",
            data={"appointment_id": appointment.id, "patient_id": appointment.patient_id},
        )

    def notify_refund_request_created(self, refund_request: RefundRequest) -> dict:
        return self.send_notification(
            notification_type="refund_request_created",
            title="Refund request created",
            body=(
                f"Refund of {refund_request.refund_amount:.2f} pending review for "
                f"appointment #{refund_request.appointment_id}."
            ),
            data={
                "refund_request_id": refund_request.id,
                "appointment_id": refund_request.appointment_id,
                "patient_id": refund_request.patient_id,
            },
        )

    def notify_refund_ready(self, refund_request: RefundRequest) -> dict:
        deadline = refund_request.deadline_at.strftime("%b %d, %Y") if refund_request.deadline_at else "-"
        return self.send_notification(
            notification_type="refund_ready",
            title="Refund ready for pickup",
            body=(
                f"Your refund of {refund_request.refund_amount:.2f} is ready for pickup at the clinic. "
                f"Please claim it on or before {deadline}."
            ),
            data={"refund_request_id": refund_request.id, "patient_id": refund_request.patient_id},
        )

    def send_appointment_reminder(self, appointment: Appointment, message: str) -> dict:
        return self.send_notification(
            notification_type="appointment_reminder",
            title="Dental Appointment Reminder",
            body=message,
            data={"appointment_id": appointment.id, "patient_id": appointment.patient_id},
        )
