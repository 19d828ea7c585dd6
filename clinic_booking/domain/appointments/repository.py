"""Appointment repository - Database operations for appointments"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import COMMITTED_STATUSES, Appointment, Service


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_by_id(db: Session, appointment_id: int, for_update: bool = False) -> Optional[Appointment]:
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def get_committed_for_date(
        db: Session,
        target_date: date,
        exclude_appointment_id: Optional[int] = None,
        patient_id: Optional[int] = None,
    ) -> list[Appointment]:
        """Appointments that occupy time on a date (pending, approved, completed)"""
        query = db.query(Appointment).filter(
            Appointment.date == target_date,
            Appointment.status.in_(COMMITTED_STATUSES),
        )
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.all()

    @staticmethod
    def reference_code_exists(db: Session, code: str) -> bool:
        return (
            db.query(Appointment.id)
            .filter(func.upper(Appointment.reference_code) == code.upper())
            .first()
            is not None
        )

    @staticmethod
    def get_by_reference_code(db: Session, code: str, status: Optional[str] = None) -> Optional[Appointment]:
        query = db.query(Appointment).filter(func.upper(Appointment.reference_code) == code.upper())
        if status:
            query = query.filter(Appointment.status == status)
        return query.first()

    @staticmethod
    def get_remindable(db: Session, start: date, end: date) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.date >= start,
                Appointment.date <= end,
                Appointment.status == "approved",
                Appointment.reminded_at.is_(None),
            )
            .order_by(Appointment.date, Appointment.time_slot)
            .all()
        )

    @staticmethod
    def count_patient_cancellations(db: Session, patient_id: int, since: datetime, until: datetime) -> int:
        """Patient-initiated cancellations in [since, until)"""
        return (
            db.query(func.count(Appointment.id))
            .filter(
                Appointment.patient_id == patient_id,
                Appointment.status == "cancelled",
                Appointment.cancelled_by_role == "patient",
                Appointment.canceled_at >= since,
                Appointment.canceled_at < until,
            )
            .scalar()
            or 0
        )
