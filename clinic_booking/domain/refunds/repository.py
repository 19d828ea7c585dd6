"""Refund repository - Database operations for refund requests and settings"""

from typing import Optional

from sqlalchemy.orm import Session

from ...config import (
    DEFAULT_CANCELLATION_DEADLINE_HOURS,
    DEFAULT_CREATE_ZERO_REFUND_REQUEST,
    DEFAULT_MONTHLY_CANCELLATION_LIMIT,
    DEFAULT_REFUND_REMINDER_DAYS,
)
from ...models import RefundRequest, RefundSetting

UNCONFIRMED_STATUSES = ("pending", "approved", "processed")


class RefundRepository:
    """Repository for refund database operations"""

    @staticmethod
    def get_settings(db: Session) -> RefundSetting:
        """The settings singleton; created with defaults on first read (caller commits)"""
        settings = db.query(RefundSetting).order_by(RefundSetting.id).first()
        if settings is None:
            settings = RefundSetting(
                cancellation_deadline_hours=DEFAULT_CANCELLATION_DEADLINE_HOURS,
                monthly_cancellation_limit=DEFAULT_MONTHLY_CANCELLATION_LIMIT,
                create_zero_refund_request=DEFAULT_CREATE_ZERO_REFUND_REQUEST,
                reminder_days=DEFAULT_REFUND_REMINDER_DAYS,
            )
            db.add(settings)
            db.flush()
        return settings

    @staticmethod
    def get_by_id(db: Session, refund_id: int, for_update: bool = False) -> Optional[RefundRequest]:
        query = db.query(RefundRequest).filter(RefundRequest.id == refund_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def list_requests(db: Session, status: Optional[str] = None) -> list[RefundRequest]:
        query = db.query(RefundRequest)
        if status and status != "all":
            query = query.filter(RefundRequest.status == status)
        return query.order_by(RefundRequest.requested_at.desc()).all()

    @staticmethod
    def get_pending_claims(db: Session, patient_id: int) -> list[RefundRequest]:
        """Processed refunds waiting for the patient to pick them up"""
        return (
            db.query(RefundRequest)
            .filter(
                RefundRequest.patient_id == patient_id,
                RefundRequest.status == "processed",
                RefundRequest.patient_confirmed_at.is_(None),
            )
            .order_by(RefundRequest.processed_at.desc())
            .all()
        )

    @staticmethod
    def get_unconfirmed_with_deadline(db: Session) -> list[RefundRequest]:
        return (
            db.query(RefundRequest)
            .filter(
                RefundRequest.status.in_(UNCONFIRMED_STATUSES),
                RefundRequest.patient_confirmed_at.is_(None),
                RefundRequest.deadline_at.isnot(None),
            )
            .order_by(RefundRequest.deadline_at)
            .all()
        )
