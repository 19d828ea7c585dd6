"""Per-patient time overlap checks (independent of clinic capacity)"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...shared.validators import normalize_time_slot
from ..scheduling.slot_grid import ranges_overlap
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)


class OverlapChecker:
    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    def blocked_ranges(
        self, patient_id: int, target_date: date, exclude_appointment_id: Optional[int] = None
    ) -> list[str]:
        """The patient's committed "HH:MM-HH:MM" ranges on a date"""
        ranges = []
        for appointment in self.repo.get_committed_for_date(
            self.db, target_date, exclude_appointment_id=exclude_appointment_id, patient_id=patient_id
        ):
            try:
                ranges.append(normalize_time_slot(appointment.time_slot))
            except ValueError:
                logger.warning(
                    f"⚠️ Ignoring appointment {appointment.id} with malformed time slot {appointment.time_slot!r}"
                )
        return ranges

    def has_overlap(
        self,
        patient_id: int,
        target_date: date,
        time_slot: str,
        exclude_appointment_id: Optional[int] = None,
    ) -> bool:
        return any(
            ranges_overlap(existing, time_slot)
            for existing in self.blocked_ranges(patient_id, target_date, exclude_appointment_id)
        )
