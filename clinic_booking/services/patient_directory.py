"""
Patient Directory
Resolves patients for bookings and reports their no-show hold status
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..models import Patient, PatientHmo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockInfo:
    blocked: bool
    block_type: Optional[str] = None  # account, ip, both
    block_reason: Optional[str] = None
    blocked_at: Optional[datetime] = None


NOT_BLOCKED = BlockInfo(blocked=False)

BLOCK_MESSAGES = {
    "account": "Your account has been temporarily suspended from booking appointments. "
    "Please visit the clinic to restore your booking privileges.",
    "ip": "Your current network has been blocked from booking appointments. "
    "Try a different network or contact the clinic.",
    "both": "Your account and network have been blocked from booking appointments. "
    "Please visit the clinic to restore your booking privileges.",
}


class PatientDirectory:
    def __init__(self, db: Session):
        self.db = db

    def get(self, patient_id: int) -> Optional[Patient]:
        return self.db.query(Patient).filter(Patient.id == patient_id).first()

    def resolve_by_user(self, user_id: int) -> Optional[Patient]:
        return self.db.query(Patient).filter(Patient.user_id == user_id).first()

    def create_walk_in(
        self,
        first_name: str,
        last_name: str,
        contact_number: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Patient:
        """Create an unlinked patient record inside the caller's transaction"""
        patient = Patient(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            contact_number=contact_number,
            email=email,
        )
        self.db.add(patient)
        self.db.flush()
        logger.info(f"🆕 Walk-in patient #{patient.id} created")
        return patient

    def get_block_info(self, patient: Patient, ip: Optional[str] = None) -> BlockInfo:
        """
        Account holds apply everywhere; IP holds apply when the request comes
        from the blocked address, whichever patient the block was placed on.
        """
        if patient.block_status == "blocked":
            if patient.block_type == "ip" and ip and patient.blocked_ip == ip:
                return BlockInfo(True, "ip", patient.block_reason, patient.blocked_at)
            if patient.block_type in ("account", "both"):
                return BlockInfo(True, patient.block_type, patient.block_reason, patient.blocked_at)

        if ip:
            ip_holder = (
                self.db.query(Patient)
                .filter(
                    Patient.block_status == "blocked",
                    Patient.block_type.in_(["ip", "both"]),
                    Patient.blocked_ip == ip,
                )
                .first()
            )
            if ip_holder:
                return BlockInfo(
                    True,
                    "ip",
                    f"This IP address has been blocked due to multiple no-shows by {ip_holder.full_name}",
                    ip_holder.blocked_at,
                )

        return NOT_BLOCKED

    @staticmethod
    def is_under_warning(patient: Patient) -> bool:
        return patient.block_status == "warning"

    def get_hmo(self, hmo_id: int) -> Optional[PatientHmo]:
        return self.db.query(PatientHmo).filter(PatientHmo.id == hmo_id).first()
