"""Who is acting on an appointment, and on whose behalf a booking is made"""

from dataclasses import dataclass
from typing import Optional, Union

ROLES = ("patient", "staff", "admin")


@dataclass(frozen=True)
class Actor:
    user_id: Optional[int]
    role: str = "patient"
    name: Optional[str] = None

    @property
    def is_patient(self) -> bool:
        return self.role == "patient"

    @property
    def is_staff(self) -> bool:
        return self.role in ("staff", "admin")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def display_name(self) -> str:
        return self.name or f"{self.role} #{self.user_id}"


SYSTEM_ACTOR = Actor(user_id=None, role="admin", name="System")


@dataclass(frozen=True)
class NewPatient:
    first_name: str
    last_name: str
    contact_number: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class SelfService:
    """Patient booking for themselves through their linked user account"""

    user_id: int
    client_ip: Optional[str] = None


@dataclass(frozen=True)
class StaffAssisted:
    """Staff booking a walk-in, either for an existing patient or a new one"""

    staff: Actor
    patient_id: Optional[int] = None
    new_patient: Optional[NewPatient] = None

    def __post_init__(self):
        if (self.patient_id is None) == (self.new_patient is None):
            raise ValueError("Staff-assisted booking needs exactly one of patient_id or new_patient")


BookingActor = Union[SelfService, StaffAssisted]
