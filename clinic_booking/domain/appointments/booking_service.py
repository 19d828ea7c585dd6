"""Booking service - the single validation pipeline behind every new appointment"""

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session

from ...config import REFERENCE_CODE_LENGTH, REFERENCE_CODE_MAX_ATTEMPTS
from ...database import unit_of_work
from ...models import PAYMENT_METHODS, Appointment, Patient, Service
from ...services.audit_log import AuditLog
from ...services.notification_service import NotificationDispatcher
from ...services.patient_directory import BLOCK_MESSAGES, PatientDirectory
from ...shared.errors import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from ...shared.validators import normalize_reference_code, parse_date
from ..payments.service import PaymentService
from ..scheduling.resolver import ScheduleResolver
from ..scheduling.slot_grid import expand_blocks, expand_time_slot
from .actors import BookingActor, SelfService, StaffAssisted
from .capacity_ledger import CapacityLedger
from .overlap import OverlapChecker
from .pipeline import SlotPlacement, duration_blocks, place_slot
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class BookingRequest:
    service_id: int
    date: Union[str, date]
    start_time: str
    payment_method: str
    patient_hmo_id: Optional[int] = None
    teeth_count: Optional[int] = None
    notes: Optional[str] = None


def appointment_state(appointment: Appointment) -> dict:
    """Audit snapshot of the fields the workflow changes"""
    return {
        "status": appointment.status,
        "date": appointment.date.isoformat() if appointment.date else None,
        "time_slot": appointment.time_slot,
        "payment_status": appointment.payment_status,
    }


def check_not_blocked(directory: PatientDirectory, patient: Patient, client_ip: Optional[str]) -> None:
    block = directory.get_block_info(patient, client_ip)
    if block.blocked:
        logger.warning(f"⚠️ Blocked patient {patient.id} ({block.block_type}) attempted to book")
        raise AuthorizationError(
            BLOCK_MESSAGES.get(block.block_type, "Your account has been blocked from booking appointments."),
            block_type=block.block_type,
            block_reason=block.block_reason,
        )


class BookingService:
    """Creates appointments for self-service patients and staff walk-ins"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()
        self.directory = PatientDirectory(db)
        self.payments = PaymentService(db)
        self.notifications = NotificationDispatcher(db)
        self.audit = AuditLog(db)

    def _get_service(self, service_id: int) -> Service:
        service = self.repo.get_service(self.db, service_id)
        if not service:
            raise NotFoundError("Service not found.", service_id=service_id)
        return service

    # ------------------------------------------------------------------
    # Slot enumeration
    # ------------------------------------------------------------------

    def list_valid_start_times(
        self,
        target_date: Union[str, date],
        service_id: int,
        patient_id: Optional[int] = None,
        teeth_count: Optional[int] = None,
    ) -> list[str]:
        """Grid starts where the service fits capacity and the patient is free"""
        try:
            target_date = parse_date(target_date)
        except ValueError as e:
            raise ValidationError(str(e), field="date")

        service = self._get_service(service_id)
        snapshot = ScheduleResolver(self.db).resolve(target_date)
        if not snapshot.is_open:
            return []

        blocks = duration_blocks(service, teeth_count)
        ledger = CapacityLedger(self.db, snapshot)
        usage = ledger.usage()
        busy_blocks = set()
        if patient_id is not None:
            for taken in OverlapChecker(self.db).blocked_ranges(patient_id, target_date):
                busy_blocks.update(expand_time_slot(taken))

        valid = []
        for start in snapshot.grid:
            if not ledger.can_fit(start, blocks, usage=usage).ok:
                continue
            if busy_blocks and busy_blocks.intersection(expand_blocks(start, blocks)):
                continue
            valid.append(start)
        return valid

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def book(self, actor: BookingActor, request: BookingRequest, today: Optional[date] = None) -> Appointment:
        """
        Validate and create an appointment. Checks run in a fixed order and the
        first failure raises; nothing is written unless every check passes.
        """
        staff_assisted = isinstance(actor, StaffAssisted)
        if request.payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Invalid payment method: {request.payment_method}", field="payment_method")
        if request.teeth_count is not None and not 1 <= request.teeth_count <= 32:
            raise ValidationError("Teeth count must be between 1 and 32.", field="teeth_count")

        service = self._get_service(request.service_id)

        with unit_of_work(self.db):
            # Steps 1-5: window, open day, grid, hours, capacity
            placement = place_slot(
                self.db,
                request.date,
                request.start_time,
                service,
                teeth_count=request.teeth_count,
                staff_assisted=staff_assisted,
                today=today,
            )

            # 6. Patient resolution
            patient = self._resolve_patient(actor)

            # 7. Account / IP holds; desk bookings carry no patient IP
            client_ip = actor.client_ip if isinstance(actor, SelfService) else None
            check_not_blocked(self.directory, patient, client_ip)

            # 8. Patients under warning must prepay online
            if self.directory.is_under_warning(patient) and request.payment_method != "maya":
                raise AuthorizationError(
                    "Due to previous no-shows, only Maya payments are accepted for your bookings.",
                    block_type="warning",
                    block_reason=patient.block_reason,
                )

            # 9. Patient overlap
            if OverlapChecker(self.db).has_overlap(patient.id, placement.date, placement.time_slot):
                raise ValidationError(
                    "You already have an appointment at this time. Please choose a different time slot.",
                    field="start_time",
                )

            # 10. HMO consistency
            patient_hmo_id = self._check_hmo(patient, request)

            # 11. Create
            appointment = self._create(actor, request, patient, patient_hmo_id, placement, service)

        logger.info(
            f"✅ Appointment {appointment.id} ({appointment.reference_code}) booked for patient "
            f"{appointment.patient_id} on {appointment.date} {appointment.time_slot}"
        )
        self.notifications.notify_new_appointment(appointment)
        self.audit.record(
            "appointment",
            "created_by_staff" if staff_assisted else "created",
            f"Appointment #{appointment.id} booked for {appointment.date} {appointment.time_slot}",
            {
                "appointment_id": appointment.id,
                "patient_id": appointment.patient_id,
                "before": None,
                "after": appointment_state(appointment),
            },
            user_id=actor.staff.user_id if staff_assisted else actor.user_id,
        )
        return appointment

    def _resolve_patient(self, actor: BookingActor) -> Patient:
        if isinstance(actor, SelfService):
            patient = self.directory.resolve_by_user(actor.user_id)
            if not patient:
                raise ValidationError(
                    "Your account is not yet linked to a patient record. Please contact the clinic.",
                    field="patient",
                )
            return patient

        if actor.patient_id is not None:
            patient = self.directory.get(actor.patient_id)
            if not patient:
                raise NotFoundError("Patient not found.", patient_id=actor.patient_id)
            return patient

        new = actor.new_patient
        if not new.first_name.strip() or not new.last_name.strip():
            raise ValidationError("First and last name are required for a new patient.", field="new_patient")
        return self.directory.create_walk_in(new.first_name, new.last_name, new.contact_number, new.email)

    def _check_hmo(self, patient: Patient, request: BookingRequest) -> Optional[int]:
        if request.payment_method != "hmo":
            return None
        if not request.patient_hmo_id:
            raise ValidationError("Please select an HMO for this appointment.", field="patient_hmo_id")
        hmo = self.directory.get_hmo(request.patient_hmo_id)
        if not hmo or hmo.patient_id != patient.id:
            raise ValidationError("Selected HMO does not belong to this patient.", field="patient_hmo_id")
        return hmo.id

    def _create(
        self,
        actor: BookingActor,
        request: BookingRequest,
        patient: Patient,
        patient_hmo_id: Optional[int],
        placement: SlotPlacement,
        service: Service,
    ) -> Appointment:
        staff_assisted = isinstance(actor, StaffAssisted)
        appointment = Appointment(
            patient_id=patient.id,
            service_id=service.id,
            patient_hmo_id=patient_hmo_id,
            date=placement.date,
            time_slot=placement.time_slot,
            reference_code=self.generate_reference_code(),
            status="approved" if staff_assisted else "pending",
            payment_method=request.payment_method,
            payment_status="awaiting_payment" if request.payment_method == "maya" else "unpaid",
            teeth_count=request.teeth_count,
            notes=request.notes,
            booked_by_staff=staff_assisted,
        )
        self.db.add(appointment)
        self.db.flush()

        placement.ledger.admit(appointment)

        if request.payment_method == "maya":
            self.payments.create_for_appointment(appointment, service)
        return appointment

    def generate_reference_code(self) -> str:
        """Random 8-character uppercase code; the unique column backs up the collision check"""
        for _ in range(REFERENCE_CODE_MAX_ATTEMPTS):
            code = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_CODE_LENGTH))
            if not self.repo.reference_code_exists(self.db, code):
                return code
        logger.error(f"❌ Could not generate a unique reference code after {REFERENCE_CODE_MAX_ATTEMPTS} attempts")
        raise StateConflictError("Could not generate a unique reference code. Please try again.")

    # ------------------------------------------------------------------
    # Reference codes and reminders
    # ------------------------------------------------------------------

    def resolve_reference_code(self, code: str) -> Appointment:
        """Front-desk lookup of an approved appointment by its reference code"""
        normalized = normalize_reference_code(code)
        if len(normalized) != REFERENCE_CODE_LENGTH:
            raise NotFoundError("Invalid or used reference code.")
        appointment = self.repo.get_by_reference_code(self.db, normalized, status="approved")
        if not appointment:
            raise NotFoundError("Invalid or used reference code.")
        return appointment

    def remindable(self, today: Optional[date] = None) -> list[Appointment]:
        """Approved appointments one or two days out that have not been reminded"""
        today = today or date.today()
        return self.repo.get_remindable(self.db, today + timedelta(days=1), today + timedelta(days=2))

    def send_reminder(
        self,
        appointment_id: int,
        message: str,
        staff_user_id: Optional[int] = None,
        edited: bool = False,
        today: Optional[date] = None,
    ) -> Appointment:
        today = today or date.today()
        with unit_of_work(self.db):
            appointment = self.repo.get_by_id(self.db, appointment_id, for_update=True)
            if not appointment:
                raise NotFoundError("Appointment not found.")

            eligible_dates = (today + timedelta(days=1), today + timedelta(days=2))
            if (
                appointment.status != "approved"
                or appointment.date not in eligible_dates
                or appointment.reminded_at is not None
            ):
                raise StateConflictError("Not eligible for reminder.")
            if not message or not message.strip():
                raise ValidationError("Reminder message is required.", field="message")

            appointment.reminded_at = datetime.now()

        self.notifications.send_appointment_reminder(appointment, message.strip())
        if edited:
            self.audit.record(
                "appointment",
                "reminder_sent_custom",
                f"Staff sent a custom reminder for appointment #{appointment.id}",
                {"appointment_id": appointment.id, "message": message},
                user_id=staff_user_id,
            )
        logger.info(f"🔔 Reminder sent for appointment {appointment.id}")
        return appointment
