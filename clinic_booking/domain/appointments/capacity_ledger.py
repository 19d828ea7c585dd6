"""
Capacity ledger

Usage per 30-minute block is the number of committed appointments
(pending, approved, completed) covering that block on the date. Admission
is made race-free with AdmissionTicket rows: each committed appointment
holds one ticket per block it covers, and the unique (date, block, unit)
constraint stops two transactions from taking the same unit.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import ADMISSION_MAX_RETRIES, SLOT_MINUTES
from ...models import AdmissionTicket, Appointment
from ...shared.errors import CapacityError
from ...shared.validators import minutes_to_time, normalize_time, time_to_minutes
from ..scheduling.resolver import ClinicDaySnapshot
from ..scheduling.slot_grid import expand_time_slot
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FitResult:
    ok: bool
    full_at: Optional[str] = None


class CapacityLedger:
    """Per-date block usage and admission for one resolved clinic day"""

    def __init__(self, db: Session, snapshot: ClinicDaySnapshot):
        self.db = db
        self.snapshot = snapshot
        self.repo = AppointmentRepository()

    def usage(self, exclude_appointment_id: Optional[int] = None) -> dict[str, int]:
        """Block start -> number of committed appointments covering it"""
        usage = {block: 0 for block in self.snapshot.grid}
        appointments = self.repo.get_committed_for_date(
            self.db, self.snapshot.date, exclude_appointment_id=exclude_appointment_id
        )
        for appointment in appointments:
            try:
                blocks = expand_time_slot(appointment.time_slot)
            except ValueError:
                logger.warning(
                    f"⚠️ Skipping appointment {appointment.id} with malformed time slot {appointment.time_slot!r}"
                )
                continue
            for block in blocks:
                usage[block] = usage.get(block, 0) + 1
        return usage

    def can_fit(
        self,
        start: str,
        blocks_needed: int,
        exclude_appointment_id: Optional[int] = None,
        usage: Optional[dict[str, int]] = None,
    ) -> FitResult:
        """
        Walk the consecutive blocks from start; the first block that is off
        the grid or already at capacity is reported as full_at.
        """
        start = normalize_time(start)
        if not self.snapshot.is_open:
            return FitResult(False, start)

        if usage is None:
            usage = self.usage(exclude_appointment_id)

        # The first off-grid minute is at most one block past the grid
        grid = {time_to_minutes(block): block for block in self.snapshot.grid}
        first = time_to_minutes(start)
        for offset in range(blocks_needed):
            minute = first + offset * SLOT_MINUTES
            block = grid.get(minute)
            if block is None:
                return FitResult(False, minutes_to_time(minute))
            if usage.get(block, 0) >= self.snapshot.effective_capacity:
                return FitResult(False, block)
        return FitResult(True)

    def admit(self, appointment: Appointment) -> list[AdmissionTicket]:
        """
        Claim one ticket per block covered by the appointment's time slot.
        Must run inside the caller's transaction after the appointment is flushed.

        Raises:
            CapacityError: If a block has no free unit left
        """
        tickets = [self._claim(appointment, block) for block in expand_time_slot(appointment.time_slot)]
        logger.info(
            f"🎟️ Admitted appointment {appointment.id} on {appointment.date} ({len(tickets)} block(s))"
        )
        return tickets

    def taken_units(self, day, block: str) -> set[int]:
        return {
            unit
            for (unit,) in self.db.query(AdmissionTicket.unit).filter(
                AdmissionTicket.date == day,
                AdmissionTicket.block_start == block,
            )
        }

    def _claim(self, appointment: Appointment, block: str) -> AdmissionTicket:
        capacity = self.snapshot.effective_capacity

        for attempt in range(1, ADMISSION_MAX_RETRIES + 1):
            taken = self.taken_units(appointment.date, block)
            free_unit = next((unit for unit in range(capacity) if unit not in taken), None)
            if free_unit is None:
                raise CapacityError(f"Time slot starting at {block} is already full.", full_at=block)

            ticket = AdmissionTicket(
                appointment_id=appointment.id,
                date=appointment.date,
                block_start=block,
                unit=free_unit,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(ticket)
                    self.db.flush()
                return ticket
            except IntegrityError:
                # Another booking took this unit between our read and insert
                logger.warning(
                    f"⚠️ Unit {free_unit} of {appointment.date} {block} claimed concurrently "
                    f"(attempt {attempt}/{ADMISSION_MAX_RETRIES})"
                )

        raise CapacityError(f"Time slot starting at {block} is already full.", full_at=block)

    @staticmethod
    def release(db: Session, appointment: Appointment) -> int:
        """Drop all tickets held by an appointment; returns how many were released"""
        released = (
            db.query(AdmissionTicket)
            .filter(AdmissionTicket.appointment_id == appointment.id)
            .delete(synchronize_session=False)
        )
        db.expire(appointment, ["admission_tickets"])
        if released:
            logger.info(f"🔓 Released {released} ticket(s) for appointment {appointment.id}")
        return released
