"""
Slot validation steps shared by booking and rescheduling.

The order is part of the contract: window, open day, grid alignment,
clinic hours, capacity. The first failing step raises.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session

from ...config import BOOKING_WINDOW_DAYS, SLOT_MINUTES
from ...models import Service
from ...shared.errors import CapacityError, ValidationError
from ...shared.validators import format_time_slot, normalize_time, parse_date, time_to_minutes
from ..scheduling.resolver import ClinicDaySnapshot, ScheduleResolver
from ..scheduling.slot_grid import blocks_for_minutes
from .capacity_ledger import CapacityLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SlotPlacement:
    """A validated slot: where it goes and which ledger admitted it"""

    snapshot: ClinicDaySnapshot
    ledger: CapacityLedger
    start: str
    blocks: int
    time_slot: str

    @property
    def date(self) -> date:
        return self.snapshot.date


def estimated_minutes(service: Service, teeth_count: Optional[int] = None) -> int:
    """
    Unrounded treatment length. Per-tooth services add per_tooth_minutes for
    every tooth beyond the included ones; callers round up to whole blocks.
    """
    base = int(service.estimated_minutes or 0)
    if not service.per_teeth_service or not teeth_count:
        return base
    extra_teeth = max(0, int(teeth_count) - int(service.included_teeth or 0))
    return base + int(service.per_tooth_minutes or 0) * extra_teeth


def duration_blocks(service: Service, teeth_count: Optional[int] = None) -> int:
    return blocks_for_minutes(estimated_minutes(service, teeth_count))


def booking_window(staff_assisted: bool, today: Optional[date] = None) -> tuple[date, date]:
    """Self-service books from tomorrow, staff from today; both up to a week ahead"""
    today = today or date.today()
    first = today if staff_assisted else today + timedelta(days=1)
    return first, today + timedelta(days=BOOKING_WINDOW_DAYS)


def check_booking_window(target_date: date, staff_assisted: bool, today: Optional[date] = None) -> None:
    first, last = booking_window(staff_assisted, today)
    if target_date < first or target_date > last:
        raise ValidationError(
            "Date is outside the booking window.",
            field="date",
            window_start=first.isoformat(),
            window_end=last.isoformat(),
        )


def place_slot(
    db: Session,
    target_date: Union[str, date],
    start_time: str,
    service: Service,
    teeth_count: Optional[int] = None,
    staff_assisted: bool = False,
    exclude_appointment_id: Optional[int] = None,
    today: Optional[date] = None,
) -> SlotPlacement:
    """Run window -> open day -> grid -> hours -> capacity for one candidate slot"""
    try:
        target_date = parse_date(target_date)
    except ValueError as e:
        raise ValidationError(str(e), field="date")

    # 1. Booking window
    check_booking_window(target_date, staff_assisted, today)

    # 2. Clinic open
    snapshot = ScheduleResolver(db).resolve(target_date)
    if not snapshot.is_open:
        raise ValidationError("Clinic is closed on this date.", field="date")

    # 3. Grid alignment
    try:
        start = normalize_time(start_time)
    except ValueError as e:
        raise ValidationError(str(e), field="start_time")
    if start not in snapshot.grid:
        raise ValidationError("Invalid start time (not on grid or outside hours).", field="start_time")

    # 4. Duration within hours
    blocks = duration_blocks(service, teeth_count)
    start_minutes = time_to_minutes(start)
    end_minutes = start_minutes + blocks * SLOT_MINUTES
    if start_minutes < time_to_minutes(snapshot.open_time) or end_minutes > time_to_minutes(snapshot.close_time):
        raise ValidationError("Selected time is outside clinic hours.", field="start_time")

    # 5. Capacity
    ledger = CapacityLedger(db, snapshot)
    fit = ledger.can_fit(start, blocks, exclude_appointment_id=exclude_appointment_id)
    if not fit.ok:
        logger.warning(f"⚠️ No capacity on {target_date} at {fit.full_at} for a {blocks}-block booking")
        raise CapacityError(f"Time slot starting at {fit.full_at} is already full.", full_at=fit.full_at)

    return SlotPlacement(
        snapshot=snapshot,
        ledger=ledger,
        start=start,
        blocks=blocks,
        time_slot=format_time_slot(start_minutes, end_minutes),
    )
