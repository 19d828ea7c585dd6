"""
Clinic day resolution

Turns a calendar date into a ClinicDaySnapshot:
- Calendar overrides decide open/closed and hours for their exact date
- Otherwise the weekly default for the weekday applies
- Capacity comes from the capacity plan for the date, else the default constant
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import DEFAULT_CLINIC_CAPACITY
from ...shared.validators import normalize_time, time_to_minutes
from .repository import ScheduleRepository
from .slot_grid import build_grid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClinicDaySnapshot:
    date: date
    is_open: bool
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    effective_capacity: int = 0
    source: str = "none"  # override, weekly, none
    capacity_planned: bool = False
    note: Optional[str] = None
    grid: list[str] = field(default_factory=list)

    @classmethod
    def closed(cls, target_date: date, source: str = "none", note: Optional[str] = None):
        return cls(date=target_date, is_open=False, source=source, note=note)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "is_open": self.is_open,
            "open_time": self.open_time,
            "close_time": self.close_time,
            "effective_capacity": self.effective_capacity,
            "source": self.source,
            "capacity_planned": self.capacity_planned,
            "note": self.note,
            "grid": list(self.grid),
        }


class ScheduleResolver:
    """Resolves dates against the clinic's weekly defaults, overrides and capacity plans"""

    def __init__(self, db: Session, default_capacity: int = DEFAULT_CLINIC_CAPACITY):
        self.db = db
        self.default_capacity = default_capacity
        self.repo = ScheduleRepository()

    def resolve(self, target_date: date) -> ClinicDaySnapshot:
        override = self.repo.get_override(self.db, target_date)
        weekly = None if override else self.repo.get_weekly(self.db, target_date.weekday())

        if override:
            source = "override"
            is_open = bool(override.is_open)
            open_raw, close_raw = override.open_time, override.close_time
            note = override.note
        elif weekly:
            source = "weekly"
            is_open = bool(weekly.is_open)
            open_raw, close_raw = weekly.open_time, weekly.close_time
            note = None
        else:
            # Missing weekday configuration means closed
            return ClinicDaySnapshot.closed(target_date)

        if not is_open:
            return ClinicDaySnapshot.closed(target_date, source=source, note=note)

        if not open_raw or not close_raw:
            logger.warning(f"⚠️ {target_date} marked open without hours ({source}); treating as closed")
            return ClinicDaySnapshot.closed(target_date, source=source, note=note)

        open_time, close_time = normalize_time(open_raw), normalize_time(close_raw)
        if time_to_minutes(open_time) >= time_to_minutes(close_time):
            logger.warning(f"⚠️ {target_date} has open {open_time} >= close {close_time}; treating as closed")
            return ClinicDaySnapshot.closed(target_date, source=source, note=note)

        plan = self.repo.get_capacity_plan(self.db, target_date)
        capacity = max(0, plan.capacity) if plan else self.default_capacity

        return ClinicDaySnapshot(
            date=target_date,
            is_open=True,
            open_time=open_time,
            close_time=close_time,
            effective_capacity=capacity,
            source=source,
            capacity_planned=plan is not None,
            note=note,
            grid=build_grid(open_time, close_time),
        )

    def resolve_range(self, start: date, end: date) -> list[ClinicDaySnapshot]:
        """Snapshots for every date from start to end inclusive"""
        snapshots = []
        current = start
        while current <= end:
            snapshots.append(self.resolve(current))
            current += timedelta(days=1)
        return snapshots
