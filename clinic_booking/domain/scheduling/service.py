"""Scheduling service - admin maintenance of clinic hours and capacity"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import CalendarOverride, CapacityPlan, WeeklySchedule
from ...services.audit_log import AuditLog
from ...shared.errors import NotFoundError, ValidationError
from ...shared.validators import normalize_time, time_to_minutes
from ..appointments.actors import Actor
from .repository import ScheduleRepository
from .resolver import ClinicDaySnapshot, ScheduleResolver

logger = logging.getLogger(__name__)


def _validated_hours(
    is_open: bool, open_time: Optional[str], close_time: Optional[str]
) -> tuple[Optional[str], Optional[str]]:
    """Normalize opening hours; open days need open < close"""
    if not is_open:
        return None, None
    if open_time is None or close_time is None:
        raise ValidationError("Open days need open_time and close_time.", field="open_time")
    try:
        open_time, close_time = normalize_time(open_time), normalize_time(close_time)
    except ValueError as e:
        raise ValidationError(str(e), field="open_time")
    if time_to_minutes(open_time) >= time_to_minutes(close_time):
        raise ValidationError("open_time must be before close_time.", field="close_time")
    return open_time, close_time


class SchedulingService:
    """Service layer for the clinic calendar"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ScheduleRepository()
        self.audit = AuditLog(db)

    def resolve_day(self, target_date: date) -> ClinicDaySnapshot:
        return ScheduleResolver(self.db).resolve(target_date)

    def resolve_range(self, start: date, end: date) -> list[ClinicDaySnapshot]:
        if end < start:
            raise ValidationError("end must not be before start.", field="end")
        if (end - start).days > 62:
            raise ValidationError("Date range is limited to 62 days.", field="end")
        return ScheduleResolver(self.db).resolve_range(start, end)

    def list_weekly(self) -> list[WeeklySchedule]:
        return self.repo.list_weekly(self.db)

    def set_weekly(
        self,
        weekday: int,
        is_open: bool,
        open_time: Optional[str],
        close_time: Optional[str],
        actor: Actor,
    ) -> WeeklySchedule:
        if not 0 <= weekday <= 6:
            raise ValidationError("weekday must be between 0 (Monday) and 6 (Sunday).", field="weekday")
        open_time, close_time = _validated_hours(is_open, open_time, close_time)

        entry = self.repo.upsert_weekly(
            self.db, weekday, is_open=is_open, open_time=open_time, close_time=close_time
        )
        logger.info(f"🗓️ Weekly default for weekday {weekday} set to {'open' if is_open else 'closed'}")
        self.audit.record(
            "schedule",
            "weekly_updated",
            f"{actor.display_name} updated weekday {weekday} hours",
            {"weekday": weekday, "is_open": is_open, "open_time": open_time, "close_time": close_time},
            user_id=actor.user_id,
        )
        return entry

    def set_override(
        self,
        target_date: date,
        is_open: bool,
        open_time: Optional[str],
        close_time: Optional[str],
        note: Optional[str],
        actor: Actor,
    ) -> CalendarOverride:
        open_time, close_time = _validated_hours(is_open, open_time, close_time)

        entry = self.repo.upsert_override(
            self.db, target_date, is_open=is_open, open_time=open_time, close_time=close_time, note=note
        )
        logger.info(f"🗓️ Calendar override for {target_date}: {'open' if is_open else 'closed'}")
        self.audit.record(
            "schedule",
            "override_updated",
            f"{actor.display_name} set a calendar override for {target_date.isoformat()}",
            {
                "date": target_date.isoformat(),
                "is_open": is_open,
                "open_time": open_time,
                "close_time": close_time,
                "note": note,
            },
            user_id=actor.user_id,
        )
        return entry

    def remove_override(self, target_date: date, actor: Actor) -> None:
        entry = self.repo.get_override(self.db, target_date)
        if not entry:
            raise NotFoundError("No calendar override for this date.")
        self.repo.delete_override(self.db, entry)
        logger.info(f"🗑️ Calendar override for {target_date} removed")
        self.audit.record(
            "schedule",
            "override_removed",
            f"{actor.display_name} removed the calendar override for {target_date.isoformat()}",
            {"date": target_date.isoformat()},
            user_id=actor.user_id,
        )

    def set_capacity(self, target_date: date, capacity: int, actor: Actor) -> CapacityPlan:
        if capacity < 0:
            raise ValidationError("Capacity cannot be negative.", field="capacity")
        entry = self.repo.upsert_capacity_plan(self.db, target_date, capacity)
        logger.info(f"👥 Capacity for {target_date} set to {capacity}")
        self.audit.record(
            "schedule",
            "capacity_updated",
            f"{actor.display_name} set capacity for {target_date.isoformat()} to {capacity}",
            {"date": target_date.isoformat(), "capacity": capacity},
            user_id=actor.user_id,
        )
        return entry
