"""Schedule repository - Database operations for clinic hours and capacity"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import CalendarOverride, CapacityPlan, WeeklySchedule


class ScheduleRepository:
    """Repository for weekly defaults, calendar overrides and capacity plans"""

    @staticmethod
    def get_weekly(db: Session, weekday: int) -> Optional[WeeklySchedule]:
        return db.query(WeeklySchedule).filter(WeeklySchedule.weekday == weekday).first()

    @staticmethod
    def list_weekly(db: Session) -> list[WeeklySchedule]:
        return db.query(WeeklySchedule).order_by(WeeklySchedule.weekday).all()

    @staticmethod
    def get_override(db: Session, target_date: date) -> Optional[CalendarOverride]:
        return db.query(CalendarOverride).filter(CalendarOverride.date == target_date).first()

    @staticmethod
    def get_capacity_plan(db: Session, target_date: date) -> Optional[CapacityPlan]:
        return db.query(CapacityPlan).filter(CapacityPlan.date == target_date).first()

    @staticmethod
    def upsert_weekly(db: Session, weekday: int, **values) -> WeeklySchedule:
        entry = ScheduleRepository.get_weekly(db, weekday)
        if not entry:
            entry = WeeklySchedule(weekday=weekday)
            db.add(entry)
        for key, value in values.items():
            setattr(entry, key, value)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def upsert_override(db: Session, target_date: date, **values) -> CalendarOverride:
        entry = ScheduleRepository.get_override(db, target_date)
        if not entry:
            entry = CalendarOverride(date=target_date)
            db.add(entry)
        for key, value in values.items():
            setattr(entry, key, value)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def delete_override(db: Session, entry: CalendarOverride) -> None:
        db.delete(entry)
        db.commit()

    @staticmethod
    def upsert_capacity_plan(db: Session, target_date: date, capacity: int) -> CapacityPlan:
        entry = ScheduleRepository.get_capacity_plan(db, target_date)
        if not entry:
            entry = CapacityPlan(date=target_date, capacity=capacity)
            db.add(entry)
        else:
            entry.capacity = capacity
        db.commit()
        db.refresh(entry)
        return entry
