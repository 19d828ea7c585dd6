"""Scheduling router - clinic days, slot grids and admin calendar maintenance"""

import logging
from datetime import date as date_type

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from ...auth import require_staff
from ...database import get_db
from ...shared.errors import ValidationError
from ..appointments.actors import Actor
from .schemas import (
    CapacityPlanResponse,
    CapacityUpdate,
    ClinicDayResponse,
    GridResponse,
    HoursUpdate,
    OverrideResponse,
    OverrideUpdate,
    WeeklyScheduleResponse,
)
from .service import SchedulingService
from .slot_grid import build_grid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedule", tags=["Schedule"])


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


@router.get("/days/{day}", response_model=ClinicDayResponse)
async def get_clinic_day(
    day: date_type = Path(...),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Resolved hours and capacity for a date"""
    return service.resolve_day(day).to_dict()


@router.get("/days", response_model=list[ClinicDayResponse])
async def get_clinic_days(
    start: date_type = Query(...),
    end: date_type = Query(...),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return [snapshot.to_dict() for snapshot in service.resolve_range(start, end)]


@router.get("/grid", response_model=GridResponse)
async def get_grid(open: str = Query(...), close: str = Query(...)):
    """30-minute block grid for arbitrary hours"""
    try:
        grid = build_grid(open, close)
    except ValueError as e:
        raise ValidationError(str(e), field="open")
    return GridResponse(open=open, close=close, grid=grid)


# ============================================================================
# ADMIN MAINTENANCE
# ============================================================================


@router.get("/weekly", response_model=list[WeeklyScheduleResponse])
async def list_weekly(service: SchedulingService = Depends(get_scheduling_service)):
    return service.list_weekly()


@router.put("/weekly/{weekday}", response_model=WeeklyScheduleResponse)
async def set_weekly(
    weekday: int,
    data: HoursUpdate,
    staff: Actor = Depends(require_staff),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.set_weekly(weekday, data.is_open, data.open_time, data.close_time, staff)


@router.put("/overrides/{day}", response_model=OverrideResponse)
async def set_override(
    day: date_type,
    data: OverrideUpdate,
    staff: Actor = Depends(require_staff),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.set_override(day, data.is_open, data.open_time, data.close_time, data.note, staff)


@router.delete("/overrides/{day}", status_code=204)
async def delete_override(
    day: date_type,
    staff: Actor = Depends(require_staff),
    service: SchedulingService = Depends(get_scheduling_service),
):
    service.remove_override(day, staff)


@router.put("/capacity/{day}", response_model=CapacityPlanResponse)
async def set_capacity(
    day: date_type,
    data: CapacityUpdate,
    staff: Actor = Depends(require_staff),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.set_capacity(day, data.capacity, staff)
