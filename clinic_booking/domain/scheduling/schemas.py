"""Scheduling domain schemas"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import normalize_time


class HoursUpdate(BaseModel):
    is_open: bool
    open_time: Optional[str] = None
    close_time: Optional[str] = None

    @field_validator("open_time", "close_time")
    @classmethod
    def validate_time(cls, v):
        if v is not None:
            return normalize_time(v)
        return v


class OverrideUpdate(HoursUpdate):
    note: Optional[str] = Field(None, max_length=1000)


class CapacityUpdate(BaseModel):
    capacity: int = Field(..., ge=0)


class WeeklyScheduleResponse(BaseModel):
    weekday: int
    is_open: bool
    open_time: Optional[str] = None
    close_time: Optional[str] = None

    class Config:
        from_attributes = True


class OverrideResponse(BaseModel):
    date: date
    is_open: bool
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    note: Optional[str] = None

    class Config:
        from_attributes = True


class CapacityPlanResponse(BaseModel):
    date: date
    capacity: int

    class Config:
        from_attributes = True


class ClinicDayResponse(BaseModel):
    date: date
    is_open: bool
    open_time: Optional[str] = None
    close_time: Optional[str] = None
    effective_capacity: int
    source: str
    capacity_planned: bool
    note: Optional[str] = None
    grid: list[str]


class GridResponse(BaseModel):
    open: str
    close: str
    grid: list[str]
