"""Appointment domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...models import CANCELLATION_REASONS, PAYMENT_METHODS
from ...shared.validators import normalize_time, normalize_time_slot


class BookingCreate(BaseModel):
    """Self-service booking"""

    service_id: int
    date: date
    start_time: str
    payment_method: str
    patient_hmo_id: Optional[int] = None
    teeth_count: Optional[int] = Field(None, ge=1, le=32)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        return normalize_time(v)

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v):
        if v not in PAYMENT_METHODS:
            raise ValueError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
        return v


class NewPatientFields(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    contact_number: Optional[str] = None
    email: Optional[str] = None


class WalkInCreate(BookingCreate):
    """Staff-assisted booking for an existing patient or a new walk-in"""

    patient_id: Optional[int] = None
    new_patient: Optional[NewPatientFields] = None


class RejectRequest(BaseModel):
    note: str = Field(..., min_length=1, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)
    cancellation_reason: Optional[str] = None

    @field_validator("cancellation_reason")
    @classmethod
    def validate_cancellation_reason(cls, v):
        if v is not None and v not in CANCELLATION_REASONS:
            raise ValueError(f"Cancellation reason must be one of: {', '.join(CANCELLATION_REASONS)}")
        return v


class RescheduleRequest(BaseModel):
    date: date
    start_time: str

    @field_validator("start_time")
    @classmethod
    def validate_start_time(cls, v):
        return normalize_time(v)


class ReminderRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    edited: bool = False


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    service_id: int
    patient_hmo_id: Optional[int] = None
    date: date
    time_slot: str
    reference_code: str
    status: str
    payment_method: str
    payment_status: str
    teeth_count: Optional[int] = None
    notes: Optional[str] = None
    booked_by_staff: bool = False
    reminded_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None

    @field_validator("time_slot")
    @classmethod
    def validate_time_slot(cls, v):
        return normalize_time_slot(v)

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    message: str
    reference_code: str
    appointment: AppointmentResponse


class CancellationResponse(BaseModel):
    message: str
    appointment: AppointmentResponse
    refund_request_created: bool
    refund_request_id: Optional[int] = None


class ReferenceLookupResponse(BaseModel):
    id: int
    patient_name: str
    service_name: str
    date: date
    time_slot: str


class SlotsResponse(BaseModel):
    date: date
    service_id: int
    start_times: list[str]
