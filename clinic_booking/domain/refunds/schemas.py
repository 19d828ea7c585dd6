"""Refund domain schemas"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class AdminNotesRequest(BaseModel):
    admin_notes: Optional[str] = Field(None, max_length=1000)


class ExtendDeadlineRequest(BaseModel):
    new_deadline: date
    reason: str = Field(..., min_length=1, max_length=1000)


class RefundRequestResponse(BaseModel):
    id: int
    patient_id: int
    appointment_id: Optional[int] = None
    payment_id: Optional[int] = None
    original_amount: float
    cancellation_fee: float
    refund_amount: float
    reason: Optional[str] = None
    status: str
    admin_notes: Optional[str] = None
    requested_at: datetime
    approved_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    deadline_at: Optional[datetime] = None
    deadline_extended_at: Optional[datetime] = None
    deadline_extension_reason: Optional[str] = None
    patient_confirmed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class DeadlineAlertsResponse(BaseModel):
    approaching: list[RefundRequestResponse]
    overdue: list[RefundRequestResponse]


class RefundSettingsResponse(BaseModel):
    cancellation_deadline_hours: int
    monthly_cancellation_limit: int
    create_zero_refund_request: bool
    reminder_days: int

    class Config:
        from_attributes = True


class RefundSettingsUpdate(BaseModel):
    cancellation_deadline_hours: Optional[int] = Field(None, ge=0, le=168)
    monthly_cancellation_limit: Optional[int] = Field(None, ge=0, le=50)
    create_zero_refund_request: Optional[bool] = None
    reminder_days: Optional[int] = Field(None, ge=1, le=30)
