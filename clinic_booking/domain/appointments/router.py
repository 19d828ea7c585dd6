"""Appointment router - FastAPI endpoints for booking and the appointment lifecycle"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...auth import get_client_ip, get_current_actor, require_staff
from ...database import get_db
from ...shared.errors import ValidationError
from .actors import Actor, NewPatient, SelfService, StaffAssisted
from .booking_service import BookingRequest, BookingService
from .lifecycle_service import AppointmentLifecycle
from .schemas import (
    AppointmentResponse,
    BookingCreate,
    BookingResponse,
    CancellationResponse,
    CancelRequest,
    ReferenceLookupResponse,
    RejectRequest,
    ReminderRequest,
    RescheduleRequest,
    SlotsResponse,
    WalkInCreate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


def get_lifecycle(db: Session = Depends(get_db)) -> AppointmentLifecycle:
    """Dependency injection for AppointmentLifecycle"""
    return AppointmentLifecycle(db)


def _booking_request(data: BookingCreate) -> BookingRequest:
    return BookingRequest(
        service_id=data.service_id,
        date=data.date,
        start_time=data.start_time,
        payment_method=data.payment_method,
        patient_hmo_id=data.patient_hmo_id,
        teeth_count=data.teeth_count,
        notes=data.notes,
    )


# ============================================================================
# AVAILABILITY
# ============================================================================


@router.get("/slots", response_model=SlotsResponse)
async def list_slots(
    date: date = Query(...),
    service_id: int = Query(...),
    patient_id: Optional[int] = Query(None),
    teeth_count: Optional[int] = Query(None, ge=1, le=32),
    service: BookingService = Depends(get_booking_service),
):
    """Valid start times for a service on a date"""
    start_times = service.list_valid_start_times(date, service_id, patient_id, teeth_count)
    return SlotsResponse(date=date, service_id=service_id, start_times=start_times)


# ============================================================================
# BOOKING
# ============================================================================


@router.post("", response_model=BookingResponse, status_code=201)
async def book_appointment(
    data: BookingCreate,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    service: BookingService = Depends(get_booking_service),
):
    """Self-service booking by the logged-in patient"""
    appointment = service.book(
        SelfService(user_id=actor.user_id, client_ip=get_client_ip(request)),
        _booking_request(data),
    )
    return BookingResponse(
        message="Appointment booked.",
        reference_code=appointment.reference_code,
        appointment=AppointmentResponse.model_validate(appointment),
    )


@router.post("/walk-in", response_model=BookingResponse, status_code=201)
async def book_walk_in(
    data: WalkInCreate,
    staff: Actor = Depends(require_staff),
    service: BookingService = Depends(get_booking_service),
):
    """Staff-assisted booking; approved immediately"""
    new_patient = NewPatient(**data.new_patient.model_dump()) if data.new_patient else None
    try:
        booking_actor = StaffAssisted(staff=staff, patient_id=data.patient_id, new_patient=new_patient)
    except ValueError as e:
        raise ValidationError(str(e), field="patient_id")

    appointment = service.book(booking_actor, _booking_request(data))
    return BookingResponse(
        message="Walk-in appointment booked.",
        reference_code=appointment.reference_code,
        appointment=AppointmentResponse.model_validate(appointment),
    )


# ============================================================================
# REFERENCE CODES AND REMINDERS
# ============================================================================


@router.get("/reference/{code}", response_model=ReferenceLookupResponse)
async def resolve_reference_code(
    code: str,
    staff: Actor = Depends(require_staff),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.resolve_reference_code(code)
    return ReferenceLookupResponse(
        id=appointment.id,
        patient_name=appointment.patient.full_name,
        service_name=appointment.service.name,
        date=appointment.date,
        time_slot=appointment.time_slot,
    )


@router.get("/remindable", response_model=list[AppointmentResponse])
async def list_remindable(
    staff: Actor = Depends(require_staff),
    service: BookingService = Depends(get_booking_service),
):
    return service.remindable()


@router.post("/{appointment_id}/reminder", response_model=AppointmentResponse)
async def send_reminder(
    appointment_id: int,
    data: ReminderRequest,
    staff: Actor = Depends(require_staff),
    service: BookingService = Depends(get_booking_service),
):
    return service.send_reminder(appointment_id, data.message, staff_user_id=staff.user_id, edited=data.edited)


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{appointment_id}/approve", response_model=AppointmentResponse)
async def approve_appointment(
    appointment_id: int,
    staff: Actor = Depends(require_staff),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    return lifecycle.approve(appointment_id, staff)


@router.post("/{appointment_id}/reject", response_model=AppointmentResponse)
async def reject_appointment(
    appointment_id: int,
    data: RejectRequest,
    staff: Actor = Depends(require_staff),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    return lifecycle.reject(appointment_id, data.note, staff)


@router.post("/{appointment_id}/cancel", response_model=CancellationResponse)
async def cancel_appointment(
    appointment_id: int,
    data: Optional[CancelRequest] = None,
    actor: Actor = Depends(get_current_actor),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    data = data or CancelRequest()
    result = lifecycle.cancel(
        appointment_id, actor, reason=data.reason, cancellation_reason=data.cancellation_reason
    )
    return CancellationResponse(
        message="Appointment canceled.",
        appointment=AppointmentResponse.model_validate(result.appointment),
        refund_request_created=result.refund_request_created,
        refund_request_id=result.refund_request.id if result.refund_request else None,
    )


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    request: Request,
    actor: Actor = Depends(get_current_actor),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    """Move a paid maya appointment; it needs staff approval again"""
    return lifecycle.reschedule(
        appointment_id, data.date, data.start_time, actor, client_ip=get_client_ip(request)
    )
