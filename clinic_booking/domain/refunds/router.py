"""Refund router - refund requests, pickup claims and refund settings"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_actor, require_admin, require_staff
from ...database import get_db
from ..appointments.actors import Actor
from .schemas import (
    AdminNotesRequest,
    DeadlineAlertsResponse,
    ExtendDeadlineRequest,
    RefundRequestResponse,
    RefundSettingsResponse,
    RefundSettingsUpdate,
)
from .service import RefundService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/refunds", tags=["Refunds"])


def get_refund_service(db: Session = Depends(get_db)) -> RefundService:
    """Dependency injection for RefundService"""
    return RefundService(db)


@router.get("", response_model=list[RefundRequestResponse])
async def list_refund_requests(
    status: Optional[str] = Query(None),
    staff: Actor = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    return service.list_requests(status)


@router.get("/claims", response_model=list[RefundRequestResponse])
async def pending_claims(
    patient_id: Optional[int] = Query(None),
    actor: Actor = Depends(get_current_actor),
    service: RefundService = Depends(get_refund_service),
):
    """Processed refunds waiting for pickup (patients see their own)"""
    return service.pending_claims(actor, patient_id)


@router.get("/alerts", response_model=DeadlineAlertsResponse)
async def deadline_alerts(
    staff: Actor = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    return service.deadline_alerts()


# ============================================================================
# SETTINGS
# ============================================================================


@router.get("/settings", response_model=RefundSettingsResponse)
async def get_refund_settings(
    staff: Actor = Depends(require_staff),
    service: RefundService = Depends(get_refund_service),
):
    return service.get_settings()


@router.put("/settings", response_model=RefundSettingsResponse)
async def update_refund_settings(
    data: RefundSettingsUpdate,
    admin: Actor = Depends(require_admin),
    service: RefundService = Depends(get_refund_service),
):
    return service.update_settings(admin, **data.model_dump(exclude_unset=True))


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{refund_id}/approve", response_model=RefundRequestResponse)
async def approve_refund(
    refund_id: int,
    data: Optional[AdminNotesRequest] = None,
    admin: Actor = Depends(require_admin),
    service: RefundService = Depends(get_refund_service),
):
    return service.approve(refund_id, admin, data.admin_notes if data else None)


@router.post("/{refund_id}/reject", response_model=RefundRequestResponse)
async def reject_refund(
    refund_id: int,
    data: Optional[AdminNotesRequest] = None,
    admin: Actor = Depends(require_admin),
    service: RefundService = Depends(get_refund_service),
):
    return service.reject(refund_id, admin, data.admin_notes if data else None)


@router.post("/{refund_id}/process", response_model=RefundRequestResponse)
async def process_refund(
    refund_id: int,
    data: Optional[AdminNotesRequest] = None,
    admin: Actor = Depends(require_admin),
    service: RefundService = Depends(get_refund_service),
):
    return service.process(refund_id, admin, data.admin_notes if data else None)


@router.post("/{refund_id}/confirm", response_model=RefundRequestResponse)
async def confirm_refund(
    refund_id: int,
    actor: Actor = Depends(get_current_actor),
    service: RefundService = Depends(get_refund_service),
):
    """Patient confirms they picked up the refund"""
    return service.confirm(refund_id, actor)


@router.post("/{refund_id}/extend-deadline", response_model=RefundRequestResponse)
async def extend_refund_deadline(
    refund_id: int,
    data: ExtendDeadlineRequest,
    admin: Actor = Depends(require_admin),
    service: RefundService = Depends(get_refund_service),
):
    return service.extend_deadline(refund_id, data.new_deadline, data.reason, admin)
