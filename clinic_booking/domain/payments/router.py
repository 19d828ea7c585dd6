"""Payment router - gateway callbacks"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ...database import get_db
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


class PaymentPaidRequest(BaseModel):
    amount_paid: Optional[float] = Field(None, ge=0)


class PaymentResponse(BaseModel):
    id: int
    appointment_id: Optional[int] = None
    visit_id: Optional[int] = None
    method: str
    status: str
    amount_due: float
    amount_paid: float
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


@router.post("/{payment_id}/paid", response_model=PaymentResponse)
async def payment_succeeded(
    payment_id: int,
    data: Optional[PaymentPaidRequest] = None,
    service: PaymentService = Depends(get_payment_service),
):
    """Gateway callback: payment captured"""
    logger.info(f"📥 Gateway success callback for payment {payment_id}")
    return service.mark_paid(payment_id, data.amount_paid if data else None)


@router.post("/{payment_id}/failed", response_model=PaymentResponse)
async def payment_failed(
    payment_id: int,
    service: PaymentService = Depends(get_payment_service),
):
    """Gateway callback: payment failed or expired"""
    logger.info(f"📥 Gateway failure callback for payment {payment_id}")
    return service.mark_failed(payment_id)
