"""Agreement router - FastAPI endpoints for agreement signature"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import AgreementResponse, SignatureRequest
from .service import AgreementService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Agreements"])


def get_agreement_service(db: Session = Depends(get_db)) -> AgreementService:
    """Dependency injection for AgreementService"""
    return AgreementService(db)


@router.post("/bookings/{booking_id}/agreement", response_model=AgreementResponse)
async def ensure_agreement(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service),
):
    """Get or create the agreement for a pending booking"""
    return service.ensure_agreement(booking_id, current_user)


@router.get("/agreements/{agreement_id}", response_model=AgreementResponse)
async def get_agreement(
    agreement_id: str,
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service),
):
    return service.get_agreement(agreement_id, current_user)


@router.post("/agreements/{agreement_id}/sign", response_model=AgreementResponse)
async def sign_agreement(
    agreement_id: str,
    data: Optional[SignatureRequest] = None,
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service),
):
    """Accept the agreement as the caller's party"""
    return service.sign(agreement_id, current_user, data.party if data else None)


@router.post("/agreements/{agreement_id}/reject", response_model=AgreementResponse)
async def reject_agreement(
    agreement_id: str,
    data: Optional[SignatureRequest] = None,
    current_user: User = Depends(get_current_user),
    service: AgreementService = Depends(get_agreement_service),
):
    """Decline the agreement, cancelling the booking"""
    return service.reject(agreement_id, current_user, data.party if data else None)
