"""Booking router - FastAPI endpoints for the booking ledger"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_role
from ...database import get_db
from ...models import BookingStatus, User, UserRole
from .schemas import (
    AssignTrainerRequest,
    BookingCreate,
    BookingResponse,
    BookingStatusUpdate,
    PaymentSignal,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Book a trainer directly or from a request with a selected trainer"""
    return service.create_booking(current_user, data)


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_bookings(current_user, status)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id, current_user)


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: str,
    data: BookingStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Move a booking along its lifecycle (cancel, complete)"""
    return service.transition(booking_id, data.status, current_user, data.reason, data.version)


@router.post("/{booking_id}/assign", response_model=BookingResponse)
async def assign_trainer(
    booking_id: str,
    data: AssignTrainerRequest,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    service: BookingService = Depends(get_booking_service),
):
    return service.assign_trainer(booking_id, data.trainer_id, current_user)


@router.post("/{booking_id}/payment", response_model=BookingResponse)
async def record_payment(
    booking_id: str,
    data: PaymentSignal,
    current_user: User = Depends(require_role(UserRole.ADMIN)),
    service: BookingService = Depends(get_booking_service),
):
    """Payment gateway signal for a booking awaiting payment"""
    return service.record_payment(booking_id, data.paid, current_user)
