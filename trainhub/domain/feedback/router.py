"""Feedback router - FastAPI endpoints for feedback links and public submission"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import FeedbackFormInfo, FeedbackLinkResponse, FeedbackResponseOut, FeedbackSubmission
from .service import FeedbackService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Feedback"])

feedback_form_limit = create_rate_limiter(limit=120, window_seconds=3600, key_prefix="feedback_form")
feedback_submit_limit = create_rate_limiter(limit=20, window_seconds=3600, key_prefix="feedback_submit")


def get_feedback_service(db: Session = Depends(get_db)) -> FeedbackService:
    """Dependency injection for FeedbackService"""
    return FeedbackService(db)


@router.post("/bookings/{booking_id}/feedback-link", response_model=FeedbackLinkResponse)
async def issue_feedback_link(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
):
    """Get or issue the shareable feedback link for a completed booking"""
    return service.issue_link(booking_id, current_user)


@router.get("/bookings/{booking_id}/feedback", response_model=list[FeedbackResponseOut])
async def list_feedback(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    service: FeedbackService = Depends(get_feedback_service),
):
    return service.list_responses(booking_id, current_user)


# ============================================================================
# PUBLIC ENDPOINTS (no authentication, the token is the credential)
# ============================================================================


@router.get("/feedback/{token}", response_model=FeedbackFormInfo)
async def get_feedback_form(
    token: str,
    _: None = Depends(feedback_form_limit),
    service: FeedbackService = Depends(get_feedback_service),
):
    return service.get_link(token)


@router.post("/feedback/{token}", response_model=FeedbackResponseOut, status_code=201)
async def submit_feedback(
    token: str,
    data: FeedbackSubmission,
    _: None = Depends(feedback_submit_limit),
    service: FeedbackService = Depends(get_feedback_service),
):
    """Submit feedback for a completed training"""
    return service.submit_feedback(token, data)
