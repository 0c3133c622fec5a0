"""Feedback repository - Database operations for feedback links and responses"""

from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...models import FeedbackLink, FeedbackResponse


class FeedbackRepository:
    """Repository for feedback database operations"""

    @staticmethod
    def get_link_by_token(db: Session, token: str) -> Optional[FeedbackLink]:
        return db.query(FeedbackLink).filter(FeedbackLink.token == token).first()

    @staticmethod
    def get_active_link_for_booking(db: Session, booking_id: str) -> Optional[FeedbackLink]:
        return (
            db.query(FeedbackLink)
            .filter(FeedbackLink.booking_id == booking_id, FeedbackLink.is_active.is_(True))
            .first()
        )

    @staticmethod
    def create_link(db: Session, booking_id: str, token: str, expires_at: datetime) -> FeedbackLink:
        """Insert a link; the active-link partial unique index fires at flush"""
        link = FeedbackLink(booking_id=booking_id, token=token, expires_at=expires_at, is_active=True)
        db.add(link)
        db.flush()
        return link

    @staticmethod
    def deactivate_expired(db: Session, now: datetime) -> int:
        result = db.execute(
            update(FeedbackLink)
            .where(FeedbackLink.is_active.is_(True), FeedbackLink.expires_at <= now)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def get_response(db: Session, link_id: str, respondent_email: str) -> Optional[FeedbackResponse]:
        return (
            db.query(FeedbackResponse)
            .filter(
                FeedbackResponse.feedback_link_id == link_id,
                FeedbackResponse.respondent_email == respondent_email,
            )
            .first()
        )

    @staticmethod
    def create_response(db: Session, link_id: str, **fields) -> FeedbackResponse:
        response = FeedbackResponse(feedback_link_id=link_id, **fields)
        db.add(response)
        db.flush()
        return response

    @staticmethod
    def list_responses_for_booking(db: Session, booking_id: str) -> list[FeedbackResponse]:
        """Responses from every link the booking has had"""
        return (
            db.query(FeedbackResponse)
            .join(FeedbackLink, FeedbackResponse.feedback_link_id == FeedbackLink.id)
            .filter(FeedbackLink.booking_id == booking_id)
            .order_by(FeedbackResponse.submitted_at)
            .all()
        )
