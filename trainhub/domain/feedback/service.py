"""
Feedback issuer service
Per-booking feedback links and the public responses submitted through them
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import FEEDBACK_LINK_TTL_DAYS
from ...database import atomic, with_retry
from ...errors import DuplicateSubmission, Forbidden, InvalidState, NotFound
from ...models import BookingStatus, FeedbackLink, FeedbackResponse, User
from ...services.notification_service import NotificationDispatcher, NotificationType
from ...shared.timeutils import utc_now
from ...utils.sanitization import sanitize_fields
from ..bookings.repository import BookingRepository
from ..bookings.service import BookingService
from ..bookings.transitions import Party
from .repository import FeedbackRepository
from .schemas import FeedbackSubmission

logger = logging.getLogger(__name__)

FREE_TEXT_FIELDS = ["respondent_name", "organization_name", "review_comment"]


def generate_feedback_token() -> str:
    """256 bits of randomness, URL-safe as generated"""
    return secrets.token_urlsafe(32)


class FeedbackService:
    """Service layer for feedback links and responses"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = FeedbackRepository()
        self.booking_repo = BookingRepository()
        self.notifier = NotificationDispatcher(db)

    def _get_completed_booking(self, booking_id: str, actor: User):
        booking = with_retry(lambda: self.booking_repo.get_by_id(self.db, booking_id), db=self.db)
        if not booking:
            raise NotFound("Booking not found")
        party = BookingService.resolve_party(booking, actor)
        if party not in (Party.TRAINER, Party.ADMIN):
            raise Forbidden("Only the trainer of this booking can manage feedback")
        if booking.status != BookingStatus.COMPLETED.value:
            raise InvalidState(
                f"Feedback is only collected for completed bookings (status: {booking.status})"
            )
        return booking

    def issue_link(self, booking_id: str, actor: User) -> FeedbackLink:
        """
        Get the booking's active feedback link, issuing a fresh one if needed.

        An active link past its expiry is retired before the new one is created.
        """
        booking = self._get_completed_booking(booking_id, actor)

        try:
            with atomic(self.db):
                now = utc_now()
                current = self.repo.get_active_link_for_booking(self.db, booking.id)
                if current and current.expires_at > now:
                    return current
                if current:
                    current.is_active = False
                    self.db.flush()

                link = self.repo.create_link(
                    self.db,
                    booking_id=booking.id,
                    token=generate_feedback_token(),
                    expires_at=now + timedelta(days=FEEDBACK_LINK_TTL_DAYS),
                )
        except IntegrityError:
            # A concurrent call issued the link first
            winner = with_retry(
                lambda: self.repo.get_active_link_for_booking(self.db, booking_id), db=self.db
            )
            if winner is None:
                raise
            return winner

        logger.info(f"🔗 Feedback link issued for booking {booking_id}, expires {link.expires_at}")
        return link

    def _get_usable_link(self, token: str) -> FeedbackLink:
        link = self.repo.get_link_by_token(self.db, token)
        if not link or not link.is_active or link.expires_at <= utc_now():
            raise NotFound("This feedback link is invalid or has expired")
        return link

    def get_link(self, token: str) -> dict:
        """Public view of a feedback link for rendering the form"""
        link = with_retry(lambda: self._get_usable_link(token), db=self.db)
        booking = link.booking
        return {
            "training_topic": booking.training_topic,
            "trainer_name": booking.trainer.name if booking.trainer else None,
            "start_time": booking.start_time,
            "end_time": booking.end_time,
            "expires_at": link.expires_at,
        }

    def submit_feedback(self, token: str, payload: FeedbackSubmission) -> FeedbackResponse:
        """Store one response per respondent email per link"""
        fields = sanitize_fields(payload.model_dump(), FREE_TEXT_FIELDS)
        email = fields["respondent_email"]

        try:
            with atomic(self.db):
                link = self._get_usable_link(token)
                if self.repo.get_response(self.db, link.id, email):
                    raise DuplicateSubmission("Feedback from this email has already been submitted")

                response = self.repo.create_response(self.db, link.id, **fields)

                booking = link.booking
                self.notifier.notify(
                    booking.trainer.user_id if booking.trainer else None,
                    NotificationType.FEEDBACK_RECEIVED,
                    "New feedback received",
                    f"{response.respondent_name} rated '{booking.training_topic}' "
                    f"{response.rating}/5.",
                    {
                        "booking_id": booking.id,
                        "topic": booking.training_topic,
                        "rating": response.rating,
                    },
                )
        except IntegrityError as e:
            raise DuplicateSubmission("Feedback from this email has already been submitted") from e

        logger.info(f"⭐ Feedback {response.id} received for booking {link.booking_id}")
        return response

    def list_responses(self, booking_id: str, actor: User) -> list[FeedbackResponse]:
        booking = self._get_completed_booking(booking_id, actor)
        return self.repo.list_responses_for_booking(self.db, booking.id)

    def expire_links(self, now: Optional[datetime] = None) -> int:
        """Deactivate every link past its expiry; returns how many were retired"""
        with atomic(self.db):
            count = self.repo.deactivate_expired(self.db, now or utc_now())
        if count:
            logger.info(f"⌛ Deactivated {count} expired feedback link(s)")
        return count
