"""
Agreement engine service
Snapshots booking terms into an agreement, collects both signatures and
confirms or cancels the booking based on the outcome
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...config import CURRENCY
from ...database import atomic, with_retry
from ...errors import Forbidden, InvalidState, NotFound, StaleVersion
from ...models import Agreement, Booking, BookingStatus, SignatureStatus, User
from ...services.notification_service import NotificationDispatcher, NotificationType
from ...shared.timeutils import utc_now
from ..bookings.repository import BookingRepository
from ..bookings.service import BookingService
from ..bookings.transitions import Party
from .repository import AgreementRepository

logger = logging.getLogger(__name__)

STANDARD_TERMS = {
    "cancellation_policy": (
        "Either party may cancel before the agreement is fully signed. After confirmation, "
        "cancellations must state a reason and are handled according to the platform policy."
    ),
    "payment_terms": (
        "The total cost is payable as agreed on the booking. The hourly rate is derived from "
        "the total cost and the booked duration."
    ),
    "liability": (
        "The trainer is responsible for the content and delivery of the training. The client "
        "is responsible for providing the agreed venue or online access."
    ),
    "intellectual_property": (
        "Training materials remain the property of the trainer and are licensed to the client's "
        "participants for their own use."
    ),
}


def build_agreement_terms(booking: Booking, hourly_rate: float) -> dict:
    """Snapshot of everything both parties are agreeing to, frozen at creation"""
    student = booking.student
    trainer = booking.trainer
    trainer_user = trainer.user if trainer else None

    return {
        "client_details": {
            "name": booking.client_name or (student.full_name if student else None),
            "email": booking.client_email or (student.email if student else None),
            "company_name": booking.organization_name
            or (student.organization_name if student else None),
        },
        "trainer_details": {
            "name": trainer.name if trainer else None,
            "email": trainer_user.email if trainer_user else None,
            "specialization": trainer.title if trainer else None,
        },
        "booking_details": {
            "training_topic": booking.training_topic,
            "start_time": booking.start_time.isoformat(),
            "end_time": booking.end_time.isoformat(),
            "duration_hours": booking.duration_hours,
            "organization_name": booking.organization_name,
            "location": booking.location,
            "delivery_mode": booking.delivery_mode,
            "team_size": booking.team_size,
            "special_requirements": booking.notes,
        },
        "financial_terms": {
            "hourly_rate": hourly_rate,
            "duration_hours": booking.duration_hours,
            "total_cost": booking.total_amount,
            "currency": CURRENCY,
        },
        "terms_and_conditions": dict(STANDARD_TERMS),
    }


class AgreementService:
    """Service layer for agreements and bilateral signature"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AgreementRepository()
        self.booking_repo = BookingRepository()
        self.bookings = BookingService(db)
        self.notifier = NotificationDispatcher(db)

    @staticmethod
    def _resolve_signer(booking: Booking, actor: User, requested: Optional[str]) -> str:
        """The signing party is derived from the caller, never taken on trust"""
        if actor.id == booking.student_id:
            party = Party.CLIENT.value
        elif booking.trainer is not None and booking.trainer.user_id == actor.id:
            party = Party.TRAINER.value
        else:
            raise Forbidden("Only the client and the trainer of this booking can sign")

        if requested and requested != party:
            raise Forbidden(f"You cannot act as the {requested} on this agreement")
        return party

    def _other_party_user_id(self, booking: Booking, party: str) -> Optional[str]:
        return self.bookings.counterparty_user_id(booking, Party(party))

    def get_agreement(self, agreement_id: str, actor: User) -> Agreement:
        agreement = with_retry(lambda: self.repo.get_by_id(self.db, agreement_id), db=self.db)
        if not agreement:
            raise NotFound("Agreement not found")
        self.bookings.resolve_party(agreement.booking, actor)
        return agreement

    def ensure_agreement(self, booking_id: str, actor: User) -> Agreement:
        """
        Return the booking's agreement, creating it on first call.

        Safe to call repeatedly and concurrently: the unique booking_id
        constraint lets only one insert win, the others re-read it.
        """
        booking = with_retry(lambda: self.booking_repo.get_by_id(self.db, booking_id), db=self.db)
        if not booking:
            raise NotFound("Booking not found")
        self.bookings.resolve_party(booking, actor)

        existing = with_retry(lambda: self.repo.get_by_booking_id(self.db, booking_id), db=self.db)
        if existing:
            return existing

        if booking.status != BookingStatus.PENDING.value:
            raise InvalidState(
                f"Agreements can only be prepared for pending bookings (status: {booking.status})"
            )
        if booking.trainer is None:
            raise InvalidState("A trainer must be assigned before preparing the agreement")

        hourly_rate = round(booking.total_amount / booking.duration_hours, 2)
        terms = build_agreement_terms(booking, hourly_rate)

        try:
            with atomic(self.db):
                agreement = self.repo.create(
                    self.db,
                    booking_id=booking.id,
                    hourly_rate=hourly_rate,
                    total_cost=booking.total_amount,
                    agreement_terms=terms,
                    client_signature_status=SignatureStatus.PENDING.value,
                    trainer_signature_status=SignatureStatus.PENDING.value,
                )
                booking.agreement_id = agreement.id

                data = {
                    "booking_id": booking.id,
                    "agreement_id": agreement.id,
                    "status": booking.status,
                    "topic": booking.training_topic,
                }
                for user_id in (booking.student_id, booking.trainer.user_id):
                    self.notifier.notify(
                        user_id,
                        NotificationType.AGREEMENT_READY,
                        "Agreement ready to sign",
                        f"The agreement for '{booking.training_topic}' is ready for your signature.",
                        data,
                    )
        except (IntegrityError, StaleDataError):
            # Another caller created it first
            winner = with_retry(
                lambda: self.repo.get_by_booking_id(self.db, booking_id), db=self.db
            )
            if winner is None:
                raise
            logger.info(f"🔄 Agreement for booking {booking_id} created concurrently, reusing it")
            return winner

        logger.info(f"📄 Agreement {agreement.id} created for booking {booking_id}")
        return agreement

    def sign(self, agreement_id: str, actor: User, party: Optional[str] = None) -> Agreement:
        """
        Record the caller's acceptance.

        Only a pending booking with an unrejected agreement can be signed.
        Signing twice while pending is a no-op. The signature that completes
        the agreement confirms the booking in the same transaction.
        """
        try:
            with atomic(self.db):
                agreement = self.repo.get_by_id(self.db, agreement_id)
                if not agreement:
                    raise NotFound("Agreement not found")
                booking = self.booking_repo.get_for_update(self.db, agreement.booking_id)
                signer = self._resolve_signer(booking, actor, party)

                if agreement.rejected_at is not None:
                    raise InvalidState("This agreement has been rejected")
                if booking.status != BookingStatus.PENDING.value:
                    raise InvalidState(
                        f"Agreement can only be signed while the booking is pending (status: {booking.status})"
                    )

                if getattr(agreement, f"{signer}_signature_status") == SignatureStatus.ACCEPTED.value:
                    logger.info(f"ℹ️ Agreement {agreement_id} already signed by {signer}")
                    return agreement

                now = utc_now()
                won = self.repo.accept_signature(self.db, agreement.id, signer, now)
                completed = won and self.repo.mark_completed(self.db, agreement.id, now) == 1
                self.db.refresh(agreement)

                if not won:
                    # A concurrent request for the same party signed first
                    return agreement

                other_user_id = self._other_party_user_id(booking, signer)
                if completed:
                    self.bookings.apply_transition(
                        booking,
                        BookingStatus.CONFIRMED,
                        Party.SYSTEM,
                        actor.id,
                        notify_user_id=other_user_id,
                    )
                else:
                    self.notifier.notify(
                        other_user_id,
                        NotificationType.AGREEMENT_SIGNED,
                        "Agreement signed",
                        f"The {signer} signed the agreement for '{booking.training_topic}'. "
                        f"Your signature is needed to confirm the booking.",
                        {
                            "booking_id": booking.id,
                            "agreement_id": agreement.id,
                            "status": booking.status,
                            "topic": booking.training_topic,
                        },
                    )
        except StaleDataError as e:
            raise StaleVersion("Booking was modified concurrently; reload and retry") from e

        logger.info(
            f"✍️ Agreement {agreement_id} signed by {signer}"
            + (", booking confirmed" if completed else "")
        )
        return agreement

    def reject(self, agreement_id: str, actor: User, party: Optional[str] = None) -> Agreement:
        """Decline the agreement; the booking is cancelled even if the other party signed"""
        try:
            with atomic(self.db):
                agreement = self.repo.get_by_id(self.db, agreement_id)
                if not agreement:
                    raise NotFound("Agreement not found")
                booking = self.booking_repo.get_for_update(self.db, agreement.booking_id)
                rejecter = self._resolve_signer(booking, actor, party)

                if booking.status != BookingStatus.PENDING.value:
                    raise InvalidState(
                        f"Agreement can only be rejected while the booking is pending (status: {booking.status})"
                    )

                agreement.rejected_by = rejecter
                agreement.rejected_at = utc_now()
                self.bookings.apply_transition(
                    booking,
                    BookingStatus.CANCELLED,
                    Party(rejecter),
                    actor.id,
                    reason=f"Agreement rejected by {rejecter}",
                )
        except StaleDataError as e:
            raise StaleVersion("Booking was modified concurrently; reload and retry") from e

        logger.info(f"🚫 Agreement {agreement_id} rejected by {rejecter}, booking cancelled")
        return agreement
