"""
Booking ledger service
Booking creation and the only code path that changes a booking's status
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...database import atomic, with_retry
from ...errors import Forbidden, InvalidState, InvalidTransition, NotFound, StaleVersion, ValidationError
from ...models import Booking, BookingStatus, RequestStatus, Trainer, TrainerStatus, User, UserRole
from ...services.notification_service import NotificationDispatcher, NotificationType
from ...shared.timeutils import hours_between, utc_now
from ...utils.sanitization import sanitize_fields, sanitize_string
from ..requests.repository import RequestRepository
from .repository import BookingRepository
from .schemas import BookingCreate
from .transitions import Party, allowed_targets, find_transition, is_terminal

logger = logging.getLogger(__name__)

METADATA_FIELDS = [
    "organization_name",
    "client_name",
    "client_email",
    "location",
    "delivery_mode",
    "team_size",
    "notes",
]
FREE_TEXT_FIELDS = ["organization_name", "client_name", "location", "notes"]

MIN_BOOKING_SPAN = timedelta(minutes=15)
MAX_BOOKING_SPAN = timedelta(hours=24)

# Notification copy per target status
STATUS_MESSAGES = {
    BookingStatus.PENDING: (
        "Booking awaiting agreement",
        "The booking for '{topic}' is ready for both parties to sign the agreement.",
    ),
    BookingStatus.CONFIRMED: (
        "Booking confirmed",
        "The booking for '{topic}' is confirmed.",
    ),
    BookingStatus.COMPLETED: (
        "Training completed",
        "The training '{topic}' has been marked as completed.",
    ),
    BookingStatus.CANCELLED: (
        "Booking cancelled",
        "The booking for '{topic}' has been cancelled.",
    ),
}


class BookingService:
    """Service layer for bookings and the booking state machine"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.request_repo = RequestRepository()
        self.notifier = NotificationDispatcher(db)

    # ------------------------------------------------------------------
    # Parties
    # ------------------------------------------------------------------

    @staticmethod
    def resolve_party(booking: Booking, actor: User) -> Party:
        """Work out how the actor relates to the booking; strangers are refused"""
        if actor.id == booking.student_id:
            return Party.CLIENT
        if booking.trainer is not None and booking.trainer.user_id == actor.id:
            return Party.TRAINER
        if actor.role == UserRole.ADMIN.value:
            return Party.ADMIN
        raise Forbidden("You are not a party to this booking")

    @staticmethod
    def counterparty_user_id(booking: Booking, party: Party) -> Optional[str]:
        """User who should hear about a change made by the given party"""
        if party == Party.CLIENT:
            return booking.trainer.user_id if booking.trainer else None
        return booking.student_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str, actor: User) -> Booking:
        booking = with_retry(lambda: self.repo.get_by_id(self.db, booking_id), db=self.db)
        if not booking:
            raise NotFound("Booking not found")
        self.resolve_party(booking, actor)
        return booking

    def list_bookings(self, actor: User, status: Optional[BookingStatus] = None) -> list[Booking]:
        """Admins see every booking; everyone else sees the ones they take part in"""
        status_value = status.value if status else None
        if actor.role == UserRole.ADMIN.value:
            return with_retry(lambda: self.repo.list_all(self.db, status_value), db=self.db)

        trainer = self.repo.get_trainer_by_user_id(self.db, actor.id)
        return with_retry(
            lambda: self.repo.list_for_user(
                self.db, actor.id, trainer.id if trainer else None, status_value
            ),
            db=self.db,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_booking(self, actor: User, data: BookingCreate) -> Booking:
        """
        Create a booking.

        - With request_id: books the trainer selected on that request, starts at 'pending'
        - With trainer_id: starts at 'pending' if already paid, else 'pending_payment'
        - With neither: starts at 'pending_assignment' until an admin assigns a trainer
        """
        if actor.role == UserRole.TRAINER.value:
            raise Forbidden("Trainers cannot book training sessions")

        if data.end_time <= data.start_time:
            raise ValidationError("End time must be after start time")
        span = data.end_time - data.start_time
        if span < MIN_BOOKING_SPAN:
            raise ValidationError("A booking must last at least 15 minutes")
        if span > MAX_BOOKING_SPAN:
            raise ValidationError("A booking cannot last longer than 24 hours")
        if data.total_amount is not None and data.total_amount < 0:
            raise ValidationError("Total amount cannot be negative")
        duration = (
            data.duration_hours
            if data.duration_hours is not None
            else hours_between(data.start_time, data.end_time)
        )
        if duration <= 0:
            raise ValidationError("Duration must be greater than zero")
        if data.team_size is not None and data.team_size < 1:
            raise ValidationError("Team size must be at least 1")

        metadata = sanitize_fields(
            {field: getattr(data, field) for field in METADATA_FIELDS}, FREE_TEXT_FIELDS
        )
        payment_status = "paid" if data.paid else "unpaid"

        with atomic(self.db):
            if data.request_id:
                booking = self._create_from_request(actor, data, duration, metadata, payment_status)
            else:
                booking = self._create_direct(actor, data, duration, metadata, payment_status)

        logger.info(f"📅 Booking {booking.id} created by {actor.id} with status {booking.status}")
        return booking

    @staticmethod
    def _require_approved(trainer: Trainer) -> None:
        if trainer.status != TrainerStatus.APPROVED.value:
            raise InvalidState(
                f"Trainer is not available for bookings (status: {trainer.status})",
                {"trainer_id": trainer.id, "status": trainer.status},
            )

    def _check_availability(
        self,
        start_time: datetime,
        end_time: datetime,
        trainer_id: Optional[str] = None,
        student_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> None:
        """Refuse a time slot that collides with a pending or confirmed booking"""
        if trainer_id:
            clash = self.repo.find_overlapping(
                self.db, start_time, end_time, trainer_id=trainer_id, exclude_id=exclude_id
            )
            if clash:
                raise InvalidState(
                    "Trainer already has a booking at this time",
                    {"conflicting_booking_id": clash.id},
                )
        if student_id:
            clash = self.repo.find_overlapping(
                self.db, start_time, end_time, student_id=student_id, exclude_id=exclude_id
            )
            if clash:
                raise InvalidState(
                    "You already have a booking at this time",
                    {"conflicting_booking_id": clash.id},
                )

    def _create_from_request(
        self, actor: User, data: BookingCreate, duration: float, metadata: dict, payment_status: str
    ) -> Booking:
        request = self.request_repo.get_for_update(self.db, data.request_id)
        if not request:
            raise NotFound("Training request not found")
        if request.client_id != actor.id:
            raise Forbidden("Only the client who posted this request can book from it")
        if request.status != RequestStatus.TRAINER_SELECTED.value:
            raise InvalidState(
                f"A trainer must be selected before booking (request status: {request.status})"
            )
        if data.trainer_id and data.trainer_id != request.selected_trainer_id:
            raise ValidationError("Trainer does not match the trainer selected for this request")
        trainer = self.repo.get_trainer(self.db, request.selected_trainer_id)
        if not trainer:
            raise NotFound("Trainer not found")
        self._require_approved(trainer)
        self._check_availability(
            data.start_time, data.end_time, trainer_id=trainer.id, student_id=actor.id
        )

        amount = data.total_amount
        if amount is None:
            application = self.repo.get_selected_application(self.db, request.id)
            amount = application.proposed_price if application else None
        if amount is None:
            raise ValidationError("Total amount is required")

        booking = self.repo.create(
            self.db,
            trainer_id=request.selected_trainer_id,
            student_id=actor.id,
            request_id=request.id,
            training_topic=sanitize_string(data.training_topic) or request.title,
            start_time=data.start_time,
            end_time=data.end_time,
            duration_hours=duration,
            total_amount=amount,
            status=BookingStatus.PENDING.value,
            payment_status=payment_status,
            **metadata,
        )
        request.status = RequestStatus.IN_PROGRESS.value
        self._notify_trainer_of_booking(booking)
        return booking

    def _create_direct(
        self, actor: User, data: BookingCreate, duration: float, metadata: dict, payment_status: str
    ) -> Booking:
        if not data.training_topic or not data.training_topic.strip():
            raise ValidationError("Training topic is required")

        trainer = None
        if data.trainer_id:
            trainer = self.repo.get_trainer(self.db, data.trainer_id)
            if not trainer:
                raise NotFound("Trainer not found")
            if trainer.user_id == actor.id:
                raise Forbidden("You cannot book yourself")
            self._require_approved(trainer)
        self._check_availability(
            data.start_time,
            data.end_time,
            trainer_id=trainer.id if trainer else None,
            student_id=actor.id,
        )

        amount = data.total_amount
        if amount is None and trainer and trainer.hourly_rate:
            amount = round(trainer.hourly_rate * duration, 2)
        if amount is None:
            raise ValidationError("Total amount is required")

        if trainer is None:
            status = BookingStatus.PENDING_ASSIGNMENT
        elif data.paid:
            status = BookingStatus.PENDING
        else:
            status = BookingStatus.PENDING_PAYMENT

        booking = self.repo.create(
            self.db,
            trainer_id=trainer.id if trainer else None,
            student_id=actor.id,
            training_topic=sanitize_string(data.training_topic),
            start_time=data.start_time,
            end_time=data.end_time,
            duration_hours=duration,
            total_amount=amount,
            status=status.value,
            payment_status=payment_status,
            **metadata,
        )
        if trainer:
            self._notify_trainer_of_booking(booking)
        return booking

    def _notify_trainer_of_booking(self, booking: Booking) -> None:
        self.notifier.notify(
            booking.trainer.user_id if booking.trainer else None,
            NotificationType.BOOKING_CREATED,
            "New booking",
            f"You have a new booking for '{booking.training_topic}'.",
            {
                "booking_id": booking.id,
                "status": booking.status,
                "topic": booking.training_topic,
            },
        )

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def apply_transition(
        self,
        booking: Booking,
        target: BookingStatus,
        party: Party,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        notify_user_id: Optional[str] = None,
    ) -> Booking:
        """
        Validate and apply one status change inside the caller's transaction.

        Raises before touching the booking if the move is not in the table,
        the party may not make it, or its guard fails. Writes exactly one
        outbox entry for the counterparty on success.
        """
        target = BookingStatus(target)
        current = booking.status

        if is_terminal(current):
            raise InvalidTransition(
                f"Booking is already {current}; no further changes are allowed",
                {"booking_id": booking.id, "status": current},
            )
        rule = find_transition(current, target)
        if rule is None:
            raise InvalidTransition(
                f"Cannot move booking from '{current}' to '{target.value}'",
                {"allowed": [s.value for s in allowed_targets(current)]},
            )
        if not rule.allows(party):
            raise Forbidden(
                f"The {party.value} cannot move a booking from '{current}' to '{target.value}'"
            )
        problem = rule.check(booking, reason)
        if problem:
            raise InvalidState(problem)

        now = utc_now()
        booking.status = target.value
        if target == BookingStatus.CANCELLED:
            booking.cancellation_reason = sanitize_string(reason) if reason else None
            booking.cancelled_by = actor_id or party.value
            booking.cancelled_at = now
        elif target == BookingStatus.COMPLETED:
            booking.completed_at = now
        self._sync_request(booking, target)

        title, message = STATUS_MESSAGES[target]
        recipient = notify_user_id or self.counterparty_user_id(booking, party)
        self.notifier.notify(
            recipient,
            NotificationType(f"booking_{target.value}"),
            title,
            message.format(topic=booking.training_topic),
            {
                "booking_id": booking.id,
                "status": target.value,
                "topic": booking.training_topic,
            },
        )
        self.db.flush()

        logger.info(f"🔄 Booking {booking.id}: {current} → {target.value} by {party.value}")
        return booking

    def _sync_request(self, booking: Booking, target: BookingStatus) -> None:
        """Carry terminal booking outcomes over to the request it came from"""
        request = booking.request
        if request is None or request.status != RequestStatus.IN_PROGRESS.value:
            return
        if target == BookingStatus.COMPLETED:
            request.status = RequestStatus.COMPLETED.value
        elif target == BookingStatus.CANCELLED:
            request.status = RequestStatus.CANCELLED.value

    def transition(
        self,
        booking_id: str,
        target: BookingStatus,
        actor: User,
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Booking:
        """Apply a status change requested by an actor in its own transaction"""
        try:
            with atomic(self.db):
                booking = self.repo.get_for_update(self.db, booking_id)
                if not booking:
                    raise NotFound("Booking not found")
                party = self.resolve_party(booking, actor)
                if expected_version is not None and booking.version != expected_version:
                    raise StaleVersion(
                        "Booking has changed since it was read; reload and retry",
                        {"current_version": booking.version},
                    )
                self.apply_transition(booking, target, party, actor.id, reason)
        except StaleDataError as e:
            raise StaleVersion("Booking was modified concurrently; reload and retry") from e
        return booking

    def assign_trainer(self, booking_id: str, trainer_id: str, actor: User) -> Booking:
        """Admin assignment of a trainer to a booking waiting for one"""
        if actor.role != UserRole.ADMIN.value:
            raise Forbidden("Only admins can assign trainers")

        with atomic(self.db):
            booking = self.repo.get_for_update(self.db, booking_id)
            if not booking:
                raise NotFound("Booking not found")
            if booking.status != BookingStatus.PENDING_ASSIGNMENT.value:
                raise InvalidState(
                    f"Trainers can only be assigned while the booking awaits one (status: {booking.status})"
                )
            trainer = self.repo.get_trainer(self.db, trainer_id)
            if not trainer:
                raise NotFound("Trainer not found")
            self._require_approved(trainer)
            self._check_availability(
                booking.start_time, booking.end_time, trainer_id=trainer.id, exclude_id=booking.id
            )

            booking.trainer = trainer
            self.db.flush()
            self.apply_transition(booking, BookingStatus.PENDING, Party.ADMIN, actor.id)
            self._notify_trainer_of_booking(booking)

        logger.info(f"👤 Trainer {trainer_id} assigned to booking {booking_id}")
        return booking

    def record_payment(self, booking_id: str, paid: bool, actor: User) -> Booking:
        """Apply the payment gateway's paid/unpaid signal to a booking awaiting payment"""
        if actor.role != UserRole.ADMIN.value:
            raise Forbidden("Only the payment system can record payments")

        with atomic(self.db):
            booking = self.repo.get_for_update(self.db, booking_id)
            if not booking:
                raise NotFound("Booking not found")
            if booking.status != BookingStatus.PENDING_PAYMENT.value:
                raise InvalidState(
                    f"Booking is not awaiting payment (status: {booking.status})"
                )

            if not paid:
                booking.payment_status = "unpaid"
                logger.warning(f"⚠️ Payment for booking {booking_id} reported as not completed")
            else:
                booking.payment_status = "paid"
                # The trainer is the one who now has an agreement to sign
                self.apply_transition(
                    booking,
                    BookingStatus.PENDING,
                    Party.SYSTEM,
                    actor.id,
                    notify_user_id=booking.trainer.user_id if booking.trainer else None,
                )

        return booking
