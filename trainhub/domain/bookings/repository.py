"""Booking repository - Database operations for bookings"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import ApplicationStatus, Booking, BookingStatus, Trainer, TrainingApplication

# Bookings that hold a slot in the trainer's and client's calendars
BLOCKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_by_id(db: Session, booking_id: str) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def get_for_update(db: Session, booking_id: str) -> Optional[Booking]:
        """Get a booking with a row lock for a status change"""
        return db.query(Booking).filter(Booking.id == booking_id).with_for_update().first()

    @staticmethod
    def create(db: Session, **fields) -> Booking:
        booking = Booking(**fields)
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def list_for_user(
        db: Session,
        user_id: str,
        trainer_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[Booking]:
        """Bookings where the user is the client or, when given, the trainer"""
        criteria = [Booking.student_id == user_id]
        if trainer_id:
            criteria.append(Booking.trainer_id == trainer_id)
        query = db.query(Booking).filter(or_(*criteria))
        if status:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.start_time.desc()).all()

    @staticmethod
    def list_all(db: Session, status: Optional[str] = None) -> list[Booking]:
        query = db.query(Booking)
        if status:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.start_time.desc()).all()

    @staticmethod
    def get_trainer(db: Session, trainer_id: str) -> Optional[Trainer]:
        return db.query(Trainer).filter(Trainer.id == trainer_id).first()

    @staticmethod
    def get_trainer_by_user_id(db: Session, user_id: str) -> Optional[Trainer]:
        return db.query(Trainer).filter(Trainer.user_id == user_id).first()

    @staticmethod
    def get_selected_application(db: Session, request_id: str) -> Optional[TrainingApplication]:
        """The winning application of a request, if one has been selected"""
        return (
            db.query(TrainingApplication)
            .filter(
                TrainingApplication.request_id == request_id,
                TrainingApplication.status == ApplicationStatus.SELECTED.value,
            )
            .first()
        )

    @staticmethod
    def find_overlapping(
        db: Session,
        start_time: datetime,
        end_time: datetime,
        trainer_id: Optional[str] = None,
        student_id: Optional[str] = None,
        exclude_id: Optional[str] = None,
    ) -> Optional[Booking]:
        """First pending or confirmed booking of the trainer or client that overlaps the window"""
        criteria = []
        if trainer_id:
            criteria.append(Booking.trainer_id == trainer_id)
        if student_id:
            criteria.append(Booking.student_id == student_id)
        if not criteria:
            return None

        query = db.query(Booking).filter(
            or_(*criteria),
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.start_time < end_time,
            Booking.end_time > start_time,
        )
        if exclude_id:
            query = query.filter(Booking.id != exclude_id)
        return query.order_by(Booking.start_time).first()
