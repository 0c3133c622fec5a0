"""Training request repository - Database operations for training requests"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import ApplicationStatus, RequestStatus, TrainingApplication, TrainingRequest
from ...shared.timeutils import utc_now


class RequestRepository:
    """Repository for training request database operations.

    Methods flush but never commit; the calling service owns the transaction.
    """

    @staticmethod
    def get_by_id(db: Session, request_id: str) -> Optional[TrainingRequest]:
        """Get a training request by ID"""
        return db.query(TrainingRequest).filter(TrainingRequest.id == request_id).first()

    @staticmethod
    def get_for_update(db: Session, request_id: str) -> Optional[TrainingRequest]:
        """Get a training request with a row lock for a read-modify-write"""
        return (
            db.query(TrainingRequest)
            .filter(TrainingRequest.id == request_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def list_open(db: Session, limit: int = 50, offset: int = 0) -> list[TrainingRequest]:
        """Open requests still accepting applications, newest first"""
        now = utc_now()
        return (
            db.query(TrainingRequest)
            .filter(
                TrainingRequest.status == RequestStatus.OPEN.value,
                (TrainingRequest.application_deadline.is_(None))
                | (TrainingRequest.application_deadline >= now),
            )
            .order_by(TrainingRequest.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def list_by_client(db: Session, client_id: str) -> list[TrainingRequest]:
        """All requests posted by a client, including closed and cancelled ones"""
        return (
            db.query(TrainingRequest)
            .filter(TrainingRequest.client_id == client_id)
            .order_by(TrainingRequest.created_at.desc())
            .all()
        )

    @staticmethod
    def create(db: Session, client_id: str, **fields) -> TrainingRequest:
        """Create a new training request"""
        request = TrainingRequest(client_id=client_id, **fields)
        db.add(request)
        db.flush()
        return request

    @staticmethod
    def set_status(db: Session, request: TrainingRequest, status: RequestStatus) -> TrainingRequest:
        request.status = status.value
        db.flush()
        return request

    @staticmethod
    def get_open_applications(db: Session, request_id: str) -> list[TrainingApplication]:
        """Applications still competing (pending or shortlisted)"""
        return (
            db.query(TrainingApplication)
            .filter(
                TrainingApplication.request_id == request_id,
                TrainingApplication.status.in_(
                    [ApplicationStatus.PENDING.value, ApplicationStatus.SHORTLISTED.value]
                ),
            )
            .all()
        )
