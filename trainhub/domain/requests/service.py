"""Training request service - Business logic for the request catalog"""

import logging

from sqlalchemy.orm import Session

from ...database import atomic, with_retry
from ...errors import Forbidden, InvalidState, NotFound, ValidationError
from ...models import ApplicationStatus, RequestStatus, TrainingRequest, User, UserRole
from ...services.notification_service import NotificationDispatcher, NotificationType
from ...shared.validators import validate_budget_range
from ...utils.sanitization import sanitize_fields
from .repository import RequestRepository
from .schemas import RequestCreate

logger = logging.getLogger(__name__)

FREE_TEXT_FIELDS = ["title", "description", "target_audience", "location"]


def validate_request_fields(data: RequestCreate) -> None:
    """Cross-field checks that a single field validator cannot express"""
    try:
        validate_budget_range(data.budget_min, data.budget_max)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    if data.duration_hours is not None and data.duration_hours <= 0:
        raise ValidationError("Duration must be greater than zero")

    if (
        data.expected_start_date
        and data.expected_end_date
        and data.expected_end_date < data.expected_start_date
    ):
        raise ValidationError("Expected end date cannot be before the start date")


class RequestService:
    """Service layer for the training request catalog"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = RequestRepository()
        self.notifier = NotificationDispatcher(db)

    def get_request(self, request_id: str) -> TrainingRequest:
        """Get a training request"""
        request = with_retry(lambda: self.repo.get_by_id(self.db, request_id), db=self.db)
        if not request:
            raise NotFound("Training request not found")
        return request

    def list_open_requests(self, limit: int = 50, offset: int = 0) -> list[TrainingRequest]:
        """Public feed of requests accepting applications"""
        return with_retry(lambda: self.repo.list_open(self.db, limit, offset), db=self.db)

    def list_client_requests(self, actor: User) -> list[TrainingRequest]:
        return with_retry(lambda: self.repo.list_by_client(self.db, actor.id), db=self.db)

    def _get_owned_for_update(self, request_id: str, actor: User) -> TrainingRequest:
        request = self.repo.get_for_update(self.db, request_id)
        if not request:
            raise NotFound("Training request not found")
        if request.client_id != actor.id:
            raise Forbidden("Only the client who posted this request can change it")
        return request

    def create_request(self, actor: User, data: RequestCreate) -> TrainingRequest:
        """Post a new training request, open for applications"""
        if actor.role == UserRole.TRAINER.value:
            raise Forbidden("Trainers cannot post training requests")

        validate_request_fields(data)
        fields = sanitize_fields(data.model_dump(), FREE_TEXT_FIELDS)

        with atomic(self.db):
            request = self.repo.create(
                self.db, client_id=actor.id, status=RequestStatus.OPEN.value, **fields
            )
            self.notifier.notify(
                actor.id,
                NotificationType.TRAINING_REQUEST_CREATED,
                "Training request posted",
                f"Your training request '{request.title}' is now open for trainer applications.",
                {"request_id": request.id, "topic": request.title, "status": request.status},
            )

        logger.info(f"📝 Training request {request.id} created by client {actor.id}")
        return request

    def close_request(self, request_id: str, actor: User) -> TrainingRequest:
        """Stop accepting applications; only the owner may close an open request"""
        with atomic(self.db):
            request = self._get_owned_for_update(request_id, actor)
            if request.status != RequestStatus.OPEN.value:
                raise InvalidState(
                    f"Only open requests can be closed (current status: {request.status})"
                )
            self.repo.set_status(self.db, request, RequestStatus.CLOSED)

        logger.info(f"🔒 Training request {request_id} closed by client {actor.id}")
        return request

    def cancel_request(self, request_id: str, actor: User) -> TrainingRequest:
        """
        Withdraw a request before any booking is made from it.

        Competing applications are rejected in the same transaction.
        """
        with atomic(self.db):
            request = self._get_owned_for_update(request_id, actor)
            if request.status not in (
                RequestStatus.OPEN.value,
                RequestStatus.TRAINER_SELECTED.value,
            ):
                raise InvalidState(
                    f"Request cannot be cancelled from status '{request.status}'"
                )

            for application in self.repo.get_open_applications(self.db, request.id):
                application.status = ApplicationStatus.REJECTED.value
                self.notifier.notify(
                    application.trainer.user_id,
                    NotificationType.TRAINING_APPLICATION_REJECTED,
                    "Training request cancelled",
                    f"The client cancelled '{request.title}', so your application was closed.",
                    {
                        "request_id": request.id,
                        "application_id": application.id,
                        "topic": request.title,
                        "status": ApplicationStatus.REJECTED.value,
                    },
                )
            self.repo.set_status(self.db, request, RequestStatus.CANCELLED)

        logger.info(f"🚫 Training request {request_id} cancelled by client {actor.id}")
        return request
