"""
Training application service
Trainer bids against open requests, client shortlisting/rejection, and
single-winner trainer selection
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import atomic, with_retry
from ...errors import (
    DuplicateApplication,
    Forbidden,
    InvalidState,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from ...models import (
    ApplicationStatus,
    RequestStatus,
    Trainer,
    TrainerStatus,
    TrainingApplication,
    TrainingRequest,
    User,
    UserRole,
)
from ...services.notification_service import NotificationDispatcher, NotificationType
from ...shared.timeutils import utc_now
from ...utils.sanitization import sanitize_fields
from ..requests.repository import RequestRepository
from .repository import ApplicationRepository
from .schemas import ApplicationCreate

logger = logging.getLogger(__name__)

# Client-driven moves; 'selected' is only reachable through select_trainer
APPLICATION_TRANSITIONS = {
    ApplicationStatus.PENDING.value: {
        ApplicationStatus.SHORTLISTED.value,
        ApplicationStatus.REJECTED.value,
    },
    ApplicationStatus.SHORTLISTED.value: {ApplicationStatus.REJECTED.value},
    ApplicationStatus.SELECTED.value: set(),
    ApplicationStatus.REJECTED.value: set(),
}

FREE_TEXT_FIELDS = ["message_to_client", "proposed_syllabus", "availability_notes"]


class ApplicationService:
    """Service layer for the application book and the selection resolver"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ApplicationRepository()
        self.request_repo = RequestRepository()
        self.notifier = NotificationDispatcher(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _require_trainer(self, actor: User) -> Trainer:
        trainer = self.repo.get_trainer_by_user_id(self.db, actor.id)
        if not trainer:
            raise Forbidden("A trainer profile is required for this action")
        return trainer

    def _get_owned_open_request(self, request_id: str, actor: User) -> TrainingRequest:
        request = self.request_repo.get_for_update(self.db, request_id)
        if not request:
            raise NotFound("Training request not found")
        if request.client_id != actor.id:
            raise Forbidden("Only the client who posted this request can manage its applications")
        if request.status != RequestStatus.OPEN.value:
            raise InvalidState(
                f"Applications can only be managed while the request is open "
                f"(current status: {request.status})"
            )
        return request

    def get_application(self, application_id: str) -> TrainingApplication:
        application = with_retry(lambda: self.repo.get_by_id(self.db, application_id), db=self.db)
        if not application:
            raise NotFound("Application not found")
        return application

    def list_request_applications(self, request_id: str, actor: User) -> list[TrainingApplication]:
        """Applications on a request, visible to its owner and admins"""
        request = self.request_repo.get_by_id(self.db, request_id)
        if not request:
            raise NotFound("Training request not found")
        if request.client_id != actor.id and actor.role != UserRole.ADMIN.value:
            raise Forbidden("Only the request owner can view its applications")
        return with_retry(lambda: self.repo.list_by_request(self.db, request_id), db=self.db)

    def list_trainer_applications(
        self, actor: User, status: Optional[ApplicationStatus] = None
    ) -> list[TrainingApplication]:
        trainer = self._require_trainer(actor)
        return self.repo.list_by_trainer(self.db, trainer.id, status.value if status else None)

    # ------------------------------------------------------------------
    # ApplicationBook
    # ------------------------------------------------------------------

    def submit_application(
        self, request_id: str, actor: User, proposal: ApplicationCreate
    ) -> TrainingApplication:
        """Apply to an open request; one application per trainer per request"""
        trainer = self._require_trainer(actor)
        if trainer.status != TrainerStatus.APPROVED.value:
            raise InvalidState(
                f"Only approved trainers can apply to requests (status: {trainer.status})"
            )

        if proposal.proposed_price <= 0:
            raise ValidationError("Proposed price must be greater than zero")
        if proposal.proposed_duration_hours is not None and proposal.proposed_duration_hours <= 0:
            raise ValidationError("Proposed duration must be greater than zero")
        if (
            proposal.proposed_start_date
            and proposal.proposed_end_date
            and proposal.proposed_end_date < proposal.proposed_start_date
        ):
            raise ValidationError("Proposed end date cannot be before the start date")

        fields = sanitize_fields(proposal.model_dump(), FREE_TEXT_FIELDS)

        try:
            with atomic(self.db):
                request = self.request_repo.get_for_update(self.db, request_id)
                if not request:
                    raise NotFound("Training request not found")
                if request.status != RequestStatus.OPEN.value:
                    raise InvalidState(
                        f"Request is not accepting applications (status: {request.status})"
                    )
                if request.application_deadline and request.application_deadline < utc_now():
                    raise InvalidState("The application deadline for this request has passed")
                if self.repo.get_by_request_and_trainer(self.db, request_id, trainer.id):
                    raise DuplicateApplication("You have already applied to this request")

                application = self.repo.create(
                    self.db,
                    request_id=request_id,
                    trainer_id=trainer.id,
                    status=ApplicationStatus.PENDING.value,
                    **fields,
                )
                self.notifier.notify(
                    request.client_id,
                    NotificationType.TRAINING_APPLICATION_RECEIVED,
                    "New trainer application",
                    f"{trainer.name} applied to '{request.title}'.",
                    {
                        "request_id": request.id,
                        "application_id": application.id,
                        "topic": request.title,
                        "status": application.status,
                    },
                )
        except IntegrityError as e:
            # Lost a race with a concurrent submission from the same trainer
            raise DuplicateApplication("You have already applied to this request") from e

        logger.info(f"📨 Trainer {trainer.id} applied to request {request_id}")
        return application

    def update_application_status(
        self, application_id: str, new_status: ApplicationStatus, actor: User
    ) -> TrainingApplication:
        """Shortlist or reject an application while its request is open"""
        target = ApplicationStatus(new_status).value

        with atomic(self.db):
            application = self.repo.get_for_update(self.db, application_id)
            if not application:
                raise NotFound("Application not found")
            request = self._get_owned_open_request(application.request_id, actor)

            if target not in APPLICATION_TRANSITIONS.get(application.status, set()):
                raise InvalidTransition(
                    f"Cannot move application from '{application.status}' to '{target}'"
                )

            application.status = target
            if target == ApplicationStatus.SHORTLISTED.value:
                notification_type = NotificationType.TRAINING_APPLICATION_SHORTLISTED
                title = "You've been shortlisted"
                message = f"Your application for '{request.title}' was shortlisted."
            else:
                notification_type = NotificationType.TRAINING_APPLICATION_REJECTED
                title = "Application not selected"
                message = f"Your application for '{request.title}' was not selected."
            self.notifier.notify(
                application.trainer.user_id,
                notification_type,
                title,
                message,
                {
                    "request_id": request.id,
                    "application_id": application.id,
                    "topic": request.title,
                    "status": target,
                },
            )

        logger.info(f"✅ Application {application_id} moved to {target}")
        return application

    # ------------------------------------------------------------------
    # SelectionResolver
    # ------------------------------------------------------------------

    def select_trainer(self, request_id: str, application_id: str, actor: User) -> TrainingRequest:
        """
        Choose the winning application for a request.

        The request, the winner and every competing sibling change in one
        transaction; if any write fails nothing is applied.
        """
        with atomic(self.db):
            request = self._get_owned_open_request(request_id, actor)

            application = self.repo.get_for_update(self.db, application_id)
            if not application or application.request_id != request.id:
                raise NotFound("Application not found for this request")
            if application.status != ApplicationStatus.SHORTLISTED.value:
                raise InvalidState(
                    f"Only shortlisted applications can be selected (current status: {application.status})"
                )

            request.selected_trainer_id = application.trainer_id
            request.status = RequestStatus.TRAINER_SELECTED.value
            application.status = ApplicationStatus.SELECTED.value

            rejected = self.repo.get_competing_siblings(self.db, request.id, application.id)
            for sibling in rejected:
                sibling.status = ApplicationStatus.REJECTED.value
                self.notifier.notify(
                    sibling.trainer.user_id,
                    NotificationType.TRAINING_APPLICATION_REJECTED,
                    "Application not selected",
                    f"The client selected another trainer for '{request.title}'.",
                    {
                        "request_id": request.id,
                        "application_id": sibling.id,
                        "topic": request.title,
                        "status": ApplicationStatus.REJECTED.value,
                    },
                )

            self.notifier.notify(
                application.trainer.user_id,
                NotificationType.TRAINING_APPLICATION_ACCEPTED,
                "You've been selected!",
                f"The client selected you for '{request.title}'.",
                {
                    "request_id": request.id,
                    "application_id": application.id,
                    "topic": request.title,
                    "status": ApplicationStatus.SELECTED.value,
                },
            )
            self.db.flush()

        logger.info(
            f"🏆 Request {request_id}: application {application_id} selected, "
            f"{len(rejected)} sibling(s) rejected"
        )
        return request
