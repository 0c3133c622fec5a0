"""Tests for the application book and trainer selection."""

from datetime import timedelta

import pytest

from tests.conftest import make_request, make_trainer, make_user, outbox_entries
from trainhub.domain.applications.schemas import ApplicationCreate
from trainhub.domain.applications.service import ApplicationService
from trainhub.domain.requests.service import RequestService
from trainhub.errors import (
    DuplicateApplication,
    Forbidden,
    InvalidState,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from trainhub.models import ApplicationStatus, RequestStatus, TrainerStatus, TrainingApplication
from trainhub.shared.timeutils import utc_now


def apply(db, request, trainer, price: float = 150.0, **fields) -> TrainingApplication:
    return ApplicationService(db).submit_application(
        request.id, trainer.user, ApplicationCreate(proposed_price=price, **fields)
    )


class TestSubmitApplication:
    def test_trainer_applies_to_open_request(self, db, client_user, trainer):
        request = make_request(db, client_user)
        application = apply(db, request, trainer, message_to_client="Happy to help")

        assert application.status == ApplicationStatus.PENDING.value
        assert application.trainer_id == trainer.id
        received = outbox_entries(db, client_user.id, "training_application_received")
        assert len(received) == 1
        assert received[0].data["application_id"] == application.id

    def test_second_application_is_duplicate(self, db, client_user, trainer):
        request = make_request(db, client_user)
        apply(db, request, trainer)
        with pytest.raises(DuplicateApplication):
            apply(db, request, trainer, price=120.0)
        assert db.query(TrainingApplication).count() == 1

    def test_user_without_trainer_profile_forbidden(self, db, client_user):
        request = make_request(db, client_user)
        with pytest.raises(Forbidden):
            ApplicationService(db).submit_application(
                request.id, make_user(db), ApplicationCreate(proposed_price=100.0)
            )

    @pytest.mark.parametrize("status", [TrainerStatus.PENDING, TrainerStatus.SUSPENDED])
    def test_unapproved_trainer_cannot_apply(self, db, client_user, trainer, status):
        request = make_request(db, client_user)
        trainer.status = status.value
        db.commit()
        with pytest.raises(InvalidState):
            apply(db, request, trainer)
        assert db.query(TrainingApplication).count() == 0

    def test_closed_request_rejects_applications(self, db, client_user, trainer):
        request = make_request(db, client_user)
        RequestService(db).close_request(request.id, client_user)
        with pytest.raises(InvalidState):
            apply(db, request, trainer)

    def test_deadline_passed(self, db, client_user, trainer):
        request = make_request(db, client_user)
        request.application_deadline = utc_now() - timedelta(hours=1)
        db.commit()
        with pytest.raises(InvalidState):
            apply(db, request, trainer)

    def test_unknown_request(self, db, trainer):
        with pytest.raises(NotFound):
            ApplicationService(db).submit_application(
                "missing", trainer.user, ApplicationCreate(proposed_price=100.0)
            )

    @pytest.mark.parametrize("price", [0, -10])
    def test_non_positive_price(self, db, client_user, trainer, price):
        request = make_request(db, client_user)
        with pytest.raises(ValidationError):
            apply(db, request, trainer, price=price)

    def test_end_before_start(self, db, client_user, trainer):
        request = make_request(db, client_user)
        start = utc_now() + timedelta(days=10)
        with pytest.raises(ValidationError):
            apply(
                db,
                request,
                trainer,
                proposed_start_date=start,
                proposed_end_date=start - timedelta(days=1),
            )


class TestUpdateApplicationStatus:
    def test_shortlist_then_reject(self, db, client_user, trainer):
        request = make_request(db, client_user)
        application = apply(db, request, trainer)
        service = ApplicationService(db)

        service.update_application_status(application.id, ApplicationStatus.SHORTLISTED, client_user)
        assert application.status == ApplicationStatus.SHORTLISTED.value
        assert outbox_entries(db, trainer.user_id, "training_application_shortlisted")

        service.update_application_status(application.id, ApplicationStatus.REJECTED, client_user)
        assert application.status == ApplicationStatus.REJECTED.value

    def test_rejected_cannot_be_shortlisted(self, db, client_user, trainer):
        request = make_request(db, client_user)
        application = apply(db, request, trainer)
        service = ApplicationService(db)
        service.update_application_status(application.id, ApplicationStatus.REJECTED, client_user)

        with pytest.raises(InvalidTransition):
            service.update_application_status(
                application.id, ApplicationStatus.SHORTLISTED, client_user
            )

    def test_selected_is_not_a_direct_status_update(self, db, client_user, trainer):
        request = make_request(db, client_user)
        application = apply(db, request, trainer)
        with pytest.raises(InvalidTransition):
            ApplicationService(db).update_application_status(
                application.id, ApplicationStatus.SELECTED, client_user
            )

    def test_only_owner_may_decide(self, db, client_user, trainer):
        request = make_request(db, client_user)
        application = apply(db, request, trainer)
        with pytest.raises(Forbidden):
            ApplicationService(db).update_application_status(
                application.id, ApplicationStatus.SHORTLISTED, make_user(db)
            )

    def test_request_must_be_open(self, db, client_user, trainer):
        request = make_request(db, client_user)
        application = apply(db, request, trainer)
        RequestService(db).close_request(request.id, client_user)
        with pytest.raises(InvalidState):
            ApplicationService(db).update_application_status(
                application.id, ApplicationStatus.SHORTLISTED, client_user
            )


class TestSelectTrainer:
    def test_full_selection_flow(self, db, client_user, trainer, other_trainer):
        request = make_request(db, client_user, budget_min=100.0, budget_max=200.0)
        winner = apply(db, request, trainer, price=150.0)
        loser = apply(db, request, other_trainer, price=140.0)
        third = make_trainer(db, name="Casey Third")
        shortlisted_loser = apply(db, request, third, price=160.0)

        service = ApplicationService(db)
        service.update_application_status(winner.id, ApplicationStatus.SHORTLISTED, client_user)
        service.update_application_status(
            shortlisted_loser.id, ApplicationStatus.SHORTLISTED, client_user
        )

        result = service.select_trainer(request.id, winner.id, client_user)

        assert result.status == RequestStatus.TRAINER_SELECTED.value
        assert result.selected_trainer_id == trainer.id
        for application in (winner, loser, shortlisted_loser):
            db.refresh(application)
        assert winner.status == ApplicationStatus.SELECTED.value
        assert loser.status == ApplicationStatus.REJECTED.value
        assert shortlisted_loser.status == ApplicationStatus.REJECTED.value

        selected = (
            db.query(TrainingApplication)
            .filter(
                TrainingApplication.request_id == request.id,
                TrainingApplication.status == ApplicationStatus.SELECTED.value,
            )
            .count()
        )
        assert selected == 1

        assert len(outbox_entries(db, trainer.user_id, "training_application_accepted")) == 1
        assert outbox_entries(db, other_trainer.user_id, "training_application_rejected")
        assert outbox_entries(db, third.user_id, "training_application_rejected")

    def test_pending_application_cannot_be_selected(self, db, client_user, trainer):
        request = make_request(db, client_user)
        application = apply(db, request, trainer)
        with pytest.raises(InvalidState):
            ApplicationService(db).select_trainer(request.id, application.id, client_user)

        db.refresh(request)
        assert request.status == RequestStatus.OPEN.value

    def test_application_from_another_request(self, db, client_user, trainer):
        request = make_request(db, client_user)
        other_request = make_request(db, client_user, title="Other")
        application = apply(db, other_request, trainer)
        service = ApplicationService(db)
        service.update_application_status(application.id, ApplicationStatus.SHORTLISTED, client_user)

        with pytest.raises(NotFound):
            service.select_trainer(request.id, application.id, client_user)

    def test_selection_is_final(self, db, client_user, trainer, other_trainer):
        request = make_request(db, client_user)
        first = apply(db, request, trainer)
        service = ApplicationService(db)
        service.update_application_status(first.id, ApplicationStatus.SHORTLISTED, client_user)
        service.select_trainer(request.id, first.id, client_user)

        with pytest.raises(InvalidState):
            apply(db, request, other_trainer)
        with pytest.raises(InvalidState):
            service.select_trainer(request.id, first.id, client_user)

    def test_non_owner_cannot_select(self, db, client_user, trainer):
        request = make_request(db, client_user)
        application = apply(db, request, trainer)
        service = ApplicationService(db)
        service.update_application_status(application.id, ApplicationStatus.SHORTLISTED, client_user)
        with pytest.raises(Forbidden):
            service.select_trainer(request.id, application.id, make_user(db))


class TestListing:
    def test_owner_lists_request_applications(self, db, client_user, trainer, other_trainer):
        request = make_request(db, client_user)
        apply(db, request, trainer)
        apply(db, request, other_trainer)
        assert len(ApplicationService(db).list_request_applications(request.id, client_user)) == 2

    def test_stranger_cannot_list(self, db, client_user, trainer):
        request = make_request(db, client_user)
        apply(db, request, trainer)
        with pytest.raises(Forbidden):
            ApplicationService(db).list_request_applications(request.id, make_user(db))

    def test_trainer_lists_own_applications_by_status(self, db, client_user, trainer):
        first = make_request(db, client_user, title="First")
        second = make_request(db, client_user, title="Second")
        a1 = apply(db, first, trainer)
        apply(db, second, trainer)
        service = ApplicationService(db)
        service.update_application_status(a1.id, ApplicationStatus.SHORTLISTED, client_user)

        assert len(service.list_trainer_applications(trainer.user)) == 2
        shortlisted = service.list_trainer_applications(trainer.user, ApplicationStatus.SHORTLISTED)
        assert [a.id for a in shortlisted] == [a1.id]
