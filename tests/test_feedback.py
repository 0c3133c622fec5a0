"""Tests for feedback links and public feedback submission."""

from datetime import timedelta

import pytest

from tests.conftest import make_booking, make_user, outbox_entries
from trainhub.domain.feedback.schemas import FeedbackSubmission
from trainhub.domain.feedback.service import FeedbackService, generate_feedback_token
from trainhub.errors import DuplicateSubmission, Forbidden, InvalidState, NotFound
from trainhub.models import BookingStatus, FeedbackLink
from trainhub.shared.timeutils import utc_now


@pytest.fixture
def completed_booking(db, client_user, trainer):
    return make_booking(db, client_user, trainer, status=BookingStatus.COMPLETED)


def submission(**overrides) -> FeedbackSubmission:
    fields = {
        "respondent_name": "Pat Participant",
        "respondent_email": "pat@example.com",
        "rating": 5,
        "communication_rating": 4,
        "review_comment": "Very practical session",
        "would_recommend": True,
    }
    fields.update(overrides)
    return FeedbackSubmission(**fields)


class TestIssueLink:
    def test_trainer_gets_link_for_completed_booking(self, db, completed_booking, trainer):
        link = FeedbackService(db).issue_link(completed_booking.id, trainer.user)
        assert link.is_active
        assert link.expires_at > utc_now() + timedelta(days=6)
        assert len(link.token) >= 43

    def test_repeated_calls_return_same_link(self, db, completed_booking, trainer):
        service = FeedbackService(db)
        first = service.issue_link(completed_booking.id, trainer.user)
        second = service.issue_link(completed_booking.id, trainer.user)
        assert first.id == second.id
        assert first.token == second.token

    def test_expired_link_is_replaced(self, db, completed_booking, trainer):
        service = FeedbackService(db)
        old = service.issue_link(completed_booking.id, trainer.user)
        old.expires_at = utc_now() - timedelta(minutes=1)
        db.commit()

        new = service.issue_link(completed_booking.id, trainer.user)

        assert new.id != old.id
        db.refresh(old)
        assert old.is_active is False
        active = (
            db.query(FeedbackLink)
            .filter(
                FeedbackLink.booking_id == completed_booking.id,
                FeedbackLink.is_active.is_(True),
            )
            .count()
        )
        assert active == 1

    @pytest.mark.parametrize(
        "status", [BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CANCELLED]
    )
    def test_booking_must_be_completed(self, db, client_user, trainer, status):
        booking = make_booking(db, client_user, trainer, status=status)
        with pytest.raises(InvalidState):
            FeedbackService(db).issue_link(booking.id, trainer.user)

    def test_client_cannot_issue(self, db, completed_booking, client_user):
        with pytest.raises(Forbidden):
            FeedbackService(db).issue_link(completed_booking.id, client_user)

    def test_admin_can_issue(self, db, completed_booking, admin):
        assert FeedbackService(db).issue_link(completed_booking.id, admin).is_active

    def test_unknown_booking(self, db, trainer):
        with pytest.raises(NotFound):
            FeedbackService(db).issue_link("missing", trainer.user)


class TestSubmitFeedback:
    def test_participant_submits(self, db, completed_booking, trainer):
        service = FeedbackService(db)
        link = service.issue_link(completed_booking.id, trainer.user)

        response = service.submit_feedback(link.token, submission())

        assert response.rating == 5
        assert response.respondent_email == "pat@example.com"
        received = outbox_entries(db, trainer.user_id, "feedback_received")
        assert len(received) == 1
        assert received[0].data["rating"] == 5

    def test_second_submission_from_same_email_rejected(self, db, completed_booking, trainer):
        service = FeedbackService(db)
        link = service.issue_link(completed_booking.id, trainer.user)
        service.submit_feedback(link.token, submission())

        with pytest.raises(DuplicateSubmission):
            service.submit_feedback(link.token, submission(respondent_email="  PAT@Example.com "))

    def test_different_respondents_accepted(self, db, completed_booking, trainer):
        service = FeedbackService(db)
        link = service.issue_link(completed_booking.id, trainer.user)
        service.submit_feedback(link.token, submission())
        service.submit_feedback(link.token, submission(respondent_email="sam@example.com", rating=3))

        responses = service.list_responses(completed_booking.id, trainer.user)
        assert sorted(r.rating for r in responses) == [3, 5]

    def test_unknown_token(self, db):
        with pytest.raises(NotFound):
            FeedbackService(db).submit_feedback(generate_feedback_token(), submission())

    def test_expired_link(self, db, completed_booking, trainer):
        service = FeedbackService(db)
        link = service.issue_link(completed_booking.id, trainer.user)
        link.expires_at = utc_now() - timedelta(seconds=1)
        db.commit()

        with pytest.raises(NotFound):
            service.submit_feedback(link.token, submission())
        with pytest.raises(NotFound):
            service.get_link(link.token)

    def test_free_text_is_escaped(self, db, completed_booking, trainer):
        service = FeedbackService(db)
        link = service.issue_link(completed_booking.id, trainer.user)
        response = service.submit_feedback(
            link.token, submission(review_comment="<b>great</b>")
        )
        assert response.review_comment == "&lt;b&gt;great&lt;/b&gt;"


class TestSubmissionSchema:
    @pytest.mark.parametrize("rating", [0, 6])
    def test_rating_out_of_range(self, rating):
        with pytest.raises(ValueError):
            submission(rating=rating)

    def test_sub_rating_out_of_range(self):
        with pytest.raises(ValueError):
            submission(skills_rating=9)

    def test_blank_name(self):
        with pytest.raises(ValueError):
            submission(respondent_name="  ")

    def test_invalid_email(self):
        with pytest.raises(ValueError):
            submission(respondent_email="not-an-email")


class TestFormAndExpiry:
    def test_form_info(self, db, completed_booking, trainer):
        service = FeedbackService(db)
        link = service.issue_link(completed_booking.id, trainer.user)
        info = service.get_link(link.token)
        assert info["training_topic"] == completed_booking.training_topic
        assert info["trainer_name"] == trainer.name

    def test_expire_links_deactivates_only_past_expiry(self, db, client_user, trainer):
        service = FeedbackService(db)
        stale_booking = make_booking(db, client_user, trainer, status=BookingStatus.COMPLETED)
        fresh_booking = make_booking(db, client_user, trainer, status=BookingStatus.COMPLETED)
        stale = service.issue_link(stale_booking.id, trainer.user)
        fresh = service.issue_link(fresh_booking.id, trainer.user)
        stale.expires_at = utc_now() - timedelta(hours=1)
        db.commit()

        assert service.expire_links() == 1
        db.refresh(stale)
        db.refresh(fresh)
        assert stale.is_active is False
        assert fresh.is_active is True

    def test_stranger_cannot_list_responses(self, db, completed_booking):
        with pytest.raises(Forbidden):
            FeedbackService(db).list_responses(completed_booking.id, make_user(db))
