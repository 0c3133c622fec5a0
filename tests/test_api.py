"""HTTP-level tests: the full training lifecycle and the error response shape."""

from datetime import timedelta

from tests.conftest import make_booking, make_request
from trainhub.models import BookingStatus
from trainhub.shared.timeutils import utc_now


def iso(days: int, hours: int = 0) -> str:
    return (utc_now() + timedelta(days=days, hours=hours)).replace(microsecond=0).isoformat()


class TestLifecycle:
    def test_request_to_feedback(self, api, login, client_user, trainer, other_trainer):
        # Client posts a request
        login(client_user)
        created = api.post(
            "/requests",
            json={
                "title": "Negotiation Skills",
                "target_audience": "Sales team",
                "budget_min": 100,
                "budget_max": 300,
            },
        )
        assert created.status_code == 201
        request_id = created.json()["id"]
        assert created.json()["status"] == "open"

        # Two trainers apply
        login(trainer.user)
        applied = api.post(f"/requests/{request_id}/applications", json={"proposed_price": 240})
        assert applied.status_code == 201
        application_id = applied.json()["id"]

        duplicate = api.post(f"/requests/{request_id}/applications", json={"proposed_price": 200})
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "duplicate_application"

        login(other_trainer.user)
        rival = api.post(f"/requests/{request_id}/applications", json={"proposed_price": 220})
        assert rival.status_code == 201

        # Client shortlists and selects
        login(client_user)
        shortlisted = api.patch(f"/applications/{application_id}", json={"status": "shortlisted"})
        assert shortlisted.status_code == 200
        selected = api.post(f"/requests/{request_id}/select", json={"application_id": application_id})
        assert selected.status_code == 200
        assert selected.json()["status"] == "trainer_selected"
        assert selected.json()["selected_trainer_id"] == trainer.id

        login(other_trainer.user)
        mine = api.get("/applications/mine").json()
        assert [a["status"] for a in mine] == ["rejected"]

        # Client books the selected trainer
        login(client_user)
        booked = api.post(
            "/bookings",
            json={"request_id": request_id, "start_time": iso(10), "end_time": iso(10, 4)},
        )
        assert booked.status_code == 201
        booking = booked.json()
        assert booking["status"] == "pending"
        assert booking["total_amount"] == 240
        booking_id = booking["id"]

        # Both parties sign
        agreement = api.post(f"/bookings/{booking_id}/agreement")
        assert agreement.status_code == 200
        agreement_id = agreement.json()["id"]
        assert agreement.json()["hourly_rate"] == 60

        signed = api.post(f"/agreements/{agreement_id}/sign", json={"party": "client"})
        assert signed.json()["client_signature_status"] == "accepted"

        login(trainer.user)
        signed = api.post(f"/agreements/{agreement_id}/sign")
        assert signed.status_code == 200
        assert signed.json()["completed_at"] is not None
        assert api.get(f"/bookings/{booking_id}").json()["status"] == "confirmed"

        # Trainer completes and shares the feedback link
        completed = api.patch(f"/bookings/{booking_id}/status", json={"status": "completed"})
        assert completed.status_code == 200
        assert completed.json()["completed_at"] is not None

        link = api.post(f"/bookings/{booking_id}/feedback-link")
        assert link.status_code == 200
        token = link.json()["token"]
        assert link.json()["url"].endswith(f"/feedback/{token}")

        # A participant answers through the public form
        form = api.get(f"/feedback/{token}")
        assert form.status_code == 200
        assert form.json()["training_topic"] == "Negotiation Skills"

        answer = {"respondent_name": "Pat", "respondent_email": "pat@example.com", "rating": 4}
        submitted = api.post(f"/feedback/{token}", json=answer)
        assert submitted.status_code == 201
        again = api.post(f"/feedback/{token}", json={**answer, "respondent_email": "PAT@example.com"})
        assert again.status_code == 409
        assert again.json()["code"] == "duplicate_submission"

        responses = api.get(f"/bookings/{booking_id}/feedback")
        assert [r["rating"] for r in responses.json()] == [4]


class TestErrorShape:
    def test_not_found(self, api, login, client_user):
        login(client_user)
        response = api.get("/bookings/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"detail": "Booking not found", "code": "not_found"}

    def test_forbidden_transition(self, api, db, login, client_user, trainer):
        booking = make_booking(db, client_user, trainer)
        login(trainer.user)
        response = api.patch(f"/bookings/{booking.id}/status", json={"status": "confirmed"})
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"

    def test_invalid_transition_carries_allowed_targets(self, api, db, login, client_user, trainer):
        booking = make_booking(db, client_user, trainer)
        login(trainer.user)
        response = api.patch(f"/bookings/{booking.id}/status", json={"status": "completed"})
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "invalid_transition"
        assert body["context"]["allowed"] == ["confirmed", "cancelled"]

    def test_stale_version(self, api, db, login, client_user, trainer):
        booking = make_booking(db, client_user, trainer)
        login(client_user)
        response = api.patch(
            f"/bookings/{booking.id}/status", json={"status": "cancelled", "version": 99}
        )
        assert response.status_code == 409
        assert response.json()["code"] == "stale_version"

    def test_reason_required_after_confirmation(self, api, db, login, client_user, trainer):
        booking = make_booking(db, client_user, trainer, status=BookingStatus.CONFIRMED)
        login(client_user)
        response = api.patch(f"/bookings/{booking.id}/status", json={"status": "cancelled"})
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"

    def test_schema_validation(self, api, login, client_user):
        login(client_user)
        response = api.post("/requests", json={"title": "No audience"})
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_business_validation(self, api, login, client_user):
        login(client_user)
        response = api.post(
            "/requests",
            json={"title": "T", "target_audience": "A", "budget_min": 500, "budget_max": 100},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_admin_routes_require_admin(self, api, db, login, client_user, trainer):
        booking = make_booking(db, client_user, None, status=BookingStatus.PENDING_ASSIGNMENT)
        login(client_user)
        response = api.post(f"/bookings/{booking.id}/assign", json={"trainer_id": trainer.id})
        assert response.status_code == 403

    def test_admin_assigns(self, api, db, login, admin, client_user, trainer):
        booking = make_booking(db, client_user, None, status=BookingStatus.PENDING_ASSIGNMENT)
        login(admin)
        response = api.post(f"/bookings/{booking.id}/assign", json={"trainer_id": trainer.id})
        assert response.status_code == 200
        assert response.json()["status"] == "pending"

    def test_closed_request_refuses_applications(self, api, db, login, client_user, trainer):
        request = make_request(db, client_user)
        login(client_user)
        assert api.post(f"/requests/{request.id}/close").status_code == 200

        login(trainer.user)
        response = api.post(f"/requests/{request.id}/applications", json={"proposed_price": 100})
        assert response.status_code == 409
        assert response.json()["code"] == "invalid_state"

    def test_expired_feedback_token(self, api):
        response = api.get("/feedback/not-a-real-token")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"
