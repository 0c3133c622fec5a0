"""Tests for the notification outbox, dispatch and in-app notification endpoints."""

from unittest.mock import AsyncMock

import pytest

from tests.conftest import make_user, outbox_entries
from trainhub import email_service
from trainhub.email_templates import lifecycle_notification_template, resolve_cta
from trainhub.models import Notification, OutboxStatus
from trainhub.services import notification_service
from trainhub.services.notification_service import (
    NotificationDispatcher,
    NotificationType,
    dispatch_pending_notifications,
)


def queue(db, user, type=NotificationType.BOOKING_CONFIRMED, **data):
    entry = NotificationDispatcher(db).notify(
        user.id,
        type,
        "Booking confirmed",
        "The booking for 'Effective Feedback' is confirmed.",
        {"booking_id": "b-1", "topic": "Effective Feedback", "status": "confirmed", **data},
    )
    db.commit()
    return entry


class TestDispatcher:
    def test_notify_only_adds_to_session(self, db, client_user):
        NotificationDispatcher(db).notify(
            client_user.id, NotificationType.BOOKING_CREATED, "New booking", "msg"
        )
        db.rollback()
        assert outbox_entries(db, client_user.id) == []

    def test_missing_recipient_is_skipped(self, db):
        assert NotificationDispatcher(db).notify(None, "booking_created", "t", "m") is None

    def test_enum_type_is_stored_as_value(self, db, client_user):
        entry = queue(db, client_user)
        assert entry.type == "booking_confirmed"
        assert entry.status == OutboxStatus.PENDING.value


class TestDispatchPending:
    @pytest.mark.asyncio
    async def test_creates_in_app_notifications(self, db, client_user):
        queue(db, client_user)
        queue(db, client_user, type=NotificationType.AGREEMENT_READY)

        summary = await dispatch_pending_notifications(db)

        assert summary["dispatched"] == 2
        notifications = db.query(Notification).filter(Notification.user_id == client_user.id).all()
        assert {n.type for n in notifications} == {"booking_confirmed", "agreement_ready"}
        for entry in outbox_entries(db, client_user.id):
            assert entry.status == OutboxStatus.DISPATCHED.value
            assert entry.dispatched_at is not None

    @pytest.mark.asyncio
    async def test_nothing_pending(self, db):
        summary = await dispatch_pending_notifications(db)
        assert summary == {"dispatched": 0, "failed": 0, "retrying": 0}

    @pytest.mark.asyncio
    async def test_failure_is_retried_then_marked_failed(self, db, client_user, monkeypatch):
        entry = queue(db, client_user)
        monkeypatch.setattr(
            notification_service, "_deliver", AsyncMock(side_effect=RuntimeError("smtp down"))
        )
        monkeypatch.setattr(notification_service, "NOTIFICATION_MAX_ATTEMPTS", 2)

        first = await dispatch_pending_notifications(db)
        assert first["retrying"] == 1
        db.refresh(entry)
        assert entry.status == OutboxStatus.PENDING.value
        assert entry.attempts == 1
        assert "smtp down" in entry.last_error

        second = await dispatch_pending_notifications(db)
        assert second["failed"] == 1
        db.refresh(entry)
        assert entry.status == OutboxStatus.FAILED.value
        assert db.query(Notification).count() == 0

    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(self, db, client_user, monkeypatch):
        other = make_user(db)
        bad = queue(db, client_user)
        queue(db, other)
        real_deliver = notification_service._deliver

        async def flaky(session, entry):
            if entry.id == bad.id:
                raise RuntimeError("boom")
            await real_deliver(session, entry)

        monkeypatch.setattr(notification_service, "_deliver", flaky)

        summary = await dispatch_pending_notifications(db)

        assert summary["dispatched"] == 1
        assert summary["retrying"] == 1
        assert db.query(Notification).filter(Notification.user_id == other.id).count() == 1

    @pytest.mark.asyncio
    async def test_email_sent_when_enabled(self, db, client_user, monkeypatch):
        queue(db, client_user)
        send = AsyncMock(return_value={"id": "email-1"})
        monkeypatch.setattr(notification_service, "NOTIFICATION_EMAIL_ENABLED", True)
        monkeypatch.setattr(email_service, "send_lifecycle_email", send)

        summary = await dispatch_pending_notifications(db)

        assert summary["dispatched"] == 1
        send.assert_awaited_once()
        kwargs = send.await_args.kwargs
        assert kwargs["to"] == client_user.email
        assert kwargs["notification_type"] == "booking_confirmed"

    @pytest.mark.asyncio
    async def test_unconfigured_email_still_dispatches(self, db, client_user, monkeypatch):
        queue(db, client_user)
        monkeypatch.setattr(notification_service, "NOTIFICATION_EMAIL_ENABLED", True)
        monkeypatch.setattr(
            email_service,
            "send_lifecycle_email",
            AsyncMock(side_effect=email_service.EmailNotConfigured("RESEND_API_KEY missing")),
        )

        summary = await dispatch_pending_notifications(db)

        assert summary["dispatched"] == 1
        assert db.query(Notification).count() == 1


class TestEmailTemplate:
    def test_booking_cta_links_to_booking(self):
        url, label = resolve_cta("booking_confirmed", {"booking_id": "b-42"})
        assert url.endswith("/dashboard/bookings/b-42")
        assert label

    def test_unknown_type_has_no_cta(self):
        assert resolve_cta("something_else", {}) == (None, None)

    def test_template_escapes_content(self):
        mjml = lifecycle_notification_template(
            user_name="<Dana>",
            title="Booking confirmed",
            message="Topic <script>",
            notification_type="booking_confirmed",
            data={"topic": "Effective Feedback", "status": "confirmed"},
        )
        assert "&lt;Dana&gt;" in mjml
        assert "<script>" not in mjml
        assert "Effective Feedback" in mjml

    def test_stored_text_is_not_escaped_twice(self):
        # Topics are stored escaped by the booking sanitizer
        mjml = lifecycle_notification_template(
            user_name="Dana & Co",
            title="Booking confirmed",
            message="The booking for 'Q&amp;A' is confirmed.",
            notification_type="booking_confirmed",
            data={"topic": "Q&amp;A", "status": "confirmed"},
        )
        assert "Training: Q&amp;A" in mjml
        assert "Hi Dana &amp; Co," in mjml
        assert "&amp;amp;" not in mjml


class TestNotificationEndpoints:
    def _seed(self, db, user, count: int = 3):
        for i in range(count):
            db.add(
                Notification(
                    user_id=user.id, type="booking_created", title=f"n{i}", message="m", data={}
                )
            )
        db.commit()
        return db.query(Notification).filter(Notification.user_id == user.id).all()

    def test_list_and_unread_count(self, api, db, login, client_user):
        self._seed(db, client_user)
        self._seed(db, make_user(db), count=2)
        login(client_user)

        listed = api.get("/notifications")
        assert listed.status_code == 200
        assert len(listed.json()) == 3

        count = api.get("/notifications/unread-count")
        assert count.json() == {"unread_count": 3}

    def test_mark_read_ignores_foreign_ids(self, api, db, login, client_user):
        mine = self._seed(db, client_user, count=2)
        theirs = self._seed(db, make_user(db), count=1)
        login(client_user)

        response = api.post(
            "/notifications/mark-read",
            json={"notification_ids": [mine[0].id, theirs[0].id]},
        )

        assert response.status_code == 200
        assert response.json()["updated"] == 1
        assert api.get("/notifications/unread-count").json() == {"unread_count": 1}
        unread = api.get("/notifications", params={"unread_only": True}).json()
        assert [n["id"] for n in unread] == [mine[1].id]

    def test_mark_all_read(self, api, db, login, client_user):
        self._seed(db, client_user)
        login(client_user)

        response = api.post("/notifications/mark-all-read")

        assert response.json()["updated"] == 3
        assert api.get("/notifications/unread-count").json() == {"unread_count": 0}
