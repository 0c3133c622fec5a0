"""Shared test fixtures and helpers."""

import os
import uuid

# Configure before any trainhub import; config reads the environment at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["NOTIFICATION_EMAIL_ENABLED"] = "false"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["DB_RETRY_BACKOFF"] = "0"

from datetime import datetime, timedelta
from typing import Optional

import pytest

from trainhub import models  # noqa: F401
from trainhub.database import Base, SessionLocal, engine
from trainhub.domain.requests.schemas import RequestCreate
from trainhub.domain.requests.service import RequestService
from trainhub.models import (
    Booking,
    BookingStatus,
    NotificationOutbox,
    Trainer,
    TrainingRequest,
    User,
    UserRole,
)
from trainhub.shared.timeutils import utc_now


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _next() -> str:
    return uuid.uuid4().hex[:12]


def make_user(
    db,
    role: UserRole = UserRole.USER,
    email: Optional[str] = None,
    full_name: str = "Dana Client",
    organization_name: Optional[str] = "Acme Corp",
) -> User:
    """Helper to create a User row."""
    n = _next()
    user = User(
        firebase_uid=f"uid-{n}",
        email=email or f"user{n}@example.com",
        full_name=full_name,
        organization_name=organization_name,
        role=role.value,
    )
    db.add(user)
    db.commit()
    return user


def make_trainer(db, name: str = "Sam Trainer", hourly_rate: Optional[float] = 100.0) -> Trainer:
    """Helper to create a trainer user with a trainer profile."""
    user = make_user(db, role=UserRole.TRAINER, full_name=name, organization_name=None)
    trainer = Trainer(user_id=user.id, name=name, title="Leadership Coach", hourly_rate=hourly_rate)
    db.add(trainer)
    db.commit()
    return trainer


def make_request(db, client: User, **overrides) -> TrainingRequest:
    """Helper to post a training request through the service."""
    fields = {
        "title": "Leadership Workshop",
        "target_audience": "Team leads",
        "budget_min": 100.0,
        "budget_max": 200.0,
    }
    fields.update(overrides)
    return RequestService(db).create_request(client, RequestCreate(**fields))


def make_booking(
    db,
    client: User,
    trainer: Optional[Trainer],
    status: BookingStatus = BookingStatus.PENDING,
    total_amount: float = 400.0,
    duration_hours: float = 4.0,
    **overrides,
) -> Booking:
    """Helper to insert a booking directly at a given status."""
    start = utc_now() + timedelta(days=7)
    fields = {
        "trainer_id": trainer.id if trainer else None,
        "student_id": client.id,
        "training_topic": "Effective Feedback",
        "start_time": start,
        "end_time": start + timedelta(hours=duration_hours),
        "duration_hours": duration_hours,
        "total_amount": total_amount,
        "status": status.value,
    }
    fields.update(overrides)
    booking = Booking(**fields)
    db.add(booking)
    db.commit()
    return booking


def outbox_entries(db, user_id: Optional[str] = None, type: Optional[str] = None):
    """Helper to read queued notification intents."""
    query = db.query(NotificationOutbox)
    if user_id:
        query = query.filter(NotificationOutbox.user_id == user_id)
    if type:
        query = query.filter(NotificationOutbox.type == type)
    return query.order_by(NotificationOutbox.created_at).all()


def future(days: int = 14) -> datetime:
    return utc_now() + timedelta(days=days)


@pytest.fixture
def client_user(db):
    return make_user(db)


@pytest.fixture
def admin(db):
    return make_user(db, role=UserRole.ADMIN, full_name="Ada Admin", organization_name=None)


@pytest.fixture
def trainer(db):
    return make_trainer(db)


@pytest.fixture
def other_trainer(db):
    return make_trainer(db, name="Robin Rival", hourly_rate=90.0)


@pytest.fixture
def auth_state():
    return {"user": None}


@pytest.fixture
def api(db, auth_state):
    """FastAPI TestClient sharing the test session; the acting user comes from auth_state."""
    from fastapi.testclient import TestClient

    from trainhub.auth import get_current_user
    from trainhub.database import get_db
    from trainhub.main import app

    def _get_db():
        yield db

    def _current_user():
        return auth_state["user"]

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user] = _current_user
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def login(auth_state):
    def _login(user: User) -> User:
        auth_state["user"] = user
        return user

    return _login
