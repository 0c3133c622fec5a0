import uuid
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import relationship

from .database import Base
from .errors import InvalidState
from .shared.timeutils import utc_now


def generate_id():
    """Generate a UUID primary key (the marketplace store keys every table by uuid)"""
    return str(uuid.uuid4())


class UserRole(str, Enum):
    ADMIN = "admin"
    TRAINER = "trainer"
    USER = "user"


class TrainerStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    SUSPENDED = "suspended"


class RequestStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    TRAINER_SELECTED = "trainer_selected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    SHORTLISTED = "shortlisted"
    SELECTED = "selected"
    REJECTED = "rejected"


class BookingStatus(str, Enum):
    PENDING_ASSIGNMENT = "pending_assignment"
    PENDING_PAYMENT = "pending_payment"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SignatureStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class OutboxStatus(str, Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    FAILED = "failed"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_id)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    organization_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    # Authoritative role; never taken from a request payload
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    trainer_profile = relationship("Trainer", back_populates="user", uselist=False)


class Trainer(Base):
    __tablename__ = "trainers"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    hourly_rate = Column(Float, nullable=True)
    location = Column(String(255), nullable=True)
    status = Column(String(30), default=TrainerStatus.APPROVED.value, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    user = relationship("User", back_populates="trainer_profile")


class TrainingRequest(Base):
    __tablename__ = "training_requests"

    id = Column(String(36), primary_key=True, default=generate_id)
    client_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    target_audience = Column(String(500), nullable=False)
    expected_start_date = Column(DateTime, nullable=True)
    expected_end_date = Column(DateTime, nullable=True)
    duration_hours = Column(Float, nullable=True)
    delivery_mode = Column(String(50), nullable=True)  # online, onsite, hybrid
    location = Column(String(255), nullable=True)
    budget_min = Column(Float, nullable=True)
    budget_max = Column(Float, nullable=True)
    application_deadline = Column(DateTime, nullable=True)
    # Status workflow: open → trainer_selected → in_progress → completed
    # open → closed (owner stops accepting applications)
    # open/trainer_selected → cancelled (owner withdraws the request)
    status = Column(String(30), default=RequestStatus.OPEN.value, nullable=False, index=True)
    selected_trainer_id = Column(String(36), ForeignKey("trainers.id"), nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    client = relationship("User")
    selected_trainer = relationship("Trainer")
    applications = relationship(
        "TrainingApplication", back_populates="request", order_by="TrainingApplication.created_at"
    )


class TrainingApplication(Base):
    __tablename__ = "training_applications"
    # One application per trainer per request
    __table_args__ = (
        UniqueConstraint("request_id", "trainer_id", name="uq_application_request_trainer"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    request_id = Column(String(36), ForeignKey("training_requests.id"), nullable=False, index=True)
    trainer_id = Column(String(36), ForeignKey("trainers.id"), nullable=False, index=True)
    proposed_price = Column(Float, nullable=False)
    proposed_start_date = Column(DateTime, nullable=True)
    proposed_end_date = Column(DateTime, nullable=True)
    proposed_duration_hours = Column(Float, nullable=True)
    message_to_client = Column(Text, nullable=True)
    proposed_syllabus = Column(Text, nullable=True)
    availability_notes = Column(Text, nullable=True)
    status = Column(String(30), default=ApplicationStatus.PENDING.value, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    request = relationship("TrainingRequest", back_populates="applications")
    trainer = relationship("Trainer")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_booking_time_order"),
        CheckConstraint("total_amount >= 0", name="ck_booking_amount_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    # Null only while the booking waits for a trainer (pending_assignment)
    trainer_id = Column(String(36), ForeignKey("trainers.id"), nullable=True, index=True)
    student_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    request_id = Column(String(36), ForeignKey("training_requests.id"), nullable=True)
    training_topic = Column(String(255), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_hours = Column(Float, nullable=False)
    total_amount = Column(Float, nullable=False)
    status = Column(String(30), default=BookingStatus.PENDING.value, nullable=False, index=True)
    payment_status = Column(String(20), default="unpaid", nullable=False)  # paid, unpaid
    agreement_id = Column(String(36), nullable=True)
    # Organisational metadata
    organization_name = Column(String(255), nullable=True)
    client_name = Column(String(255), nullable=True)
    client_email = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    delivery_mode = Column(String(50), nullable=True)
    team_size = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    # Lifecycle audit
    cancellation_reason = Column(String(1000), nullable=True)
    cancelled_by = Column(String(36), nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    # Every UPDATE checks the version it read; a concurrent writer gets StaleDataError
    __mapper_args__ = {"version_id_col": version}

    trainer = relationship("Trainer")
    student = relationship("User")
    request = relationship("TrainingRequest")
    agreement = relationship("Agreement", back_populates="booking", uselist=False)


class Agreement(Base):
    __tablename__ = "agreements"

    id = Column(String(36), primary_key=True, default=generate_id)
    # Unique: one agreement per booking, also the insert-if-absent guard
    booking_id = Column(String(36), ForeignKey("bookings.id"), unique=True, nullable=False)
    hourly_rate = Column(Float, nullable=False)
    total_cost = Column(Float, nullable=False)
    agreement_terms = Column(JSON, nullable=False)
    client_signature_status = Column(
        String(20), default=SignatureStatus.PENDING.value, nullable=False
    )
    trainer_signature_status = Column(
        String(20), default=SignatureStatus.PENDING.value, nullable=False
    )
    client_agreed_at = Column(DateTime, nullable=True)
    trainer_agreed_at = Column(DateTime, nullable=True)
    # Set iff both signature statuses are accepted
    completed_at = Column(DateTime, nullable=True)
    rejected_by = Column(String(20), nullable=True)  # client, trainer
    rejected_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    booking = relationship("Booking", back_populates="agreement")


@event.listens_for(Agreement, "before_update")
def _freeze_agreement_terms(mapper, connection, target):
    if inspect(target).attrs.agreement_terms.history.has_changes():
        raise InvalidState("Agreement terms cannot be changed once the agreement exists")


class FeedbackLink(Base):
    __tablename__ = "feedback_links"
    id = Column(String(36), primary_key=True, default=generate_id)
    booking_id = Column(String(36), ForeignKey("bookings.id"), nullable=False, index=True)
    token = Column(String(128), unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    booking = relationship("Booking")
    responses = relationship("FeedbackResponse", back_populates="link")


# At most one active link per booking
Index(
    "uq_feedback_link_active_booking",
    FeedbackLink.booking_id,
    unique=True,
    sqlite_where=FeedbackLink.is_active == True,  # noqa: E712
    postgresql_where=FeedbackLink.is_active == True,  # noqa: E712
)


class FeedbackResponse(Base):
    __tablename__ = "feedback_responses"
    __table_args__ = (
        UniqueConstraint(
            "feedback_link_id", "respondent_email", name="uq_feedback_response_respondent"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    feedback_link_id = Column(String(36), ForeignKey("feedback_links.id"), nullable=False)
    respondent_name = Column(String(255), nullable=False)
    respondent_email = Column(String(255), nullable=False)  # stored lower-cased
    organization_name = Column(String(255), nullable=True)
    rating = Column(Integer, nullable=False)
    communication_rating = Column(Integer, nullable=True)
    punctuality_rating = Column(Integer, nullable=True)
    skills_rating = Column(Integer, nullable=True)
    review_comment = Column(Text, nullable=True)
    would_recommend = Column(Boolean, nullable=True)
    submitted_at = Column(DateTime, default=utc_now, nullable=False)

    link = relationship("FeedbackLink", back_populates="responses")


class Notification(Base):
    """In-app notification shown in the user's notification list"""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(60), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, default=dict, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)


class NotificationOutbox(Base):
    """Notification intent written in the same transaction as the state change"""

    __tablename__ = "notification_outbox"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    type = Column(String(60), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, default=dict, nullable=False)
    status = Column(String(20), default=OutboxStatus.PENDING.value, nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    dispatched_at = Column(DateTime, nullable=True)
