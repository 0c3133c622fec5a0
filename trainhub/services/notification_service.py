"""
Notification Dispatcher
Records notification intents in the outbox alongside lifecycle state changes and
delivers them later (in-app notification + email) from the background worker
"""

import logging
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from ..config import NOTIFICATION_BATCH_SIZE, NOTIFICATION_EMAIL_ENABLED, NOTIFICATION_MAX_ATTEMPTS
from ..models import Notification, NotificationOutbox, OutboxStatus, User
from ..shared.timeutils import utc_now

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    BOOKING_PENDING = "booking_pending"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_COMPLETED = "booking_completed"
    BOOKING_CREATED = "booking_created"
    AGREEMENT_READY = "agreement_ready"
    AGREEMENT_SIGNED = "agreement_signed"
    TRAINING_REQUEST_CREATED = "training_request_created"
    TRAINING_APPLICATION_RECEIVED = "training_application_received"
    TRAINING_APPLICATION_SHORTLISTED = "training_application_shortlisted"
    TRAINING_APPLICATION_ACCEPTED = "training_application_accepted"
    TRAINING_APPLICATION_REJECTED = "training_application_rejected"
    FEEDBACK_RECEIVED = "feedback_received"


class NotificationDispatcher:
    """
    Fire-and-forget notification emission.

    notify() only adds an outbox row to the caller's session, so the intent is
    committed or rolled back together with the state change that caused it.
    """

    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        user_id: Optional[str],
        type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> Optional[NotificationOutbox]:
        if not user_id:
            logger.debug(f"⚠️ No recipient for {type} notification, skipping")
            return None

        entry = NotificationOutbox(
            user_id=user_id,
            type=type.value if isinstance(type, Enum) else type,
            title=title,
            message=message,
            data=data or {},
        )
        self.db.add(entry)
        logger.debug(f"📨 Queued {entry.type} notification for user {user_id}")
        return entry


async def _deliver(db: Session, entry: NotificationOutbox) -> None:
    """Create the in-app notification and send the email counterpart"""
    db.add(
        Notification(
            user_id=entry.user_id,
            type=entry.type,
            title=entry.title,
            message=entry.message,
            data=entry.data or {},
        )
    )

    if not NOTIFICATION_EMAIL_ENABLED:
        return

    from ..email_service import EmailNotConfigured, send_lifecycle_email

    user = db.query(User).filter(User.id == entry.user_id).first()
    if not user or not user.email:
        logger.debug(f"⚠️ No email address for notification {entry.id}")
        return

    try:
        await send_lifecycle_email(
            to=user.email,
            user_name=user.full_name,
            notification_type=entry.type,
            title=entry.title,
            message=entry.message,
            data=entry.data or {},
        )
    except EmailNotConfigured:
        logger.debug("ℹ️ Email provider not configured, in-app notification only")


async def dispatch_pending_notifications(
    db: Session, batch_size: int = NOTIFICATION_BATCH_SIZE
) -> dict:
    """
    Deliver pending outbox entries.

    Each entry is committed on its own so one failing recipient never blocks
    the rest. Failures are logged and retried on the next run until
    NOTIFICATION_MAX_ATTEMPTS, then the entry is marked failed.

    Returns:
        dict: Counts of dispatched and failed entries
    """
    summary = {"dispatched": 0, "failed": 0, "retrying": 0}

    pending = (
        db.query(NotificationOutbox)
        .filter(NotificationOutbox.status == OutboxStatus.PENDING.value)
        .order_by(NotificationOutbox.created_at)
        .limit(batch_size)
        .all()
    )

    for entry in pending:
        try:
            await _deliver(db, entry)
            entry.status = OutboxStatus.DISPATCHED.value
            entry.dispatched_at = utc_now()
            entry.attempts += 1
            db.commit()
            summary["dispatched"] += 1
        except Exception as e:
            db.rollback()
            entry.attempts += 1
            entry.last_error = str(e)[:1000]
            if entry.attempts >= NOTIFICATION_MAX_ATTEMPTS:
                entry.status = OutboxStatus.FAILED.value
                summary["failed"] += 1
                logger.error(
                    f"❌ Giving up on {entry.type} notification {entry.id} after {entry.attempts} attempts: {e}"
                )
            else:
                summary["retrying"] += 1
                logger.warning(f"⚠️ Failed to dispatch {entry.type} notification {entry.id}: {e}")
            db.commit()

    if pending:
        logger.info(f"📊 Notification dispatch summary: {summary}")
    return summary
