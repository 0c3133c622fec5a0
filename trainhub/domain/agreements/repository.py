"""Agreement repository - Database operations for agreements"""

from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from ...models import Agreement, SignatureStatus


class AgreementRepository:
    """Repository for agreement database operations.

    Signature writes are conditional UPDATEs; the returned row count tells the
    caller whether its compare-and-set won.
    """

    @staticmethod
    def get_by_id(db: Session, agreement_id: str) -> Optional[Agreement]:
        return db.query(Agreement).filter(Agreement.id == agreement_id).first()

    @staticmethod
    def get_by_booking_id(db: Session, booking_id: str) -> Optional[Agreement]:
        return db.query(Agreement).filter(Agreement.booking_id == booking_id).first()

    @staticmethod
    def create(db: Session, booking_id: str, **fields) -> Agreement:
        """Insert an agreement; the unique booking_id constraint fires at flush"""
        agreement = Agreement(booking_id=booking_id, **fields)
        db.add(agreement)
        db.flush()
        return agreement

    @staticmethod
    def accept_signature(db: Session, agreement_id: str, party: str, signed_at: datetime) -> int:
        """Mark one party's signature accepted if it is still pending"""
        status_column = getattr(Agreement, f"{party}_signature_status")
        result = db.execute(
            update(Agreement)
            .where(
                Agreement.id == agreement_id,
                status_column == SignatureStatus.PENDING.value,
            )
            .values(
                {
                    f"{party}_signature_status": SignatureStatus.ACCEPTED.value,
                    f"{party}_agreed_at": signed_at,
                    "updated_at": signed_at,
                }
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    def mark_completed(db: Session, agreement_id: str, completed_at: datetime) -> int:
        """Stamp completed_at once both signatures are in; only one caller can win"""
        result = db.execute(
            update(Agreement)
            .where(
                Agreement.id == agreement_id,
                Agreement.client_signature_status == SignatureStatus.ACCEPTED.value,
                Agreement.trainer_signature_status == SignatureStatus.ACCEPTED.value,
                Agreement.completed_at.is_(None),
            )
            .values(completed_at=completed_at, updated_at=completed_at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
