"""Training application repository - Database operations for applications"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import ApplicationStatus, Trainer, TrainingApplication


class ApplicationRepository:
    """Repository for training application database operations"""

    @staticmethod
    def get_by_id(db: Session, application_id: str) -> Optional[TrainingApplication]:
        return (
            db.query(TrainingApplication).filter(TrainingApplication.id == application_id).first()
        )

    @staticmethod
    def get_for_update(db: Session, application_id: str) -> Optional[TrainingApplication]:
        return (
            db.query(TrainingApplication)
            .filter(TrainingApplication.id == application_id)
            .with_for_update()
            .first()
        )

    @staticmethod
    def get_by_request_and_trainer(
        db: Session, request_id: str, trainer_id: str
    ) -> Optional[TrainingApplication]:
        return (
            db.query(TrainingApplication)
            .filter(
                TrainingApplication.request_id == request_id,
                TrainingApplication.trainer_id == trainer_id,
            )
            .first()
        )

    @staticmethod
    def list_by_request(db: Session, request_id: str) -> list[TrainingApplication]:
        return (
            db.query(TrainingApplication)
            .filter(TrainingApplication.request_id == request_id)
            .order_by(TrainingApplication.created_at)
            .all()
        )

    @staticmethod
    def list_by_trainer(
        db: Session, trainer_id: str, status: Optional[str] = None
    ) -> list[TrainingApplication]:
        query = db.query(TrainingApplication).filter(TrainingApplication.trainer_id == trainer_id)
        if status:
            query = query.filter(TrainingApplication.status == status)
        return query.order_by(TrainingApplication.created_at.desc()).all()

    @staticmethod
    def get_competing_siblings(
        db: Session, request_id: str, winner_id: str
    ) -> list[TrainingApplication]:
        """Every other application on the request that is not already rejected"""
        return (
            db.query(TrainingApplication)
            .filter(
                TrainingApplication.request_id == request_id,
                TrainingApplication.id != winner_id,
                TrainingApplication.status != ApplicationStatus.REJECTED.value,
            )
            .with_for_update()
            .all()
        )

    @staticmethod
    def create(db: Session, request_id: str, trainer_id: str, **fields) -> TrainingApplication:
        """Create an application; the (request, trainer) unique constraint fires at flush"""
        application = TrainingApplication(request_id=request_id, trainer_id=trainer_id, **fields)
        db.add(application)
        db.flush()
        return application

    @staticmethod
    def get_trainer_by_user_id(db: Session, user_id: str) -> Optional[Trainer]:
        """Trainer profile owned by a user"""
        return db.query(Trainer).filter(Trainer.user_id == user_id).first()
