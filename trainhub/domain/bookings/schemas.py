"""Booking schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...models import BookingStatus
from ...shared.timeutils import to_naive_utc
from ...shared.validators import validate_email


class BookingCreate(BaseModel):
    """Schema for booking a trainer, directly or from a selected request"""

    trainer_id: Optional[str] = None
    request_id: Optional[str] = None
    training_topic: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration_hours: Optional[float] = None
    total_amount: Optional[float] = None
    paid: bool = False
    # Organisational metadata
    organization_name: Optional[str] = None
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    location: Optional[str] = None
    delivery_mode: Optional[str] = None
    team_size: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def normalize_datetime(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @field_validator("client_email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return validate_email(v)


class BookingStatusUpdate(BaseModel):
    """Requested booking status change; version guards against stale writes"""

    status: BookingStatus
    reason: Optional[str] = None
    version: Optional[int] = None


class AssignTrainerRequest(BaseModel):
    trainer_id: str


class PaymentSignal(BaseModel):
    """Outcome reported by the payment gateway"""

    paid: bool


class BookingResponse(BaseModel):
    """Schema for booking response"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    trainer_id: Optional[str]
    student_id: str
    request_id: Optional[str]
    training_topic: str
    start_time: datetime
    end_time: datetime
    duration_hours: float
    total_amount: float
    status: str
    payment_status: str
    agreement_id: Optional[str]
    organization_name: Optional[str]
    client_name: Optional[str]
    client_email: Optional[str]
    location: Optional[str]
    delivery_mode: Optional[str]
    team_size: Optional[int]
    notes: Optional[str]
    cancellation_reason: Optional[str]
    cancelled_by: Optional[str]
    cancelled_at: Optional[datetime]
    completed_at: Optional[datetime]
    version: int
    created_at: datetime
