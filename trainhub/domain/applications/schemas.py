"""Training application schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...models import ApplicationStatus
from ...shared.timeutils import to_naive_utc


class ApplicationCreate(BaseModel):
    """Schema for a trainer's proposal against a training request"""

    proposed_price: float
    proposed_start_date: Optional[datetime] = None
    proposed_end_date: Optional[datetime] = None
    proposed_duration_hours: Optional[float] = None
    message_to_client: Optional[str] = None
    proposed_syllabus: Optional[str] = None
    availability_notes: Optional[str] = None

    @field_validator("proposed_start_date", "proposed_end_date")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v) if v else v


class ApplicationStatusUpdate(BaseModel):
    """Client decision on an application (shortlist or reject)"""

    status: ApplicationStatus


class SelectTrainerRequest(BaseModel):
    application_id: str


class ApplicationResponse(BaseModel):
    """Schema for training application response"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    trainer_id: str
    proposed_price: float
    proposed_start_date: Optional[datetime]
    proposed_end_date: Optional[datetime]
    proposed_duration_hours: Optional[float]
    message_to_client: Optional[str]
    proposed_syllabus: Optional[str]
    availability_notes: Optional[str]
    status: str
    created_at: datetime
