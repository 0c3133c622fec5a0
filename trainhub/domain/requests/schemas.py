"""Training request schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from ...shared.timeutils import to_naive_utc


class RequestCreate(BaseModel):
    """Schema for posting a new training request"""

    title: str
    target_audience: str
    description: Optional[str] = None
    expected_start_date: Optional[datetime] = None
    expected_end_date: Optional[datetime] = None
    duration_hours: Optional[float] = None
    delivery_mode: Optional[str] = None  # online, onsite, hybrid
    location: Optional[str] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    application_deadline: Optional[datetime] = None

    @field_validator("title", "target_audience")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("expected_start_date", "expected_end_date", "application_deadline")
    @classmethod
    def normalize_datetime(cls, v):
        return to_naive_utc(v) if v else v


class RequestResponse(BaseModel):
    """Schema for training request response"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    client_id: str
    title: str
    description: Optional[str]
    target_audience: str
    expected_start_date: Optional[datetime]
    expected_end_date: Optional[datetime]
    duration_hours: Optional[float]
    delivery_mode: Optional[str]
    location: Optional[str]
    budget_min: Optional[float]
    budget_max: Optional[float]
    application_deadline: Optional[datetime]
    status: str
    selected_trainer_id: Optional[str]
    created_at: datetime
