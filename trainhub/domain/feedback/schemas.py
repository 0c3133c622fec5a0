"""Feedback schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, computed_field, field_validator

from ...config import FRONTEND_URL
from ...shared.validators import validate_email, validate_rating


class FeedbackSubmission(BaseModel):
    """Public feedback form payload"""

    respondent_name: str
    respondent_email: str
    organization_name: Optional[str] = None
    rating: int
    communication_rating: Optional[int] = None
    punctuality_rating: Optional[int] = None
    skills_rating: Optional[int] = None
    review_comment: Optional[str] = None
    would_recommend: Optional[bool] = None

    @field_validator("respondent_name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("respondent_email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return validate_email(v)

    @field_validator("rating", "communication_rating", "punctuality_rating", "skills_rating")
    @classmethod
    def rating_in_range(cls, v, info):
        return validate_rating(v, info.field_name)


class FeedbackLinkResponse(BaseModel):
    """Issued feedback link, shared with training participants"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    token: str
    is_active: bool
    expires_at: datetime
    created_at: datetime

    @computed_field
    @property
    def url(self) -> str:
        return f"{FRONTEND_URL}/feedback/{self.token}"


class FeedbackFormInfo(BaseModel):
    """What a participant sees when opening a feedback link"""

    training_topic: str
    trainer_name: Optional[str]
    start_time: datetime
    end_time: datetime
    expires_at: datetime


class FeedbackResponseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    feedback_link_id: str
    respondent_name: str
    respondent_email: str
    organization_name: Optional[str]
    rating: int
    communication_rating: Optional[int]
    punctuality_rating: Optional[int]
    skills_rating: Optional[int]
    review_comment: Optional[str]
    would_recommend: Optional[bool]
    submitted_at: datetime
