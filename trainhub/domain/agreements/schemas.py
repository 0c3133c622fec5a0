"""Agreement schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict


class SignatureRequest(BaseModel):
    """Optional explicit party; it must match the party resolved from the caller"""

    party: Optional[Literal["client", "trainer"]] = None


class AgreementResponse(BaseModel):
    """Schema for agreement response"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    hourly_rate: float
    total_cost: float
    agreement_terms: dict[str, Any]
    client_signature_status: str
    trainer_signature_status: str
    client_agreed_at: Optional[datetime]
    trainer_agreed_at: Optional[datetime]
    completed_at: Optional[datetime]
    rejected_by: Optional[str]
    rejected_at: Optional[datetime]
    created_at: datetime
