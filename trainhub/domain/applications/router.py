"""Training application router - FastAPI endpoints for applications and selection"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import ApplicationStatus, User
from ..requests.schemas import RequestResponse
from .schemas import (
    ApplicationCreate,
    ApplicationResponse,
    ApplicationStatusUpdate,
    SelectTrainerRequest,
)
from .service import ApplicationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Training Applications"])


def get_application_service(db: Session = Depends(get_db)) -> ApplicationService:
    """Dependency injection for ApplicationService"""
    return ApplicationService(db)


@router.post(
    "/requests/{request_id}/applications", response_model=ApplicationResponse, status_code=201
)
async def submit_application(
    request_id: str,
    data: ApplicationCreate,
    current_user: User = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    """Apply to an open training request as the current trainer"""
    return service.submit_application(request_id, current_user, data)


@router.get("/requests/{request_id}/applications", response_model=list[ApplicationResponse])
async def list_request_applications(
    request_id: str,
    current_user: User = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    return service.list_request_applications(request_id, current_user)


@router.get("/applications/mine", response_model=list[ApplicationResponse])
async def list_my_applications(
    status: Optional[ApplicationStatus] = Query(None),
    current_user: User = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    """Applications submitted by the current trainer"""
    return service.list_trainer_applications(current_user, status)


@router.patch("/applications/{application_id}", response_model=ApplicationResponse)
async def update_application_status(
    application_id: str,
    data: ApplicationStatusUpdate,
    current_user: User = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    """Shortlist or reject an application"""
    return service.update_application_status(application_id, data.status, current_user)


@router.post("/requests/{request_id}/select", response_model=RequestResponse)
async def select_trainer(
    request_id: str,
    data: SelectTrainerRequest,
    current_user: User = Depends(get_current_user),
    service: ApplicationService = Depends(get_application_service),
):
    """Pick the winning application; every other application is rejected"""
    return service.select_trainer(request_id, data.application_id, current_user)
