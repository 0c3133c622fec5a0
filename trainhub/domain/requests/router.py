"""Training request router - FastAPI endpoints for the request catalog"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import RequestCreate, RequestResponse
from .service import RequestService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["Training Requests"])


def get_request_service(db: Session = Depends(get_db)) -> RequestService:
    """Dependency injection for RequestService"""
    return RequestService(db)


@router.post("", response_model=RequestResponse, status_code=201)
async def create_request(
    data: RequestCreate,
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    """Post a new training request"""
    return service.create_request(current_user, data)


@router.get("", response_model=list[RequestResponse])
async def list_open_requests(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    """Feed of requests currently accepting trainer applications"""
    return service.list_open_requests(limit, offset)


@router.get("/mine", response_model=list[RequestResponse])
async def list_my_requests(
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    """All requests posted by the current client"""
    return service.list_client_requests(current_user)


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: str,
    _current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    return service.get_request(request_id)


@router.post("/{request_id}/close", response_model=RequestResponse)
async def close_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    """Stop accepting applications for an open request"""
    return service.close_request(request_id, current_user)


@router.post("/{request_id}/cancel", response_model=RequestResponse)
async def cancel_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    """Withdraw a request that has not turned into a booking yet"""
    return service.cancel_request(request_id, current_user)
