from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from leaddesk.api.dependencies import get_current_identity
from leaddesk.api.errors import SERVICE_ERRORS, service_error_response
from leaddesk.core.database import get_db
from leaddesk.platform.security.context import Identity
from leaddesk.users.schemas import UserCreate, UserRead, UserUpdate
from leaddesk.users.service import user_service


router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("", response_model=list[UserRead])
def list_users(
    request: Request,
    include_inactive: bool = Query(default=True),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> list[UserRead] | JSONResponse:
    try:
        return user_service.list_users(db, identity, include_inactive=include_inactive)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.post("", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
    request: Request,
    dto: UserCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> UserRead | JSONResponse:
    try:
        return user_service.create_user(db, identity, dto)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.patch("/{user_id}", response_model=UserRead)
def update_user(
    request: Request,
    user_id: uuid.UUID,
    dto: UserUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> UserRead | JSONResponse:
    try:
        return user_service.update_user(db, identity, user_id, dto)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.delete("/{user_id}", response_model=UserRead)
def deactivate_user(
    request: Request,
    user_id: uuid.UUID,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> UserRead | JSONResponse:
    try:
        return user_service.deactivate_user(db, identity, user_id)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)
