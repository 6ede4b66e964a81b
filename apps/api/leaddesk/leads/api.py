from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from leaddesk.api.dependencies import get_current_identity
from leaddesk.api.errors import SERVICE_ERRORS, service_error_response
from leaddesk.core.database import get_db
from leaddesk.leads.models import LeadStatus, SurveyStatus
from leaddesk.leads.schemas import (
    LeadCreate,
    LeadFilters,
    LeadPage,
    LeadRead,
    LeadSort,
    LeadUpdate,
    SurveyStatusUpdate,
)
from leaddesk.leads.service import lead_mutation_service, lead_query_service
from leaddesk.platform.security.context import Identity


router = APIRouter(prefix="/api/leads", tags=["leads"])


@router.get("", response_model=LeadPage)
def list_leads(
    request: Request,
    search: str | None = Query(default=None),
    status_filter: LeadStatus | None = Query(default=None, alias="status"),
    survey_status: SurveyStatus | None = Query(default=None),
    account_manager: str | None = Query(default=None),
    field_rep: str | None = Query(default=None),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    postcode: str | None = Query(default=None),
    sort: str = Query(default="created_at"),
    direction: str = Query(default="desc"),
    page: int = Query(default=1),
    page_size: int = Query(default=25),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> LeadPage | JSONResponse:
    try:
        return lead_query_service.list_leads(
            db,
            identity,
            filters=LeadFilters(
                search=search,
                status=status_filter,
                survey_status=survey_status,
                account_manager=account_manager,
                field_rep=field_rep,
                date_from=date_from,
                date_to=date_to,
                postcode=postcode,
            ),
            sort=LeadSort(column=sort, direction=direction),
            page=page,
            page_size=page_size,
        )
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.post("", response_model=LeadRead, status_code=status.HTTP_201_CREATED)
def create_lead(
    request: Request,
    dto: LeadCreate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> LeadRead | JSONResponse:
    try:
        return lead_mutation_service.create_lead(db, identity, dto)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.get("/{lead_id}", response_model=LeadRead)
def get_lead(
    request: Request,
    lead_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> LeadRead | JSONResponse:
    try:
        return lead_query_service.get_lead(db, identity, lead_id)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.patch("/{lead_id}", response_model=LeadRead)
def patch_lead(
    request: Request,
    lead_id: int,
    dto: LeadUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> LeadRead | JSONResponse:
    try:
        return lead_mutation_service.update_lead(db, identity, lead_id, dto)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.patch("/{lead_id}/survey-status", response_model=LeadRead)
def patch_survey_status(
    request: Request,
    lead_id: int,
    dto: SurveyStatusUpdate,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> LeadRead | JSONResponse:
    try:
        return lead_mutation_service.update_survey_status(db, identity, lead_id, dto.survey_status)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.delete("/{lead_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_lead(
    request: Request,
    lead_id: int,
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> Response:
    try:
        lead_mutation_service.delete_lead(db, identity, lead_id)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
