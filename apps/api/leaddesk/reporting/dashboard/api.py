from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from leaddesk.api.dependencies import get_current_identity
from leaddesk.api.errors import SERVICE_ERRORS, service_error_response
from leaddesk.core.database import get_db
from leaddesk.core.dates import DateRange
from leaddesk.platform.security.context import Identity
from leaddesk.reporting.dashboard.schemas import (
    DashboardMetricsRead,
    MetricsTrendPoint,
    StaffPerformanceRow,
)
from leaddesk.reporting.dashboard.service import dashboard_reporting_service


router = APIRouter(prefix="/api/reports/dashboard", tags=["reports", "dashboard"])


@router.get("/metrics", response_model=DashboardMetricsRead, response_model_exclude_none=True)
def dashboard_metrics(
    request: Request,
    date_from: datetime = Query(),
    date_to: datetime = Query(),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> DashboardMetricsRead | JSONResponse:
    try:
        return dashboard_reporting_service.dashboard_metrics(db, identity, DateRange.of(date_from, date_to))
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.get("/staff-performance", response_model=list[StaffPerformanceRow])
def staff_performance(
    request: Request,
    date_from: datetime = Query(),
    date_to: datetime = Query(),
    group_by: str | None = Query(default=None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> list[StaffPerformanceRow] | JSONResponse:
    try:
        return dashboard_reporting_service.staff_performance(
            db,
            identity,
            DateRange.of(date_from, date_to),
            group_by=group_by,
        )
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.get("/trend", response_model=list[MetricsTrendPoint])
def metrics_trend(
    request: Request,
    date_from: datetime = Query(),
    date_to: datetime = Query(),
    interval: str = Query(default="day"),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> list[MetricsTrendPoint] | JSONResponse:
    try:
        return dashboard_reporting_service.metrics_trend(db, identity, DateRange.of(date_from, date_to), interval)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)
