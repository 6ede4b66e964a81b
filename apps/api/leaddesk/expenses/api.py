from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import date

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from leaddesk.api.dependencies import get_current_identity
from leaddesk.api.errors import SERVICE_ERRORS, service_error_response
from leaddesk.context import get_correlation_id
from leaddesk.core.auth import get_current_user
from leaddesk.core.config import get_settings
from leaddesk.core.database import get_db
from leaddesk.expenses.models import ExpenseCategory
from leaddesk.expenses.schemas import ExpenseCreate, ExpenseRead
from leaddesk.expenses.service import expense_service
from leaddesk.platform.security.context import Identity
from leaddesk.platform.security.errors import UnauthenticatedError
from leaddesk.users.service import resolve_identity


router = APIRouter(prefix="/api/expenses", tags=["expenses"])


@dataclass
class ExpenseAuthor:
    identity: Identity | None
    via_api_key: bool = False


async def get_expense_author(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="x-api-key"),
    db: Session = Depends(get_db),
) -> ExpenseAuthor:
    """Automation callers send ``x-api-key``; everyone else needs a user token."""

    if x_api_key is not None:
        expected = get_settings().expenses_api_key
        if not expected or not hmac.compare_digest(x_api_key, expected):
            raise UnauthenticatedError("Invalid API key")
        return ExpenseAuthor(identity=None, via_api_key=True)

    auth_user = await get_current_user(request)
    return ExpenseAuthor(identity=resolve_identity(db, auth_user.sub, correlation_id=get_correlation_id()))


@router.post("", response_model=ExpenseRead, status_code=status.HTTP_201_CREATED)
def create_expense(
    request: Request,
    dto: ExpenseCreate,
    db: Session = Depends(get_db),
    author: ExpenseAuthor = Depends(get_expense_author),
) -> ExpenseRead | JSONResponse:
    try:
        if author.via_api_key:
            return expense_service.create_expense_from_automation(db, dto, correlation_id=get_correlation_id())
        return expense_service.create_expense(db, author.identity, dto)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)


@router.get("", response_model=list[ExpenseRead])
def list_expenses(
    request: Request,
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    category: ExpenseCategory | None = Query(default=None),
    db: Session = Depends(get_db),
    identity: Identity = Depends(get_current_identity),
) -> list[ExpenseRead] | JSONResponse:
    try:
        return expense_service.list_expenses(db, identity, date_from=date_from, date_to=date_to, category=category)
    except SERVICE_ERRORS as exc:
        return service_error_response(request, exc)
