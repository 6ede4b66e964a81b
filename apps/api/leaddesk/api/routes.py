from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from leaddesk.api.dependencies import get_current_identity
from leaddesk.api.errors import error_response
from leaddesk.core.config import get_settings
from leaddesk.expenses.api import router as expenses_router
from leaddesk.leads.api import router as leads_router
from leaddesk.leads.schemas import LeadUpdate
from leaddesk.metrics import generate_metrics_payload, metrics_content_type
from leaddesk.platform.security.context import Identity
from leaddesk.platform.security.fls import writable_fields
from leaddesk.platform.security.policies import LEAD_RESOURCE
from leaddesk.reporting.dashboard.api import router as dashboard_router
from leaddesk.users.api import router as users_router

router = APIRouter()
router.include_router(leads_router)
router.include_router(dashboard_router)
router.include_router(expenses_router)
router.include_router(users_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
def me(identity: Identity = Depends(get_current_identity)) -> dict[str, str | list[str]]:
    return {
        "user_id": identity.user_id,
        "role": identity.role.value,
        "display_name": identity.display_name,
        "editable_lead_fields": writable_fields(LEAD_RESOURCE, LeadUpdate.model_fields.keys(), identity),
    }


@router.get("/metrics", tags=["system"])
def metrics(request: Request, identity: Identity = Depends(get_current_identity)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if not identity.is_admin:
        return error_response(
            request,
            status_code=status.HTTP_403_FORBIDDEN,
            code="permission_denied",
            message="Metrics are restricted to administrators",
            details={"reason": "surface_not_allowed"},
        )
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
