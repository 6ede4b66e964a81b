from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

from leaddesk.context import get_correlation_id
from leaddesk.core.errors import ConflictError, InfrastructureError, InvalidRequestError, NotFoundError
from leaddesk.platform.security.errors import AuthorizationError, ForbiddenFieldError, UnauthenticatedError


SERVICE_ERRORS = (
    UnauthenticatedError,
    AuthorizationError,
    InvalidRequestError,
    NotFoundError,
    ConflictError,
    InfrastructureError,
)


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def service_error_response(request: Request, exc: Exception) -> JSONResponse:
    """Map a service-layer exception onto the error envelope."""

    if isinstance(exc, UnauthenticatedError):
        return error_response(request, status_code=status.HTTP_401_UNAUTHORIZED, code="unauthenticated", message=exc.message)
    if isinstance(exc, ForbiddenFieldError):
        return error_response(
            request,
            status_code=status.HTTP_403_FORBIDDEN,
            code="permission_denied",
            message=exc.message,
            details={"reason": exc.reason.value, "fields": exc.fields},
        )
    if isinstance(exc, AuthorizationError):
        return error_response(
            request,
            status_code=status.HTTP_403_FORBIDDEN,
            code="permission_denied",
            message=exc.message,
            details={"reason": exc.reason.value},
        )
    if isinstance(exc, InvalidRequestError):
        return error_response(
            request,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="validation_error",
            message=exc.message,
            details=exc.details,
        )
    if isinstance(exc, NotFoundError):
        return error_response(
            request,
            status_code=status.HTTP_404_NOT_FOUND,
            code="not_found",
            message=str(exc),
            details={"resource": exc.resource, "id": str(exc.identifier)},
        )
    if isinstance(exc, ConflictError):
        return error_response(request, status_code=status.HTTP_409_CONFLICT, code="conflict", message=exc.message)
    if isinstance(exc, InfrastructureError):
        return error_response(
            request,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code="infrastructure_error",
            message=str(exc),
            details={"operation": exc.operation, "retryable": exc.retryable},
        )
    raise exc
