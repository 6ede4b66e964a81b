from __future__ import annotations

from enum import StrEnum


class DenialReason(StrEnum):
    NOT_IN_SCOPE = "not_in_scope"
    FIELD_NOT_WRITABLE = "field_not_writable"
    ROLE_CANNOT_CREATE = "role_cannot_create"
    ROLE_CANNOT_DELETE = "role_cannot_delete"
    SURFACE_NOT_ALLOWED = "surface_not_allowed"
    MISSING_IDENTITY = "missing_identity"


class UnauthenticatedError(Exception):
    """Raised when no verified identity can be resolved for the caller."""

    def __init__(self, message: str = "Unauthenticated") -> None:
        self.message = message
        super().__init__(message)


class AuthorizationError(Exception):
    """Base authorization error for policy/FLS enforcement failures."""

    def __init__(self, message: str, *, reason: DenialReason) -> None:
        self.message = message
        self.reason = reason
        super().__init__(message)


class OutOfScopeError(AuthorizationError):
    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"Record outside caller scope for resource '{resource}'", reason=DenialReason.NOT_IN_SCOPE)


class ForbiddenFieldError(AuthorizationError):
    """Raised when a payload contains fields that are not editable by policy."""

    def __init__(self, resource: str, fields: list[str]) -> None:
        self.resource = resource
        self.fields = sorted(set(fields))
        super().__init__(
            f"Forbidden fields for resource '{resource}': {', '.join(self.fields)}",
            reason=DenialReason.FIELD_NOT_WRITABLE,
        )
