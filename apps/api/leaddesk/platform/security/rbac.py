from __future__ import annotations

from leaddesk.metrics import observe_authz_denied
from leaddesk.platform.security.context import Identity
from leaddesk.platform.security.errors import AuthorizationError, DenialReason
from leaddesk.platform.security.policies import ResourceAction, get_policy_backend


_ACTION_REASONS = {
    ResourceAction.CREATE: DenialReason.ROLE_CANNOT_CREATE,
    ResourceAction.DELETE: DenialReason.ROLE_CANNOT_DELETE,
    ResourceAction.READ: DenialReason.SURFACE_NOT_ALLOWED,
    ResourceAction.UPDATE: DenialReason.FIELD_NOT_WRITABLE,
}


def require_identity(identity: Identity | None) -> Identity:
    if identity is None:
        observe_authz_denied(resource="*", reason=DenialReason.MISSING_IDENTITY.value)
        raise AuthorizationError("No identity supplied", reason=DenialReason.MISSING_IDENTITY)
    return identity


def require_resource_action(resource: str, action: ResourceAction, identity: Identity | None) -> Identity:
    resolved = require_identity(identity)
    if get_policy_backend().is_resource_allowed(resource, action, resolved):
        return resolved

    reason = _ACTION_REASONS[action]
    observe_authz_denied(resource=resource, reason=reason.value)
    raise AuthorizationError(
        f"Role '{resolved.role.value}' cannot {action.value} '{resource}'",
        reason=reason,
    )
