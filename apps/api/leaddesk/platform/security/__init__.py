from leaddesk.platform.security.context import Identity, Role
from leaddesk.platform.security.errors import (
    AuthorizationError,
    DenialReason,
    ForbiddenFieldError,
    OutOfScopeError,
    UnauthenticatedError,
)
from leaddesk.platform.security.fls import apply_fls_read, validate_fls_write, writable_fields
from leaddesk.platform.security.policies import (
    FieldDecision,
    InMemoryPolicyBackend,
    PolicyBackend,
    ResourceAction,
    build_default_policy_backend,
    get_policy_backend,
    set_policy_backend,
)
from leaddesk.platform.security.rbac import require_identity, require_resource_action
from leaddesk.platform.security.repository import BaseRepository
from leaddesk.platform.security.rls import ROLE_ATTRIBUTION, ScopePredicate, apply_rls_filter, build_scope, validate_rls_read_scope

__all__ = [
    "Identity",
    "Role",
    "AuthorizationError",
    "DenialReason",
    "ForbiddenFieldError",
    "OutOfScopeError",
    "UnauthenticatedError",
    "BaseRepository",
    "ROLE_ATTRIBUTION",
    "ScopePredicate",
    "build_scope",
    "apply_rls_filter",
    "apply_fls_read",
    "validate_rls_read_scope",
    "validate_fls_write",
    "writable_fields",
    "require_identity",
    "require_resource_action",
    "FieldDecision",
    "ResourceAction",
    "PolicyBackend",
    "InMemoryPolicyBackend",
    "build_default_policy_backend",
    "set_policy_backend",
    "get_policy_backend",
]
