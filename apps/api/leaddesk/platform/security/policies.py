from __future__ import annotations

from enum import StrEnum
from threading import Lock
from typing import Protocol

from leaddesk.platform.security.context import Identity, Role


LEAD_RESOURCE = "leads.lead"
EXPENSE_RESOURCE = "expenses.expense"
USER_RESOURCE = "users.account"
DASHBOARD_METRICS_RESOURCE = "reports.dashboard.metrics"
STAFF_PERFORMANCE_RESOURCE = "reports.dashboard.staff"
METRICS_TREND_RESOURCE = "reports.dashboard.trend"

LEAD_FINANCIAL_FIELDS = ("lead_cost", "lead_revenue", "commission_amount", "commission_paid")
COST_SPLIT_FIELDS = (
    "total_online_expenses",
    "total_field_expenses",
    "cost_per_lead_online",
    "cost_per_lead_field",
)


class ResourceAction(StrEnum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class FieldAction(StrEnum):
    READ = "field.read"
    EDIT = "field.edit"


class FieldDecision(StrEnum):
    ALLOW = "ALLOW"
    DENY = "DENY"


class PolicyBackend(Protocol):
    """Pluggable policy backend interface for role/field checks."""

    def is_resource_allowed(self, resource: str, action: ResourceAction, identity: Identity) -> bool:
        ...

    def evaluate_field_read(self, resource: str, field: str, identity: Identity) -> FieldDecision:
        ...

    def can_edit_field(self, resource: str, field: str, identity: Identity) -> bool:
        ...


def _field_permission(resource: str, action: FieldAction, field: str) -> str:
    return f"{resource}.{action.value}:{field}"


ROLE_GRANTS: dict[Role, set[str]] = {
    Role.ADMIN: {"*"},
    Role.ACCOUNT_MANAGER: {
        f"{LEAD_RESOURCE}.read",
        f"{LEAD_RESOURCE}.create",
        f"{LEAD_RESOURCE}.update",
        f"{LEAD_RESOURCE}.delete",
        _field_permission(LEAD_RESOURCE, FieldAction.READ, "*"),
        _field_permission(LEAD_RESOURCE, FieldAction.EDIT, "*"),
        f"{EXPENSE_RESOURCE}.read",
        "reports.dashboard.*",
    },
    Role.FIELD_REP: {
        f"{LEAD_RESOURCE}.read",
        f"{LEAD_RESOURCE}.update",
        _field_permission(LEAD_RESOURCE, FieldAction.READ, "*"),
        _field_permission(LEAD_RESOURCE, FieldAction.EDIT, "notes"),
        _field_permission(LEAD_RESOURCE, FieldAction.EDIT, "installer_notes"),
        f"{EXPENSE_RESOURCE}.read",
        "reports.dashboard.*",
    },
    Role.INSTALLER: {
        f"{LEAD_RESOURCE}.read",
        f"{LEAD_RESOURCE}.update",
        _field_permission(LEAD_RESOURCE, FieldAction.READ, "*"),
        _field_permission(LEAD_RESOURCE, FieldAction.EDIT, "installer_notes"),
    },
}

# Deny rules win over any grant, including wildcards.
ROLE_DENIALS: dict[Role, set[str]] = {
    Role.ACCOUNT_MANAGER: {
        *(_field_permission(LEAD_RESOURCE, FieldAction.EDIT, name) for name in LEAD_FINANCIAL_FIELDS),
        *(_field_permission(DASHBOARD_METRICS_RESOURCE, FieldAction.READ, name) for name in COST_SPLIT_FIELDS),
    },
}


class InMemoryPolicyBackend:
    """Role grant/deny policy backend with wildcard support."""

    def __init__(
        self,
        role_permissions: dict[Role, set[str]] | None = None,
        role_denials: dict[Role, set[str]] | None = None,
        *,
        default_allow: bool = False,
    ) -> None:
        self._role_permissions = role_permissions or {}
        self._role_denials = role_denials or {}
        self._default_allow = default_allow

    def is_resource_allowed(self, resource: str, action: ResourceAction, identity: Identity) -> bool:
        if self._default_allow:
            return True
        return self._is_granted(f"{resource}.{action.value}", identity)

    def evaluate_field_read(self, resource: str, field: str, identity: Identity) -> FieldDecision:
        if self._default_allow:
            return FieldDecision.ALLOW
        if self._is_granted(_field_permission(resource, FieldAction.READ, field), identity):
            return FieldDecision.ALLOW
        return FieldDecision.DENY

    def can_edit_field(self, resource: str, field: str, identity: Identity) -> bool:
        if self._default_allow:
            return True
        return self._is_granted(_field_permission(resource, FieldAction.EDIT, field), identity)

    def _is_granted(self, required: str, identity: Identity) -> bool:
        denials = self._role_denials.get(identity.role, set())
        if any(self._matches(rule, required) for rule in denials):
            return False
        grants = self._role_permissions.get(identity.role, set())
        return any(self._matches(grant, required) for grant in grants)

    @staticmethod
    def _matches(grant: str, required: str) -> bool:
        if grant in {"*", required}:
            return True

        if grant.endswith(".*"):
            return required.startswith(grant[:-1])

        if ":" in grant and grant.endswith(":*"):
            return required.startswith(grant[:-1])

        return False


def build_default_policy_backend() -> InMemoryPolicyBackend:
    return InMemoryPolicyBackend(ROLE_GRANTS, ROLE_DENIALS, default_allow=False)


_POLICY_BACKEND: PolicyBackend = build_default_policy_backend()
_POLICY_LOCK = Lock()


def get_policy_backend() -> PolicyBackend:
    """Get the active policy backend instance."""

    return _POLICY_BACKEND


def set_policy_backend(backend: PolicyBackend) -> None:
    """Set the active policy backend instance."""

    global _POLICY_BACKEND
    with _POLICY_LOCK:
        _POLICY_BACKEND = backend
