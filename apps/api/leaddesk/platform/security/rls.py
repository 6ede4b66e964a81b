from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import ColumnElement, false, true
from sqlalchemy.sql import Select

from leaddesk import audit
from leaddesk.metrics import observe_rls_denied_read, observe_rls_denied_write
from leaddesk.platform.security.context import Identity, Role
from leaddesk.platform.security.errors import OutOfScopeError


# Attribution field on a lead that must equal the caller's display name.
ROLE_ATTRIBUTION: dict[Role, str] = {
    Role.ACCOUNT_MANAGER: "account_manager",
    Role.FIELD_REP: "field_rep",
    Role.INSTALLER: "installer",
}


@dataclass(frozen=True, slots=True)
class ScopePredicate:
    """Row visibility rule for one identity.

    The same instance yields the in-memory check (``matches``) and the SQL
    clause (``clause``) so list, detail, mutation and aggregate paths agree.
    """

    unrestricted: bool = False
    attribute: str | None = None
    value: str | None = None

    @property
    def denies_all(self) -> bool:
        return not self.unrestricted and (self.attribute is None or not self.value)

    def matches(self, record: Mapping[str, Any] | object) -> bool:
        if self.unrestricted:
            return True
        if self.denies_all or self.attribute is None:
            return False
        if isinstance(record, Mapping):
            actual = record.get(self.attribute)
        else:
            actual = getattr(record, self.attribute, None)
        return actual is not None and actual == self.value

    def clause(self, model: Any) -> ColumnElement[bool]:
        if self.unrestricted:
            return true()
        if self.denies_all or self.attribute is None:
            return false()
        column = getattr(model, self.attribute, None)
        if column is None:
            return false()
        return column == self.value


def build_scope(identity: Identity | None) -> ScopePredicate:
    if identity is None:
        return ScopePredicate()
    if identity.role == Role.ADMIN:
        return ScopePredicate(unrestricted=True)

    attribute = ROLE_ATTRIBUTION.get(identity.role)
    if attribute is None:
        return ScopePredicate()
    value = identity.display_name if identity.display_name and identity.display_name.strip() else None
    return ScopePredicate(attribute=attribute, value=value)


def apply_rls_filter(query: Select[Any], resource: str, identity: Identity | None) -> Select[Any]:
    """Restrict a select to rows the identity may see.

    Applied to every mapped entity exposing the attribution column; a query
    with no such entity returns nothing for a restricted identity.
    """

    scope = build_scope(identity)
    if scope.unrestricted:
        return query
    if scope.denies_all:
        return query.where(false())

    applied = False
    seen: set[Any] = set()
    for description in query.column_descriptions:
        model = description.get("entity")
        if model is None or model in seen or not hasattr(model, str(scope.attribute)):
            continue
        seen.add(model)
        query = query.where(scope.clause(model))
        applied = True

    if not applied:
        query = query.where(false())
    return query


def validate_rls_read_scope(
    resource: str,
    record: Mapping[str, Any] | object,
    identity: Identity | None,
    *,
    action: str = "read",
) -> None:
    """Validate record-level scope for records loaded by id."""

    scope = build_scope(identity)
    if scope.matches(record):
        return

    _emit_rls_denied(
        resource=resource,
        action=action,
        scope=scope,
        record=record,
        identity=identity,
        is_read=action == "read",
    )
    raise OutOfScopeError(resource)


def _emit_rls_denied(
    *,
    resource: str,
    action: str,
    scope: ScopePredicate,
    record: Mapping[str, Any] | object,
    identity: Identity | None,
    is_read: bool,
) -> None:
    scope_type = scope.attribute or "none"
    if is_read:
        observe_rls_denied_read(resource=resource, scope_type=scope_type)
    else:
        observe_rls_denied_write(resource=resource, scope_type=scope_type)

    record_id = record.get("id") if isinstance(record, Mapping) else getattr(record, "id", None)
    user_id = identity.user_id if identity is not None else "anonymous"
    correlation_id = identity.correlation_id if identity is not None else None
    audit.record(
        actor_user_id=user_id,
        entity_type="security.rls",
        entity_id=str(record_id if record_id is not None else "unknown"),
        action="rls.denied",
        before=None,
        after={
            "resource": resource,
            "action": action,
            "scope_type": scope_type,
            "role": identity.role.value if identity is not None else None,
            "correlation_id": correlation_id,
            "user_id": user_id,
        },
        correlation_id=correlation_id,
    )
