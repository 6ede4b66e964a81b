from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from leaddesk import audit
from leaddesk.metrics import observe_fls_field_counts
from leaddesk.platform.security.context import Identity
from leaddesk.platform.security.errors import ForbiddenFieldError
from leaddesk.platform.security.policies import FieldDecision, get_policy_backend


def apply_fls_read(resource: str, record: dict[str, Any], identity: Identity) -> dict[str, Any]:
    """Drop the fields the identity is not allowed to read from a single record."""

    policy = get_policy_backend()
    output: dict[str, Any] = {}
    denied_fields: list[str] = []

    for field_name, value in record.items():
        if policy.evaluate_field_read(resource, field_name, identity) == FieldDecision.ALLOW:
            output[field_name] = value
            continue
        denied_fields.append(field_name)

    if denied_fields:
        observe_fls_field_counts(resource=resource, operation="read", denied_count=len(denied_fields))
    return output


def writable_fields(resource: str, fields: Iterable[str], identity: Identity) -> list[str]:
    policy = get_policy_backend()
    return [field_name for field_name in fields if policy.can_edit_field(resource, field_name, identity)]


def validate_fls_write(
    resource: str,
    payload: dict[str, Any],
    identity: Identity,
    *,
    record_id: object | None = None,
) -> None:
    """Reject the whole payload when any field is not editable by the identity."""

    policy = get_policy_backend()
    denied_fields = [field_name for field_name in payload if not policy.can_edit_field(resource, field_name, identity)]
    if not denied_fields:
        return

    observe_fls_field_counts(resource=resource, operation="write", denied_count=len(denied_fields))
    audit.record(
        actor_user_id=identity.user_id,
        entity_type="security.fls",
        entity_id=str(record_id) if record_id is not None else "unknown",
        action="fls.write",
        before=None,
        after={
            "resource": resource,
            "role": identity.role.value,
            "denied_fields": sorted(denied_fields),
            "denied_count": len(denied_fields),
        },
        correlation_id=identity.correlation_id,
    )
    raise ForbiddenFieldError(resource=resource, fields=denied_fields)
